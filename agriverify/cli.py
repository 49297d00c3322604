#!/usr/bin/env python3
"""
agriverify CLI

Command-line interface for the practice verification engine.

Usage:
    agriverify <command> [subcommand] [options]

Commands:
    config      Configuration management
    errors      List contract error codes
    proof-hash  Compute a 32-byte proof hash
    scenario    Validate and replay verification scenarios

Exit codes: 0 on success, 1 on errors, 2 when a scenario's expectations
are not met.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import argparse
import json
import pathlib
import sys
from enum import Enum
from typing import Any, List, Optional

import yaml

from agriverify import __version__
from agriverify.observability import (
    Layer,
    configure_logging,
    generate_correlation_id,
    get_logger,
    set_correlation_id,
)

logger = get_logger("main", Layer.CLI)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_MISMATCH = 2


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TABLE = "table"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = EXIT_ERROR):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    elif fmt == OutputFormat.TABLE:
        return _format_table(data)
    else:
        return str(data)


def _format_table(data: Any) -> str:
    """Format data as ASCII table."""
    if isinstance(data, list) and data and isinstance(data[0], dict):
        headers = list(data[0].keys())
        rows = [[str(row.get(h, ""))[:60] for h in headers] for row in data]
        widths = [max(len(h), max(len(r[i]) for r in rows)) for i, h in enumerate(headers)]

        lines = []
        lines.append(" | ".join(h.ljust(widths[i]) for i, h in enumerate(headers)))
        lines.append("-+-".join("-" * w for w in widths))
        for row in rows:
            lines.append(" | ".join(c.ljust(widths[i]) for i, c in enumerate(row)))
        return "\n".join(lines)
    elif isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    return str(data)


class AgriVerifyCLI:
    """Main CLI application."""

    def __init__(self):
        self.exit_code = EXIT_OK
        self.parser = argparse.ArgumentParser(
            prog="agriverify",
            description="Agricultural practice verification engine",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"agriverify {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=["json", "yaml", "table", "text"],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress non-essential output",
        )
        self.parser.add_argument(
            "--config", "-c",
            dest="config_file",
            help="Load configuration from a YAML file",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()

    def _register_commands(self) -> None:
        """Register all command groups."""
        self._register_config_commands()
        self._register_errors_command()
        self._register_proof_hash_command()
        self._register_scenario_commands()

    def _register_config_commands(self) -> None:
        """Register config subcommands."""
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        # config get
        get = config_sub.add_parser("get", help="Get configuration value")
        get.add_argument("path", help="Config path (e.g., registry.verification_fee)")

        # config set
        set_cmd = config_sub.add_parser("set", help="Set configuration value")
        set_cmd.add_argument("path", help="Config path")
        set_cmd.add_argument("value", help="Value to set")

        # config show
        config_sub.add_parser("show", help="Show all configuration")

        # config validate
        config_sub.add_parser("validate", help="Validate configuration")

        # config schema
        config_sub.add_parser("schema", help="Export configuration schema")

    def _register_errors_command(self) -> None:
        errors = self.subparsers.add_parser("errors", help="List contract error codes")
        errors.add_argument("code", nargs="?", help="Show one code (number or name)")

    def _register_proof_hash_command(self) -> None:
        proof = self.subparsers.add_parser("proof-hash", help="Compute a proof hash")
        proof.add_argument("text", nargs="?", help="Text to hash")
        proof.add_argument("--file", "-i", help="File to hash")

    def _register_scenario_commands(self) -> None:
        """Register scenario subcommands."""
        scenario = self.subparsers.add_parser("scenario", help="Verification scenarios")
        scenario_sub = scenario.add_subparsers(dest="subcommand")

        # scenario validate
        validate = scenario_sub.add_parser("validate", help="Validate a scenario file")
        validate.add_argument("file", help="Scenario file (YAML or JSON)")

        # scenario run
        run = scenario_sub.add_parser("run", help="Run a scenario file")
        run.add_argument("file", help="Scenario file (YAML or JSON)")
        run.add_argument("--state-out", help="Write the final registry state as canonical JSON")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return EXIT_OK

        self.exit_code = EXIT_OK
        set_correlation_id(generate_correlation_id())
        try:
            self._configure(parsed)
            fmt = OutputFormat(parsed.format)
            result = self._dispatch(parsed)

            if result is not None:
                print(format_output(result, fmt))

            return self.exit_code

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except Exception as e:
            logger.error(f"Command failed: {e}", exc_info=True, command=parsed.command)
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return EXIT_ERROR

    def _configure(self, args: argparse.Namespace) -> None:
        from agriverify.config import get_config_manager
        mgr = get_config_manager()
        if args.config_file:
            mgr.load_from_file(args.config_file)
        else:
            mgr.load_defaults()
        configure_logging(level="error" if args.quiet else None, stream=sys.stderr)

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        cmd = args.command.replace("-", "_")
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {args.command} {subcmd or ''}".strip())

        return handler(args)

    # Config handlers
    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        from agriverify.config import get_config_manager
        mgr = get_config_manager()
        return {"path": args.path, "value": mgr.get(args.path)}

    def _handle_config_set(self, args: argparse.Namespace) -> Any:
        from agriverify.config import get_config_manager
        mgr = get_config_manager()
        mgr.set(args.path, args.value)
        return {"path": args.path, "value": mgr.get(args.path), "status": "updated"}

    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        from agriverify.config import get_config_manager
        mgr = get_config_manager()
        return mgr.config.to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        from agriverify.config import get_config_manager
        mgr = get_config_manager()
        errors = mgr.validate()
        if errors:
            self.exit_code = EXIT_ERROR
        return {"valid": len(errors) == 0, "errors": errors}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        from agriverify.config import get_config_manager
        mgr = get_config_manager()
        return mgr.export_schema()

    # Error table
    def _handle_errors(self, args: argparse.Namespace) -> Any:
        from agriverify.validation import ErrorCode

        if args.code:
            raw = args.code
            try:
                code = ErrorCode.parse(int(raw) if raw.isdigit() else raw)
            except (KeyError, ValueError) as e:
                raise CLIError(f"Unknown error code: {raw}") from e
            codes = [code]
        else:
            codes = list(ErrorCode)

        return [
            {"code": int(c), "name": c.name, "description": c.description}
            for c in codes
        ]

    def _handle_proof_hash(self, args: argparse.Namespace) -> Any:
        from agriverify.core import sha256_digest

        if (args.file is None) == (args.text is None):
            raise CLIError("Give either TEXT or --file")
        if args.file:
            path = pathlib.Path(args.file)
            if not path.is_file():
                raise CLIError(f"File not found: {path}")
            digest = sha256_digest(path.read_bytes())
            source = str(path)
        else:
            digest = sha256_digest(args.text)
            source = "text"
        return {"source": source, "proof_hash": digest.hex(), "length": len(digest)}

    # Scenario handlers
    def _handle_scenario_validate(self, args: argparse.Namespace) -> Any:
        from agriverify.scenario import ScenarioError, load_scenario

        try:
            doc = load_scenario(pathlib.Path(args.file))
        except ScenarioError as e:
            self.exit_code = EXIT_ERROR
            return {"file": args.file, "valid": False, "errors": [str(e)]}
        return {"file": args.file, "valid": True, "steps": len(doc["steps"])}

    def _handle_scenario_run(self, args: argparse.Namespace) -> Any:
        from agriverify.core import write_canonical_json
        from agriverify.scenario import ScenarioError, ScenarioRunner

        runner = ScenarioRunner()
        try:
            report = runner.run_file(pathlib.Path(args.file))
        except ScenarioError as e:
            raise CLIError(str(e)) from e

        result = report.to_dict()
        if args.state_out:
            result["state_digest"] = write_canonical_json(pathlib.Path(args.state_out), report.state)
            result["state_out"] = args.state_out
        if not report.passed:
            self.exit_code = EXIT_MISMATCH
        return result


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    cli = AgriVerifyCLI()
    return cli.run(argv)


if __name__ == "__main__":
    sys.exit(main())
