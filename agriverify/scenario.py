"""
Scenario Runner

Replays a scripted sequence of registry calls against a fresh
VerificationRegistry and compares each call's outcome with the step's
expectation. Scenarios are YAML or JSON documents checked against
``schemas/scenario.schema.json`` before anything runs:

    name: first approval
    caller: ST1VERIFIER
    config:
      verification_fee: 500
    steps:
      - op: set_authority_contract
        args: {principal: ST2AUTH}
      - op: request_verification
        advance_blocks: 1
        args:
          practice_id: 1
          proof_hash: "0101...01"          # 64 hex chars
          practice_type: soil
          impact_level: 5
          location: Farm A
          farmer: ST3FARMER
        expect: {ok: true, value: 0}
      - op: approve_practice
        args: {verification_id: 0, score: 80, reason: Good practice}
      - op: get_verifier_rating
        args: {verifier: ST1VERIFIER}
        expect: {value: 1}

An ``expect`` may give ``ok``, ``value`` and/or ``error`` (an error code name
such as ``INVALID_PROOF_HASH``). For ``get_verification`` the expected value
may be a partial record: only the listed fields are compared.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import pathlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import yaml

from agriverify.chain import ChainEnvironment
from agriverify.core import load_document, sha256_digest
from agriverify.events import EventBus
from agriverify.models import VerificationConfig
from agriverify.observability import (
    AuditLogger,
    Layer,
    correlation_id_var,
    generate_correlation_id,
    get_logger,
    set_correlation_id,
    timed_operation,
)
from agriverify.registry import VerificationRegistry
from agriverify.schema import validate_scenario_document
from agriverify.validation import ErrorCode, Result

logger = get_logger("runner", Layer.SCENARIO)


class ScenarioError(Exception):
    """A scenario document is malformed or cannot be replayed."""
    pass


# Operations a scenario may call, with the argument names each one takes.
OPERATIONS: Dict[str, Tuple[str, ...]] = {
    "set_authority_contract": ("principal",),
    "set_verification_fee": ("fee",),
    "set_min_verification_score": ("value",),
    "set_max_verification_score": ("value",),
    "request_verification": (
        "practice_id", "proof_hash", "practice_type", "impact_level",
        "location", "evidence_url", "farmer",
    ),
    "approve_practice": ("verification_id", "score", "reason"),
    "reject_practice": ("verification_id", "reason"),
    "update_verification": ("verification_id", "score", "reason"),
    "get_verification_count": (),
    "get_verification": ("verification_id",),
    "get_verifier_rating": ("verifier",),
}

OPTIONAL_ARGS = {"evidence_url", "reason"}


@dataclass
class StepOutcome:
    """Outcome of one replayed step."""
    index: int
    op: str
    caller: str
    block_height: int
    ok: bool
    value: Any
    error: Optional[str] = None
    mismatches: List[str] = field(default_factory=list)

    @property
    def matched(self) -> bool:
        return not self.mismatches

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "index": self.index,
            "op": self.op,
            "caller": self.caller,
            "block_height": self.block_height,
            "ok": self.ok,
            "value": self.value,
        }
        if self.error:
            d["error"] = self.error
        if self.mismatches:
            d["mismatches"] = list(self.mismatches)
        return d


@dataclass
class ScenarioReport:
    """Result of running a scenario."""
    name: str
    correlation_id: str
    outcomes: List[StepOutcome]
    state: Dict[str, Any]

    @property
    def mismatches(self) -> List[str]:
        return [
            f"step {o.index} ({o.op}): {m}"
            for o in self.outcomes
            for m in o.mismatches
        ]

    @property
    def passed(self) -> bool:
        return all(o.matched for o in self.outcomes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "correlation_id": self.correlation_id,
            "passed": self.passed,
            "steps": len(self.outcomes),
            "mismatches": self.mismatches,
            "outcomes": [o.to_dict() for o in self.outcomes],
            "state": self.state,
        }


# =============================================================================
# LOADING
# =============================================================================

def load_scenario(path: pathlib.Path) -> Dict[str, Any]:
    """Load and schema-check a scenario file."""
    path = pathlib.Path(path)
    if not path.exists():
        raise ScenarioError(f"scenario file not found: {path}")
    try:
        doc = load_document(path)
    except (yaml.YAMLError, ValueError) as e:
        raise ScenarioError(f"cannot parse scenario {path}: {e}") from e

    errors = check_scenario(doc)
    if errors:
        raise ScenarioError(f"invalid scenario: {path}: {errors[0]}")
    return doc


def check_scenario(doc: Any) -> List[str]:
    """Schema errors plus checks the schema cannot express."""
    errors = validate_scenario_document(doc)
    if errors:
        return errors

    for i, step in enumerate(doc.get("steps", [])):
        op = step["op"]
        args = step.get("args", {})
        allowed = set(OPERATIONS[op]) | ({"proof"} if op == "request_verification" else set())
        unknown = sorted(set(args) - allowed)
        if unknown:
            errors.append(f"$.steps[{i}].args: unknown argument(s) for {op}: {', '.join(unknown)}")
        expect = step.get("expect", {})
        if "error" in expect:
            try:
                ErrorCode.parse(expect["error"])
            except KeyError:
                errors.append(f"$.steps[{i}].expect.error: unknown error code {expect['error']!r}")

    cfg = doc.get("config", {})
    lo = cfg.get("min_verification_score")
    hi = cfg.get("max_verification_score")
    if lo is not None and hi is not None and lo >= hi:
        errors.append("$.config: min_verification_score must be below max_verification_score")
    return errors


def decode_proof_hash(value: Any) -> Any:
    """Hex text to bytes; anything else is passed through for the registry to judge."""
    if not isinstance(value, str):
        return value
    text = value[2:] if value.startswith("0x") else value
    try:
        return bytes.fromhex(text)
    except ValueError as e:
        raise ScenarioError(f"proof_hash is not hex: {value!r}") from e


# =============================================================================
# RUNNER
# =============================================================================

class ScenarioRunner:
    """
    Replays scenarios, each against its own registry.

    An event bus or audit logger passed in is shared by every run, which
    lets callers observe what a scenario did.
    """

    def __init__(
        self,
        event_bus: Optional[EventBus] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self.event_bus = event_bus
        self.audit = audit
        self.registry: Optional[VerificationRegistry] = None

    def build_registry(self, doc: Dict[str, Any]) -> VerificationRegistry:
        from agriverify.config import ConfigError, get_config
        try:
            config = VerificationConfig.from_settings(get_config().registry)
            for key, value in doc.get("config", {}).items():
                setattr(config, key, value)

            chain = ChainEnvironment(
                caller=doc.get("caller"),
                block_height=doc.get("block_height"),
            )
            return VerificationRegistry(
                config=config,
                chain=chain,
                event_bus=self.event_bus,
                audit=self.audit,
            )
        except ConfigError as e:
            raise ScenarioError(str(e)) from e

    def run_file(self, path: pathlib.Path) -> ScenarioReport:
        doc = load_scenario(path)
        doc.setdefault("name", pathlib.Path(path).stem)
        return self.run(doc)

    def run(self, doc: Dict[str, Any]) -> ScenarioReport:
        """Validate and replay ``doc``; a fresh correlation id groups its logs."""
        errors = check_scenario(doc)
        if errors:
            raise ScenarioError(f"invalid scenario: {errors[0]}")

        token = None
        if not correlation_id_var.get():
            token = set_correlation_id(generate_correlation_id())
        try:
            return self._run(doc)
        finally:
            if token is not None:
                correlation_id_var.reset(token)

    @timed_operation(logger, "scenario.run")
    def _run(self, doc: Dict[str, Any]) -> ScenarioReport:
        name = doc.get("name", "scenario")
        registry = self.build_registry(doc)
        self.registry = registry
        logger.info(f"Running scenario {name}", operation="scenario.run", steps=len(doc["steps"]))

        outcomes = []
        for index, step in enumerate(doc["steps"]):
            outcome = self._run_step(registry, index, step)
            if not outcome.matched:
                for mismatch in outcome.mismatches:
                    logger.warning(
                        f"Step {index} ({outcome.op}) mismatch: {mismatch}",
                        operation="scenario.step",
                        step=index,
                    )
            outcomes.append(outcome)

        return ScenarioReport(
            name=name,
            correlation_id=correlation_id_var.get(),
            outcomes=outcomes,
            state=registry.export_state(),
        )

    def _run_step(
        self,
        registry: VerificationRegistry,
        index: int,
        step: Dict[str, Any],
    ) -> StepOutcome:
        op = step["op"]
        if step.get("advance_blocks"):
            registry.chain.advance(step["advance_blocks"])

        kwargs = self._call_args(index, op, step.get("args", {}))
        caller = step.get("caller", registry.chain.caller)
        with registry.chain.as_caller(caller):
            raw = getattr(registry, op)(**kwargs)

        ok, value, error = _normalize(raw)
        outcome = StepOutcome(
            index=index,
            op=op,
            caller=caller,
            block_height=registry.chain.block_height,
            ok=ok,
            value=value,
            error=error,
        )
        if "expect" in step:
            outcome.mismatches = _compare(step["expect"], ok, value, error)
        return outcome

    @staticmethod
    def _call_args(index: int, op: str, args: Dict[str, Any]) -> Dict[str, Any]:
        kwargs = dict(args)
        if op == "request_verification":
            if "proof" in kwargs:
                if "proof_hash" in kwargs:
                    raise ScenarioError(f"step {index}: give proof or proof_hash, not both")
                kwargs["proof_hash"] = sha256_digest(str(kwargs.pop("proof")))
            elif "proof_hash" in kwargs:
                kwargs["proof_hash"] = decode_proof_hash(kwargs["proof_hash"])

        missing = [
            name for name in OPERATIONS[op]
            if name not in kwargs and name not in OPTIONAL_ARGS
        ]
        if missing:
            raise ScenarioError(f"step {index}: {op} is missing argument(s): {', '.join(missing)}")
        for name in OPERATIONS[op]:
            kwargs.setdefault(name, None)
        return kwargs


def _normalize(raw: Any) -> Tuple[bool, Any, Optional[str]]:
    """Reduce any registry return value to (ok, json-ready value, error name)."""
    if isinstance(raw, Result):
        if raw.ok:
            return True, raw.value, None
        return False, int(raw.value), raw.value.name
    if hasattr(raw, "to_dict"):
        return True, raw.to_dict(), None
    return True, raw, None


def _compare(expect: Dict[str, Any], ok: bool, value: Any, error: Optional[str]) -> List[str]:
    mismatches = []
    if "ok" in expect and expect["ok"] != ok:
        mismatches.append(f"expected ok={expect['ok']}, got ok={ok}")
    if "error" in expect:
        code = ErrorCode.parse(expect["error"])
        if ok or value != int(code):
            got = error if error else "success"
            mismatches.append(f"expected error {code.name}, got {got}")
    if "value" in expect:
        wanted = expect["value"]
        if isinstance(wanted, dict) and isinstance(value, dict):
            for key, expected_field in wanted.items():
                if value.get(key) != expected_field:
                    mismatches.append(
                        f"field {key}: expected {expected_field!r}, got {value.get(key)!r}"
                    )
        elif wanted != value:
            mismatches.append(f"expected value {wanted!r}, got {value!r}")
    return mismatches
