"""
Tests for structured logging and the audit trail.
"""

import io
import json
import logging

import pytest

from agriverify.observability import (
    AuditLogger,
    Layer,
    LogEvent,
    configure_logging,
    correlation_id_var,
    generate_correlation_id,
    get_correlation_id,
    get_logger,
    set_correlation_id,
    timed_operation,
)


def _lines(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines() if line]


class TestStructuredLogging:
    """Tests for EngineLogger and StructuredHandler."""

    def test_json_lines(self):
        stream = io.StringIO()
        configure_logging(level="debug", fmt="json", stream=stream)
        set_correlation_id("corr-test")

        get_logger("unit", Layer.REGISTRY).info("hello", operation="op", item=3)

        (record,) = _lines(stream)
        assert record["message"] == "hello"
        assert record["level"] == "info"
        assert record["logger"] == "agriverify.registry.unit"
        assert record["layer"] == "registry"
        assert record["operation"] == "op"
        assert record["correlation_id"] == "corr-test"
        assert record["context"] == {"item": 3}

    def test_text_format(self):
        stream = io.StringIO()
        configure_logging(level="info", fmt="text", stream=stream)

        get_logger("unit", Layer.CHAIN).warning("careful", operation="op", error_code="X")

        line = stream.getvalue().strip()
        assert "WARNING" in line
        assert "[op]" in line
        assert "error_code=X" in line

    def test_level_from_config(self):
        stream = io.StringIO()
        configure_logging(stream=stream)
        assert logging.getLogger("agriverify").level == logging.INFO

        get_logger("unit", Layer.CLI).debug("hidden")
        assert stream.getvalue() == ""

    def test_reconfigure_replaces_handler(self):
        first, second = io.StringIO(), io.StringIO()
        configure_logging(level="info", stream=first)
        configure_logging(level="info", stream=second)

        get_logger("unit", Layer.CLI).info("once")

        assert first.getvalue() == ""
        assert len(_lines(second)) == 1

    def test_exception_captured(self):
        stream = io.StringIO()
        configure_logging(level="info", stream=stream)
        try:
            raise ValueError("bad")
        except ValueError:
            get_logger("unit", Layer.CLI).error("failed", exc_info=True)

        (record,) = _lines(stream)
        assert "ValueError: bad" in record["exception"]

    def test_log_event_drops_empty(self):
        event = LogEvent(timestamp="t", level="info", logger="l", message="m")
        assert set(event.to_dict()) == {"timestamp", "level", "logger", "message"}


class TestRegistryLogging:
    """Registry calls log rejections and commits."""

    def test_rejection_logged_with_code(self, registry):
        stream = io.StringIO()
        configure_logging(level="info", stream=stream)

        registry.set_verification_fee(1000)

        records = _lines(stream)
        rejected = [r for r in records if r["level"] == "warning"]
        assert len(rejected) == 1
        assert rejected[0]["error_code"] == "AUTHORITY_NOT_VERIFIED"
        assert rejected[0]["operation"] == "set_verification_fee"

    def test_commit_logged(self, registry):
        stream = io.StringIO()
        configure_logging(level="info", stream=stream)

        registry.set_authority_contract("ST2AUTH")

        messages = [r["message"] for r in _lines(stream)]
        assert "set_authority_contract committed" in messages
        assert any(m.startswith("AUDIT: set_authority_contract") for m in messages)


class TestCorrelation:
    """Tests for correlation ids."""

    def test_generate_unique(self):
        a, b = generate_correlation_id(), generate_correlation_id()
        assert a.startswith("corr-")
        assert a != b

    def test_get_creates_once(self):
        assert correlation_id_var.get() == ""
        cid = get_correlation_id()
        assert cid
        assert get_correlation_id() == cid


class TestTimedOperation:
    """Tests for the timed_operation decorator."""

    def test_logs_success_and_failure(self):
        stream = io.StringIO()
        configure_logging(level="info", stream=stream)
        logger = get_logger("timer", Layer.SCENARIO)

        @timed_operation(logger, "work")
        def work(fail):
            if fail:
                raise RuntimeError("nope")
            return 1

        assert work(False) == 1
        with pytest.raises(RuntimeError):
            work(True)

        ok, failed = _lines(stream)
        assert ok["message"] == "Operation work completed"
        assert ok["duration_ms"] >= 0
        assert failed["level"] == "warning"
        assert failed["message"] == "Operation work failed"


class TestAuditLogger:
    """Tests for the hash-chained audit trail."""

    def test_chain(self):
        audit = AuditLogger()
        first = audit.log("ST1", "approve_practice", "verification", "0", "success", block_height=3, score=80)
        second = audit.log("ST1", "update_verification", "verification", "0", "success")

        assert first.previous_hash == AuditLogger.GENESIS
        assert second.previous_hash == first.event_hash
        assert audit.head == second.event_hash
        assert first.details == {"score": 80}
        assert audit.verify_chain()

    def test_tamper_detected(self):
        audit = AuditLogger()
        audit.log("ST1", "a", "verification", "0", "success")
        audit.log("ST1", "b", "verification", "1", "success")

        audit._entries[0].details["score"] = 1

        assert not audit.verify_chain()

    def test_clear(self):
        audit = AuditLogger()
        audit.log("ST1", "a", "verification", "0", "success")
        audit.clear()
        assert audit.entries == []
        assert audit.head == AuditLogger.GENESIS

    def test_registry_audits_successes_only(self, registry, audit):
        registry.set_verification_fee(1)
        assert audit.entries == []

        registry.set_authority_contract("ST2AUTH")
        registry.request_verification(1, bytes(32), "soil", 5, "Farm", None, "ST3FARMER")

        actions = [e.action for e in audit.entries]
        assert actions == ["set_authority_contract", "request_verification"]
        assert audit.entries[1].actor == "ST1VERIFIER"
        assert audit.entries[1].details == {"practice_id": 1, "fee": 500}
        assert audit.verify_chain()
