import logging
import os
import pathlib
import sys
import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import agriverify`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from agriverify.chain import ChainEnvironment  # noqa: E402
from agriverify.config import ConfigManager  # noqa: E402
from agriverify.events import EventBus  # noqa: E402
from agriverify.observability import (  # noqa: E402
    ROOT_LOGGER_NAME,
    AuditLogger,
    StructuredHandler,
    correlation_id_var,
)
from agriverify.registry import VerificationRegistry  # noqa: E402

AUTHORITY = "ST2AUTH"
VERIFIER = "ST1VERIFIER"
FARMER = "ST3FARMER"


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: slow correctness tests (skipped unless AGRIVERIFY_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_slow = _env_flag('AGRIVERIFY_RUN_SLOW')

    for item in items:
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set AGRIVERIFY_RUN_SLOW=1 to enable'))


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch):
    """Fresh configuration, no AGRIVERIFY_* overrides, no leftover log handlers."""
    for name in list(os.environ):
        if name.startswith("AGRIVERIFY_") and name != "AGRIVERIFY_RUN_SLOW":
            monkeypatch.delenv(name)
    ConfigManager.reset()
    token = correlation_id_var.set("")
    yield
    correlation_id_var.reset(token)
    ConfigManager.reset()
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        if isinstance(handler, StructuredHandler):
            root.removeHandler(handler)


@pytest.fixture
def chain():
    return ChainEnvironment()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def audit():
    return AuditLogger()


@pytest.fixture
def registry(chain, bus, audit):
    return VerificationRegistry(chain=chain, event_bus=bus, audit=audit)


@pytest.fixture
def authorized(registry):
    """Registry with ST2AUTH configured as authority."""
    assert registry.set_authority_contract(AUTHORITY).ok
    return registry


@pytest.fixture
def proof_hash():
    return bytes([1] * 32)


@pytest.fixture
def request_args(proof_hash):
    """Valid request_verification keyword arguments."""
    return dict(
        practice_id=1,
        proof_hash=proof_hash,
        practice_type="soil",
        impact_level=5,
        location="Farm A",
        evidence_url="https://evidence.com",
        farmer=FARMER,
    )
