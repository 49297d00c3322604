"""
agriverify: Agricultural Practice Verification Engine

Reference implementation of an on-chain registry in which third-party
verifiers attest that a farmer carried out a sustainable practice (soil
management, agroforestry, biodiversity). Verifiers pay a fee to an authority
to open a verification, then approve or reject it with a score; approvals
and rejections move the verifier's reputation rating.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                     PRACTICE VERIFICATION ENGINE                         │
    │                                                                          │
    │  SURFACES                                                               │
    │    cli.py           agriverify command: config, errors, scenarios       │
    │    scenario.py      Schema-checked replay of scripted registry calls    │
    │                                                                          │
    │  CONTRACT                                                               │
    │    registry.py      VerificationRegistry: lifecycle, fees, ratings      │
    │    validation.py    Error codes, Result, field validators               │
    │    models.py        Verification records and contract configuration     │
    │                                                                          │
    │  ENVIRONMENT                                                            │
    │    chain.py         Caller, block height, burn address, fee transfers   │
    │    events.py        Typed events published after each committed call    │
    │    observability.py Structured JSON logging and hash-chained audit      │
    │    config.py        YAML and environment-driven settings                │
    │                                                                          │
    └─────────────────────────────────────────────────────────────────────────┘

Core Concepts
─────────────

    Verification: A record tying a practice, a farmer and a 32-byte proof
    hash to the verifier who requested it. Starts pending, is decided once
    (approved or rejected) and may be amended afterwards.

    Authority: The principal that receives verification fees. It is set at
    most once and every configuration or request call needs it.

    Rating: Per-verifier reputation; +1 per approval, -1 per rejection,
    never negative.

Copyright (c) 2026 Momentum. All rights reserved.
"""

__version__ = "0.3.0"

# Lazy imports to avoid circular dependencies
def __getattr__(name):
    """Lazy import engine modules on first access."""

    if name in ("VerificationRegistry",):
        from agriverify import registry
        return getattr(registry, name)

    if name in ("ErrorCode", "Result", "VerificationError", "Validators"):
        from agriverify import validation
        return getattr(validation, name)

    if name in ("PracticeType", "VerificationStatus", "Verification",
                "VerificationUpdate", "VerificationConfig"):
        from agriverify import models
        return getattr(models, name)

    if name in ("ChainEnvironment", "ChainError", "FeeTransfer"):
        from agriverify import chain
        return getattr(chain, name)

    if name in ("EventBus", "Event"):
        from agriverify import events
        return getattr(events, name)

    if name in ("ScenarioRunner", "ScenarioError", "load_scenario"):
        from agriverify import scenario
        return getattr(scenario, name)

    raise AttributeError(f"module 'agriverify' has no attribute '{name}'")

__all__ = [
    "__version__",
    # Contract
    "VerificationRegistry",
    "ErrorCode",
    "Result",
    "VerificationError",
    "Validators",
    # Records
    "PracticeType",
    "VerificationStatus",
    "Verification",
    "VerificationUpdate",
    "VerificationConfig",
    # Environment
    "ChainEnvironment",
    "ChainError",
    "FeeTransfer",
    "EventBus",
    "Event",
    # Scenarios
    "ScenarioRunner",
    "ScenarioError",
    "load_scenario",
]
