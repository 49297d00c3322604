"""
Verification Engine Error Codes and Input Validation

Contract operations never raise for bad input. They return a Result whose
failure value is an ErrorCode from the contract's fixed code table, and the
first violated precondition wins. This module holds that table, the Result
type, and the field validators the registry runs before any write.

Security Model:
    - All inputs are untrusted until validated
    - Inputs of the wrong type fail with the field's code, never an exception
    - Validation completes before any state mutation

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Generic, Optional, TypeVar, Union

from agriverify.models import SCORE_CEILING

T = TypeVar("T")


# =============================================================================
# ERROR CODES
# =============================================================================

class ErrorCode(IntEnum):
    """Contract error codes."""
    NOT_AUTHORIZED = 100
    INVALID_PRACTICE_ID = 101
    INVALID_VERIFIER = 102
    INVALID_PROOF_HASH = 103
    INVALID_TIMESTAMP = 104
    INVALID_SCORE = 105
    PRACTICE_ALREADY_VERIFIED = 106
    PRACTICE_NOT_FOUND = 107
    VERIFIER_NOT_REGISTERED = 108
    INVALID_STATUS = 109
    INVALID_REASON = 110
    INVALID_VERIFICATION_FEE = 111
    MAX_VERIFICATIONS_EXCEEDED = 112
    INVALID_UPDATE_PARAM = 113
    VERIFICATION_UPDATE_NOT_ALLOWED = 114
    INVALID_VERIFIER_RATING = 115
    INVALID_PRACTICE_TYPE = 116
    INVALID_IMPACT_LEVEL = 117
    INVALID_LOCATION = 118
    INVALID_EVIDENCE_URL = 119
    AUTHORITY_ALREADY_SET = 120
    AUTHORITY_NOT_VERIFIED = 123
    INVALID_MIN_SCORE = 124
    INVALID_MAX_SCORE = 125

    @property
    def description(self) -> str:
        return _DESCRIPTIONS.get(self, self.name.replace("_", " ").lower())

    @classmethod
    def parse(cls, value: Union[int, str, "ErrorCode"]) -> "ErrorCode":
        """Resolve a code from its number or name (``ERR_`` prefix optional)."""
        if isinstance(value, cls):
            return value
        if isinstance(value, int):
            return cls(value)
        name = str(value).strip().upper()
        if name.startswith("ERR_"):
            name = name[4:]
        return cls[name]


_DESCRIPTIONS: Dict[ErrorCode, str] = {
    ErrorCode.NOT_AUTHORIZED: "caller is not the required principal",
    ErrorCode.INVALID_PRACTICE_ID: "practice id must be a positive integer",
    ErrorCode.INVALID_PROOF_HASH: "proof hash must be exactly 32 bytes",
    ErrorCode.INVALID_SCORE: "score outside the configured bounds",
    ErrorCode.PRACTICE_ALREADY_VERIFIED: "verification has already been decided",
    ErrorCode.PRACTICE_NOT_FOUND: "no verification with that id",
    ErrorCode.INVALID_REASON: "reason longer than 256 characters",
    ErrorCode.INVALID_VERIFICATION_FEE: "fee must be a non-negative integer",
    ErrorCode.MAX_VERIFICATIONS_EXCEEDED: "verification cap reached",
    ErrorCode.VERIFICATION_UPDATE_NOT_ALLOWED: "pending verifications cannot be updated",
    ErrorCode.INVALID_PRACTICE_TYPE: "practice type must be soil, agroforestry or biodiversity",
    ErrorCode.INVALID_IMPACT_LEVEL: "impact level must be between 1 and 10",
    ErrorCode.INVALID_LOCATION: "location must be 1 to 100 characters",
    ErrorCode.INVALID_EVIDENCE_URL: "evidence url longer than 256 characters",
    ErrorCode.AUTHORITY_ALREADY_SET: "authority contract is already configured",
    ErrorCode.AUTHORITY_NOT_VERIFIED: "authority contract is not configured",
    ErrorCode.INVALID_MIN_SCORE: "min score must be positive and below the max score",
    ErrorCode.INVALID_MAX_SCORE: "max score must exceed the min score and be at most 100",
}


class VerificationError(Exception):
    """Raised by Result.unwrap() for a failed contract call."""

    def __init__(self, code: ErrorCode, operation: str = ""):
        self.code = code
        self.operation = operation
        prefix = f"{operation}: " if operation else ""
        super().__init__(f"{prefix}{code.name} ({int(code)}): {code.description}")


# =============================================================================
# RESULT
# =============================================================================

@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a contract call: ``ok`` plus the value or error code."""
    ok: bool
    value: Any

    @classmethod
    def success(cls, value: Any = True) -> "Result":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, code: ErrorCode) -> "Result":
        return cls(ok=False, value=code)

    @property
    def error(self) -> Optional[ErrorCode]:
        return None if self.ok else self.value

    def unwrap(self) -> T:
        """Return the value, raising VerificationError on failure."""
        if not self.ok:
            raise VerificationError(self.value)
        return self.value

    def to_dict(self) -> Dict[str, Any]:
        if self.ok:
            return {"ok": True, "value": self.value}
        return {"ok": False, "value": int(self.value), "error": self.value.name}


# =============================================================================
# FIELD VALIDATORS
# =============================================================================

class Validators:
    """Field checks used by the registry. Each returns True when valid."""

    PROOF_HASH_LENGTH = 32
    MIN_IMPACT_LEVEL = 1
    MAX_IMPACT_LEVEL = 10
    MAX_LOCATION_LENGTH = 100
    MAX_REASON_LENGTH = 256
    MAX_EVIDENCE_URL_LENGTH = 256
    MAX_SCORE = SCORE_CEILING

    @staticmethod
    def is_uint(value: Any) -> bool:
        # bool is an int subclass; reject it explicitly
        return isinstance(value, int) and not isinstance(value, bool) and value >= 0

    @classmethod
    def practice_id(cls, value: Any) -> bool:
        return cls.is_uint(value) and value > 0

    @classmethod
    def proof_hash(cls, value: Any) -> bool:
        return isinstance(value, (bytes, bytearray)) and len(value) == cls.PROOF_HASH_LENGTH

    @classmethod
    def impact_level(cls, value: Any) -> bool:
        return cls.is_uint(value) and cls.MIN_IMPACT_LEVEL <= value <= cls.MAX_IMPACT_LEVEL

    @classmethod
    def location(cls, value: Any) -> bool:
        return isinstance(value, str) and 0 < len(value) <= cls.MAX_LOCATION_LENGTH

    @staticmethod
    def optional_text(value: Any, max_length: int) -> bool:
        """None and the empty string count as absent."""
        if value is None:
            return True
        return isinstance(value, str) and len(value) <= max_length

    @classmethod
    def evidence_url(cls, value: Any) -> bool:
        return cls.optional_text(value, cls.MAX_EVIDENCE_URL_LENGTH)

    @classmethod
    def reason(cls, value: Any) -> bool:
        return cls.optional_text(value, cls.MAX_REASON_LENGTH)

    @classmethod
    def required_reason(cls, value: Any) -> bool:
        return isinstance(value, str) and len(value) <= cls.MAX_REASON_LENGTH

    @classmethod
    def score(cls, value: Any, min_score: int, max_score: int) -> bool:
        return cls.is_uint(value) and min_score <= value <= max_score

    @classmethod
    def min_score(cls, value: Any, current_max: int) -> bool:
        return cls.is_uint(value) and 0 < value < current_max

    @classmethod
    def max_score(cls, value: Any, current_min: int) -> bool:
        return cls.is_uint(value) and current_min < value <= cls.MAX_SCORE
