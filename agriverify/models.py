"""
Verification Engine Data Model

Records held by the verification registry. Verification and
VerificationUpdate are immutable values: a state transition stores a new
value under the same id rather than mutating the old one, so a record handed
out by a read never changes underneath its holder.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from agriverify.config import RegistrySettings


# =============================================================================
# ENUMERATIONS
# =============================================================================

class PracticeType(Enum):
    """Agricultural practice categories accepted for verification."""
    SOIL = "soil"
    AGROFORESTRY = "agroforestry"
    BIODIVERSITY = "biodiversity"

    @classmethod
    def parse(cls, value: Any) -> Optional["PracticeType"]:
        """Return the member for ``value`` (member or its string), else None."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                return None
        return None


class VerificationStatus(Enum):
    """Lifecycle status of a verification record."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_decided(self) -> bool:
        return self is not VerificationStatus.PENDING


# =============================================================================
# RECORDS
# =============================================================================

@dataclass(frozen=True)
class Verification:
    """A single practice verification."""
    verification_id: int
    practice_id: int
    verifier: str
    proof_hash: bytes
    timestamp: int
    practice_type: PracticeType
    impact_level: int
    location: str
    farmer: str
    score: int = 0
    status: VerificationStatus = VerificationStatus.PENDING
    reason: Optional[str] = None
    evidence_url: Optional[str] = None

    def decide(
        self,
        status: VerificationStatus,
        score: int,
        reason: Optional[str],
        timestamp: int,
    ) -> "Verification":
        """Copy with a new decision; identity fields are carried over."""
        return replace(self, status=status, score=score, reason=reason, timestamp=timestamp)

    def amend(self, score: int, reason: Optional[str], timestamp: int) -> "Verification":
        """Copy with an amended score and reason; status is unchanged."""
        return replace(self, score=score, reason=reason, timestamp=timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verification_id": self.verification_id,
            "practice_id": self.practice_id,
            "verifier": self.verifier,
            "proof_hash": self.proof_hash.hex(),
            "timestamp": self.timestamp,
            "score": self.score,
            "status": self.status.value,
            "reason": self.reason,
            "practice_type": self.practice_type.value,
            "impact_level": self.impact_level,
            "location": self.location,
            "evidence_url": self.evidence_url,
            "farmer": self.farmer,
        }


@dataclass(frozen=True)
class VerificationUpdate:
    """Most recent post-decision amendment of a verification."""
    update_score: int
    update_status: VerificationStatus
    update_reason: Optional[str]
    update_timestamp: int
    updater: str

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["update_status"] = self.update_status.value
        return d


# =============================================================================
# CONTRACT CONFIGURATION
# =============================================================================

# Upper bound any max score may take.
SCORE_CEILING = 100


@dataclass
class VerificationConfig:
    """
    Contract configuration owned by one registry.

    Mutated only through the registry's setter operations. The review and
    challenge periods are informational and not enforced by any operation.
    """
    authority_contract: Optional[str] = None
    verification_fee: int = 500
    min_verification_score: int = 50
    max_verification_score: int = 100
    max_verifications: int = 10000
    review_period: int = 144
    challenge_period: int = 288

    @property
    def authority_set(self) -> bool:
        return self.authority_contract is not None

    def copy(self) -> "VerificationConfig":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def problems(self) -> List[str]:
        """Describe every field that breaks the contract's config rules."""
        found = []
        for name in ("verification_fee", "min_verification_score", "max_verification_score",
                     "max_verifications", "review_period", "challenge_period"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                found.append(f"{name} must be a non-negative integer, got {value!r}")
        if found:
            return found

        lo, hi = self.min_verification_score, self.max_verification_score
        if lo <= 0:
            found.append(f"min_verification_score must be positive, got {lo}")
        if lo >= hi:
            found.append(f"min_verification_score ({lo}) must be below max_verification_score ({hi})")
        if hi > SCORE_CEILING:
            found.append(f"max_verification_score must be at most {SCORE_CEILING}, got {hi}")
        if self.max_verifications == 0:
            found.append("max_verifications must be positive")
        return found

    @classmethod
    def from_settings(cls, settings: "RegistrySettings") -> "VerificationConfig":
        """Build a fresh config from the registry settings section."""
        return cls(
            verification_fee=settings.verification_fee.get(),
            min_verification_score=settings.min_verification_score.get(),
            max_verification_score=settings.max_verification_score.get(),
            max_verifications=settings.max_verifications.get(),
            review_period=settings.review_period.get(),
            challenge_period=settings.challenge_period.get(),
        )


@dataclass
class RegistryState:
    """Mutable state of a registry apart from its configuration."""
    next_verification_id: int = 0
    verifications: Dict[int, Verification] = field(default_factory=dict)
    verification_updates: Dict[int, VerificationUpdate] = field(default_factory=dict)
    verifier_ratings: Dict[str, int] = field(default_factory=dict)
