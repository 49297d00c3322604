"""
Verification Registry

Reference implementation of the practice verification contract. The
registry records third-party verifications of agricultural practices
(soil, agroforestry, biodiversity): a verifier requests a verification on a
farmer's behalf and pays the verification fee to the authority, then approves
or rejects it with a score, and may amend the decision afterwards.

Lifecycle:

    request_verification ──► PENDING ──approve_practice──► APPROVED ─┐
                                │                                     │ update_verification
                                └────reject_practice───► REJECTED ───┤ (score, reason)
                                                                      ◄┘

Every contract call validates all of its preconditions, in a fixed order,
before writing anything. The first failed check is returned as the call's
error code; nothing is written, transferred, audited or published.

Reputation: a verifier's rating goes up by one per approval and down by one
per rejection, never below zero.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from agriverify.chain import ChainEnvironment
from agriverify.config import ConfigError
from agriverify.events import (
    AuthorityContractSet,
    Event,
    EventBus,
    FeeTransferred,
    PracticeApproved,
    PracticeRejected,
    ScoreBoundsChanged,
    VerificationFeeChanged,
    VerificationRequested,
    VerificationUpdated,
    VerifierRatingChanged,
)
from agriverify.models import (
    PracticeType,
    RegistryState,
    Verification,
    VerificationConfig,
    VerificationStatus,
    VerificationUpdate,
)
from agriverify.observability import (
    AuditLogger,
    Layer,
    correlation_id_var,
    get_logger,
)
from agriverify.validation import ErrorCode, Result, Validators

logger = get_logger("verification", Layer.REGISTRY)


class VerificationRegistry:
    """
    Holds all verification records, counters and contract configuration.

    Collaborators are injected; any that is omitted gets a fresh default
    (config values come from the ``registry`` settings section). The caller
    of every call is ``chain.caller`` and its timestamp ``chain.block_height``.
    """

    def __init__(
        self,
        config: Optional[VerificationConfig] = None,
        chain: Optional[ChainEnvironment] = None,
        event_bus: Optional[EventBus] = None,
        audit: Optional[AuditLogger] = None,
    ):
        if config is None:
            from agriverify.config import get_config
            config = VerificationConfig.from_settings(get_config().registry)
        problems = config.problems()
        if problems:
            raise ConfigError(f"Invalid registry configuration: {'; '.join(problems)}")
        self._initial_config = config.copy()
        self.config = config.copy()
        self.chain = chain if chain is not None else ChainEnvironment()
        self.events = event_bus if event_bus is not None else EventBus()
        self.audit = audit if audit is not None else AuditLogger()
        self.state = RegistryState()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @property
    def caller(self) -> str:
        return self.chain.caller

    def _reject(self, operation: str, code: ErrorCode, **context: Any) -> Result:
        logger.warning(
            f"{operation} rejected: {code.name}",
            operation=operation,
            error_code=code.name,
            caller=self.caller,
            block_height=self.chain.block_height,
            **context,
        )
        return Result.failure(code)

    def _commit(
        self,
        operation: str,
        resource_type: str,
        resource_id: Any,
        events: List[Event],
        **details: Any,
    ) -> None:
        """Audit and announce a call whose writes are already in place."""
        height = self.chain.block_height
        self.audit.log(
            actor=self.caller,
            action=operation,
            resource_type=resource_type,
            resource_id=str(resource_id),
            outcome="success",
            block_height=height,
            **details,
        )
        logger.info(
            f"{operation} committed",
            operation=operation,
            caller=self.caller,
            block_height=height,
            resource_id=resource_id,
        )
        correlation_id = correlation_id_var.get() or None
        for event in events:
            event.block_height = height
            event.correlation_id = correlation_id
            self.events.publish(event)

    def _lookup(self, operation: str, verification_id: Any):
        """Return (record, None) or (None, failure) for the verifier checks."""
        record = self.get_verification(verification_id)
        if record is None:
            return None, self._reject(
                operation, ErrorCode.PRACTICE_NOT_FOUND, verification_id=verification_id
            )
        if record.verifier != self.caller:
            return None, self._reject(
                operation, ErrorCode.NOT_AUTHORIZED, verification_id=verification_id
            )
        return record, None

    def _adjust_rating(self, verifier: str, delta: int) -> Optional[VerifierRatingChanged]:
        old = self.state.verifier_ratings.get(verifier, 0)
        new = max(0, old + delta)
        if delta > 0 or old > 0:
            self.state.verifier_ratings[verifier] = new
        if new == old:
            return None
        return VerifierRatingChanged(verifier=verifier, old_rating=old, new_rating=new)

    # -------------------------------------------------------------------------
    # Configuration operations
    # -------------------------------------------------------------------------

    def set_authority_contract(self, principal: str) -> Result:
        """Configure the authority principal. Succeeds at most once."""
        op = "set_authority_contract"
        if not isinstance(principal, str) or not principal or self.chain.is_burn_address(principal):
            return self._reject(op, ErrorCode.NOT_AUTHORIZED, principal=principal)
        if self.config.authority_set:
            return self._reject(op, ErrorCode.AUTHORITY_ALREADY_SET, principal=principal)

        self.config.authority_contract = principal
        self._commit(op, "config", "authority_contract", [AuthorityContractSet(authority=principal)])
        return Result.success(True)

    def set_verification_fee(self, fee: int) -> Result:
        op = "set_verification_fee"
        if not Validators.is_uint(fee):
            return self._reject(op, ErrorCode.INVALID_VERIFICATION_FEE, fee=fee)
        if not self.config.authority_set:
            return self._reject(op, ErrorCode.AUTHORITY_NOT_VERIFIED)

        old = self.config.verification_fee
        self.config.verification_fee = fee
        self._commit(
            op, "config", "verification_fee",
            [VerificationFeeChanged(old_fee=old, new_fee=fee)],
            old_fee=old, new_fee=fee,
        )
        return Result.success(True)

    def set_min_verification_score(self, value: int) -> Result:
        op = "set_min_verification_score"
        if not Validators.min_score(value, self.config.max_verification_score):
            return self._reject(op, ErrorCode.INVALID_MIN_SCORE, value=value)
        if not self.config.authority_set:
            return self._reject(op, ErrorCode.AUTHORITY_NOT_VERIFIED)

        self.config.min_verification_score = value
        self._commit(
            op, "config", "min_verification_score",
            [ScoreBoundsChanged(min_score=value, max_score=self.config.max_verification_score)],
            value=value,
        )
        return Result.success(True)

    def set_max_verification_score(self, value: int) -> Result:
        op = "set_max_verification_score"
        if not Validators.max_score(value, self.config.min_verification_score):
            return self._reject(op, ErrorCode.INVALID_MAX_SCORE, value=value)
        if not self.config.authority_set:
            return self._reject(op, ErrorCode.AUTHORITY_NOT_VERIFIED)

        self.config.max_verification_score = value
        self._commit(
            op, "config", "max_verification_score",
            [ScoreBoundsChanged(min_score=self.config.min_verification_score, max_score=value)],
            value=value,
        )
        return Result.success(True)

    # -------------------------------------------------------------------------
    # Verification lifecycle
    # -------------------------------------------------------------------------

    def request_verification(
        self,
        practice_id: int,
        proof_hash: bytes,
        practice_type: Any,
        impact_level: int,
        location: str,
        evidence_url: Optional[str],
        farmer: str,
    ) -> Result:
        """
        Open a pending verification; the caller becomes its verifier.

        Pays the verification fee from the caller to the authority and
        returns the new verification id.
        """
        op = "request_verification"
        cfg = self.config
        if self.state.next_verification_id >= cfg.max_verifications:
            return self._reject(op, ErrorCode.MAX_VERIFICATIONS_EXCEEDED)
        if not Validators.practice_id(practice_id):
            return self._reject(op, ErrorCode.INVALID_PRACTICE_ID, practice_id=practice_id)
        if not Validators.proof_hash(proof_hash):
            return self._reject(op, ErrorCode.INVALID_PROOF_HASH)
        kind = PracticeType.parse(practice_type)
        if kind is None:
            return self._reject(op, ErrorCode.INVALID_PRACTICE_TYPE, practice_type=practice_type)
        if not Validators.impact_level(impact_level):
            return self._reject(op, ErrorCode.INVALID_IMPACT_LEVEL, impact_level=impact_level)
        if not Validators.location(location):
            return self._reject(op, ErrorCode.INVALID_LOCATION)
        if not Validators.evidence_url(evidence_url):
            return self._reject(op, ErrorCode.INVALID_EVIDENCE_URL)
        if not cfg.authority_set:
            return self._reject(op, ErrorCode.AUTHORITY_NOT_VERIFIED)

        verifier = self.caller
        transfer = self.chain.transfer(cfg.verification_fee, verifier, cfg.authority_contract)

        verification_id = self.state.next_verification_id
        self.state.verifications[verification_id] = Verification(
            verification_id=verification_id,
            practice_id=practice_id,
            verifier=verifier,
            proof_hash=bytes(proof_hash),
            timestamp=self.chain.block_height,
            practice_type=kind,
            impact_level=impact_level,
            location=location,
            evidence_url=evidence_url,
            farmer=farmer,
        )
        self.state.next_verification_id += 1

        self._commit(
            op, "verification", verification_id,
            [
                FeeTransferred(
                    amount=transfer.amount,
                    sender=transfer.sender,
                    recipient=transfer.recipient or "",
                    verification_id=verification_id,
                ),
                VerificationRequested(
                    verification_id=verification_id,
                    practice_id=practice_id,
                    verifier=verifier,
                    farmer=farmer,
                    practice_type=kind.value,
                    impact_level=impact_level,
                ),
            ],
            practice_id=practice_id,
            fee=transfer.amount,
        )
        return Result.success(verification_id)

    def approve_practice(
        self,
        verification_id: int,
        score: int,
        reason: Optional[str] = None,
    ) -> Result:
        """Approve a pending verification with a score within bounds."""
        op = "approve_practice"
        record, failure = self._lookup(op, verification_id)
        if failure is not None:
            return failure
        if record.status is not VerificationStatus.PENDING:
            return self._reject(op, ErrorCode.PRACTICE_ALREADY_VERIFIED, verification_id=verification_id)
        if not Validators.score(score, self.config.min_verification_score, self.config.max_verification_score):
            return self._reject(op, ErrorCode.INVALID_SCORE, verification_id=verification_id, score=score)
        if not Validators.reason(reason):
            return self._reject(op, ErrorCode.INVALID_REASON, verification_id=verification_id)

        self.state.verifications[verification_id] = record.decide(
            VerificationStatus.APPROVED, score, reason, self.chain.block_height
        )
        events: List[Event] = [
            PracticeApproved(
                verification_id=verification_id,
                verifier=record.verifier,
                score=score,
                reason=reason,
            )
        ]
        rating_event = self._adjust_rating(record.verifier, +1)
        if rating_event is not None:
            events.append(rating_event)

        self._commit(op, "verification", verification_id, events, score=score)
        return Result.success(True)

    def reject_practice(self, verification_id: int, reason: str) -> Result:
        """Reject a pending verification; its score is forced to 0."""
        op = "reject_practice"
        record, failure = self._lookup(op, verification_id)
        if failure is not None:
            return failure
        if record.status is not VerificationStatus.PENDING:
            return self._reject(op, ErrorCode.PRACTICE_ALREADY_VERIFIED, verification_id=verification_id)
        if not Validators.required_reason(reason):
            return self._reject(op, ErrorCode.INVALID_REASON, verification_id=verification_id)

        self.state.verifications[verification_id] = record.decide(
            VerificationStatus.REJECTED, 0, reason, self.chain.block_height
        )
        events: List[Event] = [
            PracticeRejected(verification_id=verification_id, verifier=record.verifier, reason=reason)
        ]
        rating_event = self._adjust_rating(record.verifier, -1)
        if rating_event is not None:
            events.append(rating_event)

        self._commit(op, "verification", verification_id, events)
        return Result.success(True)

    def update_verification(
        self,
        verification_id: int,
        score: int,
        reason: Optional[str] = None,
    ) -> Result:
        """Amend the score and reason of a decided verification."""
        op = "update_verification"
        record, failure = self._lookup(op, verification_id)
        if failure is not None:
            return failure
        if not record.status.is_decided:
            return self._reject(op, ErrorCode.VERIFICATION_UPDATE_NOT_ALLOWED, verification_id=verification_id)
        if not Validators.score(score, self.config.min_verification_score, self.config.max_verification_score):
            return self._reject(op, ErrorCode.INVALID_SCORE, verification_id=verification_id, score=score)
        if not Validators.reason(reason):
            return self._reject(op, ErrorCode.INVALID_REASON, verification_id=verification_id)

        height = self.chain.block_height
        self.state.verifications[verification_id] = record.amend(score, reason, height)
        self.state.verification_updates[verification_id] = VerificationUpdate(
            update_score=score,
            update_status=record.status,
            update_reason=reason,
            update_timestamp=height,
            updater=self.caller,
        )

        self._commit(
            op, "verification", verification_id,
            [
                VerificationUpdated(
                    verification_id=verification_id,
                    updater=self.caller,
                    status=record.status.value,
                    old_score=record.score,
                    new_score=score,
                    reason=reason,
                )
            ],
            old_score=record.score,
            new_score=score,
        )
        return Result.success(True)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_verification_count(self) -> Result:
        """Number of verifications ever created."""
        return Result.success(self.state.next_verification_id)

    def get_verification(self, verification_id: int) -> Optional[Verification]:
        if not Validators.is_uint(verification_id):
            return None
        return self.state.verifications.get(verification_id)

    def get_verification_update(self, verification_id: int) -> Optional[VerificationUpdate]:
        if not Validators.is_uint(verification_id):
            return None
        return self.state.verification_updates.get(verification_id)

    def get_verifier_rating(self, verifier: str) -> int:
        return self.state.verifier_ratings.get(verifier, 0)

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def reset(self) -> None:
        """Return to the freshly constructed state."""
        self.config = self._initial_config.copy()
        self.state = RegistryState()
        self.chain.reset()
        self.audit.clear()
        self.events.clear_history()
        logger.info("Registry reset", operation="reset")

    def get_statistics(self) -> Dict[str, Any]:
        """Registry statistics."""
        by_status = {s.value: 0 for s in VerificationStatus}
        by_type = {t.value: 0 for t in PracticeType}
        for record in self.state.verifications.values():
            by_status[record.status.value] += 1
            by_type[record.practice_type.value] += 1

        authority = self.config.authority_contract
        return {
            "total_verifications": self.state.next_verification_id,
            "by_status": by_status,
            "by_practice_type": by_type,
            "amended_verifications": len(self.state.verification_updates),
            "rated_verifiers": len(self.state.verifier_ratings),
            "fees_collected": self.chain.total_transferred(authority) if authority else 0,
        }

    def export_state(self) -> Dict[str, Any]:
        """JSON-ready snapshot of configuration, records and ledgers."""
        return {
            "config": self.config.to_dict(),
            "next_verification_id": self.state.next_verification_id,
            "block_height": self.chain.block_height,
            "verifications": {
                str(vid): record.to_dict()
                for vid, record in sorted(self.state.verifications.items())
            },
            "verification_updates": {
                str(vid): update.to_dict()
                for vid, update in sorted(self.state.verification_updates.items())
            },
            "verifier_ratings": dict(sorted(self.state.verifier_ratings.items())),
            "transfers": [t.to_dict() for t in self.chain.transfers],
            "audit_head": self.audit.head,
            "statistics": self.get_statistics(),
        }
