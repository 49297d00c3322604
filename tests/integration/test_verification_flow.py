"""
Integration Test: Verification Flow

Drives a registry through a multi-verifier season: authority setup, fee
changes, requests from two verifiers, decisions, amendments and reset,
checking events, fee transfers, audit trail and exported state together.
"""

import json

from agriverify.chain import ChainEnvironment
from agriverify.core import canonical_json_bytes
from agriverify.events import (
    EventBus,
    FeeTransferred,
    PracticeApproved,
    VerifierRatingChanged,
)
from agriverify.models import VerificationStatus
from agriverify.observability import AuditLogger
from agriverify.registry import VerificationRegistry
from agriverify.validation import ErrorCode


def _proof(n):
    return bytes([n] * 32)


class TestSeasonFlow:
    """Two verifiers over one season."""

    def setup_method(self):
        self.chain = ChainEnvironment()
        self.bus = EventBus()
        self.audit = AuditLogger()
        self.registry = VerificationRegistry(chain=self.chain, event_bus=self.bus, audit=self.audit)
        self.ratings = []

        @self.bus.subscribe(VerifierRatingChanged)
        def track(event):
            self.ratings.append((event.verifier, event.new_rating))

    def _request(self, practice_id, practice_type="soil"):
        return self.registry.request_verification(
            practice_id, _proof(practice_id), practice_type, 5,
            f"Plot {practice_id}", None, "ST3FARMER",
        )

    def test_full_season(self):
        reg, chain = self.registry, self.chain

        assert reg.set_authority_contract("ST2AUTH").ok
        assert reg.set_verification_fee(250).ok

        chain.advance(10)
        assert self._request(1).value == 0
        with chain.as_caller("ST5SECOND"):
            assert self._request(2, "biodiversity").value == 1
            assert self._request(3, "agroforestry").value == 2

        chain.advance(144)
        assert reg.approve_practice(0, 90, "Cover crops in place").ok
        with chain.as_caller("ST5SECOND"):
            assert reg.approve_practice(1, 75).ok
            assert reg.reject_practice(2, "No canopy data").ok
            # a verifier cannot touch another verifier's record
            assert reg.update_verification(0, 50).value == ErrorCode.NOT_AUTHORIZED

        chain.advance(288)
        assert reg.update_verification(0, 95, "Second visit").ok

        assert reg.get_verification_count().value == 3
        assert reg.get_verification(0).score == 95
        assert reg.get_verification(0).timestamp == 442
        assert reg.get_verification(2).status == VerificationStatus.REJECTED
        assert reg.get_verifier_rating("ST1VERIFIER") == 1
        assert reg.get_verifier_rating("ST5SECOND") == 0
        assert self.ratings == [("ST1VERIFIER", 1), ("ST5SECOND", 1), ("ST5SECOND", 0)]

        fees = self.bus.history(FeeTransferred)
        assert [(f.sender, f.amount) for f in fees] == [
            ("ST1VERIFIER", 250), ("ST5SECOND", 250), ("ST5SECOND", 250),
        ]
        assert chain.total_transferred("ST2AUTH") == 750
        assert [e.verification_id for e in self.bus.history(PracticeApproved)] == [0, 1]

        assert self.audit.verify_chain()
        assert len(self.audit.entries) == 9

        state = reg.export_state()
        assert json.loads(canonical_json_bytes(state)) == state
        assert state["statistics"]["by_status"] == {"pending": 0, "approved": 2, "rejected": 1}

    def test_reset_between_seasons(self):
        reg = self.registry
        reg.set_authority_contract("ST2AUTH")
        self._request(1)
        reg.approve_practice(0, 80)

        reg.reset()

        assert reg.get_verification_count().value == 0
        assert reg.set_authority_contract("ST9NEW").ok
        assert self._request(1).value == 0
        assert self.chain.transfers[0].recipient == "ST9NEW"
        assert self.audit.verify_chain()


class TestReferenceScenarios:
    """Concrete walkthroughs of the contract rules."""

    def setup_method(self):
        self.registry = VerificationRegistry()
        self.registry.set_authority_contract("ST2AUTH")

    def _request(self, practice_id=1, proof=None):
        return self.registry.request_verification(
            practice_id, proof if proof is not None else bytes(32), "soil", 5,
            "Farm Location", "https://evidence.com", "ST3FARMER",
        )

    def test_first_request(self):
        result = self._request()

        assert (result.ok, result.value) == (True, 0)
        assert self.registry.get_verification(0).status == VerificationStatus.PENDING
        transfer = self.registry.chain.transfers[0]
        assert (transfer.amount, transfer.sender, transfer.recipient) == (500, "ST1VERIFIER", "ST2AUTH")

    def test_approval(self):
        self._request()
        assert self.registry.approve_practice(0, 80, "Good practice").ok

        record = self.registry.get_verification(0)
        assert record.status == VerificationStatus.APPROVED
        assert record.score == 80
        assert self.registry.get_verifier_rating("ST1VERIFIER") == 1

    def test_rejection_after_approval(self):
        self._request(1)
        self._request(2)
        self.registry.approve_practice(0, 80, "Good practice")
        assert self.registry.reject_practice(1, "Missing soil samples").ok
        assert self.registry.get_verifier_rating("ST1VERIFIER") == 0

    def test_short_proof_hash(self):
        result = self._request(proof=bytes(31))
        assert result.value == ErrorCode.INVALID_PROOF_HASH
        assert self.registry.get_verification_count().value == 0

    def test_min_score_above_max(self):
        result = self.registry.set_min_verification_score(101)
        assert result.value == ErrorCode.INVALID_MIN_SCORE
        assert self.registry.config.min_verification_score == 50
        assert self.registry.config.max_verification_score == 100
