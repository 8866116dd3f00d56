"""
Tests for the budget ledger and the proof registry.
"""

from decimal import Decimal

import pytest

from speedrun_rewards.core.exceptions import (
    BudgetExceededError,
    DuplicateProofError,
    OverpayInvariantViolation,
    ValidationError,
)
from speedrun_rewards.ledger.budget import BudgetLedger
from speedrun_rewards.ledger.proofs import ProofRegistry, make_proof_hash


class TestBudgetLedger:

    @pytest.fixture
    def budget(self):
        return BudgetLedger(Decimal("2000"))

    def test_reserve_up_to_ceiling(self, budget):
        budget.reserve(Decimal("1999"))
        budget.reserve(Decimal("1"))
        assert budget.total_allocated == Decimal("2000")
        assert budget.headroom() == Decimal("0")

    def test_reserve_past_ceiling_leaves_totals(self, budget):
        budget.reserve(Decimal("1500"))
        with pytest.raises(BudgetExceededError) as exc_info:
            budget.reserve(Decimal("501"))
        assert exc_info.value.details["remaining"] == "500"
        assert budget.total_allocated == Decimal("1500")

    def test_record_paid_cannot_exceed_allocated(self, budget):
        budget.reserve(Decimal("100"))
        budget.record_paid(Decimal("60"))
        with pytest.raises(OverpayInvariantViolation):
            budget.record_paid(Decimal("41"))
        assert budget.total_paid == Decimal("60")

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), Decimal("NaN")])
    def test_non_positive_amounts_rejected(self, budget, amount):
        with pytest.raises(ValidationError):
            budget.reserve(amount)
        with pytest.raises(ValidationError):
            budget.record_paid(amount)

    def test_inconsistent_initial_totals_rejected(self):
        with pytest.raises(ValidationError):
            BudgetLedger(Decimal("100"), total_allocated=Decimal("50"), total_paid=Decimal("60"))

    def test_stats_snapshot(self, budget):
        budget.reserve(Decimal("300"))
        budget.record_paid(Decimal("100"))
        stats = budget.stats()
        assert stats.remaining == Decimal("1700")
        assert stats.to_dict() == {
            "max_budget": "2000",
            "total_allocated": "300",
            "total_paid": "100",
            "remaining": "1700",
        }


class TestProofRegistry:

    def test_mark_used_once(self):
        registry = ProofRegistry()
        registry.mark_used("p1")
        assert registry.is_used("p1")
        assert "p1" in registry
        with pytest.raises(DuplicateProofError) as exc_info:
            registry.mark_used("p1")
        assert exc_info.value.proofs == ["p1"]

    def test_find_duplicates_within_and_across(self):
        registry = ProofRegistry(["old"])
        assert registry.find_duplicates(["a", "old", "b", "a", "a"]) == ["old", "a"]
        assert registry.find_duplicates(["x", "y"]) == []

    def test_snapshot_is_frozen(self):
        registry = ProofRegistry(["p1"])
        snapshot = registry.snapshot()
        registry.mark_used("p2")
        assert snapshot == frozenset({"p1"})
        assert len(registry) == 2


class TestProofHash:

    def test_deterministic_and_case_insensitive(self):
        a = make_proof_hash("0xABC", 1, "sub-1", salt="TOP_QUALITY")
        b = make_proof_hash("0xabc", 1, "sub-1", salt="TOP_QUALITY")
        assert a == b
        assert len(a) == 64

    def test_salt_separates_categories(self):
        quality = make_proof_hash("0xabc", 6, "sub-1", salt="TOP_QUALITY")
        fast = make_proof_hash("0xabc", 6, "sub-1", salt="FAST_COMPLETION")
        assert quality != fast
