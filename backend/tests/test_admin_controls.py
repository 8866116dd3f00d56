"""
Tests for owner controls: pause, funding, emergency withdrawal, allocators.
"""

from decimal import Decimal

import pytest

from speedrun_rewards.core.exceptions import (
    InsufficientFundsError,
    UnauthorizedError,
    ValidationError,
)
from speedrun_rewards.ledger.audit import AuditAction

from conftest import ALICE, ALLOCATOR, BOB, MALLORY, OWNER, make_grant


class TestPause:

    def test_pause_is_idempotent(self, ledger):
        assert ledger.pause(OWNER) is True
        assert ledger.pause(OWNER) is False
        assert ledger.paused
        assert ledger.stats().paused

        actions = [r.action for r in ledger.audit_sink.records()]
        assert actions == [AuditAction.CAMPAIGN_PAUSED]

    def test_unpause_is_idempotent(self, ledger):
        assert ledger.unpause(OWNER) is False
        ledger.pause(OWNER)
        assert ledger.unpause(OWNER) is True
        assert not ledger.paused

    def test_owner_only(self, ledger):
        with pytest.raises(UnauthorizedError):
            ledger.pause(MALLORY)
        with pytest.raises(UnauthorizedError):
            ledger.pause(ALLOCATOR)
        assert not ledger.paused


class TestFunding:

    def test_fund_by_anyone(self, ledger):
        assert ledger.fund(Decimal("100"), funder=MALLORY) == Decimal("100")
        assert ledger.fund("25.5") == Decimal("125.5")
        stats = ledger.stats()
        assert stats.balance_on_hand == Decimal("125.5")
        # funding never moves the declared ceiling or the totals
        assert stats.max_budget == Decimal("2000")
        assert stats.total_allocated == Decimal("0")

    @pytest.mark.parametrize("amount", [0, -1, "abc", None])
    def test_fund_rejects_non_positive(self, ledger, amount):
        with pytest.raises(ValidationError):
            ledger.fund(amount)


class TestEmergencyWithdraw:

    def test_sweeps_funds_and_strands_claims(self, funded_ledger):
        funded_ledger.allocate([make_grant(ALICE)])
        amount = funded_ledger.emergency_withdraw(OWNER)
        assert amount == Decimal("2000")

        stats = funded_ledger.stats()
        assert stats.balance_on_hand == Decimal("0")
        assert stats.total_allocated == Decimal("50")
        assert funded_ledger.available_rewards(ALICE) == Decimal("50")

        with pytest.raises(InsufficientFundsError):
            funded_ledger.claim_all(ALICE)

    def test_nothing_on_hand(self, ledger):
        with pytest.raises(InsufficientFundsError):
            ledger.emergency_withdraw(OWNER)

    def test_owner_only(self, funded_ledger):
        with pytest.raises(UnauthorizedError):
            funded_ledger.emergency_withdraw(ALICE)
        assert funded_ledger.stats().balance_on_hand == Decimal("2000")


class TestRoles:

    def test_allocator_may_allocate(self, ledger):
        ledger.allocate([make_grant(ALICE)], caller=ALLOCATOR)
        assert ledger.is_allocator(ALLOCATOR)
        assert ledger.is_allocator(OWNER)

    def test_add_and_remove_allocator(self, ledger):
        assert ledger.add_allocator(BOB, OWNER) is True
        assert ledger.add_allocator(BOB, OWNER) is False
        ledger.allocate([make_grant(ALICE)], caller=BOB)

        assert ledger.remove_allocator(BOB, OWNER) is True
        with pytest.raises(UnauthorizedError):
            ledger.allocate([make_grant(ALICE)], caller=BOB)

    def test_only_owner_manages_allocators(self, ledger):
        with pytest.raises(UnauthorizedError):
            ledger.add_allocator(MALLORY, ALLOCATOR)

    def test_transfer_ownership(self, ledger):
        ledger.transfer_ownership(BOB, OWNER)
        assert ledger.owner == BOB
        with pytest.raises(UnauthorizedError):
            ledger.pause(OWNER)
        assert ledger.pause(BOB) is True
