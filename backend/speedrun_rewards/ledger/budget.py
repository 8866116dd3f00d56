"""
Budget ledger: the declared ceiling and the running allocated/paid totals.
"""

from decimal import Decimal

from ..core.exceptions import (
    BudgetExceededError,
    OverpayInvariantViolation,
    ValidationError,
)
from .types import BudgetStats, ZERO


class BudgetLedger:
    """
    Tracks ``0 <= total_paid <= total_allocated <= max_budget``.

    Both totals only ever grow. The owning ledger holds its lock around
    every call, which makes each read-modify-write here atomic.
    """

    def __init__(self, max_budget: Decimal, total_allocated: Decimal = ZERO, total_paid: Decimal = ZERO):
        self.max_budget = Decimal(max_budget)
        self.total_allocated = Decimal(total_allocated)
        self.total_paid = Decimal(total_paid)
        if not (ZERO <= self.total_paid <= self.total_allocated <= self.max_budget):
            raise ValidationError(
                "Budget totals violate 0 <= paid <= allocated <= max",
                details=self.stats().to_dict(),
            )

    def headroom(self) -> Decimal:
        return self.max_budget - self.total_allocated

    def reserve(self, amount: Decimal) -> None:
        """Add ``amount`` to the allocated total, refusing to cross the ceiling."""
        _require_positive(amount)
        if self.total_allocated + amount > self.max_budget:
            raise BudgetExceededError(
                "Exceeds maximum budget",
                details={
                    "requested": str(amount),
                    "remaining": str(self.headroom()),
                    "max_budget": str(self.max_budget),
                },
            )
        self.total_allocated += amount

    def record_paid(self, amount: Decimal) -> None:
        """Add ``amount`` to the paid total; paying more than was allocated is fatal."""
        _require_positive(amount)
        if self.total_paid + amount > self.total_allocated:
            raise OverpayInvariantViolation(
                "Paid total would exceed allocated total",
                details={
                    "amount": str(amount),
                    "total_paid": str(self.total_paid),
                    "total_allocated": str(self.total_allocated),
                },
            )
        self.total_paid += amount

    def stats(self) -> BudgetStats:
        return BudgetStats(
            max_budget=self.max_budget,
            total_allocated=self.total_allocated,
            total_paid=self.total_paid,
        )


def _require_positive(amount: Decimal) -> None:
    if not isinstance(amount, Decimal) or not amount.is_finite() or amount <= 0:
        raise ValidationError("Amount must be a positive decimal", details={"amount": str(amount)})
