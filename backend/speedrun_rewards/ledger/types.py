"""
Value types shared by the reward ledger components.
"""

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Tuple

ZERO = Decimal("0")


class RewardCategory(str, enum.Enum):
    """
    Reward categories a grant can be made under.

    The declaration order matches the numeric ids used by the campaign
    contract (0, 1, 2).
    """
    TOP_QUALITY = "TOP_QUALITY"
    TOP_ENGAGEMENT = "TOP_ENGAGEMENT"
    FAST_COMPLETION = "FAST_COMPLETION"

    @classmethod
    def coerce(cls, value: Any) -> Optional["RewardCategory"]:
        """Resolve a category from an enum member, a name, or a contract id."""
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            members = list(cls)
            return members[value] if 0 <= value < len(members) else None
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                return None
        return None


class GrantStatus(str, enum.Enum):
    """Settlement state of a committed grant."""
    PENDING = "PENDING"        # Awaiting external payout confirmation
    CONFIRMED = "CONFIRMED"    # Confirmed externally, or settled locally
    FAILED = "FAILED"          # External action failed; reservation kept
    PAID = "PAID"              # Claimed by the recipient


def to_amount(value: Any) -> Optional[Decimal]:
    """
    Parse a monetary amount.

    Returns None for anything that is not a finite number; sign is not
    checked here.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError):
            return None
    if not amount.is_finite():
        return None
    return amount


@dataclass(frozen=True)
class GrantRequest:
    """One row of an allocation batch as supplied by the caller."""
    recipient: str
    amount: Any
    category: Any
    week: Any
    proof: str

    def to_dict(self) -> Dict[str, Any]:
        category = self.category.value if isinstance(self.category, RewardCategory) else self.category
        return {
            "recipient": self.recipient,
            "amount": str(self.amount),
            "category": category,
            "week": self.week,
            "proof": self.proof,
        }


@dataclass(frozen=True)
class RewardGrant:
    """
    A committed reward credit.

    Immutable: status transitions produce a new instance through
    ``with_status``.
    """
    reward_id: str
    recipient: str
    amount: Decimal
    category: RewardCategory
    week: int
    proof: str
    batch_id: str
    awarded_at: datetime
    status: GrantStatus = GrantStatus.CONFIRMED
    claimed: bool = False
    paid_at: Optional[datetime] = None
    settlement_ref: Optional[str] = None

    def with_status(self, status: GrantStatus, **changes: Any) -> "RewardGrant":
        return replace(self, status=status, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reward_id": self.reward_id,
            "recipient": self.recipient,
            "amount": str(self.amount),
            "category": self.category.value,
            "week": self.week,
            "proof": self.proof,
            "batch_id": self.batch_id,
            "awarded_at": self.awarded_at.isoformat(),
            "status": self.status.value,
            "claimed": self.claimed,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "settlement_ref": self.settlement_ref,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "RewardGrant":
        return RewardGrant(
            reward_id=str(d["reward_id"]),
            recipient=str(d["recipient"]),
            amount=Decimal(str(d["amount"])),
            category=RewardCategory(d["category"]),
            week=int(d["week"]),
            proof=str(d["proof"]),
            batch_id=str(d["batch_id"]),
            awarded_at=datetime.fromisoformat(d["awarded_at"]),
            status=GrantStatus(d.get("status", GrantStatus.CONFIRMED.value)),
            claimed=bool(d.get("claimed", False)),
            paid_at=datetime.fromisoformat(d["paid_at"]) if d.get("paid_at") else None,
            settlement_ref=d.get("settlement_ref"),
        )


@dataclass
class RecipientBalance:
    """Per-recipient accumulator. Never negative."""
    earned: Decimal = ZERO
    claimable: Decimal = ZERO
    claimed: Decimal = ZERO

    def copy(self) -> "RecipientBalance":
        return RecipientBalance(self.earned, self.claimable, self.claimed)

    def to_dict(self) -> Dict[str, str]:
        return {
            "earned": str(self.earned),
            "claimable": str(self.claimable),
            "claimed": str(self.claimed),
        }


@dataclass(frozen=True)
class BudgetStats:
    """Read-only view of the budget ledger."""
    max_budget: Decimal
    total_allocated: Decimal
    total_paid: Decimal

    @property
    def remaining(self) -> Decimal:
        return self.max_budget - self.total_allocated

    def to_dict(self) -> Dict[str, str]:
        return {
            "max_budget": str(self.max_budget),
            "total_allocated": str(self.total_allocated),
            "total_paid": str(self.total_paid),
            "remaining": str(self.remaining),
        }


@dataclass(frozen=True)
class LedgerStats:
    """Public snapshot of the whole ledger, safe to hand to any reader."""
    balance_on_hand: Decimal
    max_budget: Decimal
    total_allocated: Decimal
    total_paid: Decimal
    remaining_budget: Decimal
    paused: bool
    grant_count: int
    batch_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "balance_on_hand": str(self.balance_on_hand),
            "max_budget": str(self.max_budget),
            "total_allocated": str(self.total_allocated),
            "total_paid": str(self.total_paid),
            "remaining_budget": str(self.remaining_budget),
            "paused": self.paused,
            "grant_count": self.grant_count,
            "batch_count": self.batch_count,
        }


@dataclass(frozen=True)
class BatchResult:
    """Outcome of a committed allocation batch."""
    batch_id: str
    sequence: int
    applied_count: int
    total_amount: Decimal
    grants: Tuple[RewardGrant, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ClaimResult:
    """Outcome of a successful claim."""
    recipient: str
    amount_paid: Decimal
    reward_ids: Tuple[str, ...] = field(default_factory=tuple)
