"""
Read-mirror row for a committed reward grant.

The table is a projection of the ledger's audit log and is only ever
written by ``RewardMirror``.
"""

from sqlalchemy import Boolean, Column, DateTime, Enum, Index, Integer, Numeric, String

from ...ledger.types import GrantStatus, RewardCategory, RewardGrant
from ..base import Base, TimestampMixin


class CampaignReward(TimestampMixin, Base):
    """
    One granted reward, as shown to admins and recipients.
    """

    id = Column(Integer, primary_key=True, autoincrement=True)
    reward_id = Column(String(64), unique=True, index=True, nullable=False,
                       comment="Deterministic id derived from batch id and proof")
    recipient = Column(String(64), nullable=False, index=True)
    amount = Column(Numeric(20, 8), nullable=False)
    category = Column(Enum(RewardCategory), nullable=False, index=True)
    week = Column(Integer, nullable=False, index=True)
    proof = Column(String(128), nullable=False, unique=True)
    batch_id = Column(String(64), nullable=False, index=True)
    status = Column(Enum(GrantStatus), nullable=False, default=GrantStatus.CONFIRMED, index=True)
    claimed = Column(Boolean, nullable=False, default=False)
    awarded_at = Column(DateTime(timezone=True), nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    settlement_ref = Column(String(128), nullable=True, comment="External payout reference")

    __table_args__ = (
        Index("ix_campaign_reward_week_category", "week", "category"),
    )

    @classmethod
    def from_grant(cls, grant: RewardGrant) -> "CampaignReward":
        return cls(
            reward_id=grant.reward_id,
            recipient=grant.recipient,
            amount=grant.amount,
            category=grant.category,
            week=grant.week,
            proof=grant.proof,
            batch_id=grant.batch_id,
            status=grant.status,
            claimed=grant.claimed,
            awarded_at=grant.awarded_at,
            paid_at=grant.paid_at,
            settlement_ref=grant.settlement_ref,
        )

    def __repr__(self) -> str:
        return (f"<CampaignReward(reward_id={self.reward_id[:12]}, recipient={self.recipient}, "
                f"amount={self.amount}, status={self.status})>")
