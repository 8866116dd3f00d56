"""
Pydantic schemas for the rewards API.

Request models stay permissive about grant contents: the ledger owns the
diagnosis of malformed grants so that every rejection carries the same
error codes whichever entry point it came through.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


# ==================== REQUEST SCHEMAS ====================

class GrantIn(BaseModel):
    """One grant of an explicit allocation batch."""

    recipient: Optional[str] = Field(None, description="Recipient address", examples=["0x" + "ab" * 20])
    amount: Optional[Decimal] = Field(None, description="Amount to credit")
    category: Union[str, int] = Field(..., description="TOP_QUALITY, TOP_ENGAGEMENT or FAST_COMPLETION (or 0..2)")
    week: Any = Field(..., description="Campaign week")
    proof: Optional[str] = Field(None, description="Proof hash binding the grant to a submission")

    def to_grant(self) -> Dict[str, Any]:
        return self.model_dump()


class AllocateRequest(BaseModel):
    """Schema for allocating an explicit batch."""

    grants: List[GrantIn] = Field(default_factory=list)


class DistributeRequest(BaseModel):
    """Schema for selecting and rewarding submissions for one week and category."""

    week: int = Field(..., description="Campaign week")
    category: Union[str, int] = Field(..., description="Reward category")
    recipients: Optional[List[str]] = Field(
        None,
        description="Addresses to reward; ranked automatically when omitted",
    )


class FundRequest(BaseModel):
    amount: Decimal = Field(..., description="Amount to deposit", gt=0)


class ConfirmBatchRequest(BaseModel):
    reference: str = Field(..., min_length=1, description="External payout reference, e.g. a transaction hash")


# ==================== RESPONSE SCHEMAS ====================

class AllocationResponse(BaseModel):
    batch_id: str
    sequence: int
    applied_count: int
    total_amount: str
    settlement_status: str
    settlement_ref: Optional[str] = None
    settlement_error: Optional[str] = None
    reward_ids: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list, description="Requested recipients left without a grant")


class ClaimResponse(BaseModel):
    recipient: str
    amount_paid: str
    reward_ids: List[str] = Field(default_factory=list)


class StatsResponse(BaseModel):
    """Public campaign figures."""

    balance_on_hand: str
    max_budget: str
    total_allocated: str
    total_paid: str
    remaining_budget: str
    paused: bool
    grant_count: int
    batch_count: int


class AvailableRewardsResponse(BaseModel):
    address: str
    claimable: str
    earned: str
    claimed: str


class GrantResponse(BaseModel):
    reward_id: str
    recipient: str
    amount: str
    category: str
    week: int
    proof: str
    batch_id: str
    awarded_at: str
    status: str
    claimed: bool
    paid_at: Optional[str] = None
    settlement_ref: Optional[str] = None


class PauseResponse(BaseModel):
    paused: bool
    changed: bool


class FundResponse(BaseModel):
    balance_on_hand: str


class WithdrawResponse(BaseModel):
    amount: str
    to: str


class ConfirmBatchResponse(BaseModel):
    batch_id: str
    confirmed: int


class CategoryStructure(BaseModel):
    category: str
    amount: str
    max_per_week: int
    description: str
    weeks: List[int]


class RewardStructureResponse(BaseModel):
    max_budget: str
    first_week: int
    last_week: int
    categories: List[CategoryStructure]


class HealthResponse(BaseModel):
    status: str
    version: str
    database: bool
    ledger_halted: bool


class RewardTotals(BaseModel):
    total_rewards: int
    total_amount: str
    paid_rewards: int
    paid_amount: str
    pending_rewards: int
    pending_amount: str


class BudgetUtilization(BaseModel):
    max_budget: str
    total_allocated: str
    total_paid: str
    remaining_budget: str
    utilization_percent: str


class WeeklyDistributionEntry(BaseModel):
    week: int
    category: str
    count: int
    total_amount: str


class TopEarner(BaseModel):
    recipient: str
    total_amount: str
    reward_count: int


class RewardStatisticsResponse(BaseModel):
    """Admin dashboard figures built from the reward mirror."""

    rewards: RewardTotals
    budget: BudgetUtilization
    weekly_distribution: List[WeeklyDistributionEntry]
    top_earners: List[TopEarner]
