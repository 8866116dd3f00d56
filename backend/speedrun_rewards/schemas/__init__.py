"""
Request and response schemas.
"""

from .rewards import (
    AllocateRequest,
    AllocationResponse,
    AvailableRewardsResponse,
    BudgetUtilization,
    ClaimResponse,
    ConfirmBatchRequest,
    ConfirmBatchResponse,
    DistributeRequest,
    FundRequest,
    FundResponse,
    GrantIn,
    GrantResponse,
    HealthResponse,
    PauseResponse,
    RewardStatisticsResponse,
    RewardStructureResponse,
    RewardTotals,
    StatsResponse,
    TopEarner,
    WeeklyDistributionEntry,
    WithdrawResponse,
)

__all__ = [
    "AllocateRequest",
    "AllocationResponse",
    "AvailableRewardsResponse",
    "BudgetUtilization",
    "ClaimResponse",
    "ConfirmBatchRequest",
    "ConfirmBatchResponse",
    "DistributeRequest",
    "FundRequest",
    "FundResponse",
    "GrantIn",
    "GrantResponse",
    "HealthResponse",
    "PauseResponse",
    "RewardStatisticsResponse",
    "RewardStructureResponse",
    "RewardTotals",
    "StatsResponse",
    "TopEarner",
    "WeeklyDistributionEntry",
    "WithdrawResponse",
]
