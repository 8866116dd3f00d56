"""
Application services.
"""

from .reward_service import AllocationOutcome, RewardService, create_reward_service

__all__ = [
    "AllocationOutcome",
    "RewardService",
    "create_reward_service",
]
