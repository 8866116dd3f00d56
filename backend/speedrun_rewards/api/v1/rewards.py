"""
Public reward endpoints: campaign figures, balances and claims.
"""
from typing import List

from fastapi import APIRouter, Depends

from ...schemas import (
    AvailableRewardsResponse,
    ClaimResponse,
    GrantResponse,
    StatsResponse,
)
from ...services.reward_service import RewardService
from ..deps import get_current_address, get_reward_service

router = APIRouter()


@router.get("/stats", response_model=StatsResponse)
async def campaign_stats(
    service: RewardService = Depends(get_reward_service),
) -> StatsResponse:
    """
    Balance on hand, allocated, paid and remaining budget.
    """
    return StatsResponse(**service.stats().to_dict())


@router.get("/{address}/available", response_model=AvailableRewardsResponse)
async def available_rewards(
    address: str,
    service: RewardService = Depends(get_reward_service),
) -> AvailableRewardsResponse:
    balance = service.balance_of(address)
    return AvailableRewardsResponse(address=address.strip().lower(), **balance.to_dict())


@router.get("/{address}/grants", response_model=List[GrantResponse])
async def list_grants(
    address: str,
    service: RewardService = Depends(get_reward_service),
) -> List[GrantResponse]:
    return [GrantResponse(**grant.to_dict()) for grant in service.grants_for(address)]


@router.post("/claim", response_model=ClaimResponse)
async def claim_all(
    caller: str = Depends(get_current_address),
    service: RewardService = Depends(get_reward_service),
) -> ClaimResponse:
    """
    Pay out everything the caller can claim.
    """
    result = await service.claim(caller)
    return ClaimResponse(
        recipient=result.recipient,
        amount_paid=str(result.amount_paid),
        reward_ids=list(result.reward_ids),
    )


@router.post("/{reward_id}/claim", response_model=ClaimResponse)
async def claim_reward(
    reward_id: str,
    caller: str = Depends(get_current_address),
    service: RewardService = Depends(get_reward_service),
) -> ClaimResponse:
    result = await service.claim_grant(reward_id, caller)
    return ClaimResponse(
        recipient=result.recipient,
        amount_paid=str(result.amount_paid),
        reward_ids=list(result.reward_ids),
    )
