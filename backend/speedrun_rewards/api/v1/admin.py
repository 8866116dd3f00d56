"""
Campaign admin endpoints: allocation, pause, funding and settlement.

Authorisation (owner or allocator) is enforced by the service and ledger;
these handlers only resolve the caller from the bearer token.
"""
from fastapi import APIRouter, Depends, Query

from ...schemas import (
    AllocateRequest,
    AllocationResponse,
    ConfirmBatchRequest,
    ConfirmBatchResponse,
    DistributeRequest,
    FundRequest,
    FundResponse,
    PauseResponse,
    RewardStatisticsResponse,
    RewardStructureResponse,
    WithdrawResponse,
)
from ...services.reward_service import RewardService
from ..deps import get_current_address, get_reward_service

router = APIRouter()


@router.post("/rewards/allocate", response_model=AllocationResponse)
async def allocate_rewards(
    body: AllocateRequest,
    caller: str = Depends(get_current_address),
    service: RewardService = Depends(get_reward_service),
) -> AllocationResponse:
    """
    Allocate an explicit batch of grants, all or nothing.
    """
    outcome = await service.allocate([g.to_grant() for g in body.grants], caller=caller)
    return AllocationResponse(**outcome.to_dict())


@router.post("/rewards/distribute", response_model=AllocationResponse)
async def distribute_rewards(
    body: DistributeRequest,
    caller: str = Depends(get_current_address),
    service: RewardService = Depends(get_reward_service),
) -> AllocationResponse:
    """
    Reward approved submissions of a week in one category.
    """
    outcome = await service.distribute(
        week=body.week,
        category=body.category,
        caller=caller,
        recipients=body.recipients,
    )
    return AllocationResponse(**outcome.to_dict())


@router.get("/rewards/structure", response_model=RewardStructureResponse)
async def reward_structure(
    service: RewardService = Depends(get_reward_service),
) -> RewardStructureResponse:
    return RewardStructureResponse(**service.reward_structure())


@router.get("/rewards/statistics", response_model=RewardStatisticsResponse)
async def reward_statistics(
    top: int = Query(10, ge=1, le=100, description="How many top earners to list"),
    caller: str = Depends(get_current_address),
    service: RewardService = Depends(get_reward_service),
) -> RewardStatisticsResponse:
    """
    Dashboard figures: reward totals, budget utilisation, weekly
    distribution and top earners.
    """
    return RewardStatisticsResponse(**await service.reward_statistics(caller, top=top))


@router.post("/pause", response_model=PauseResponse)
async def pause_campaign(
    caller: str = Depends(get_current_address),
    service: RewardService = Depends(get_reward_service),
) -> PauseResponse:
    changed = await service.pause(caller)
    return PauseResponse(paused=True, changed=changed)


@router.post("/unpause", response_model=PauseResponse)
async def unpause_campaign(
    caller: str = Depends(get_current_address),
    service: RewardService = Depends(get_reward_service),
) -> PauseResponse:
    changed = await service.unpause(caller)
    return PauseResponse(paused=False, changed=changed)


@router.post("/fund", response_model=FundResponse)
async def fund_campaign(
    body: FundRequest,
    caller: str = Depends(get_current_address),
    service: RewardService = Depends(get_reward_service),
) -> FundResponse:
    on_hand = await service.fund(body.amount, funder=caller)
    return FundResponse(balance_on_hand=str(on_hand))


@router.post("/emergency-withdraw", response_model=WithdrawResponse)
async def emergency_withdraw(
    caller: str = Depends(get_current_address),
    service: RewardService = Depends(get_reward_service),
) -> WithdrawResponse:
    """
    Sweep all funds on hand to the owner. Unclaimed balances stay recorded.
    """
    amount = await service.emergency_withdraw(caller)
    return WithdrawResponse(amount=str(amount), to=service.ledger.owner)


@router.post("/batches/{batch_id}/confirm", response_model=ConfirmBatchResponse)
async def confirm_batch(
    batch_id: str,
    body: ConfirmBatchRequest,
    caller: str = Depends(get_current_address),
    service: RewardService = Depends(get_reward_service),
) -> ConfirmBatchResponse:
    confirmed = await service.confirm_batch(batch_id, body.reference, caller)
    return ConfirmBatchResponse(batch_id=batch_id, confirmed=confirmed)
