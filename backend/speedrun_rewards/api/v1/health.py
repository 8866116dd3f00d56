"""
Health check endpoint for monitoring and uptime.
"""
from fastapi import APIRouter, Depends, Request

from ...core.constants import AppConstants
from ...db.engine import check_connection
from ...schemas import HealthResponse
from ...services.reward_service import RewardService
from ..deps import get_reward_service

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(
    request: Request,
    service: RewardService = Depends(get_reward_service),
) -> HealthResponse:
    """
    Basic health check: database reachability and ledger state.
    """
    engine = getattr(request.app.state, "db_engine", None)
    database_ok = check_connection(engine) if engine is not None else True
    halted = service.ledger.halted

    return HealthResponse(
        status="healthy" if database_ok and not halted else "degraded",
        version=AppConstants.APP_VERSION,
        database=database_ok,
        ledger_halted=halted,
    )
