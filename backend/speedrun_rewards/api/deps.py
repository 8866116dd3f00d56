"""
Common FastAPI dependencies used across the API.
"""
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..core.exceptions import AuthenticationError
from ..core.security import TokenManager
from ..services.reward_service import RewardService

# HTTP Bearer scheme; missing credentials are reported through AuthenticationError
http_bearer = HTTPBearer(auto_error=False)


def get_reward_service(request: Request) -> RewardService:
    """The service instance created by the application factory."""
    return request.app.state.reward_service


def get_token_manager(request: Request) -> TokenManager:
    return request.app.state.token_manager


async def get_current_address(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    token_manager: TokenManager = Depends(get_token_manager),
) -> str:
    """
    Resolve the caller's address from the bearer token.

    Raises:
        AuthenticationError: when no token is sent
        SecurityError: when the token is invalid or expired
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Not authenticated", details={"error": "missing_token"})
    return token_manager.address_from_token(credentials.credentials)
