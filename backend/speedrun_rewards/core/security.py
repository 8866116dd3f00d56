"""
Caller identity for the API: JWT bearer tokens whose subject is a wallet address.
"""

import re
from typing import Any, Dict, Optional
from datetime import datetime, timedelta, timezone

import jwt

from .config import get_config, SecurityConfig
from .constants import SecurityConstants
from .exceptions import AuthenticationError, SecurityError

ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


def normalize_address(address: str) -> str:
    """Addresses are compared case-insensitively; store them lower-cased."""
    return address.strip().lower()


def is_address(value: Any) -> bool:
    """Check for a 20-byte hex account address."""
    return isinstance(value, str) and bool(ADDRESS_PATTERN.match(value.strip()))


class TokenManager:
    """JWT token management."""

    def __init__(self, config: Optional[SecurityConfig] = None):
        """
        Initialize token manager.

        Args:
            config: Security configuration
        """
        self.config = config or get_config().security
        self.algorithm = self.config.algorithm

    def create_access_token(
        self,
        address: str,
        expires_delta: Optional[timedelta] = None,
        extra: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Create an access token for a wallet address.

        Args:
            address: Caller address placed in the subject claim
            expires_delta: Token expiration time
            extra: Additional claims

        Returns:
            JWT token
        """
        now = datetime.now(timezone.utc)
        expire = now + (expires_delta or timedelta(
            minutes=self.config.access_token_expire_minutes
        ))

        to_encode = dict(extra or {})
        to_encode.update({
            SecurityConstants.CLAIM_SUBJECT: normalize_address(address),
            "exp": expire,
            "iat": now,
            "type": "access",
        })

        return jwt.encode(
            to_encode,
            self.config.secret_key,
            algorithm=self.algorithm
        )

    def verify_token(self, token: str) -> Dict[str, Any]:
        """
        Verify and decode JWT token.

        Args:
            token: JWT token

        Returns:
            Decoded token payload

        Raises:
            SecurityError: If token is invalid or expired
        """
        try:
            return jwt.decode(
                token,
                self.config.secret_key,
                algorithms=[self.algorithm]
            )
        except jwt.ExpiredSignatureError:
            raise SecurityError("Token has expired", details={"error": "token_expired"})
        except jwt.InvalidTokenError as e:
            raise SecurityError(f"Invalid token: {str(e)}", details={"error": "invalid_token"})

    def address_from_token(self, token: str) -> str:
        """
        Resolve the caller address carried by a token.

        Raises:
            AuthenticationError: If the token has no usable subject
        """
        payload = self.verify_token(token)
        subject = payload.get(SecurityConstants.CLAIM_SUBJECT)
        if not is_address(subject):
            raise AuthenticationError(
                "Token subject is not an address",
                details={"error": "invalid_subject"}
            )
        return normalize_address(subject)


_token_manager: Optional[TokenManager] = None


def get_token_manager() -> TokenManager:
    """
    Get or create the token manager instance.

    Returns:
        TokenManager instance
    """
    global _token_manager
    if _token_manager is None:
        _token_manager = TokenManager()
    return _token_manager


def create_access_token(address: str) -> str:
    """Create access token."""
    return get_token_manager().create_access_token(address)


def verify_token(token: str) -> Dict[str, Any]:
    """Verify and decode token."""
    return get_token_manager().verify_token(token)
