"""
Core module containing essential utilities and configurations for the application.
"""

from .config import Config, get_config, load_config
from .logging_config import setup_logging, get_logger
from .exceptions import (
    AppException,
    ConfigurationError,
    SecurityError,
    ValidationError,
    DatabaseError,
    ExternalServiceError,
    NotFoundError,
    RewardLedgerError,
)
from .constants import (
    AppConstants,
    CampaignConstants,
    SecurityConstants,
)

__all__ = [
    # Config
    "Config",
    "get_config",
    "load_config",

    # Logging
    "setup_logging",
    "get_logger",

    # Exceptions
    "AppException",
    "ConfigurationError",
    "SecurityError",
    "ValidationError",
    "DatabaseError",
    "ExternalServiceError",
    "NotFoundError",
    "RewardLedgerError",

    # Constants
    "AppConstants",
    "CampaignConstants",
    "SecurityConstants",
]
