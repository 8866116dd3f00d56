"""
Application constants and enumerations.
"""

from decimal import Decimal


class AppConstants:
    """Application-wide constants."""

    # Application
    APP_NAME = "Speedrun Lisk Rewards"
    APP_DESCRIPTION = "Reward allocation and claim ledger for the Speedrun Lisk campaign"
    APP_VERSION = "1.0.0"

    # Time
    DEFAULT_TIMEOUT = 30  # seconds
    REQUEST_TIMEOUT = 30  # seconds for HTTP requests

    # Retry
    DEFAULT_RETRY_ATTEMPTS = 3
    RETRY_DELAY = 1  # second


class CampaignConstants:
    """Defaults for a six-week campaign; the live values come from configuration."""

    FIRST_WEEK = 1
    LAST_WEEK = 6

    # Budget in USD units
    DEFAULT_MAX_BUDGET = Decimal("2000")

    TOP_QUALITY_AMOUNT = Decimal("50")
    TOP_QUALITY_MAX_PER_WEEK = 10

    TOP_ENGAGEMENT_AMOUNT = Decimal("50")
    TOP_ENGAGEMENT_MAX_PER_WEEK = 10

    FAST_COMPLETION_AMOUNT = Decimal("20")
    FAST_COMPLETION_MAX_PER_WEEK = 50

    # Submissions eligible for a reward
    APPROVED_STATUS = "APPROVED"


class SecurityConstants:
    """Security-related constants."""

    HASH_ALGORITHM = "HS256"

    # Token
    TOKEN_TYPE_BEARER = "Bearer"
    TOKEN_HEADER = "Authorization"
    TOKEN_PREFIX = "Bearer "

    # Claims
    CLAIM_SUBJECT = "sub"
