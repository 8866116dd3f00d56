"""
Configuration management using Pydantic settings.
Supports environment variables, .env files, and YAML configuration.
"""

import os
import yaml
from decimal import Decimal
from typing import Optional, List
from enum import Enum
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
import logging

from .constants import AppConstants, CampaignConstants

logger = logging.getLogger(__name__)


class Environment(str, Enum):
    """Application environments."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class CampaignConfig(BaseSettings):
    """Campaign budget, category rules and ownership."""
    model_config = SettingsConfigDict(env_prefix="CAMPAIGN_")

    owner_address: str = Field("0x0000000000000000000000000000000000000001")
    allocators: List[str] = Field(default_factory=list)
    max_budget: Decimal = CampaignConstants.DEFAULT_MAX_BUDGET
    initial_funds: Decimal = Decimal("0")
    first_week: int = CampaignConstants.FIRST_WEEK
    last_week: int = CampaignConstants.LAST_WEEK

    top_quality_amount: Decimal = CampaignConstants.TOP_QUALITY_AMOUNT
    top_quality_max_per_week: int = CampaignConstants.TOP_QUALITY_MAX_PER_WEEK
    top_engagement_amount: Decimal = CampaignConstants.TOP_ENGAGEMENT_AMOUNT
    top_engagement_max_per_week: int = CampaignConstants.TOP_ENGAGEMENT_MAX_PER_WEEK
    fast_completion_amount: Decimal = CampaignConstants.FAST_COMPLETION_AMOUNT
    fast_completion_max_per_week: int = CampaignConstants.FAST_COMPLETION_MAX_PER_WEEK

    # Allowing claims while paused is a deliberate relaxation
    claims_blocked_when_paused: bool = True

    # Rank quality/engagement by scores stored with submissions; when off,
    # admins must name the recipients for those categories
    rank_by_stored_scores: bool = False

    @field_validator("max_budget")
    @classmethod
    def validate_max_budget(cls, v):
        if v <= 0:
            raise ValueError("Maximum budget must be positive")
        return v

    @field_validator("last_week")
    @classmethod
    def validate_week_range(cls, v, info):
        first = info.data.get("first_week", CampaignConstants.FIRST_WEEK)
        if v < first:
            raise ValueError("last_week must not be before first_week")
        return v

    def to_policy(self):
        """Build the immutable policy value handed to a ledger."""
        from ..ledger.policy import CampaignPolicy, CategoryRule
        from ..ledger.types import RewardCategory

        return CampaignPolicy(
            max_budget=self.max_budget,
            first_week=self.first_week,
            last_week=self.last_week,
            claims_blocked_when_paused=self.claims_blocked_when_paused,
            rules={
                RewardCategory.TOP_QUALITY: CategoryRule(
                    self.top_quality_amount, self.top_quality_max_per_week,
                    "Top quality submissions per week",
                ),
                RewardCategory.TOP_ENGAGEMENT: CategoryRule(
                    self.top_engagement_amount, self.top_engagement_max_per_week,
                    "Top social engagement per week",
                ),
                RewardCategory.FAST_COMPLETION: CategoryRule(
                    self.fast_completion_amount, self.fast_completion_max_per_week,
                    "Fastest completions (final week only)",
                ),
            },
        )


class DatabaseConfig(BaseSettings):
    """Database configuration."""
    model_config = SettingsConfigDict(env_prefix="DB_")

    url: str = Field("sqlite:///speedrun_rewards.db")
    echo: bool = False


class SecurityConfig(BaseSettings):
    """Security configuration."""
    model_config = SettingsConfigDict(env_prefix="SECURITY_")

    secret_key: str = Field("development-secret-key-change-me-please-0000")
    algorithm: str = Field("HS256")
    access_token_expire_minutes: int = Field(30)

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, v):
        if len(v) < 32:
            raise ValueError("Secret key must be at least 32 characters long")
        return v


class SettlementConfig(BaseSettings):
    """External payout relay configuration."""
    model_config = SettingsConfigDict(env_prefix="SETTLEMENT_")

    # Empty means settle locally (no external confirmation step)
    relay_url: Optional[str] = None
    api_key: Optional[str] = None
    timeout: float = Field(float(AppConstants.REQUEST_TIMEOUT))
    max_attempts: int = Field(AppConstants.DEFAULT_RETRY_ATTEMPTS)
    backoff_min: float = Field(1.0)
    backoff_max: float = Field(10.0)

    @field_validator("max_attempts")
    @classmethod
    def validate_attempts(cls, v):
        if v < 1:
            raise ValueError("max_attempts must be at least 1")
        return v


class LoggingConfig(BaseSettings):
    """Logging configuration."""
    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: LogLevel = LogLevel.INFO
    format: str = Field("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    date_format: str = Field("%Y-%m-%d %H:%M:%S")
    file_path: Optional[str] = None
    max_file_size: int = Field(10485760)  # 10MB
    backup_count: int = Field(5)
    json_format: bool = False


class APIConfig(BaseSettings):
    """API configuration."""
    model_config = SettingsConfigDict(env_prefix="API_")

    title: str = Field(AppConstants.APP_NAME)
    version: str = Field(AppConstants.APP_VERSION)
    description: str = Field(AppConstants.APP_DESCRIPTION)
    docs_url: str = Field("/docs")
    openapi_url: str = Field("/openapi.json")
    api_prefix: str = Field("/api")


class Config(BaseSettings):
    """Main application configuration."""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Core
    app_name: str = Field(AppConstants.APP_NAME)
    environment: Environment = Field(Environment.DEVELOPMENT)
    debug: bool = False

    # Server
    host: str = Field("0.0.0.0")
    port: int = Field(8000)

    # Components
    campaign: CampaignConfig = Field(default_factory=CampaignConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    settlement: SettlementConfig = Field(default_factory=SettlementConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    api: APIConfig = Field(default_factory=APIConfig)

    @field_validator("environment", mode="before")
    @classmethod
    def normalize_environment(cls, v):
        if isinstance(v, str):
            return v.lower()
        return v

    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.environment == Environment.TESTING


@lru_cache()
def get_config(config_file: Optional[str] = None) -> Config:
    """
    Get cached configuration instance.

    Args:
        config_file: Optional path to YAML configuration file

    Returns:
        Config instance
    """
    config_data = {}

    # Load YAML config if provided
    if config_file and os.path.exists(config_file):
        try:
            with open(config_file, 'r') as f:
                yaml_data = yaml.safe_load(f)
                if yaml_data:
                    config_data = yaml_data
                    logger.info(f"Loaded configuration from {config_file}")
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load YAML config from {config_file}: {e}")

    config = Config(**config_data)

    if config.is_production() and config.security.secret_key.startswith("development-"):
        logger.warning("Running in production with the development secret key")

    logger.info(f"Configuration loaded for {config.app_name} in {config.environment.value} environment")
    return config


def load_config(config_file: Optional[str] = None) -> Config:
    """
    Load configuration (clears cache first).

    Args:
        config_file: Optional path to YAML configuration file

    Returns:
        Config instance
    """
    get_config.cache_clear()
    return get_config(config_file)
