"""
Base database model and mixins.
"""

import re
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Any, Dict, Optional

from sqlalchemy import Column, DateTime
from sqlalchemy.orm import DeclarativeBase, declared_attr


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.
    """

    @declared_attr.directive
    def __tablename__(cls) -> str:
        """
        Convert class name to snake_case for table name.
        Example: 'CampaignReward' -> 'campaign_reward'
        """
        return re.sub(r'(?<!^)(?=[A-Z])', '_', cls.__name__).lower()

    def to_dict(self, exclude: Optional[list] = None) -> Dict[str, Any]:
        """
        Convert model instance to dictionary.

        Args:
            exclude: List of field names to exclude

        Returns:
            Dictionary representation
        """
        exclude = exclude or []
        result = {}

        for column in self.__table__.columns:
            if column.name in exclude:
                continue
            value = getattr(self, column.name)

            if isinstance(value, datetime):
                result[column.name] = value.isoformat()
            elif isinstance(value, Decimal):
                result[column.name] = format(value.normalize(), "f")
            elif isinstance(value, PyEnum):
                result[column.name] = value.value
            else:
                result[column.name] = value

        return result


class TimestampMixin:
    """
    Mixin for created_at and updated_at timestamps.
    """
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        index=True,
        doc="Timestamp when the record was created"
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        doc="Timestamp when the record was last updated"
    )
