"""
External integrations.
"""

from .settlement import (
    HttpSettlementGateway,
    NullSettlementGateway,
    SettlementGateway,
    build_gateway,
)

__all__ = [
    "HttpSettlementGateway",
    "NullSettlementGateway",
    "SettlementGateway",
    "build_gateway",
]
