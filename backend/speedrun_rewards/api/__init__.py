"""
HTTP API for the reward ledger.
"""
from .router import router

__all__ = ["router"]
