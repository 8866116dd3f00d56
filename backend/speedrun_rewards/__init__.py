"""
Speedrun Lisk Rewards: reward allocation and claim ledger for a weekly
builder campaign.
"""

from .core.constants import AppConstants

__version__ = AppConstants.APP_VERSION
