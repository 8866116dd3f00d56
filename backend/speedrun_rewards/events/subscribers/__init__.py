"""
Event subscribers registered by the application.
"""

from .campaign_subscriber import CampaignSubscriber

__all__ = ["CampaignSubscriber"]
