# models/__init__.py

from .audit_log import LedgerAuditLog
from .reward import CampaignReward
from .submission import CampaignSubmission

__all__ = [
    'LedgerAuditLog',
    'CampaignReward',
    'CampaignSubmission',
]
