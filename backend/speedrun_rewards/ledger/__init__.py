"""
Reward ledger: budget accounting, proof replay guard, batch allocation,
claims and administrative controls for one campaign.
"""

from .audit import AuditAction, AuditRecord, AuditSink, InMemoryAuditSink
from .budget import BudgetLedger
from .engine import RewardLedger
from .policy import CampaignPolicy, CategoryRule, default_rules
from .proofs import ProofRegistry, make_proof_hash
from .ranking import (
    FastestCompletionRanking,
    NotImplementedRanking,
    RankingStrategy,
    ScoreRanking,
    SubmissionRecord,
    select_recipients,
)
from .replay import rebuild_ledger
from .types import (
    BatchResult,
    ClaimResult,
    GrantRequest,
    GrantStatus,
    LedgerStats,
    RecipientBalance,
    RewardCategory,
    RewardGrant,
)

__all__ = [
    "AuditAction",
    "AuditRecord",
    "AuditSink",
    "InMemoryAuditSink",
    "BudgetLedger",
    "RewardLedger",
    "CampaignPolicy",
    "CategoryRule",
    "default_rules",
    "ProofRegistry",
    "make_proof_hash",
    "FastestCompletionRanking",
    "NotImplementedRanking",
    "RankingStrategy",
    "ScoreRanking",
    "SubmissionRecord",
    "select_recipients",
    "rebuild_ledger",
    "BatchResult",
    "ClaimResult",
    "GrantRequest",
    "GrantStatus",
    "LedgerStats",
    "RecipientBalance",
    "RewardCategory",
    "RewardGrant",
]
