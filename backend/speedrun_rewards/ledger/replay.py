"""
Rebuild a ledger from its audit stream.
"""

from decimal import Decimal
from typing import Iterable, Optional

from ..core.exceptions import DatabaseError
from ..core.logging_config import get_logger
from .audit import AuditRecord, AuditSink
from .engine import RewardLedger
from .policy import CampaignPolicy

logger = get_logger(__name__)


def rebuild_ledger(
    policy: CampaignPolicy,
    owner: str,
    records: Iterable[AuditRecord],
    audit_sink: Optional[AuditSink] = None,
    allocators: Iterable[str] = (),
    settle_externally: bool = False,
) -> RewardLedger:
    """
    Replay ``records`` into a fresh ledger.

    ``owner`` is the owner the campaign started with; ownership transfers in
    the stream are replayed on top, as are allocator changes on top of the
    configured ``allocators``. The returned ledger appends new records
    to ``audit_sink``, which normally is the sink ``records`` came from.

    Raises:
        DatabaseError: if the replayed totals differ from the last record's
    """
    records = list(records)
    ledger = RewardLedger(
        policy, owner, audit_sink=audit_sink, allocators=allocators, settle_externally=settle_externally
    )
    applied = ledger.replay(records)

    if records:
        expected = records[-1].after
        stats = ledger.stats()
        actual = {
            "balance_on_hand": stats.balance_on_hand,
            "total_allocated": stats.total_allocated,
            "total_paid": stats.total_paid,
        }
        mismatched = {
            key: {"recorded": expected[key], "replayed": str(value)}
            for key, value in actual.items()
            if key in expected and Decimal(expected[key]) != value
        }
        if mismatched:
            logger.critical(f"Audit replay diverged from recorded totals: {mismatched}")
            raise DatabaseError(
                "Audit log replay does not reproduce recorded totals",
                details={"mismatched": mismatched},
                operation="replay",
            )

    logger.info(f"Rebuilt ledger from {applied} audit record(s)")
    return ledger
