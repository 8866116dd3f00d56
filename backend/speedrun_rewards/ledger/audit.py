"""
Append-only audit trail of committed ledger mutations.

Every committed allocation, claim and administrative change produces exactly
one immutable ``AuditRecord`` carrying the ledger totals before and after the
change. The stream is sufficient to rebuild the ledger (see ``replay``) and to
project the read mirror kept in the database.
"""

import enum
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Protocol, runtime_checkable


class AuditAction(str, enum.Enum):
    """Audit action types."""
    BATCH_ALLOCATED = "reward:batch_allocated"
    REWARD_CLAIMED = "reward:claimed"
    BATCH_CONFIRMED = "settlement:batch_confirmed"
    BATCH_FAILED = "settlement:batch_failed"
    CAMPAIGN_PAUSED = "admin:paused"
    CAMPAIGN_UNPAUSED = "admin:unpaused"
    FUNDS_DEPOSITED = "admin:funds_deposited"
    EMERGENCY_WITHDRAWAL = "admin:emergency_withdrawal"
    ALLOCATOR_ADDED = "admin:allocator_added"
    ALLOCATOR_REMOVED = "admin:allocator_removed"
    OWNERSHIP_TRANSFERRED = "admin:ownership_transferred"


@dataclass(frozen=True)
class AuditRecord:
    """
    Immutable record of one committed mutation.

    Fields
      • sequence: position in the ledger's audit stream, starting at 1
      • action: what happened
      • actor: address that triggered it, when known
      • reference: batch id, recipient or other subject of the change
      • payload: everything needed to re-apply the change (JSON-compatible)
      • before / after: ledger totals around the change
    """
    sequence: int
    action: AuditAction
    created_at: datetime
    actor: Optional[str] = None
    reference: Optional[str] = None
    payload: Mapping[str, Any] = field(default_factory=dict)
    before: Mapping[str, str] = field(default_factory=dict)
    after: Mapping[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "action": self.action.value,
            "created_at": self.created_at.isoformat(),
            "actor": self.actor,
            "reference": self.reference,
            "payload": dict(self.payload),
            "before": dict(self.before),
            "after": dict(self.after),
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "AuditRecord":
        return AuditRecord(
            sequence=int(d["sequence"]),
            action=AuditAction(d["action"]),
            created_at=datetime.fromisoformat(d["created_at"]),
            actor=d.get("actor"),
            reference=d.get("reference"),
            payload=dict(d.get("payload") or {}),
            before=dict(d.get("before") or {}),
            after=dict(d.get("after") or {}),
        )


@runtime_checkable
class AuditSink(Protocol):
    """Destination for audit records. Implementations must never rewrite history."""

    def append(self, record: AuditRecord) -> None:
        ...

    def records(self, after_sequence: int = 0) -> List[AuditRecord]:
        ...


class InMemoryAuditSink:
    """Process-local sink, used by default and in tests."""

    def __init__(self, records: Optional[List[AuditRecord]] = None):
        self._records: List[AuditRecord] = list(records or [])
        self._lock = threading.Lock()

    def append(self, record: AuditRecord) -> None:
        with self._lock:
            if self._records and record.sequence <= self._records[-1].sequence:
                raise ValueError(
                    f"Audit sequence must increase: got {record.sequence} "
                    f"after {self._records[-1].sequence}"
                )
            self._records.append(record)

    def records(self, after_sequence: int = 0) -> List[AuditRecord]:
        with self._lock:
            return [r for r in self._records if r.sequence > after_sequence]

    def __len__(self) -> int:
        return len(self._records)
