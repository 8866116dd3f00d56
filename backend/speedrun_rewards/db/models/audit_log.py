"""
Append-only table of ledger audit records.
"""

from sqlalchemy import Column, DateTime, Integer, JSON, String, Index

from ...ledger.audit import AuditAction, AuditRecord
from ..base import Base


class LedgerAuditLog(Base):
    """
    One row per committed ledger mutation.

    Rows are inserted and never updated or deleted; ``sequence`` is the
    ledger's own audit sequence and therefore unique.
    """

    id = Column(Integer, primary_key=True, autoincrement=True)
    sequence = Column(Integer, nullable=False, unique=True, comment="Ledger audit sequence")
    action = Column(String(64), nullable=False, index=True)
    actor = Column(String(64), nullable=True, index=True)
    reference = Column(String(128), nullable=True, index=True, comment="Batch id, recipient or address")
    payload = Column(JSON, nullable=False, default=dict)
    before = Column(JSON, nullable=False, default=dict, comment="Totals before the change")
    after = Column(JSON, nullable=False, default=dict, comment="Totals after the change")
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_ledger_audit_log_action_sequence", "action", "sequence"),
    )

    @classmethod
    def from_record(cls, record: AuditRecord) -> "LedgerAuditLog":
        return cls(
            sequence=record.sequence,
            action=record.action.value,
            actor=record.actor,
            reference=record.reference,
            payload=dict(record.payload),
            before=dict(record.before),
            after=dict(record.after),
            created_at=record.created_at,
        )

    def to_record(self) -> AuditRecord:
        return AuditRecord(
            sequence=self.sequence,
            action=AuditAction(self.action),
            created_at=self.created_at,
            actor=self.actor,
            reference=self.reference,
            payload=dict(self.payload or {}),
            before=dict(self.before or {}),
            after=dict(self.after or {}),
        )

    def __repr__(self) -> str:
        return f"<LedgerAuditLog(sequence={self.sequence}, action={self.action})>"
