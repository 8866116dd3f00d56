"""
Audit sink persisting ledger records to the ``ledger_audit_log`` table.
"""

from typing import List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..core.exceptions import DatabaseError
from ..ledger.audit import AuditRecord
from .models.audit_log import LedgerAuditLog
from .repositories import BaseRepository
from .session import session_scope


class SqlAuditSink:
    """
    Append-only SQL sink.

    Each append commits in its own transaction, so a record is durable
    before the ledger publishes the change it describes.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def append(self, record: AuditRecord) -> None:
        try:
            with session_scope(self.session_factory) as session:
                BaseRepository(LedgerAuditLog, session).add(LedgerAuditLog.from_record(record))
        except SQLAlchemyError as e:
            raise DatabaseError(
                f"Failed to append audit record {record.sequence}: {e}",
                operation="audit_append",
            ) from e

    def records(self, after_sequence: int = 0) -> List[AuditRecord]:
        with session_scope(self.session_factory) as session:
            rows = session.execute(
                select(LedgerAuditLog)
                .where(LedgerAuditLog.sequence > after_sequence)
                .order_by(LedgerAuditLog.sequence.asc())
            ).scalars().all()
            return [row.to_record() for row in rows]

    def __len__(self) -> int:
        with session_scope(self.session_factory) as session:
            return BaseRepository(LedgerAuditLog, session).count()
