"""
Persistence: audit log storage, the reward read mirror and submissions.
"""

from .audit_sink import SqlAuditSink
from .engine import check_connection, create_db_engine, get_engine, init_db
from .mirror import RewardMirror
from .session import make_session_factory, session_scope
from .submissions import SubmissionRepository

__all__ = [
    "SqlAuditSink",
    "check_connection",
    "create_db_engine",
    "get_engine",
    "init_db",
    "RewardMirror",
    "make_session_factory",
    "session_scope",
    "SubmissionRepository",
]
