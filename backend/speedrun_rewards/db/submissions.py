"""
Submissions store consumed by the recipient selection step.
"""

from typing import Iterable, List

from sqlalchemy.orm import sessionmaker

from ..core.constants import CampaignConstants
from ..ledger.ranking import SubmissionRecord
from .models.submission import CampaignSubmission
from .repositories import BaseRepository
from .session import session_scope


class SubmissionRepository:
    """Read/write access to ``campaign_submission``."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def add(self, record: SubmissionRecord) -> None:
        self.add_many([record])

    def add_many(self, records: Iterable[SubmissionRecord]) -> None:
        with session_scope(self.session_factory) as session:
            BaseRepository(CampaignSubmission, session).add_all(
                [CampaignSubmission.from_record(r) for r in records]
            )

    def by_week(self, week: int) -> List[SubmissionRecord]:
        return self._find(week=week)

    def by_user(self, address: str) -> List[SubmissionRecord]:
        return self._find(recipient=address.strip().lower())

    def approved_for_week(self, week: int) -> List[SubmissionRecord]:
        return self._find(week=week, review_status=CampaignConstants.APPROVED_STATUS)

    def _find(self, **filters) -> List[SubmissionRecord]:
        with session_scope(self.session_factory) as session:
            rows = BaseRepository(CampaignSubmission, session).get_all(
                order_by=["submitted_at", "id"], **filters
            )
            return [row.to_record() for row in rows]
