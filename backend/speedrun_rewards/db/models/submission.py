"""
Tutorial submissions, as reviewed by campaign admins.
"""

from sqlalchemy import Column, DateTime, Float, Index, Integer, String

from ...core.constants import CampaignConstants
from ...ledger.ranking import SubmissionRecord
from ..base import Base, TimestampMixin


class CampaignSubmission(TimestampMixin, Base):
    """A weekly tutorial submission and its review outcome."""

    id = Column(Integer, primary_key=True, autoincrement=True)
    submission_id = Column(String(64), unique=True, nullable=False, index=True)
    recipient = Column(String(64), nullable=False, index=True)
    week = Column(Integer, nullable=False, index=True)
    review_status = Column(String(20), nullable=False, default="PENDING", index=True,
                           comment=f"PENDING, {CampaignConstants.APPROVED_STATUS} or REJECTED")
    submitted_at = Column(DateTime(timezone=True), nullable=False)
    quality_score = Column(Float, nullable=True)
    engagement_score = Column(Float, nullable=True)

    __table_args__ = (
        Index("ix_campaign_submission_week_status", "week", "review_status"),
    )

    @classmethod
    def from_record(cls, record: SubmissionRecord) -> "CampaignSubmission":
        return cls(
            submission_id=record.submission_id,
            recipient=record.recipient.lower(),
            week=record.week,
            review_status=record.review_status.upper(),
            submitted_at=record.submitted_at,
            quality_score=record.quality_score,
            engagement_score=record.engagement_score,
        )

    def to_record(self) -> SubmissionRecord:
        return SubmissionRecord(
            submission_id=self.submission_id,
            recipient=self.recipient,
            week=self.week,
            review_status=self.review_status,
            submitted_at=self.submitted_at,
            quality_score=self.quality_score,
            engagement_score=self.engagement_score,
        )
