"""
Selecting which submissions earn a reward.

Ranking is caller policy: the ledger re-validates whatever batch comes out
of here. Quality and engagement scores come from outside this service, so
the default strategy for those categories refuses to rank rather than
inventing scores.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from ..core.constants import CampaignConstants
from ..core.exceptions import RankingUnavailableError, UnknownCategoryError
from .policy import CampaignPolicy
from .proofs import make_proof_hash
from .types import GrantRequest, RewardCategory


@dataclass(frozen=True)
class SubmissionRecord:
    """A reviewed tutorial submission as read from the submissions store."""
    submission_id: str
    recipient: str
    week: int
    review_status: str
    submitted_at: datetime
    quality_score: Optional[float] = None
    engagement_score: Optional[float] = None

    @property
    def approved(self) -> bool:
        return self.review_status.upper() == CampaignConstants.APPROVED_STATUS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "submission_id": self.submission_id,
            "recipient": self.recipient,
            "week": self.week,
            "review_status": self.review_status,
            "submitted_at": self.submitted_at.isoformat(),
            "quality_score": self.quality_score,
            "engagement_score": self.engagement_score,
        }


class RankingStrategy(Protocol):
    name: str

    def rank(self, submissions: List[SubmissionRecord]) -> List[SubmissionRecord]:
        ...


class FastestCompletionRanking:
    """Earliest submission first."""

    name = "fastest_completion"

    def rank(self, submissions: List[SubmissionRecord]) -> List[SubmissionRecord]:
        return sorted(submissions, key=lambda s: (s.submitted_at, s.submission_id))


class ScoreRanking:
    """Highest score first; ties go to the earlier submission. Unscored submissions are skipped."""

    def __init__(self, attribute: str):
        if attribute not in ("quality_score", "engagement_score"):
            raise ValueError(f"Unsupported score attribute: {attribute}")
        self.attribute = attribute
        self.name = f"score:{attribute}"

    def rank(self, submissions: List[SubmissionRecord]) -> List[SubmissionRecord]:
        scored = [s for s in submissions if getattr(s, self.attribute) is not None]
        return sorted(scored, key=lambda s: (-getattr(s, self.attribute), s.submitted_at, s.submission_id))


class NotImplementedRanking:
    """Placeholder for categories whose scoring source is not wired in."""

    def __init__(self, category: RewardCategory):
        self.category = category
        self.name = f"unavailable:{category.value}"

    def rank(self, submissions: List[SubmissionRecord]) -> List[SubmissionRecord]:
        raise RankingUnavailableError(
            f"No ranking source configured for {self.category.value}; pass recipients explicitly",
            strategy=self.name,
        )


def default_strategy(category: RewardCategory) -> RankingStrategy:
    if category == RewardCategory.FAST_COMPLETION:
        return FastestCompletionRanking()
    return NotImplementedRanking(category)


def _proof_for(submission: SubmissionRecord, category: RewardCategory, week: int) -> str:
    return make_proof_hash(submission.recipient.lower(), week, submission.submission_id, salt=category.value)


def select_recipients(
    submissions: Iterable[SubmissionRecord],
    category: Any,
    week: int,
    policy: CampaignPolicy,
    strategy: Optional[RankingStrategy] = None,
    only: Optional[Iterable[str]] = None,
    already_committed: int = 0,
    is_used: Optional[Callable[[str], bool]] = None,
) -> List[GrantRequest]:
    """
    Turn approved submissions for ``week`` into grant requests.

    When ``only`` is given, the candidates are restricted to those addresses
    and kept in the order given (no ranking needed). Each recipient gets at
    most one grant, and the result never exceeds what is left of the
    category's weekly cap. With ``is_used``, recipients already rewarded in
    this category and week are left out, so follow-up batches only pick up
    newly approved submissions.
    """
    resolved = RewardCategory.coerce(category)
    rule = policy.rule_for(resolved) if resolved else None
    if rule is None:
        raise UnknownCategoryError("Unknown reward category", details={"category": str(category)})

    candidates = [s for s in submissions if s.week == week and s.approved]
    if is_used is not None:
        rewarded = {
            s.recipient.lower() for s in candidates if is_used(_proof_for(s, resolved, week))
        }
        candidates = [s for s in candidates if s.recipient.lower() not in rewarded]

    if only is not None:
        order = [a.strip().lower() for a in only]
        by_recipient: Dict[str, SubmissionRecord] = {}
        for s in sorted(candidates, key=lambda s: s.submitted_at):
            by_recipient.setdefault(s.recipient.lower(), s)
        ranked = [by_recipient[a] for a in order if a in by_recipient]
    else:
        ranked = (strategy or default_strategy(resolved)).rank(candidates)

    slots = max(rule.max_per_week - already_committed, 0)
    selected: List[GrantRequest] = []
    seen = set()
    for s in ranked:
        if len(selected) >= slots:
            break
        recipient = s.recipient.lower()
        if recipient in seen:
            continue
        seen.add(recipient)
        selected.append(GrantRequest(
            recipient=recipient,
            amount=rule.amount,
            category=resolved,
            week=week,
            proof=_proof_for(s, resolved, week),
        ))
    return selected
