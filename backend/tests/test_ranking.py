"""
Tests for recipient selection and ranking strategies.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from speedrun_rewards.core.exceptions import RankingUnavailableError, UnknownCategoryError
from speedrun_rewards.ledger.proofs import make_proof_hash
from speedrun_rewards.ledger.ranking import (
    FastestCompletionRanking,
    NotImplementedRanking,
    ScoreRanking,
    SubmissionRecord,
    select_recipients,
)
from speedrun_rewards.ledger.types import RewardCategory

from conftest import ALICE, BOB, CAROL

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def submission(sid, recipient, week=6, status="APPROVED", minutes=0, quality=None, engagement=None):
    return SubmissionRecord(
        submission_id=sid,
        recipient=recipient,
        week=week,
        review_status=status,
        submitted_at=T0 + timedelta(minutes=minutes),
        quality_score=quality,
        engagement_score=engagement,
    )


@pytest.fixture
def submissions():
    return [
        submission("s1", ALICE, minutes=30, quality=7.0, engagement=90),
        submission("s2", BOB, minutes=10, quality=9.5),
        submission("s3", CAROL, minutes=20, quality=9.5, engagement=40),
        submission("s4", "0x" + "d4" * 20, minutes=5, status="REJECTED", quality=10),
        submission("s5", "0x" + "e5" * 20, week=5, minutes=1, quality=10),
    ]


class TestStrategies:

    def test_fastest_completion(self, submissions):
        ranked = FastestCompletionRanking().rank(submissions[:3])
        assert [s.submission_id for s in ranked] == ["s2", "s3", "s1"]

    def test_score_ranking_ties_go_to_earlier(self, submissions):
        ranked = ScoreRanking("quality_score").rank(submissions[:3])
        assert [s.submission_id for s in ranked] == ["s2", "s3", "s1"]

    def test_score_ranking_skips_unscored(self, submissions):
        ranked = ScoreRanking("engagement_score").rank(submissions[:3])
        assert [s.submission_id for s in ranked] == ["s1", "s3"]

    def test_score_ranking_attribute_checked(self):
        with pytest.raises(ValueError):
            ScoreRanking("random")

    def test_not_implemented_default(self, submissions):
        with pytest.raises(RankingUnavailableError) as exc_info:
            NotImplementedRanking(RewardCategory.TOP_QUALITY).rank(submissions)
        assert exc_info.value.status_code == 501


class TestSelectRecipients:

    def test_fast_completion_uses_time_order(self, submissions, policy):
        grants = select_recipients(submissions, "FAST_COMPLETION", 6, policy)
        assert [g.recipient for g in grants] == [BOB, CAROL, ALICE]
        assert all(g.amount == Decimal("20") for g in grants)
        assert grants[0].proof == make_proof_hash(BOB, 6, "s2", salt="FAST_COMPLETION")

    def test_only_approved_and_same_week(self, submissions, policy):
        grants = select_recipients(submissions, RewardCategory.FAST_COMPLETION, 6, policy)
        recipients = {g.recipient for g in grants}
        assert "0x" + "d4" * 20 not in recipients
        assert "0x" + "e5" * 20 not in recipients

    def test_quality_needs_a_strategy(self, submissions, policy):
        with pytest.raises(RankingUnavailableError):
            select_recipients(submissions, "TOP_QUALITY", 6, policy)

    def test_explicit_recipients_keep_given_order(self, submissions, policy):
        grants = select_recipients(submissions, "TOP_QUALITY", 6, policy, only=[CAROL.upper().replace("0X", "0x"), ALICE])
        assert [g.recipient for g in grants] == [CAROL, ALICE]
        assert all(g.amount == Decimal("50") for g in grants)

    def test_explicit_recipient_without_submission_dropped(self, submissions, policy):
        grants = select_recipients(submissions, "TOP_QUALITY", 6, policy, only=["0x" + "99" * 20, BOB])
        assert [g.recipient for g in grants] == [BOB]

    def test_truncated_to_remaining_cap(self, submissions, policy):
        grants = select_recipients(
            submissions, "TOP_QUALITY", 6, policy,
            strategy=ScoreRanking("quality_score"), already_committed=8,
        )
        assert [g.recipient for g in grants] == [BOB, CAROL]

    def test_one_grant_per_recipient(self, policy):
        twice = [submission("a", ALICE, minutes=1), submission("b", ALICE, minutes=2), submission("c", BOB, minutes=3)]
        grants = select_recipients(twice, "FAST_COMPLETION", 6, policy)
        assert [g.recipient for g in grants] == [ALICE, BOB]

    def test_unknown_category(self, submissions, policy):
        with pytest.raises(UnknownCategoryError):
            select_recipients(submissions, "BEST_MEME", 6, policy)

    def test_selected_grants_allocate(self, submissions, ledger):
        grants = select_recipients(submissions, "FAST_COMPLETION", 6, ledger.policy)
        result = ledger.allocate(grants)
        assert result.applied_count == 3
        assert ledger.committed_count("FAST_COMPLETION", 6) == 3

    def test_already_rewarded_recipients_left_out(self, submissions, policy):
        used = {make_proof_hash(BOB, 6, "s2", salt="FAST_COMPLETION")}
        grants = select_recipients(submissions, "FAST_COMPLETION", 6, policy, is_used=used.__contains__)
        assert [g.recipient for g in grants] == [CAROL, ALICE]

    def test_already_rewarded_recipient_not_rewarded_again_by_new_submission(self, policy):
        resubmitted = [submission("a", ALICE, minutes=1), submission("b", ALICE, minutes=9), submission("c", BOB, minutes=3)]
        used = {make_proof_hash(ALICE, 6, "a", salt="FAST_COMPLETION")}
        grants = select_recipients(resubmitted, "FAST_COMPLETION", 6, policy, is_used=used.__contains__)
        assert [g.recipient for g in grants] == [BOB]
