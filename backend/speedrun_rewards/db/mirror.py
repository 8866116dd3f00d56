"""
Read mirror of committed rewards.

The ``campaign_reward`` table is derived from the ledger's audit records and
nothing else writes to it, so it can always be dropped and rebuilt from the
log. It backs the admin dashboard queries.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import case, delete, desc, func, select, update
from sqlalchemy.orm import sessionmaker

from ..core.logging_config import get_logger
from ..ledger.audit import AuditAction, AuditRecord
from ..ledger.types import GrantStatus, RewardCategory, RewardGrant, ZERO
from .models.reward import CampaignReward
from .repositories import BaseRepository
from .session import session_scope

logger = get_logger(__name__)


def _dec(value: Any) -> Decimal:
    return ZERO if value is None else Decimal(str(value))


class RewardMirror:
    """Projects audit records into ``campaign_reward`` and answers read queries."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def project(self, record: AuditRecord) -> None:
        """Apply one audit record. Re-projecting a record is harmless."""
        with session_scope(self.session_factory) as session:
            self._project(session, record)

    def rebuild(self, records: Iterable[AuditRecord]) -> int:
        """Drop every mirrored row and re-project ``records``."""
        count = 0
        with session_scope(self.session_factory) as session:
            session.execute(delete(CampaignReward))
            for record in records:
                self._project(session, record)
                count += 1
        logger.info(f"Reward mirror rebuilt from {count} audit record(s)")
        return count

    def _project(self, session, record: AuditRecord) -> None:
        payload = record.payload
        if record.action == AuditAction.BATCH_ALLOCATED:
            repo = BaseRepository(CampaignReward, session)
            for data in payload["grants"]:
                grant = RewardGrant.from_dict(data)
                if repo.get_by(reward_id=grant.reward_id) is None:
                    repo.add(CampaignReward.from_grant(grant))

        elif record.action == AuditAction.REWARD_CLAIMED:
            session.execute(
                update(CampaignReward)
                .where(CampaignReward.reward_id.in_(list(payload["reward_ids"])))
                .values(
                    claimed=True,
                    status=GrantStatus.PAID,
                    paid_at=datetime.fromisoformat(payload["paid_at"]),
                )
            )

        elif record.action == AuditAction.BATCH_CONFIRMED:
            session.execute(
                update(CampaignReward)
                .where(
                    CampaignReward.batch_id == payload["batch_id"],
                    CampaignReward.status.in_([GrantStatus.PENDING, GrantStatus.FAILED]),
                )
                .values(status=GrantStatus.CONFIRMED, settlement_ref=payload.get("reference"))
            )

        elif record.action == AuditAction.BATCH_FAILED:
            session.execute(
                update(CampaignReward)
                .where(
                    CampaignReward.batch_id == payload["batch_id"],
                    CampaignReward.status == GrantStatus.PENDING,
                )
                .values(status=GrantStatus.FAILED)
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _rows(self, **filters) -> List[Dict[str, Any]]:
        with session_scope(self.session_factory) as session:
            rows = BaseRepository(CampaignReward, session).get_all(
                order_by=["-awarded_at", "id"], **filters
            )
            return [row.to_dict() for row in rows]

    def rewards_by_user(self, address: str) -> List[Dict[str, Any]]:
        return self._rows(recipient=address.strip().lower())

    def rewards_by_week(self, week: int) -> List[Dict[str, Any]]:
        return self._rows(week=week)

    def rewards_by_category(self, category: RewardCategory) -> List[Dict[str, Any]]:
        return self._rows(category=category)

    def rewards_by_week_and_category(self, week: int, category: RewardCategory) -> List[Dict[str, Any]]:
        return self._rows(week=week, category=category)

    def pending_rewards(self) -> List[Dict[str, Any]]:
        """Rewards not yet claimed, oldest first."""
        with session_scope(self.session_factory) as session:
            rows = BaseRepository(CampaignReward, session).get_all(
                order_by=["awarded_at", "id"], claimed=False
            )
            return [row.to_dict() for row in rows]

    def statistics(self, recipient: Optional[str] = None) -> Dict[str, Any]:
        """
        Counts and amounts over all mirrored rewards, or one recipient's.

        ``paid`` means claimed by the recipient, ``pending`` means not yet
        claimed.
        """
        paid = CampaignReward.claimed.is_(True)
        query = select(
            func.count(CampaignReward.id),
            func.sum(CampaignReward.amount),
            func.sum(case((paid, 1), else_=0)),
            func.sum(case((paid, CampaignReward.amount), else_=0)),
        )
        if recipient is not None:
            query = query.where(CampaignReward.recipient == recipient.strip().lower())

        with session_scope(self.session_factory) as session:
            total_count, total_amount, paid_count, paid_amount = session.execute(query).one()

        total_count = total_count or 0
        paid_count = int(paid_count or 0)
        total_amount = _dec(total_amount)
        paid_amount = _dec(paid_amount)
        return {
            "total_rewards": total_count,
            "total_amount": total_amount,
            "paid_rewards": paid_count,
            "paid_amount": paid_amount,
            "pending_rewards": total_count - paid_count,
            "pending_amount": total_amount - paid_amount,
        }

    def user_totals(self, address: str) -> Dict[str, Any]:
        return self.statistics(recipient=address)

    def top_earners(self, limit: int = 10) -> List[Dict[str, Any]]:
        total = func.sum(CampaignReward.amount)
        query = (
            select(CampaignReward.recipient, total.label("total_amount"), func.count(CampaignReward.id))
            .group_by(CampaignReward.recipient)
            .order_by(desc("total_amount"), CampaignReward.recipient)
            .limit(limit)
        )
        with session_scope(self.session_factory) as session:
            rows = session.execute(query).all()
        return [
            {"recipient": recipient, "total_amount": _dec(amount), "reward_count": count}
            for recipient, amount, count in rows
        ]

    def weekly_distribution(self) -> List[Dict[str, Any]]:
        query = (
            select(
                CampaignReward.week,
                CampaignReward.category,
                func.count(CampaignReward.id),
                func.sum(CampaignReward.amount),
            )
            .group_by(CampaignReward.week, CampaignReward.category)
            .order_by(CampaignReward.week, CampaignReward.category)
        )
        with session_scope(self.session_factory) as session:
            rows = session.execute(query).all()
        return [
            {"week": week, "category": category.value, "count": count, "total_amount": _dec(amount)}
            for week, category, count, amount in rows
        ]
