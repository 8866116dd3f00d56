"""
Reward service: the application layer around one campaign ledger.

It turns admin actions into ledger calls, hands committed batches to the
settlement gateway, keeps the read mirror in step with the audit log and
publishes events. The ledger stays the only place where balances change.
"""

import asyncio
import threading
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.engine import Engine

from ..core.config import Config
from ..core.exceptions import (
    ConfigurationError,
    SettlementError,
    UnauthorizedError,
    UnknownCategoryError,
    ValidationError,
)
from ..core.logging_config import get_batch_logger, get_logger
from ..db.audit_sink import SqlAuditSink
from ..db.engine import create_db_engine, init_db
from ..db.mirror import RewardMirror
from ..db.session import make_session_factory
from ..db.submissions import SubmissionRepository
from ..events.event_bus import EventBus
from ..events.event_types import EventType
from ..integrations.settlement import NullSettlementGateway, SettlementGateway, build_gateway
from ..ledger.engine import RewardLedger
from ..ledger.ranking import RankingStrategy, ScoreRanking, select_recipients
from ..ledger.replay import rebuild_ledger
from ..ledger.types import (
    BatchResult,
    ClaimResult,
    GrantStatus,
    LedgerStats,
    RecipientBalance,
    RewardCategory,
    RewardGrant,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class AllocationOutcome:
    """A committed batch together with what happened when settling it."""
    batch: BatchResult
    settlement_status: GrantStatus
    settlement_ref: Optional[str] = None
    settlement_error: Optional[str] = None
    skipped: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_id": self.batch.batch_id,
            "sequence": self.batch.sequence,
            "applied_count": self.batch.applied_count,
            "total_amount": str(self.batch.total_amount),
            "settlement_status": self.settlement_status.value,
            "settlement_ref": self.settlement_ref,
            "settlement_error": self.settlement_error,
            "reward_ids": [g.reward_id for g in self.batch.grants],
            "skipped": list(self.skipped),
        }


class RewardService:
    """
    Orchestrates allocation, settlement, claims and admin controls.

    Ledger calls run in a worker thread so the event loop is never blocked
    on the ledger lock or the audit sink.
    """

    def __init__(
        self,
        ledger: RewardLedger,
        gateway: Optional[SettlementGateway] = None,
        event_bus: Optional[EventBus] = None,
        mirror: Optional[RewardMirror] = None,
        submissions: Optional[SubmissionRepository] = None,
        strategies: Optional[Dict[RewardCategory, RankingStrategy]] = None,
    ):
        self.ledger = ledger
        self.gateway = gateway or NullSettlementGateway()
        self.event_bus = event_bus or EventBus()
        self.mirror = mirror
        self.submissions = submissions
        self.strategies: Dict[RewardCategory, RankingStrategy] = dict(strategies or {})
        self._mirror_lock = threading.Lock()
        self._mirrored_sequence = 0

        if self.gateway.requires_confirmation and not ledger.settle_externally:
            raise ConfigurationError(
                "Ledger settles locally but the gateway expects confirmation",
                config_key="settlement.relay_url",
            )

    @property
    def policy(self):
        return self.ledger.policy

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    async def allocate(self, grants: Iterable[Any], caller: Optional[str] = None) -> AllocationOutcome:
        """Commit a batch, then settle it. Settlement problems never undo the commit."""
        batch = await asyncio.to_thread(self.ledger.allocate, list(grants), caller)
        await self._sync_mirror()
        await self.event_bus.publish(EventType.REWARD_BATCH_ALLOCATED, {
            "batch_id": batch.batch_id,
            "applied_count": batch.applied_count,
            "total_amount": str(batch.total_amount),
            "recipients": sorted({g.recipient for g in batch.grants}),
            "caller": caller,
        })
        return await self._settle(batch)

    async def distribute(
        self,
        week: int,
        category: Any,
        caller: str,
        recipients: Optional[List[str]] = None,
        strategy: Optional[RankingStrategy] = None,
    ) -> AllocationOutcome:
        """
        Select recipients from approved submissions for ``week`` and allocate.

        With ``recipients`` the admin picks winners explicitly; otherwise the
        category's ranking strategy does. Recipients already rewarded for this
        week and category are left out. Requested addresses that end up without
        a grant are reported in ``AllocationOutcome.skipped``.
        """
        if not self.ledger.is_allocator(caller):
            raise UnauthorizedError("Caller may not allocate rewards", details={"caller": caller})
        resolved = RewardCategory.coerce(category)
        if resolved is None or self.policy.rule_for(resolved) is None:
            raise UnknownCategoryError("Unknown reward category", details={"category": str(category)})
        if resolved == RewardCategory.FAST_COMPLETION and week != self.policy.last_week:
            raise ValidationError(
                "Fast completion rewards are only available in the final week",
                details={"week": week, "final_week": self.policy.last_week},
            )
        if self.submissions is None:
            raise ConfigurationError("No submissions store configured")

        submissions = await asyncio.to_thread(self.submissions.approved_for_week, week)
        grants = select_recipients(
            submissions,
            resolved,
            week,
            self.policy,
            strategy=strategy or self.strategies.get(resolved),
            only=recipients,
            already_committed=self.ledger.committed_count(resolved, week),
            is_used=self.ledger.is_proof_used,
        )
        selected = {g.recipient for g in grants}
        skipped = [a.strip().lower() for a in recipients or () if a.strip().lower() not in selected]
        if skipped:
            logger.warning(
                f"Skipped {len(skipped)} requested recipient(s) for {resolved.value} week {week}: {skipped}"
            )
        if not grants:
            raise ValidationError(
                f"No eligible submissions for {resolved.value} in week {week}",
                details={
                    "week": week,
                    "category": resolved.value,
                    "already_committed": self.ledger.committed_count(resolved, week),
                    "skipped": skipped,
                },
            )
        logger.info(f"Selected {len(grants)} recipient(s) for {resolved.value} week {week}")
        outcome = await self.allocate(grants, caller)
        return replace(outcome, skipped=tuple(skipped))

    async def _settle(self, batch: BatchResult) -> AllocationOutcome:
        if not self.ledger.settle_externally:
            return AllocationOutcome(batch, GrantStatus.CONFIRMED, settlement_ref=batch.batch_id)

        batch_logger = get_batch_logger(logger, batch.batch_id)
        try:
            reference = await self.gateway.submit_allocation(batch)
        except SettlementError as e:
            batch_logger.error(f"Settlement failed, batch left FAILED: {e.message}")
            await asyncio.to_thread(self.ledger.fail_batch, batch.batch_id, e.message)
            await self._sync_mirror()
            await self.event_bus.publish(EventType.REWARD_SETTLEMENT_FAILED, {
                "batch_id": batch.batch_id,
                "error": e.message,
            })
            return AllocationOutcome(batch, GrantStatus.FAILED, settlement_error=e.message)

        await asyncio.to_thread(self.ledger.confirm_batch, batch.batch_id, reference)
        await self._sync_mirror()
        await self.event_bus.publish(EventType.REWARD_SETTLEMENT_CONFIRMED, {
            "batch_id": batch.batch_id,
            "reference": reference,
        })
        return AllocationOutcome(batch, GrantStatus.CONFIRMED, settlement_ref=reference)

    async def confirm_batch(self, batch_id: str, reference: str, caller: str) -> int:
        """Record an externally confirmed payout (e.g. after a relay outage)."""
        changed = await asyncio.to_thread(self.ledger.confirm_batch, batch_id, reference, caller)
        await self._sync_mirror()
        if changed:
            await self.event_bus.publish(EventType.REWARD_SETTLEMENT_CONFIRMED, {
                "batch_id": batch_id,
                "reference": reference,
            })
        return changed

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    async def claim(self, recipient: str) -> ClaimResult:
        result = await asyncio.to_thread(self.ledger.claim_all, recipient)
        await self._after_claim(result)
        return result

    async def claim_grant(self, reward_id: str, recipient: str) -> ClaimResult:
        result = await asyncio.to_thread(self.ledger.claim_grant, reward_id, recipient)
        await self._after_claim(result)
        return result

    async def _after_claim(self, result: ClaimResult) -> None:
        await self._sync_mirror()
        await self.event_bus.publish(EventType.REWARD_CLAIMED, {
            "recipient": result.recipient,
            "amount": str(result.amount_paid),
            "reward_ids": list(result.reward_ids),
        })

    # ------------------------------------------------------------------
    # Administrative controls
    # ------------------------------------------------------------------

    async def pause(self, caller: str) -> bool:
        changed = await asyncio.to_thread(self.ledger.pause, caller)
        if changed:
            await self.event_bus.publish(EventType.CAMPAIGN_PAUSED, {"caller": caller})
        return changed

    async def unpause(self, caller: str) -> bool:
        changed = await asyncio.to_thread(self.ledger.unpause, caller)
        if changed:
            await self.event_bus.publish(EventType.CAMPAIGN_UNPAUSED, {"caller": caller})
        return changed

    async def fund(self, amount: Any, funder: Optional[str] = None) -> Decimal:
        on_hand = await asyncio.to_thread(self.ledger.fund, amount, funder)
        await self.event_bus.publish(EventType.CAMPAIGN_FUNDED, {
            "amount": str(amount),
            "funder": funder,
            "balance_on_hand": str(on_hand),
        })
        return on_hand

    async def emergency_withdraw(self, caller: str) -> Decimal:
        amount = await asyncio.to_thread(self.ledger.emergency_withdraw, caller)
        await self.event_bus.publish(EventType.CAMPAIGN_EMERGENCY_WITHDRAWAL, {
            "amount": str(amount),
            "to": self.ledger.owner,
        })
        return amount

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def stats(self) -> LedgerStats:
        return self.ledger.stats()

    def available_rewards(self, address: str) -> Decimal:
        return self.ledger.available_rewards(address)

    def balance_of(self, address: str) -> RecipientBalance:
        return self.ledger.balance_of(address)

    def grants_for(self, address: str) -> List[RewardGrant]:
        return self.ledger.grants_for(address)

    def reward_structure(self) -> Dict[str, Any]:
        """Category table shown on the admin page."""
        return {
            "max_budget": str(self.policy.max_budget),
            "first_week": self.policy.first_week,
            "last_week": self.policy.last_week,
            "categories": [
                {
                    "category": category.value,
                    "amount": str(rule.amount),
                    "max_per_week": rule.max_per_week,
                    "description": rule.description,
                    "weeks": (
                        [self.policy.last_week]
                        if category == RewardCategory.FAST_COMPLETION
                        else list(range(self.policy.first_week, self.policy.last_week + 1))
                    ),
                }
                for category, rule in self.policy.rules.items()
            ],
        }

    async def reward_statistics(self, caller: str, top: int = 10) -> Dict[str, Any]:
        """
        Admin dashboard figures read from the mirror: reward counts and
        amounts, budget utilisation, per-week distribution and top earners.
        """
        if not self.ledger.is_allocator(caller):
            raise UnauthorizedError("Caller may not view campaign statistics", details={"caller": caller})
        if self.mirror is None:
            raise ConfigurationError("No read mirror configured")
        await self._sync_mirror()
        return await asyncio.to_thread(self._reward_statistics, top)

    def _reward_statistics(self, top: int) -> Dict[str, Any]:
        rewards = self.mirror.statistics()
        stats = self.stats()
        utilization = (stats.total_allocated * 100 / stats.max_budget).quantize(Decimal("0.01"))
        return {
            "rewards": {k: str(v) if isinstance(v, Decimal) else v for k, v in rewards.items()},
            "budget": {
                "max_budget": str(stats.max_budget),
                "total_allocated": str(stats.total_allocated),
                "total_paid": str(stats.total_paid),
                "remaining_budget": str(stats.remaining_budget),
                "utilization_percent": str(utilization),
            },
            "weekly_distribution": [
                dict(row, total_amount=str(row["total_amount"]))
                for row in self.mirror.weekly_distribution()
            ],
            "top_earners": [
                dict(row, total_amount=str(row["total_amount"]))
                for row in self.mirror.top_earners(limit=top)
            ],
        }

    # ------------------------------------------------------------------
    # Mirror
    # ------------------------------------------------------------------

    async def _sync_mirror(self) -> None:
        if self.mirror is not None:
            await asyncio.to_thread(self.sync_mirror)

    def sync_mirror(self) -> int:
        """Project audit records the mirror has not seen yet."""
        if self.mirror is None:
            return 0
        with self._mirror_lock:
            records = self.ledger.audit_sink.records(after_sequence=self._mirrored_sequence)
            for record in records:
                self.mirror.project(record)
                self._mirrored_sequence = record.sequence
            return len(records)

    def rebuild_mirror(self) -> int:
        if self.mirror is None:
            return 0
        with self._mirror_lock:
            records = self.ledger.audit_sink.records()
            count = self.mirror.rebuild(records)
            self._mirrored_sequence = records[-1].sequence if records else 0
            return count

    async def close(self) -> None:
        await self.gateway.close()


def create_reward_service(
    config: Config,
    engine: Optional[Engine] = None,
    event_bus: Optional[EventBus] = None,
    gateway: Optional[SettlementGateway] = None,
) -> RewardService:
    """
    Wire a service from configuration.

    The ledger is rebuilt from the persisted audit log when one exists;
    otherwise a fresh ledger is created and seeded with ``initial_funds``.
    """
    campaign = config.campaign
    policy = campaign.to_policy()
    engine = engine or create_db_engine(config.database)
    init_db(engine)
    session_factory = make_session_factory(engine)

    sink = SqlAuditSink(session_factory)
    gateway = gateway or build_gateway(config.settlement)
    records = sink.records()
    if records:
        ledger = rebuild_ledger(
            policy,
            campaign.owner_address,
            records,
            audit_sink=sink,
            allocators=campaign.allocators,
            settle_externally=gateway.requires_confirmation,
        )
    else:
        ledger = RewardLedger(
            policy,
            campaign.owner_address,
            audit_sink=sink,
            allocators=campaign.allocators,
            settle_externally=gateway.requires_confirmation,
        )
        if campaign.initial_funds > 0:
            ledger.fund(campaign.initial_funds, funder=ledger.owner)

    service = RewardService(
        ledger,
        gateway=gateway,
        event_bus=event_bus,
        mirror=RewardMirror(session_factory),
        submissions=SubmissionRepository(session_factory),
        strategies={
            RewardCategory.TOP_QUALITY: ScoreRanking("quality_score"),
            RewardCategory.TOP_ENGAGEMENT: ScoreRanking("engagement_score"),
        } if campaign.rank_by_stored_scores else None,
    )
    service.rebuild_mirror()
    logger.info(f"Reward service ready: {ledger.stats().to_dict()}")
    return service
