"""
Tests for settlement gateways and the PENDING / CONFIRMED / FAILED path.
"""

from decimal import Decimal

import aiohttp
import pytest

from speedrun_rewards.core.config import SettlementConfig
from speedrun_rewards.core.exceptions import (
    ConfigurationError,
    NotFoundError,
    SettlementError,
    UnauthorizedError,
)
from speedrun_rewards.events.event_bus import EventBus
from speedrun_rewards.events.event_types import EventType
from speedrun_rewards.integrations.settlement import (
    HttpSettlementGateway,
    NullSettlementGateway,
    batch_payload,
    build_gateway,
)
from speedrun_rewards.ledger.audit import AuditAction
from speedrun_rewards.ledger.engine import RewardLedger
from speedrun_rewards.ledger.types import GrantStatus
from speedrun_rewards.services.reward_service import RewardService

from conftest import ALICE, ALLOCATOR, BOB, MALLORY, OWNER, make_grant


class ScriptedGateway(HttpSettlementGateway):
    """HTTP gateway whose relay answers come from a script instead of the network."""

    def __init__(self, responses, max_attempts=3):
        super().__init__(SettlementConfig(
            relay_url="http://relay.invalid/",
            max_attempts=max_attempts,
            backoff_min=0,
            backoff_max=0,
        ))
        self.responses = list(responses)
        self.payloads = []

    async def _post(self, payload):
        self.payloads.append(payload)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def external_ledger(policy):
    ledger = RewardLedger(policy, OWNER, allocators=[ALLOCATOR], settle_externally=True)
    ledger.fund(Decimal("1000"))
    return ledger


class TestHttpGateway:

    def test_url_and_payload(self, ledger):
        batch = ledger.allocate([make_grant(ALICE, proof="p1")])
        gateway = ScriptedGateway([])
        assert gateway.url == "http://relay.invalid/allocations"
        payload = batch_payload(batch)
        assert payload["batch_id"] == batch.batch_id
        assert payload["total_amount"] == "50"
        assert payload["grants"][0]["proof"] == "p1"

    @pytest.mark.asyncio
    async def test_success(self, ledger):
        batch = ledger.allocate([make_grant()])
        gateway = ScriptedGateway([(200, {"reference": "0xabc"})])
        assert await gateway.submit_allocation(batch) == "0xabc"

    @pytest.mark.asyncio
    async def test_retries_transient_failures(self, ledger):
        batch = ledger.allocate([make_grant()])
        gateway = ScriptedGateway([
            aiohttp.ClientConnectionError("refused"),
            (503, {"error": "busy"}),
            (201, {"reference": "0xdef"}),
        ])
        assert await gateway.submit_allocation(batch) == "0xdef"
        assert len(gateway.payloads) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, ledger):
        batch = ledger.allocate([make_grant()])
        gateway = ScriptedGateway([(502, None), (502, None)], max_attempts=2)
        with pytest.raises(SettlementError) as exc_info:
            await gateway.submit_allocation(batch)
        assert exc_info.value.details["batch_id"] == batch.batch_id
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, ledger):
        batch = ledger.allocate([make_grant()])
        gateway = ScriptedGateway([(400, {"error": "bad batch"}), (200, {"reference": "never"})])
        with pytest.raises(SettlementError):
            await gateway.submit_allocation(batch)
        assert len(gateway.payloads) == 1

    @pytest.mark.asyncio
    async def test_missing_reference(self, ledger):
        batch = ledger.allocate([make_grant()])
        gateway = ScriptedGateway([(200, {"ok": True})])
        with pytest.raises(SettlementError):
            await gateway.submit_allocation(batch)

    def test_build_gateway(self):
        assert isinstance(build_gateway(SettlementConfig()), NullSettlementGateway)
        assert isinstance(build_gateway(SettlementConfig(relay_url="http://relay")), HttpSettlementGateway)


class TestLedgerSettlementState:

    def test_grants_start_pending(self, external_ledger):
        batch = external_ledger.allocate([make_grant(ALICE)])
        assert batch.grants[0].status == GrantStatus.PENDING
        assert external_ledger.pending_grants() == list(batch.grants)

    def test_confirm_batch(self, external_ledger):
        batch = external_ledger.allocate([make_grant(ALICE), make_grant(BOB)])
        assert external_ledger.confirm_batch(batch.batch_id, "0xtx", caller=OWNER) == 2
        grants = external_ledger.batch_grants(batch.batch_id)
        assert {g.status for g in grants} == {GrantStatus.CONFIRMED}
        assert {g.settlement_ref for g in grants} == {"0xtx"}
        # nothing left to change
        assert external_ledger.confirm_batch(batch.batch_id, "0xtx") == 0

    def test_fail_keeps_reservation(self, external_ledger):
        batch = external_ledger.allocate([make_grant(ALICE)])
        assert external_ledger.fail_batch(batch.batch_id, "relay down") == 1
        assert external_ledger.get_grant(batch.grants[0].reward_id).status == GrantStatus.FAILED
        assert external_ledger.stats().total_allocated == Decimal("50")
        assert external_ledger.is_proof_used(batch.grants[0].proof)
        assert external_ledger.audit_sink.records()[-1].action == AuditAction.BATCH_FAILED

        # a failed batch can still be confirmed once the payout lands
        assert external_ledger.confirm_batch(batch.batch_id, "0xlate") == 1

    def test_pending_grants_are_claimable(self, external_ledger):
        external_ledger.allocate([make_grant(ALICE)])
        assert external_ledger.claim_all(ALICE).amount_paid == Decimal("50")

    def test_unknown_batch(self, external_ledger):
        with pytest.raises(NotFoundError):
            external_ledger.confirm_batch("batch-999999-x", "0x")

    def test_confirm_requires_allocator(self, external_ledger):
        batch = external_ledger.allocate([make_grant(ALICE)])
        with pytest.raises(UnauthorizedError):
            external_ledger.confirm_batch(batch.batch_id, "0x", caller=MALLORY)
        external_ledger.confirm_batch(batch.batch_id, "0x", caller=ALLOCATOR)


class TestServiceSettlement:

    @pytest.mark.asyncio
    async def test_confirmed_by_relay(self, external_ledger):
        bus = EventBus()
        confirmed = []
        bus.subscribe(EventType.REWARD_SETTLEMENT_CONFIRMED, lambda data, event: confirmed.append(data))
        service = RewardService(
            external_ledger,
            gateway=ScriptedGateway([(200, {"reference": "0xfeed"})]),
            event_bus=bus,
        )

        outcome = await service.allocate([make_grant(ALICE)], caller=OWNER)

        assert outcome.settlement_status == GrantStatus.CONFIRMED
        assert outcome.settlement_ref == "0xfeed"
        assert external_ledger.grants_for(ALICE)[0].status == GrantStatus.CONFIRMED
        assert confirmed == [{"batch_id": outcome.batch.batch_id, "reference": "0xfeed"}]
        bus.close()

    @pytest.mark.asyncio
    async def test_relay_failure_marks_failed_without_rollback(self, external_ledger):
        bus = EventBus()
        failures = []
        bus.subscribe(EventType.REWARD_SETTLEMENT_FAILED, lambda data, event: failures.append(data))
        service = RewardService(
            external_ledger,
            gateway=ScriptedGateway([(500, None)], max_attempts=1),
            event_bus=bus,
        )

        outcome = await service.allocate([make_grant(ALICE)], caller=OWNER)

        assert outcome.settlement_status == GrantStatus.FAILED
        assert outcome.settlement_error
        assert external_ledger.stats().total_allocated == Decimal("50")
        assert external_ledger.available_rewards(ALICE) == Decimal("50")
        assert external_ledger.grants_for(ALICE)[0].status == GrantStatus.FAILED
        assert failures[0]["batch_id"] == outcome.batch.batch_id

        # manual reconciliation afterwards
        assert await service.confirm_batch(outcome.batch.batch_id, "0xmanual", OWNER) == 1
        bus.close()

    def test_gateway_requiring_confirmation_needs_external_ledger(self, ledger):
        with pytest.raises(ConfigurationError):
            RewardService(ledger, gateway=ScriptedGateway([]))
