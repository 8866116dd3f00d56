"""
Tests for rebuilding a ledger from its audit stream.
"""

from dataclasses import replace
from decimal import Decimal

import pytest

from speedrun_rewards.core.exceptions import DatabaseError, DuplicateProofError, ValidationError
from speedrun_rewards.db.audit_sink import SqlAuditSink
from speedrun_rewards.ledger.audit import AuditRecord, InMemoryAuditSink
from speedrun_rewards.ledger.engine import RewardLedger
from speedrun_rewards.ledger.replay import rebuild_ledger
from speedrun_rewards.ledger.types import GrantStatus

from conftest import ALICE, BOB, CAROL, OWNER, make_grant


def _busy_ledger(policy, sink=None):
    ledger = RewardLedger(policy, OWNER, audit_sink=sink, settle_externally=True)
    ledger.fund(Decimal("500"), funder=OWNER)
    first = ledger.allocate([make_grant(ALICE, proof="r1"), make_grant(BOB, proof="r2")])
    second = ledger.allocate([make_grant(CAROL, "20", "FAST_COMPLETION", 6, proof="r3")])
    ledger.confirm_batch(first.batch_id, "0xtx1")
    ledger.fail_batch(second.batch_id, "relay down")
    ledger.claim_all(ALICE)
    ledger.add_allocator(BOB, OWNER)
    ledger.pause(OWNER)
    return ledger


class TestRebuild:

    def test_rebuild_reproduces_state(self, policy):
        original = _busy_ledger(policy)
        records = original.audit_sink.records()

        rebuilt = rebuild_ledger(policy, OWNER, records)

        assert rebuilt.stats() == original.stats()
        for address in (ALICE, BOB, CAROL):
            assert rebuilt.balance_of(address) == original.balance_of(address)
            assert rebuilt.grants_for(address) == original.grants_for(address)
        assert rebuilt.is_proof_used("r3")
        assert rebuilt.paused
        assert rebuilt.is_allocator(BOB)
        assert rebuilt.audit_sequence == original.audit_sequence

    def test_rebuilt_ledger_keeps_guarding(self, policy):
        original = _busy_ledger(policy)
        sink = InMemoryAuditSink(original.audit_sink.records())
        rebuilt = rebuild_ledger(policy, OWNER, sink.records(), audit_sink=sink)
        rebuilt.unpause(OWNER)

        with pytest.raises(DuplicateProofError):
            rebuilt.allocate([make_grant(ALICE, proof="r1")])
        rebuilt.allocate([make_grant(ALICE, proof="r4")])
        assert sink.records()[-1].sequence == original.audit_sequence + 2

    def test_settlement_states_replayed(self, policy):
        original = _busy_ledger(policy)
        rebuilt = rebuild_ledger(policy, OWNER, original.audit_sink.records())
        bob_grant = rebuilt.grants_for(BOB)[0]
        assert bob_grant.status == GrantStatus.CONFIRMED
        assert bob_grant.settlement_ref == "0xtx1"
        assert rebuilt.grants_for(CAROL)[0].status == GrantStatus.FAILED
        assert rebuilt.grants_for(ALICE)[0].status == GrantStatus.PAID
        assert rebuilt.pending_grants() == []

    def test_out_of_sequence_records(self, policy):
        records = _busy_ledger(policy).audit_sink.records()
        with pytest.raises(ValidationError):
            rebuild_ledger(policy, OWNER, records[1:])

    def test_tampered_totals_detected(self, policy):
        records = _busy_ledger(policy).audit_sink.records()
        last = records[-1]
        forged = replace(last, after={**last.after, "total_paid": "999"})
        with pytest.raises(DatabaseError) as exc_info:
            rebuild_ledger(policy, OWNER, records[:-1] + [forged])
        assert "total_paid" in exc_info.value.details["mismatched"]

    def test_record_dict_round_trip(self, policy):
        records = _busy_ledger(policy).audit_sink.records()
        restored = [AuditRecord.from_dict(r.to_dict()) for r in records]
        assert rebuild_ledger(policy, OWNER, restored).stats() == rebuild_ledger(policy, OWNER, records).stats()


class TestSqlAuditSink:

    def test_persisted_log_rebuilds_ledger(self, policy, session_factory):
        sink = SqlAuditSink(session_factory)
        original = _busy_ledger(policy, sink=sink)
        assert len(sink) == original.audit_sequence

        rebuilt = rebuild_ledger(policy, OWNER, sink.records(), audit_sink=sink)
        assert rebuilt.stats() == original.stats()
        assert rebuilt.balance_of(ALICE) == original.balance_of(ALICE)

    def test_records_after_sequence(self, policy, session_factory):
        sink = SqlAuditSink(session_factory)
        _busy_ledger(policy, sink=sink)
        tail = sink.records(after_sequence=5)
        assert [r.sequence for r in tail] == list(range(6, len(sink) + 1))

    def test_duplicate_sequence_halts_ledger(self, policy, session_factory):
        sink = SqlAuditSink(session_factory)
        ledger = RewardLedger(policy, OWNER, audit_sink=sink)
        ledger.fund(Decimal("10"))

        # A second writer on the same log takes sequence 1 again
        other = RewardLedger(policy, OWNER, audit_sink=sink)
        with pytest.raises(DatabaseError):
            other.fund(Decimal("10"))
        assert other.halted
        assert len(sink) == 1
