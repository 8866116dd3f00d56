"""
Shared fixtures for the reward ledger tests.
"""

import itertools
from decimal import Decimal

import pytest

from speedrun_rewards.core.config import DatabaseConfig
from speedrun_rewards.db.engine import create_db_engine, init_db
from speedrun_rewards.db.session import make_session_factory
from speedrun_rewards.ledger.engine import RewardLedger
from speedrun_rewards.ledger.policy import CampaignPolicy

OWNER = "0x" + "0a" * 20
ALLOCATOR = "0x" + "0b" * 20
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20
CAROL = "0x" + "c3" * 20
MALLORY = "0x" + "ee" * 20

_proof_counter = itertools.count(1)


def make_grant(recipient=ALICE, amount="50", category="TOP_QUALITY", week=1, proof=None):
    """A grant mapping as an admin caller would submit it."""
    return {
        "recipient": recipient,
        "amount": Decimal(amount) if amount is not None else None,
        "category": category,
        "week": week,
        "proof": proof if proof is not None else f"proof-{next(_proof_counter)}",
    }


@pytest.fixture
def policy():
    return CampaignPolicy()


@pytest.fixture
def ledger(policy):
    return RewardLedger(policy, OWNER, allocators=[ALLOCATOR])


@pytest.fixture
def funded_ledger(ledger):
    ledger.fund(Decimal("2000"), funder=OWNER)
    return ledger


@pytest.fixture
def db_engine():
    engine = create_db_engine(DatabaseConfig(url="sqlite://"))
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return make_session_factory(db_engine)
