"""
API round trips through the FastAPI application.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from speedrun_rewards.core.config import CampaignConfig, Config, DatabaseConfig
from speedrun_rewards.core.security import TokenManager
from speedrun_rewards.db.mirror import RewardMirror
from speedrun_rewards.db.submissions import SubmissionRepository
from speedrun_rewards.events.event_bus import EventBus
from speedrun_rewards.ledger.ranking import SubmissionRecord
from speedrun_rewards.main import create_app
from speedrun_rewards.services.reward_service import RewardService

from conftest import ALICE, BOB, CAROL, MALLORY, OWNER

API = "/api/v1"


@pytest.fixture
def config():
    return Config(
        campaign=CampaignConfig(owner_address=OWNER),
        database=DatabaseConfig(url="sqlite://"),
    )


@pytest.fixture
def tokens(config):
    return TokenManager(config.security)


@pytest.fixture
def client(config, funded_ledger):
    service = RewardService(funded_ledger, event_bus=EventBus())
    app = create_app(config, service=service)
    with TestClient(app) as client:
        yield client


def auth(tokens, address):
    return {"Authorization": f"Bearer {tokens.create_access_token(address)}"}


def grant_json(recipient, proof, category="TOP_QUALITY", week=1, amount="50"):
    return {"recipient": recipient, "amount": amount, "category": category, "week": week, "proof": proof}


class TestPublicEndpoints:

    def test_health(self, client):
        response = client.get(f"{API}/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["ledger_halted"] is False

    def test_stats(self, client):
        response = client.get(f"{API}/rewards/stats")
        assert response.status_code == 200
        assert response.json() == {
            "balance_on_hand": "2000",
            "max_budget": "2000",
            "total_allocated": "0",
            "total_paid": "0",
            "remaining_budget": "2000",
            "paused": False,
            "grant_count": 0,
            "batch_count": 0,
        }

    def test_structure(self, client):
        response = client.get(f"{API}/admin/rewards/structure")
        assert response.status_code == 200
        assert len(response.json()["categories"]) == 3


class TestAllocateAndClaim:

    def test_full_round_trip(self, client, tokens):
        response = client.post(
            f"{API}/admin/rewards/allocate",
            json={"grants": [grant_json(ALICE, "p1"), grant_json(BOB, "p2")]},
            headers=auth(tokens, OWNER),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["applied_count"] == 2
        assert body["total_amount"] == "100"
        assert body["settlement_status"] == "CONFIRMED"

        available = client.get(f"{API}/rewards/{ALICE}/available").json()
        assert available["claimable"] == "50"

        response = client.post(f"{API}/rewards/claim", headers=auth(tokens, ALICE))
        assert response.status_code == 200
        assert response.json()["amount_paid"] == "50"

        response = client.post(f"{API}/rewards/claim", headers=auth(tokens, ALICE))
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "NOTHING_TO_CLAIM"

        response = client.post(
            f"{API}/admin/rewards/allocate",
            json={"grants": [grant_json(ALICE, "p1"), grant_json(BOB, "p2")]},
            headers=auth(tokens, OWNER),
        )
        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "DUPLICATE_PROOF"
        assert error["details"]["proofs"] == ["p1", "p2"]

        stats = client.get(f"{API}/rewards/stats").json()
        assert stats["total_allocated"] == "100"
        assert stats["total_paid"] == "50"

    def test_claim_single_grant(self, client, tokens):
        body = client.post(
            f"{API}/admin/rewards/allocate",
            json={"grants": [grant_json(ALICE, "p1")]},
            headers=auth(tokens, OWNER),
        ).json()
        reward_id = body["reward_ids"][0]

        response = client.post(f"{API}/rewards/{reward_id}/claim", headers=auth(tokens, BOB))
        assert response.status_code == 403

        response = client.post(f"{API}/rewards/{reward_id}/claim", headers=auth(tokens, ALICE))
        assert response.status_code == 200
        assert response.json()["reward_ids"] == [reward_id]

        grants = client.get(f"{API}/rewards/{ALICE}/grants").json()
        assert grants[0]["status"] == "PAID"
        assert grants[0]["claimed"] is True

    def test_rejection_details(self, client, tokens):
        grants = [grant_json(f"0x{i:040x}", f"cap-{i}") for i in range(1, 12)]
        response = client.post(
            f"{API}/admin/rewards/allocate",
            json={"grants": grants},
            headers=auth(tokens, OWNER),
        )
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "CATEGORY_CAP_EXCEEDED"
        assert error["details"]["violations"][0]["cap"] == 10

    def test_invalid_week_reported(self, client, tokens):
        response = client.post(
            f"{API}/admin/rewards/allocate",
            json={"grants": [grant_json(ALICE, "w", week=7)]},
            headers=auth(tokens, OWNER),
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_WEEK"

    @pytest.mark.parametrize("week", ["six", 1.5, None])
    def test_non_integer_week_reported_by_ledger(self, client, tokens, week):
        response = client.post(
            f"{API}/admin/rewards/allocate",
            json={"grants": [grant_json(ALICE, "w", week=week)]},
            headers=auth(tokens, OWNER),
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_WEEK"


class TestAuthorisation:

    def test_missing_token(self, client):
        response = client.post(f"{API}/rewards/claim")
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "SECURITY_ERROR"

    def test_garbage_token(self, client):
        response = client.post(f"{API}/rewards/claim", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_expired_token(self, client, tokens):
        token = tokens.create_access_token(ALICE, expires_delta=timedelta(seconds=-5))
        response = client.post(f"{API}/rewards/claim", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["error"]["details"]["error"] == "token_expired"

    def test_token_subject_must_be_address(self, client, tokens):
        token = tokens.create_access_token("alice")
        response = client.post(f"{API}/rewards/claim", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_non_owner_cannot_pause_or_withdraw(self, client, tokens):
        assert client.post(f"{API}/admin/pause", headers=auth(tokens, MALLORY)).status_code == 403
        assert client.post(f"{API}/admin/emergency-withdraw", headers=auth(tokens, MALLORY)).status_code == 403

    def test_non_allocator_cannot_allocate(self, client, tokens):
        response = client.post(
            f"{API}/admin/rewards/allocate",
            json={"grants": [grant_json(ALICE, "p1")]},
            headers=auth(tokens, MALLORY),
        )
        assert response.status_code == 403


class TestAdminEndpoints:

    def test_pause_cycle(self, client, tokens):
        headers = auth(tokens, OWNER)
        assert client.post(f"{API}/admin/pause", headers=headers).json() == {"paused": True, "changed": True}
        assert client.post(f"{API}/admin/pause", headers=headers).json() == {"paused": True, "changed": False}

        response = client.post(
            f"{API}/admin/rewards/allocate",
            json={"grants": [grant_json(ALICE, "p1")]},
            headers=headers,
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CAMPAIGN_PAUSED"

        assert client.post(f"{API}/admin/unpause", headers=headers).json()["changed"] is True

    def test_fund_and_withdraw(self, client, tokens):
        response = client.post(f"{API}/admin/fund", json={"amount": "25"}, headers=auth(tokens, MALLORY))
        assert response.json() == {"balance_on_hand": "2025"}

        response = client.post(f"{API}/admin/emergency-withdraw", headers=auth(tokens, OWNER))
        assert response.json() == {"amount": "2025", "to": OWNER}

        response = client.post(f"{API}/admin/emergency-withdraw", headers=auth(tokens, OWNER))
        assert response.status_code == 402

    def test_fund_validates_amount(self, client, tokens):
        response = client.post(f"{API}/admin/fund", json={"amount": "0"}, headers=auth(tokens, OWNER))
        assert response.status_code == 422

    def test_insufficient_funds_on_claim(self, client, tokens):
        client.post(
            f"{API}/admin/rewards/allocate",
            json={"grants": [grant_json(ALICE, "p1")]},
            headers=auth(tokens, OWNER),
        )
        client.post(f"{API}/admin/emergency-withdraw", headers=auth(tokens, OWNER))
        response = client.post(f"{API}/rewards/claim", headers=auth(tokens, ALICE))
        assert response.status_code == 402
        assert response.json()["error"]["code"] == "INSUFFICIENT_FUNDS"
        assert Decimal(client.get(f"{API}/rewards/{ALICE}/available").json()["claimable"]) == Decimal("50")

    def test_confirm_unknown_batch(self, client, tokens):
        response = client.post(
            f"{API}/admin/batches/batch-000009-none/confirm",
            json={"reference": "0xabc"},
            headers=auth(tokens, OWNER),
        )
        assert response.status_code == 404


class TestDistributeEndpoint:

    @pytest.fixture
    def client(self, config, funded_ledger, session_factory):
        submissions = SubmissionRepository(session_factory)
        t0 = datetime(2025, 3, 1, tzinfo=timezone.utc)
        submissions.add_many([
            SubmissionRecord("w6-a", ALICE, 6, "APPROVED", t0),
            SubmissionRecord("w6-b", BOB, 6, "APPROVED", t0.replace(hour=1)),
        ])
        service = RewardService(funded_ledger, event_bus=EventBus(), submissions=submissions)
        with TestClient(create_app(config, service=service)) as client:
            yield client

    def test_fast_completion(self, client, tokens):
        response = client.post(
            f"{API}/admin/rewards/distribute",
            json={"week": 6, "category": "FAST_COMPLETION"},
            headers=auth(tokens, OWNER),
        )
        assert response.status_code == 200
        assert response.json()["applied_count"] == 2
        assert client.get(f"{API}/rewards/{BOB}/available").json()["claimable"] == "20"

    def test_quality_without_recipients(self, client, tokens):
        response = client.post(
            f"{API}/admin/rewards/distribute",
            json={"week": 6, "category": "TOP_QUALITY"},
            headers=auth(tokens, OWNER),
        )
        assert response.status_code == 501
        assert response.json()["error"]["code"] == "RANKING_UNAVAILABLE"

    def test_requested_recipients_without_submission_listed(self, client, tokens):
        response = client.post(
            f"{API}/admin/rewards/distribute",
            json={"week": 6, "category": "TOP_QUALITY", "recipients": [ALICE, CAROL]},
            headers=auth(tokens, OWNER),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["applied_count"] == 1
        assert body["skipped"] == [CAROL]

    def test_nothing_left_to_distribute(self, client, tokens):
        headers = auth(tokens, OWNER)
        body = {"week": 6, "category": "FAST_COMPLETION"}
        assert client.post(f"{API}/admin/rewards/distribute", json=body, headers=headers).status_code == 200

        response = client.post(f"{API}/admin/rewards/distribute", json=body, headers=headers)
        assert response.status_code == 422
        assert response.json()["error"]["details"]["already_committed"] == 2


class TestStatisticsEndpoint:

    @pytest.fixture
    def client(self, config, funded_ledger, session_factory):
        service = RewardService(funded_ledger, event_bus=EventBus(), mirror=RewardMirror(session_factory))
        with TestClient(create_app(config, service=service)) as client:
            yield client

    def test_dashboard_figures(self, client, tokens):
        client.post(
            f"{API}/admin/rewards/allocate",
            json={"grants": [grant_json(ALICE, "p1"), grant_json(BOB, "p2", week=2)]},
            headers=auth(tokens, OWNER),
        )
        client.post(f"{API}/rewards/claim", headers=auth(tokens, ALICE))

        response = client.get(f"{API}/admin/rewards/statistics", headers=auth(tokens, OWNER))
        assert response.status_code == 200
        body = response.json()
        assert body["rewards"]["total_rewards"] == 2
        assert body["rewards"]["paid_rewards"] == 1
        assert body["rewards"]["pending_rewards"] == 1
        assert body["budget"]["total_allocated"] == "100"
        assert body["budget"]["utilization_percent"] == "5.00"
        assert [(r["week"], r["category"], r["count"]) for r in body["weekly_distribution"]] == [
            (1, "TOP_QUALITY", 1),
            (2, "TOP_QUALITY", 1),
        ]
        assert {r["recipient"] for r in body["top_earners"]} == {ALICE, BOB}

    def test_top_limits_earners(self, client, tokens):
        client.post(
            f"{API}/admin/rewards/allocate",
            json={"grants": [grant_json(ALICE, "p1"), grant_json(BOB, "p2", amount="80")]},
            headers=auth(tokens, OWNER),
        )
        body = client.get(f"{API}/admin/rewards/statistics?top=1", headers=auth(tokens, OWNER)).json()
        assert [r["recipient"] for r in body["top_earners"]] == [BOB]

    def test_requires_allocator(self, client, tokens):
        response = client.get(f"{API}/admin/rewards/statistics", headers=auth(tokens, MALLORY))
        assert response.status_code == 403
        assert client.get(f"{API}/admin/rewards/statistics").status_code == 401


def test_statistics_without_mirror(client, tokens):
    response = client.get(f"{API}/admin/rewards/statistics", headers=auth(tokens, OWNER))
    assert response.status_code == 500
    assert response.json()["error"]["code"] == "CONFIGURATION_ERROR"
