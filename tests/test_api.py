"""HTTP API: routes, admin auth and error mapping."""

import pytest
from fastapi.testclient import TestClient

from conftest import EVIDENCE
from predsettle.api.auth import verify_admin_auth
from predsettle.api.main import app, get_app_settings, get_db
from predsettle.config import Settings

ADMIN = {"Authorization": "Bearer test-key"}


@pytest.fixture
def client(temp_db, seed_market):
    """Test client bound to the temp database; cleans up dependency overrides after each test."""
    seed_market()
    settings = Settings(admin={"api_keys": {"test-key": "admin-1"}})
    app.dependency_overrides[get_db] = lambda: temp_db
    app.dependency_overrides[get_app_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_fees(client):
    body = client.get("/fees").json()
    assert body == {
        "house_fee_percentage": 0.05,
        "min_creator_fee": 0.01,
        "max_creator_fee": 0.05,
        "default_creator_fee": 0.02,
    }


def test_markets_list_and_detail(client):
    body = client.get("/markets").json()
    assert body["total"] == 1
    assert body["markets"][0]["market_id"] == "m1"
    assert client.get("/markets", params={"status": "resolved"}).json()["total"] == 0

    detail = client.get("/markets/m1").json()
    assert detail["total_tokens_staked"] == 1000
    assert [o["option_id"] for o in detail["options"]] == ["yes", "no"]


def test_market_not_found(client):
    response = client.get("/markets/nope")
    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


def test_odds(client):
    body = client.get("/markets/m1/odds").json()
    assert body["odds"]["yes"]["odds"] == 1.11
    assert body["formatted"] == {"yes": "1.1:1", "no": "10.0:1"}


def test_stake_impact(client):
    body = client.get("/markets/m1/odds/impact", params={"option_id": "no", "tokens": 100}).json()
    assert body["estimate"]["gross_payout"] == 550
    bad = client.get("/markets/m1/odds/impact", params={"option_id": "maybe", "tokens": 100})
    assert bad.status_code == 400


def test_payout_preview(client):
    response = client.get("/markets/m1/payout-preview", params={"winning_option_id": "yes"})
    assert response.status_code == 200
    body = response.json()
    assert (body["house_fee"], body["creator_fee"], body["winner_pool"]) == (50, 20, 930)
    assert [p["projected_payout"] for p in body["payouts"]] == [516, 310, 103]

    bad = client.get("/markets/m1/payout-preview", params={"winning_option_id": "yes", "creator_fee_percentage": 0.07})
    assert bad.status_code == 400
    assert bad.json()["code"] == "validation_failed"
    assert bad.json()["details"]["field"] == "creator_fee_percentage"


def test_resolve_requires_admin(client):
    body = {"winning_option_id": "yes", "evidence": EVIDENCE}
    assert client.post("/admin/markets/m1/resolve", json=body).status_code == 401
    wrong = client.post("/admin/markets/m1/resolve", json=body, headers={"Authorization": "Bearer nope"})
    assert wrong.status_code == 401
    assert wrong.json()["code"] == "unauthorized"
    assert client.get("/markets/m1").json()["status"] == "pending_resolution"


def test_resolve_flow(client):
    body = {"winning_option_id": "yes", "evidence": EVIDENCE, "creator_fee_percentage": 0.02}
    response = client.post("/admin/markets/m1/resolve", json=body, headers=ADMIN)
    assert response.status_code == 200
    result = response.json()
    assert result["total_payout"] == 930
    assert result["winner_count"] == 3

    resolution = client.get("/markets/m1/resolution").json()
    assert resolution["resolution_id"] == result["resolution_id"]
    assert resolution["resolved_by"] == "admin-1"
    assert client.get("/markets/m1/resolution/status").json()["status"] == "completed"
    logs = client.get("/markets/m1/resolution/logs").json()["logs"]
    assert logs[-1]["action"] == "resolution_completed"

    payouts = client.get("/users/alice/payouts").json()
    assert payouts["total_winnings"] == 516
    assert client.get("/users/creator/payouts").json()["total_creator_fees"] == 20
    assert client.get("/users/alice/balance").json()["available_tokens"] == 1516
    assert client.get("/users/nobody/balance").status_code == 404

    again = client.post("/admin/markets/m1/resolve", json=body, headers=ADMIN)
    assert again.status_code == 409
    assert again.json()["code"] == "invalid_transition"
    assert again.json()["details"]["current_status"] == "resolved"


def test_resolve_rejects_empty_evidence(client):
    response = client.post("/admin/markets/m1/resolve", json={"winning_option_id": "yes", "evidence": []}, headers=ADMIN)
    assert response.status_code == 400
    assert client.get("/markets/m1/resolution").status_code == 404


def test_cancel(client):
    short = client.post("/admin/markets/m1/cancel", json={"reason": "nope"}, headers=ADMIN)
    assert short.status_code == 400
    response = client.post("/admin/markets/m1/cancel", json={"reason": "Event never took place"}, headers=ADMIN)
    assert response.status_code == 200
    assert response.json()["refunds_processed"] == 4
    assert response.json()["tokens_refunded"] == 1000
    assert client.get("/markets/m1").json()["status"] == "cancelled"


def test_verify_admin_auth():
    keys = {"k1": "admin-1"}
    assert verify_admin_auth("Bearer k1", keys).user_id == "admin-1"
    assert not verify_admin_auth(None, keys).is_admin
    assert not verify_admin_auth("Basic k1", keys).is_admin
    assert verify_admin_auth("Bearer k2", keys).error == "Unknown API key"
