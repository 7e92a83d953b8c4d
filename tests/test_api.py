"""
Tests for the FastAPI surface (`api/`).

The engine dependency is overridden with a fixture engine, so no environment
or database is needed.

Covers contract rules:
- The caller identity comes from the X-Participant header.
- Domain errors map to HTTP statuses with {error, code, category, detail}.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_engine
from api.main import app
from repositories.sale_state_repository import SaleStateRepository


@pytest.fixture
def client(vesting_engine):
    app.dependency_overrides[get_engine] = lambda: vesting_engine
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def staged_client(staged_engine):
    app.dependency_overrides[get_engine] = lambda: staged_engine
    yield TestClient(app)
    app.dependency_overrides.clear()


def _as(participant: str) -> dict:
    return {"X-Participant": participant}


def test_health(client) -> None:
    """Verify the health endpoint."""

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_purchase_and_participant_record(client) -> None:
    """Verify a purchase through the API and the resulting participant record."""

    response = client.post("/api/v1/purchases", json={"amount": "10"}, headers=_as("alice"))

    assert response.status_code == 200
    body = response.json()
    assert body["tokens"] == "1000"
    assert Decimal(body["tokens"]) == Decimal("1000")
    assert Decimal(body["vested"]) == Decimal("1000")

    record = client.get("/api/v1/participants/alice").json()
    assert record["whitelisted"] is True
    assert Decimal(record["total_invested"]) == Decimal("10")
    assert Decimal(record["vesting"]["total_amount"]) == Decimal("1000")

    status = client.get("/api/v1/sale/status").json()
    assert Decimal(status["total_raised"]) == Decimal("10")
    assert status["mode"] == "vesting_lockup"


def test_purchase_requires_caller_header(client) -> None:
    """Verify requests without X-Participant are rejected by validation."""

    response = client.post("/api/v1/purchases", json={"amount": "10"})

    assert response.status_code == 422


def test_admission_error_maps_to_403(client) -> None:
    """Verify a non-whitelisted caller gets 403 with the error body."""

    response = client.post("/api/v1/purchases", json={"amount": "10"}, headers=_as("mallory"))

    assert response.status_code == 403
    assert response.json() == {
        "error": "NotWhitelisted",
        "code": "NOT_WHITELISTED",
        "category": "admission",
        "detail": "Participant is not whitelisted",
    }


def test_capacity_error_maps_to_409(make_engine) -> None:
    """Verify a hard cap rejection returns 409."""

    engine = make_engine(hard_cap=Decimal("150"))
    app.dependency_overrides[get_engine] = lambda: engine
    try:
        client = TestClient(app)
        client.post("/api/v1/purchases", json={"amount": "100"}, headers=_as("alice"))
        response = client.post("/api/v1/purchases", json={"amount": "100"}, headers=_as("bob"))
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 409
    assert response.json()["code"] == "HARD_CAP_EXCEEDED"


def test_admin_requires_owner(client) -> None:
    """Verify owner-only endpoints return 403 for other callers."""

    response = client.post("/api/v1/admin/pause", headers=_as("alice"))

    assert response.status_code == 403
    assert response.json()["category"] == "authorization"


def test_admin_flow(client, vesting_engine) -> None:
    """Verify whitelist, band and pause endpoints as the owner."""

    assert client.put(
        "/api/v1/admin/whitelist", json={"participants": ["dave"]}, headers=_as("owner")
    ).status_code == 204
    assert vesting_engine.is_whitelisted("dave") is True

    response = client.post(
        "/api/v1/admin/bands",
        json={"min_purchase": "10", "max_purchase": "50", "discount_percent": "10"},
        headers=_as("owner"),
    )
    assert response.json() == {"index": 0}

    tiers = client.get("/api/v1/sale/tiers").json()
    assert tiers["total_count"] == 1
    assert Decimal(tiers["items"][0]["discount_percent"]) == Decimal("10")

    assert client.post("/api/v1/admin/pause", headers=_as("owner")).status_code == 204
    assert client.post("/api/v1/admin/pause", headers=_as("owner")).status_code == 409
    assert client.get("/api/v1/sale/status").json()["paused"] is True


def test_claim_errors_and_referrer(client) -> None:
    """Verify claim endpoints surface timing/state errors and the referrer can be set once."""

    assert client.put("/api/v1/referrer", json={"referrer": "alice"}, headers=_as("bob")).status_code == 204
    assert client.put("/api/v1/referrer", json={"referrer": "carol"}, headers=_as("bob")).status_code == 409
    assert client.put("/api/v1/referrer", json={"referrer": "bob"}, headers=_as("bob")).status_code == 400

    client.post("/api/v1/purchases", json={"amount": "10"}, headers=_as("bob"))

    response = client.post("/api/v1/claims/vested", headers=_as("bob"))
    assert response.status_code == 409
    assert response.json()["code"] == "CLIFF_NOT_OVER"

    bonus = client.post("/api/v1/claims/referral-bonus", headers=_as("alice"))
    assert bonus.status_code == 200
    assert Decimal(bonus.json()["amount"]) == Decimal("50")


def test_refund_endpoint(client, clock) -> None:
    """Verify a refund after a failed sale."""

    client.post("/api/v1/purchases", json={"amount": "40"}, headers=_as("alice"))
    clock.advance(timedelta(days=31))

    response = client.post("/api/v1/claims/refund", headers=_as("alice"))

    assert response.status_code == 200
    assert Decimal(response.json()["amount"]) == Decimal("40")
    assert client.post("/api/v1/claims/refund", headers=_as("alice")).status_code == 409


def test_staged_purchase_and_distribution(staged_client, clock) -> None:
    """Verify a staged purchase and a distribution claim via the API."""

    response = staged_client.post(
        "/api/v1/purchases", json={"amount": "1", "token_amount": "100"}, headers=_as("alice")
    )
    assert response.status_code == 200
    assert response.json()["tier_index"] == 0

    early = staged_client.post("/api/v1/claims/distributions/0", headers=_as("alice"))
    assert early.status_code == 409

    clock.advance(timedelta(days=30))
    claimed = staged_client.post("/api/v1/claims/distributions/0", headers=_as("alice"))
    assert Decimal(claimed.json()["amount"]) == Decimal("25")

    tier = staged_client.get("/api/v1/sale/tiers/0").json()
    assert Decimal(tier["tokens_sold"]) == Decimal("100")
    assert staged_client.get("/api/v1/sale/tiers/9").status_code == 404


def test_events_endpoint(client) -> None:
    """Verify committed events are listed."""

    client.post("/api/v1/purchases", json={"amount": "10"}, headers=_as("alice"))

    events = client.get("/api/v1/events").json()

    assert events[-1]["type"] == "TokensPurchased"
    assert events[-1]["participant"] == "alice"


@pytest.fixture
def sale_env(monkeypatch):
    """SALE_* environment for the real engine dependency; the sale opened a day ago."""

    now = datetime.now(timezone.utc)
    env = {
        "SALE_OWNER": "owner",
        "SALE_ACCOUNT": "sale",
        "SALE_MODE": "vesting_lockup",
        "SALE_BASE_PRICE": "0.01",
        "SALE_SOFT_CAP": "100",
        "SALE_HARD_CAP": "1000",
        "SALE_MIN_PURCHASE": "1",
        "SALE_MAX_PURCHASE": "100",
        "SALE_START": (now - timedelta(days=1)).isoformat(),
        "SALE_END": (now + timedelta(days=29)).isoformat(),
        "SALE_TOKEN_BALANCE": "1000000",
        "SALE_PAYMENT_BALANCES": "alice:100",
    }
    for name, value in env.items():
        monkeypatch.setenv(name, value)
    monkeypatch.delenv("SALE_TOKEN_SUPPLY", raising=False)

    get_engine.cache_clear()
    yield env
    get_engine.cache_clear()


def test_configured_engine_completes_a_purchase(sale_env, monkeypatch) -> None:
    """Verify the environment-built engine funds participants and settles a purchase."""

    monkeypatch.setattr("api.dependencies.persistence_configured", lambda: False)
    client = TestClient(app)

    assert client.put(
        "/api/v1/admin/whitelist", json={"participants": ["alice", "bob"]}, headers=_as("owner")
    ).status_code == 204

    response = client.post("/api/v1/purchases", json={"amount": "10"}, headers=_as("alice"))

    assert response.status_code == 200
    assert Decimal(response.json()["tokens"]) > 0
    assert "E" not in response.json()["tokens"]
    engine = get_engine()
    assert engine.payment_ledger.balance_of("alice") == Decimal("90")
    assert engine.payment_ledger.balance_of("sale") == Decimal("10")

    unfunded = client.post("/api/v1/purchases", json={"amount": "10"}, headers=_as("bob"))
    assert unfunded.status_code == 409
    assert unfunded.json()["code"] == "INSUFFICIENT_BALANCE"


def test_restart_restores_state_and_balances(sale_env, monkeypatch, fake_supabase) -> None:
    """Verify a new process resumes from the saved state and ledgers, not the environment seeds."""

    monkeypatch.setattr("api.dependencies.persistence_configured", lambda: True)
    monkeypatch.setattr("api.dependencies.SaleStateRepository", lambda: SaleStateRepository(fake_supabase))
    client = TestClient(app)

    client.put("/api/v1/admin/whitelist", json={"participants": ["alice"]}, headers=_as("owner"))
    assert client.post("/api/v1/purchases", json={"amount": "10"}, headers=_as("alice")).status_code == 200

    get_engine.cache_clear()
    monkeypatch.setenv("SALE_PAYMENT_BALANCES", "alice:100,bob:50")
    monkeypatch.setenv("SALE_TOKEN_BALANCE", "5")
    engine = get_engine()

    assert engine.investment_of("alice") == Decimal("10")
    assert engine.is_whitelisted("alice") is True
    assert engine.payment_ledger.balance_of("alice") == Decimal("90")
    assert engine.payment_ledger.balance_of("sale") == Decimal("10")
    assert engine.payment_ledger.balance_of("bob") == Decimal("0")
    assert engine.token_ledger.balance_of("sale") == Decimal("1000000")


def test_failed_save_is_reported_and_nothing_moves(sale_env, monkeypatch, fake_supabase) -> None:
    """Verify a persistence error reaches the caller and the purchase is not applied."""

    monkeypatch.setattr("api.dependencies.persistence_configured", lambda: True)
    monkeypatch.setattr("api.dependencies.SaleStateRepository", lambda: SaleStateRepository(fake_supabase))
    client = TestClient(app)
    client.put("/api/v1/admin/whitelist", json={"participants": ["alice"]}, headers=_as("owner"))

    fake_supabase.error = "connection reset"
    with pytest.raises(RuntimeError, match="connection reset"):
        client.post("/api/v1/purchases", json={"amount": "10"}, headers=_as("alice"))

    engine = get_engine()
    assert engine.investment_of("alice") == Decimal("0")
    assert engine.payment_ledger.balance_of("alice") == Decimal("100")
