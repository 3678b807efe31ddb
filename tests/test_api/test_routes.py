"""HTTP-level tests: routing, the X-User-Id actor header and error mapping.

The app runs in-process over httpx's ASGI transport against the shared
in-memory database; lifespan is not started, so the ledger and gateway are
attached to ``app.state`` by hand.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import httpx
import pytest
import pytest_asyncio

from conftest import GATEWAY_SECRET, Seed, contract_terms
from wastex.api import deps
from wastex.api.routes import health
from wastex.domain.settlement import compute_gateway_signature
from wastex.infrastructure.database.engine import session_scope
from wastex.main import create_app


@pytest_asyncio.fixture
async def app(session_factory, ledger, gateway, settings):
    app = create_app()
    app.state.ledger = ledger
    app.state.gateway = gateway

    async def _session():
        async with session_scope(session_factory) as session:
            yield session

    app.dependency_overrides[deps.get_db_session] = _session
    app.dependency_overrides[deps.get_app_settings] = lambda: settings
    return app


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def parties(session_factory):
    async with session_scope(session_factory) as session:
        seed = Seed(session)
        seller = await seed.user("seller", company="Green Earth Recyclers")
        buyer = await seed.user("buyer", company="Blue Ocean Plastics")
        admin = await seed.user("admin", name="Ops Admin")
        listing = await seed.listing(seller)
    return {
        "seller": {"X-User-Id": str(seller.id)},
        "buyer": {"X-User-Id": str(buyer.id)},
        "admin": {"X-User-Id": str(admin.id)},
        "seller_id": str(seller.id),
        "listing_id": str(listing.id),
    }


async def _signed_contract(client, parties) -> dict:
    negotiation = await client.post(
        "/api/v1/negotiations",
        headers=parties["buyer"],
        json={
            "title": "HDPE regrind, monthly",
            "counterparty_id": parties["seller_id"],
            "origin_type": "listing",
            "origin_id": parties["listing_id"],
        },
    )
    assert negotiation.status_code == 201

    created = await client.post(
        "/api/v1/contracts",
        headers=parties["buyer"],
        json={
            "negotiation_id": negotiation.json()["id"],
            "title": "HDPE supply agreement",
            "terms": contract_terms(100000),
        },
    )
    assert created.status_code == 201
    contract_id = created.json()["id"]

    for role in ("seller", "buyer"):
        signed = await client.post(
            f"/api/v1/contracts/{contract_id}/sign",
            headers=parties[role],
            json={"signature": f"{role}-signature"},
        )
        assert signed.status_code == 200
    return signed.json()


class TestHealth:
    @pytest.mark.asyncio
    async def test_reports_dependencies(self, client, engine) -> None:
        redis = AsyncMock()
        with (
            patch.object(health, "get_engine", return_value=engine),
            patch.object(health, "get_redis", return_value=redis),
        ):
            response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["database"] == "healthy"
        assert body["ledger_mode"] == "simulated"

    @pytest.mark.asyncio
    async def test_missing_redis_degrades(self, client, engine) -> None:
        with patch.object(health, "get_engine", return_value=engine):
            response = await client.get("/health")
        assert response.json()["status"] == "degraded"


class TestActorHeader:
    @pytest.mark.asyncio
    async def test_missing_header(self, client) -> None:
        response = await client.get(f"/api/v1/contracts/{uuid.uuid4()}")
        assert response.status_code == 403
        assert response.json()["error"] == "NOT_AUTHENTICATED"
        assert "X-Request-ID" in response.headers

    @pytest.mark.asyncio
    async def test_unknown_user(self, client) -> None:
        response = await client.get(
            f"/api/v1/contracts/{uuid.uuid4()}", headers={"X-User-Id": str(uuid.uuid4())}
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_contract(self, client, parties) -> None:
        response = await client.get(f"/api/v1/contracts/{uuid.uuid4()}", headers=parties["buyer"])
        assert response.status_code == 404
        assert response.json()["retryable"] is False


class TestDealOverHttp:
    @pytest.mark.asyncio
    async def test_contract_reaches_signed(self, client, parties) -> None:
        contract = await _signed_contract(client, parties)
        assert contract["status"] == "signed"
        assert contract["contract_number"].startswith("C-")

        status = await client.get(
            f"/api/v1/contracts/{contract['id']}/status", headers=parties["seller"]
        )
        assert status.json()["seller_signed"] is True
        assert status.json()["buyer_signed"] is True

    @pytest.mark.asyncio
    async def test_double_sign_conflict(self, client, parties) -> None:
        contract = await _signed_contract(client, parties)
        response = await client.post(
            f"/api/v1/contracts/{contract['id']}/sign",
            headers=parties["seller"],
            json={"signature": "again"},
        )
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_escrow_flow(self, client, parties) -> None:
        contract = await _signed_contract(client, parties)

        order = await client.post(
            "/api/v1/payments/orders",
            headers=parties["buyer"],
            json={"contract_id": contract["id"]},
        )
        assert order.status_code == 201
        body = order.json()
        assert body["amount_minor"] == 10_000_000
        assert Decimal(body["payment"]["platform_fee"]) == Decimal("2500")
        payment_id = body["payment"]["id"]

        verified = await client.post(
            f"/api/v1/payments/{payment_id}/verify",
            headers=parties["buyer"],
            json={
                "gateway_payment_id": "pay_TEST123",
                "signature": compute_gateway_signature(
                    GATEWAY_SECRET, body["order_id"], "pay_TEST123"
                ),
            },
        )
        assert verified.status_code == 200
        assert verified.json()["status"] == "held_in_escrow"

        released = await client.post(
            f"/api/v1/payments/{payment_id}/confirm-delivery",
            headers=parties["buyer"],
            json={"quality_approved": True},
        )
        assert released.json()["status"] == "released_to_seller"

        final = await client.get(f"/api/v1/contracts/{contract['id']}", headers=parties["seller"])
        assert final.json()["status"] == "completed"

    @pytest.mark.asyncio
    async def test_bad_signature_is_persisted_as_failed(self, client, parties) -> None:
        contract = await _signed_contract(client, parties)
        order = await client.post(
            "/api/v1/payments/orders",
            headers=parties["buyer"],
            json={"contract_id": contract["id"]},
        )
        payment_id = order.json()["payment"]["id"]

        response = await client.post(
            f"/api/v1/payments/{payment_id}/verify",
            headers=parties["buyer"],
            json={"gateway_payment_id": "pay_TEST123", "signature": "f" * 64},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_PAYMENT_SIGNATURE"

        stored = await client.get(f"/api/v1/payments/{payment_id}", headers=parties["buyer"])
        assert stored.json()["status"] == "failed"

    @pytest.mark.asyncio
    async def test_seller_cannot_refund(self, client, parties) -> None:
        contract = await _signed_contract(client, parties)
        order = await client.post(
            "/api/v1/payments/orders",
            headers=parties["buyer"],
            json={"contract_id": contract["id"]},
        )
        response = await client.post(
            f"/api/v1/payments/{order.json()['payment']['id']}/refund",
            headers=parties["seller"],
            json={"reason": "Please refund"},
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_non_ascii_signature_is_persisted_as_failed(self, client, parties) -> None:
        contract = await _signed_contract(client, parties)
        order = await client.post(
            "/api/v1/payments/orders",
            headers=parties["buyer"],
            json={"contract_id": contract["id"]},
        )
        payment_id = order.json()["payment"]["id"]

        response = await client.post(
            f"/api/v1/payments/{payment_id}/verify",
            headers=parties["buyer"],
            json={"gateway_payment_id": "pay_TEST123", "signature": "é" * 64},
        )
        assert response.status_code == 400

        stored = await client.get(f"/api/v1/payments/{payment_id}", headers=parties["buyer"])
        assert stored.json()["status"] == "failed"
        assert stored.json()["timeline"][-1]["status"] == "failed"


class TestListings:
    @pytest.mark.asyncio
    async def test_lists_own_records(self, client, parties) -> None:
        contract = await _signed_contract(client, parties)
        await client.post(
            "/api/v1/payments/orders",
            headers=parties["buyer"],
            json={"contract_id": contract["id"]},
        )

        contracts = await client.get("/api/v1/contracts", headers=parties["seller"])
        assert contracts.status_code == 200
        body = contracts.json()
        assert [c["id"] for c in body["contracts"]] == [contract["id"]]
        assert body["pagination"] == {
            "current": 1,
            "pages": 1,
            "total": 1,
            "has_next": False,
            "has_prev": False,
        }

        negotiations = await client.get("/api/v1/negotiations", headers=parties["buyer"])
        assert negotiations.json()["negotiations"][0]["contract_id"] == contract["id"]

        payments = await client.get(
            "/api/v1/payments", headers=parties["buyer"], params={"status": "pending"}
        )
        assert payments.json()["pagination"]["total"] == 1

    @pytest.mark.asyncio
    async def test_status_filter_and_paging(self, client, parties) -> None:
        await _signed_contract(client, parties)

        cancelled = await client.get(
            "/api/v1/contracts", headers=parties["buyer"], params={"status": "cancelled"}
        )
        assert cancelled.json()["contracts"] == []

        beyond = await client.get(
            "/api/v1/contracts", headers=parties["buyer"], params={"page": 2, "limit": 1}
        )
        assert beyond.json()["contracts"] == []
        assert beyond.json()["pagination"]["has_prev"] is True

    @pytest.mark.asyncio
    async def test_rejects_bad_query(self, client, parties) -> None:
        too_big = await client.get(
            "/api/v1/contracts", headers=parties["buyer"], params={"limit": 500}
        )
        unknown = await client.get(
            "/api/v1/payments", headers=parties["buyer"], params={"status": "lost"}
        )
        assert too_big.status_code == 422
        assert unknown.status_code == 422

    @pytest.mark.asyncio
    async def test_requires_actor(self, client) -> None:
        response = await client.get("/api/v1/negotiations")
        assert response.status_code == 403
