"""Tests for the MCP operator tools."""

from __future__ import annotations

import uuid
from unittest.mock import patch

import pytest

from conftest import DealBuilder, Seed
from wastex.infrastructure.database.engine import session_scope
from wastex.mcp_server import tools


@pytest.fixture
def scoped(session_factory):
    with patch.object(tools, "session_scope", lambda: session_scope(session_factory)):
        yield


@pytest.fixture
def build(session_factory, ledger, gateway, clock, settings):
    async def _build(step: str):
        async with session_scope(session_factory) as session:
            deal = DealBuilder(session, Seed(session), ledger, gateway, clock, settings)
            return await getattr(deal, step)()

    return _build


class TestContractStatusTool:
    @pytest.mark.asyncio
    async def test_reports_status(self, scoped, build) -> None:
        contract = await build("signed_contract")
        result = await tools.contract_status(str(contract.id))

        assert result["status"] == "signed"
        assert result["seller_signed"] is True
        assert "payment_verified" in result["allowed_events"]

    @pytest.mark.asyncio
    async def test_unknown_contract(self, scoped) -> None:
        result = await tools.contract_status(str(uuid.uuid4()))
        assert "not found" in result["error"]

    @pytest.mark.asyncio
    async def test_malformed_id(self, scoped) -> None:
        result = await tools.contract_status("not-a-uuid")
        assert "error" in result


class TestPaymentStatusTool:
    @pytest.mark.asyncio
    async def test_reports_timeline(self, scoped, build) -> None:
        payment = await build("held_payment")
        result = await tools.payment_status(str(payment.id))

        assert result["status"] == "held_in_escrow"
        assert {entry["status"] for entry in result["timeline"]} == {"pending", "held_in_escrow"}
