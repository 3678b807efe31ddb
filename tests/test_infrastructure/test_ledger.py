"""Tests for the ledger adapters."""

from __future__ import annotations

import json

import pytest

from wastex.config import Settings
from wastex.domain.exceptions import LedgerError
from wastex.infrastructure.ledger import (
    SimulatedLedger,
    Web3Ledger,
    build_ledger,
    load_artifact,
)

TEST_PRIVATE_KEY = "0x" + "4c" * 32


class TestSimulatedLedger:
    @pytest.mark.asyncio
    async def test_both_roles_sign(self) -> None:
        ledger = SimulatedLedger()
        deployment = await ledger.deploy('{"contract_number": "C-2025-GER-BOP-1001"}')

        assert deployment.address.startswith("0x")
        assert not await ledger.is_fully_signed(deployment.address)

        seller_tx = await ledger.sign_as_seller(deployment.address)
        assert await ledger.seller_signed(deployment.address)
        assert not await ledger.buyer_signed(deployment.address)

        buyer_tx = await ledger.sign_as_buyer(deployment.address)
        assert seller_tx != buyer_tx
        assert await ledger.is_fully_signed(deployment.address)

    @pytest.mark.asyncio
    async def test_role_signs_once(self) -> None:
        ledger = SimulatedLedger()
        deployment = await ledger.deploy("{}")
        await ledger.sign_as_buyer(deployment.address)

        with pytest.raises(LedgerError, match="buyer already signed") as exc_info:
            await ledger.sign_as_buyer(deployment.address)
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_unknown_address(self) -> None:
        ledger = SimulatedLedger()
        with pytest.raises(LedgerError, match="no ledger record"):
            await ledger.is_fully_signed("0xdeadbeef")

    @pytest.mark.asyncio
    async def test_fail_next_fails_once(self) -> None:
        ledger = SimulatedLedger()
        ledger.fail_next()

        with pytest.raises(LedgerError) as exc_info:
            await ledger.deploy("{}")
        assert exc_info.value.retryable is True
        assert exc_info.value.message == "ledger: simulated ledger outage"

        deployment = await ledger.deploy("{}")
        assert deployment.tx_hash.startswith("0x")

    @pytest.mark.asyncio
    async def test_fail_next_with_custom_error(self) -> None:
        ledger = SimulatedLedger()
        deployment = await ledger.deploy("{}")
        ledger.fail_next(LedgerError("reverted", retryable=False))

        with pytest.raises(LedgerError, match="reverted"):
            await ledger.sign_as_seller(deployment.address)
        assert not await ledger.seller_signed(deployment.address)


class TestWeb3Ledger:
    def test_requires_private_key(self) -> None:
        with pytest.raises(LedgerError, match="private key"):
            Web3Ledger(rpc_url="http://127.0.0.1:8545", private_key="", abi=[], bytecode="0x")

    def test_platform_address_from_key(self) -> None:
        ledger = Web3Ledger(
            rpc_url="http://127.0.0.1:8545",
            private_key=TEST_PRIVATE_KEY,
            abi=[],
            bytecode="0x",
        )
        assert ledger.platform_address.startswith("0x")
        assert len(ledger.platform_address) == 42

    @pytest.mark.asyncio
    async def test_malformed_address_is_rejected(self) -> None:
        ledger = Web3Ledger(
            rpc_url="http://127.0.0.1:8545",
            private_key=TEST_PRIVATE_KEY,
            abi=[],
            bytecode="0x",
        )
        with pytest.raises(LedgerError, match="invalid ledger address") as exc_info:
            await ledger.is_fully_signed("not-an-address")
        assert exc_info.value.retryable is False


class TestArtifacts:
    def test_plain_bytecode(self, tmp_path) -> None:
        path = tmp_path / "WasteContract.json"
        path.write_text(json.dumps({"abi": [{"type": "constructor"}], "bytecode": "0x6080"}))
        abi, bytecode = load_artifact(path)
        assert abi == [{"type": "constructor"}]
        assert bytecode == "0x6080"

    def test_nested_bytecode_object(self, tmp_path) -> None:
        path = tmp_path / "WasteContract.json"
        path.write_text(json.dumps({"abi": [], "bytecode": {"object": "0x6080"}}))
        assert load_artifact(path)[1] == "0x6080"

    def test_simulated_mode_by_default(self) -> None:
        assert isinstance(build_ledger(Settings(_env_file=None)), SimulatedLedger)
