"""Ledger adapters: attest contract terms and signatures on an EVM chain.

Two implementations of ``wastex.domain.ports.LedgerClient``:

    Web3Ledger      - deploys one WasteContract per agreement through web3.py
                      and drives ``signAsSeller`` / ``signAsBuyer`` from the
                      platform wallet. Every write waits for its receipt.
    SimulatedLedger - keeps the same state in memory and fabricates hashes,
                      for local development, tests and the simulation script.

The ledger is opaque: nothing here interprets contract semantics beyond the
three signature flags.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from wastex.domain.exceptions import LedgerError
from wastex.domain.ports import LedgerDeployment
from wastex.logging_config import get_logger

if TYPE_CHECKING:
    from wastex.config import Settings
    from wastex.domain.ports import LedgerClient

logger = get_logger(__name__)

# Connection-level failures worth retrying; contract reverts are not.
_TRANSIENT_ERRORS = (OSError, asyncio.TimeoutError)


def load_artifact(path: str | Path) -> tuple[list[dict], str]:
    """Read ``{"abi": [...], "bytecode": "0x..."}`` produced by the compiler step."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    bytecode = data["bytecode"]
    if isinstance(bytecode, dict):
        bytecode = bytecode["object"]
    return data["abi"], bytecode


class Web3Ledger:
    """LedgerClient backed by an EVM JSON-RPC node."""

    def __init__(
        self,
        rpc_url: str,
        private_key: str,
        abi: list[dict],
        bytecode: str,
        timeout_seconds: int = 120,
        retry_attempts: int = 3,
        w3: AsyncWeb3 | None = None,
    ) -> None:
        if not private_key:
            raise LedgerError("ledger private key is not configured", retryable=False)
        self._w3 = w3 or AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": timeout_seconds})
        )
        self._account = self._w3.eth.account.from_key(private_key)
        self._abi = abi
        self._bytecode = bytecode
        self._timeout = timeout_seconds
        self._retry_attempts = retry_attempts
        # One platform wallet signs everything; nonces must be handed out in order.
        self._send_lock = asyncio.Lock()

    @property
    def platform_address(self) -> str:
        return self._account.address

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def deploy(self, terms_json: str) -> LedgerDeployment:
        factory = self._w3.eth.contract(abi=self._abi, bytecode=self._bytecode)
        receipt = await self._transact(
            "deploy", lambda: factory.constructor(terms_json)
        )
        address = receipt["contractAddress"]
        if not address:
            raise LedgerError("deployment receipt has no contract address", retryable=True)
        tx_hash = AsyncWeb3.to_hex(receipt["transactionHash"])
        logger.info("ledger.deployed", address=address, tx_hash=tx_hash)
        return LedgerDeployment(address=address, tx_hash=tx_hash)

    async def sign_as_seller(self, address: str) -> str:
        contract = self._contract(address)
        receipt = await self._transact("signAsSeller", contract.functions.signAsSeller)
        return AsyncWeb3.to_hex(receipt["transactionHash"])

    async def sign_as_buyer(self, address: str) -> str:
        contract = self._contract(address)
        receipt = await self._transact("signAsBuyer", contract.functions.signAsBuyer)
        return AsyncWeb3.to_hex(receipt["transactionHash"])

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def seller_signed(self, address: str) -> bool:
        return await self._call(address, "sellerSigned")

    async def buyer_signed(self, address: str) -> bool:
        return await self._call(address, "buyerSigned")

    async def is_fully_signed(self, address: str) -> bool:
        return await self._call(address, "isFullySigned")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _contract(self, address: str):
        try:
            checksum = AsyncWeb3.to_checksum_address(address)
        except ValueError as exc:
            raise LedgerError(f"invalid ledger address {address!r}", retryable=False) from exc
        return self._w3.eth.contract(address=checksum, abi=self._abi)

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=8),
            retry=retry_if_exception_type(_TRANSIENT_ERRORS),
            reraise=True,
        )

    async def _call(self, address: str, fn_name: str) -> bool:
        contract = self._contract(address)
        try:
            async for attempt in self._retrying():
                with attempt:
                    result = await getattr(contract.functions, fn_name)().call()
        except ContractLogicError as exc:
            raise LedgerError(f"{fn_name} reverted: {exc}", retryable=False) from exc
        except (*_TRANSIENT_ERRORS, Web3Exception) as exc:
            raise LedgerError(f"{fn_name} failed: {exc}", retryable=True) from exc
        return bool(result)

    async def _transact(self, label: str, build: Any) -> Any:
        """Build, sign, send and wait for one transaction from the platform wallet.

        ``build`` returns a contract function or constructor call. The send is
        retried on connection errors only; once a hash exists the receipt wait
        is bounded by the configured timeout and never re-sends.
        """
        tx_hash = None
        try:
            async with self._send_lock:
                async for attempt in self._retrying():
                    with attempt:
                        nonce = await self._w3.eth.get_transaction_count(
                            self._account.address, "pending"
                        )
                        tx = await build().build_transaction(
                            {"from": self._account.address, "nonce": nonce}
                        )
                        signed = self._account.sign_transaction(tx)
                        tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)

            logger.debug("ledger.tx_sent", action=label, tx_hash=AsyncWeb3.to_hex(tx_hash))
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self._timeout
            )
        except ContractLogicError as exc:
            raise LedgerError(f"{label} reverted: {exc}", retryable=False) from exc
        except TimeExhausted as exc:
            raise LedgerError(
                f"{label} not confirmed within {self._timeout}s",
                retryable=True,
                tx_hash=AsyncWeb3.to_hex(tx_hash) if tx_hash else None,
            ) from exc
        except (*_TRANSIENT_ERRORS, Web3Exception) as exc:
            raise LedgerError(f"{label} failed: {exc}", retryable=True) from exc

        if receipt["status"] != 1:
            raise LedgerError(
                f"{label} transaction failed on chain",
                retryable=False,
                tx_hash=AsyncWeb3.to_hex(receipt["transactionHash"]),
            )
        return receipt


def _fake_hash() -> str:
    return "0x" + uuid.uuid4().hex + uuid.uuid4().hex


class SimulatedLedger:
    """In-memory LedgerClient.

    Mirrors the on-chain rules: a role signs once, and the record is fully
    signed when both roles have. ``fail_next`` injects a single failure.
    """

    def __init__(self) -> None:
        self._records: dict[str, dict[str, Any]] = {}
        self._pending_failure: LedgerError | None = None
        self.platform_address = "0x" + "0" * 39 + "1"

    def fail_next(self, error: LedgerError | None = None) -> None:
        self._pending_failure = error or LedgerError("simulated ledger outage", retryable=True)

    def _maybe_fail(self) -> None:
        if self._pending_failure is not None:
            error, self._pending_failure = self._pending_failure, None
            raise error

    def _record(self, address: str) -> dict[str, Any]:
        record = self._records.get(address)
        if record is None:
            raise LedgerError(f"no ledger record at {address}", retryable=False)
        return record

    async def deploy(self, terms_json: str) -> LedgerDeployment:
        self._maybe_fail()
        address = "0x" + uuid.uuid4().hex + uuid.uuid4().hex[:8]
        self._records[address] = {"terms": terms_json, "seller": False, "buyer": False}
        tx_hash = _fake_hash()
        logger.info("ledger.deployed", address=address, tx_hash=tx_hash, simulated=True)
        return LedgerDeployment(address=address, tx_hash=tx_hash)

    async def _sign(self, address: str, role: str) -> str:
        self._maybe_fail()
        record = self._record(address)
        if record[role]:
            raise LedgerError(f"{role} already signed on ledger", retryable=False)
        record[role] = True
        return _fake_hash()

    async def sign_as_seller(self, address: str) -> str:
        return await self._sign(address, "seller")

    async def sign_as_buyer(self, address: str) -> str:
        return await self._sign(address, "buyer")

    async def seller_signed(self, address: str) -> bool:
        return bool(self._record(address)["seller"])

    async def buyer_signed(self, address: str) -> bool:
        return bool(self._record(address)["buyer"])

    async def is_fully_signed(self, address: str) -> bool:
        record = self._record(address)
        return bool(record["seller"] and record["buyer"])


def build_ledger(settings: Settings) -> LedgerClient:
    """Construct the ledger adapter selected by ``ledger_mode``."""
    if settings.ledger_mode == "web3":
        abi, bytecode = load_artifact(settings.ledger_artifact_path)
        ledger = Web3Ledger(
            rpc_url=settings.ledger_rpc_url,
            private_key=settings.ledger_private_key,
            abi=abi,
            bytecode=bytecode,
            timeout_seconds=settings.ledger_timeout_seconds,
            retry_attempts=settings.ledger_retry_attempts,
        )
        logger.info("ledger.configured", mode="web3", rpc_url=settings.ledger_rpc_url)
        return ledger
    logger.info("ledger.configured", mode="simulated")
    return SimulatedLedger()
