"""Protocols for the external collaborators the engine drives.

Structural types so the ledger and gateway adapters (and test doubles) do not
need to inherit from anything. The domain layer has zero imports from web3,
httpx or any gateway SDK.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class LedgerDeployment:
    """Result of deploying a contract record on the ledger.

    Attributes:
        address: Ledger address of the deployed record.
        tx_hash: Hash of the confirmed deployment transaction.
    """

    address: str
    tx_hash: str


@runtime_checkable
class LedgerClient(Protocol):
    """Signature attestation ledger.

    Every write method returns only after the transaction is confirmed and
    raises LedgerError otherwise. Implementations:
        - infrastructure/ledger.py Web3Ledger      (EVM node via web3.py)
        - infrastructure/ledger.py SimulatedLedger (in-memory)
    """

    async def deploy(self, terms_json: str) -> LedgerDeployment: ...

    async def sign_as_seller(self, address: str) -> str: ...

    async def sign_as_buyer(self, address: str) -> str: ...

    async def seller_signed(self, address: str) -> bool: ...

    async def buyer_signed(self, address: str) -> bool: ...

    async def is_fully_signed(self, address: str) -> bool: ...


@dataclass(frozen=True)
class GatewayOrder:
    """An order opened with the payment gateway.

    Attributes:
        order_id: Gateway order id the buyer pays against.
        amount: Amount in minor units (paise).
        currency: ISO currency code.
        receipt: Our reference attached to the order.
    """

    order_id: str
    amount: int
    currency: str
    receipt: str


@runtime_checkable
class PaymentGateway(Protocol):
    """Payment gateway that opens orders buyers pay into.

    Implementations:
        - infrastructure/gateway.py RazorpayGateway  (REST over httpx)
        - infrastructure/gateway.py SimulatedGateway (no network)
    """

    provider: str

    async def create_order(self, amount: int, currency: str, receipt: str) -> GatewayOrder: ...
