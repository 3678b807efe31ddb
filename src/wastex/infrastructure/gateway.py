"""Payment gateway adapters.

Two implementations of ``wastex.domain.ports.PaymentGateway``:

    RazorpayGateway  - opens orders through the Razorpay REST API over httpx
                       (HTTP basic auth with the key id / key secret).
    SimulatedGateway - returns locally generated order ids, no network.

Payment capture and signature issuance happen on the gateway's side; the
engine only opens orders and later verifies the signature it is handed.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from wastex.domain.exceptions import PaymentGatewayError
from wastex.domain.ports import GatewayOrder
from wastex.logging_config import get_logger

if TYPE_CHECKING:
    from wastex.config import Settings
    from wastex.domain.ports import PaymentGateway

logger = get_logger(__name__)


class RazorpayGateway:
    """PaymentGateway that talks to Razorpay's ``/orders`` endpoint."""

    provider = "razorpay"

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = "https://api.razorpay.com/v1",
        timeout_seconds: float = 15.0,
        retry_attempts: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            auth=(key_id, key_secret),
            timeout=timeout_seconds,
            transport=transport,
        )
        self._retry_attempts = retry_attempts

    async def create_order(self, amount: int, currency: str, receipt: str) -> GatewayOrder:
        payload = {"amount": amount, "currency": currency, "receipt": receipt}
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._retry_attempts),
                wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    response = await self._client.post("/orders", json=payload)
        except httpx.TransportError as exc:
            raise PaymentGatewayError(f"order creation failed: {exc}", retryable=True) from exc

        if response.status_code >= 500:
            raise PaymentGatewayError(
                f"gateway unavailable ({response.status_code})",
                retryable=True,
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            description = _error_description(response)
            raise PaymentGatewayError(
                f"order rejected ({response.status_code}): {description}",
                retryable=False,
                status_code=response.status_code,
            )

        body = response.json()
        order = GatewayOrder(
            order_id=body["id"],
            amount=int(body.get("amount", amount)),
            currency=body.get("currency", currency),
            receipt=body.get("receipt", receipt),
        )
        logger.info("gateway.order_created", order_id=order.order_id, amount=order.amount)
        return order

    async def aclose(self) -> None:
        await self._client.aclose()


def _error_description(response: httpx.Response) -> str:
    try:
        return response.json()["error"]["description"]
    except (ValueError, KeyError, TypeError):
        return response.text[:200]


class SimulatedGateway:
    """PaymentGateway that never leaves the process."""

    provider = "simulated"

    def __init__(self) -> None:
        self.orders: list[GatewayOrder] = []

    async def create_order(self, amount: int, currency: str, receipt: str) -> GatewayOrder:
        order = GatewayOrder(
            order_id="order_" + uuid.uuid4().hex[:14],
            amount=amount,
            currency=currency,
            receipt=receipt,
        )
        self.orders.append(order)
        logger.info(
            "gateway.order_created",
            order_id=order.order_id,
            amount=amount,
            simulated=True,
        )
        return order

    async def aclose(self) -> None:
        return None


def build_gateway(settings: Settings) -> PaymentGateway:
    """Construct the gateway adapter selected by ``gateway_mode``."""
    if settings.gateway_mode == "razorpay":
        logger.info("gateway.configured", mode="razorpay", base_url=settings.gateway_base_url)
        return RazorpayGateway(
            key_id=settings.gateway_key_id,
            key_secret=settings.gateway_key_secret,
            base_url=settings.gateway_base_url,
            timeout_seconds=settings.gateway_timeout_seconds,
        )
    logger.info("gateway.configured", mode="simulated")
    return SimulatedGateway()
