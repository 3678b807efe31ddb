"""Pydantic schemas for escrow payments."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from wastex.schemas.common import Pagination


class CreateOrderRequest(BaseModel):
    contract_id: uuid.UUID


class VerifyPaymentRequest(BaseModel):
    """Values the gateway's checkout hands back to the buyer."""

    gateway_payment_id: str = Field(..., min_length=1, max_length=64)
    signature: str = Field(..., min_length=1, max_length=128)


class ConfirmDeliveryRequest(BaseModel):
    quality_approved: bool
    delivery_confirmed: bool = True


class RefundRequest(BaseModel):
    reason: str = Field(..., min_length=3, max_length=2000)


class TimelineEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: str
    description: str
    actor: str
    created_at: datetime


class PaymentResponse(BaseModel):
    """Response schema for a payment, timeline included."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    contract_id: uuid.UUID
    buyer_id: uuid.UUID
    seller_id: uuid.UUID
    amount_total: Decimal
    seller_amount: Decimal
    platform_fee: Decimal
    fee_rate: Decimal
    currency: str
    released_amount: Decimal
    status: str
    provider: str
    gateway_order_id: str | None
    gateway_payment_id: str | None
    held_at: datetime | None
    auto_release_date: datetime | None
    delivery_confirmed: bool
    quality_approved: bool
    dispute_resolved: bool
    released_at: datetime | None
    refund_reason: str | None
    refunded_at: datetime | None
    timeline: list[TimelineEntryResponse]
    created_at: datetime


class OrderResponse(BaseModel):
    """What the buyer's checkout needs to open the gateway widget."""

    payment: PaymentResponse
    order_id: str
    amount_minor: int = Field(description="Amount in paise")
    currency: str
    key_id: str


class PaymentListResponse(BaseModel):
    """Payments visible to the caller, newest first."""

    payments: list[PaymentResponse]
    pagination: Pagination
