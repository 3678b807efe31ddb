"""Pydantic schemas for negotiations and their messages."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from wastex.domain.enums import MessageType, NegotiationStatus, OriginType
from wastex.schemas.common import Pagination


class Offer(BaseModel):
    """Structured offer attached to a message. Advisory only."""

    price: Decimal = Field(..., gt=0)
    quantity: Decimal | None = Field(default=None, gt=0)
    delivery_date: date | None = None
    terms: str | None = Field(default=None, max_length=2000)


class CreateNegotiationRequest(BaseModel):
    title: str = Field(..., min_length=3, max_length=200)
    counterparty_id: uuid.UUID
    origin_type: OriginType
    origin_id: uuid.UUID = Field(..., description="Listing or material request id")


class PostMessageRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=10_000)
    message_type: MessageType = MessageType.TEXT
    offer: Offer | None = None

    @model_validator(mode="after")
    def _offer_needs_payload(self) -> PostMessageRequest:
        if self.message_type == MessageType.OFFER and self.offer is None:
            raise ValueError("offer messages require an offer payload")
        return self


class UpdateNegotiationStatusRequest(BaseModel):
    status: NegotiationStatus


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    sequence: int
    sender_id: uuid.UUID
    content: str
    message_type: str
    offer: dict | None
    read_by: dict[str, str]
    created_at: datetime


class NegotiationResponse(BaseModel):
    """Response schema for a negotiation with its full message log."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    seller_id: uuid.UUID
    buyer_id: uuid.UUID
    origin_type: str
    listing_id: uuid.UUID | None
    request_id: uuid.UUID | None
    status: str
    current_offer: dict | None
    last_activity: datetime
    messages: list[MessageResponse]
    unread_counts: dict[str, int] = Field(default_factory=dict)
    contract_id: uuid.UUID | None = None
    created_at: datetime


class MarkReadResponse(BaseModel):
    negotiation_id: uuid.UUID
    marked: int


class NegotiationListResponse(BaseModel):
    """Negotiations visible to the caller, most recently active first."""

    negotiations: list[NegotiationResponse]
    pagination: Pagination
