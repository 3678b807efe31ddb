"""Pydantic schemas for contracts.

Terms are entered when the contract is created and are independent of any
offer exchanged during the negotiation.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from wastex.domain.enums import PaymentTerms, QuantityUnit
from wastex.schemas.common import Pagination


class ContractTerms(BaseModel):
    material_type: str = Field(..., min_length=1, max_length=120)
    quantity_value: Decimal = Field(..., gt=0)
    quantity_unit: QuantityUnit
    price_value: Decimal = Field(..., gt=0, description="Unit price")
    currency: str = Field(default="INR", min_length=3, max_length=3)
    total_value: Decimal = Field(..., gt=0)
    delivery_date: date
    payment_terms: PaymentTerms
    quality_specs: str | None = Field(default=None, max_length=5000)
    delivery_location: str | None = Field(default=None, max_length=500)


class CreateContractRequest(BaseModel):
    negotiation_id: uuid.UUID
    title: str = Field(..., min_length=3, max_length=200)
    terms: ContractTerms


class SignContractRequest(BaseModel):
    signature: str = Field(..., min_length=1, max_length=10_000)


class ReasonRequest(BaseModel):
    """Body for cancel and dispute."""

    reason: str = Field(..., min_length=3, max_length=2000)


class PartySignature(BaseModel):
    user_id: uuid.UUID
    company: str
    signed_at: datetime | None
    signer_address: str | None
    tx_hash: str | None


class ContractResponse(BaseModel):
    """Response schema for a contract."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    contract_number: str
    title: str
    negotiation_id: uuid.UUID
    seller: PartySignature
    buyer: PartySignature
    terms: dict
    total_value: Decimal
    currency: str
    status: str
    deployment_status: str
    ledger_address: str | None
    deployment_tx_hash: str | None
    deployment_attempts: int
    deployment_error: str | None
    payment_status: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_contract(cls, contract) -> ContractResponse:  # noqa: ANN001
        def party(prefix: str) -> PartySignature:
            return PartySignature(
                user_id=getattr(contract, f"{prefix}_id"),
                company=getattr(contract, f"{prefix}_company"),
                signed_at=getattr(contract, f"{prefix}_signed_at"),
                signer_address=getattr(contract, f"{prefix}_signer_address"),
                tx_hash=getattr(contract, f"{prefix}_sign_tx_hash"),
            )

        return cls(
            id=contract.id,
            contract_number=contract.contract_number,
            title=contract.title,
            negotiation_id=contract.negotiation_id,
            seller=party("seller"),
            buyer=party("buyer"),
            terms=contract.terms,
            total_value=contract.total_value,
            currency=contract.currency,
            status=contract.status,
            deployment_status=contract.deployment_status,
            ledger_address=contract.ledger_address,
            deployment_tx_hash=contract.deployment_tx_hash,
            deployment_attempts=contract.deployment_attempts,
            deployment_error=contract.deployment_error,
            payment_status=contract.payment_status,
            created_at=contract.created_at,
            updated_at=contract.updated_at,
        )


class ContractEventResponse(BaseModel):
    """Response schema for an audit event."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: uuid.UUID
    contract_id: uuid.UUID
    event_type: str
    old_status: str | None
    new_status: str
    actor: str
    metadata: dict | None = Field(default=None, validation_alias="metadata_json")
    created_at: datetime


class ContractStatusResponse(BaseModel):
    """Lightweight status check response."""

    contract_id: uuid.UUID
    contract_number: str
    status: str
    deployment_status: str
    payment_status: str
    seller_signed: bool
    buyer_signed: bool
    allowed_events: list[str] = Field(
        description="State machine events that can fire from the current status"
    )


class ContractListResponse(BaseModel):
    """Contracts visible to the caller, newest first."""

    contracts: list[ContractResponse]
    pagination: Pagination
