"""Pydantic API schemas."""

from wastex.schemas.common import ErrorResponse, HealthResponse
from wastex.schemas.contract import (
    ContractEventResponse,
    ContractResponse,
    ContractStatusResponse,
    ContractTerms,
    CreateContractRequest,
    ReasonRequest,
    SignContractRequest,
)
from wastex.schemas.matching import CreateMaterialRequest, MaterialRequestResponse
from wastex.schemas.negotiation import (
    CreateNegotiationRequest,
    MarkReadResponse,
    NegotiationResponse,
    Offer,
    PostMessageRequest,
    UpdateNegotiationStatusRequest,
)
from wastex.schemas.payment import (
    ConfirmDeliveryRequest,
    CreateOrderRequest,
    OrderResponse,
    PaymentResponse,
    RefundRequest,
    VerifyPaymentRequest,
)

__all__ = [
    "ConfirmDeliveryRequest",
    "ContractEventResponse",
    "ContractResponse",
    "ContractStatusResponse",
    "ContractTerms",
    "CreateContractRequest",
    "CreateMaterialRequest",
    "CreateNegotiationRequest",
    "CreateOrderRequest",
    "ErrorResponse",
    "HealthResponse",
    "MarkReadResponse",
    "MaterialRequestResponse",
    "NegotiationResponse",
    "Offer",
    "OrderResponse",
    "PaymentResponse",
    "PostMessageRequest",
    "ReasonRequest",
    "RefundRequest",
    "SignContractRequest",
    "UpdateNegotiationStatusRequest",
    "VerifyPaymentRequest",
]
