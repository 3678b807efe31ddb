"""Domain layer - pure business logic with zero framework dependencies."""

from wastex.domain.enums import (
    ContractStatus,
    DeploymentStatus,
    NegotiationStatus,
    PartyRole,
    PaymentStatus,
)
from wastex.domain.exceptions import (
    AuthorizationError,
    ConflictError,
    ExchangeError,
    ExternalServiceError,
    NotFoundError,
    StateError,
    ValidationError,
)
from wastex.domain.ports import GatewayOrder, LedgerClient, LedgerDeployment, PaymentGateway
from wastex.domain.state_machine import (
    ContractStateMachine,
    NegotiationStateMachine,
    PaymentStateMachine,
    fire_transition,
)

__all__ = [
    "ContractStatus",
    "DeploymentStatus",
    "NegotiationStatus",
    "PartyRole",
    "PaymentStatus",
    "AuthorizationError",
    "ConflictError",
    "ExchangeError",
    "ExternalServiceError",
    "NotFoundError",
    "StateError",
    "ValidationError",
    "GatewayOrder",
    "LedgerClient",
    "LedgerDeployment",
    "PaymentGateway",
    "ContractStateMachine",
    "NegotiationStateMachine",
    "PaymentStateMachine",
    "fire_transition",
]
