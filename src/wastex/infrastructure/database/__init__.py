"""Database infrastructure - engine, ORM models, and repositories."""

from wastex.infrastructure.database.engine import (
    build_engine,
    close_db,
    get_async_session,
    get_session_factory,
    init_db,
    session_scope,
)
from wastex.infrastructure.database.orm_models import (
    Base,
    Contract,
    ContractEvent,
    MaterialRequest,
    Negotiation,
    NegotiationMessage,
    Payment,
    PaymentTimelineEntry,
    Shipment,
    User,
    WasteListing,
)
from wastex.infrastructure.database.repositories import (
    ContractEventRepository,
    ContractRepository,
    ListingRepository,
    MaterialRequestRepository,
    NegotiationRepository,
    PaymentRepository,
    ShipmentRepository,
    UserRepository,
)

__all__ = [
    "Base",
    "Contract",
    "ContractEvent",
    "MaterialRequest",
    "Negotiation",
    "NegotiationMessage",
    "Payment",
    "PaymentTimelineEntry",
    "Shipment",
    "User",
    "WasteListing",
    "ContractEventRepository",
    "ContractRepository",
    "ListingRepository",
    "MaterialRequestRepository",
    "NegotiationRepository",
    "PaymentRepository",
    "ShipmentRepository",
    "UserRepository",
    "build_engine",
    "close_db",
    "get_async_session",
    "get_session_factory",
    "init_db",
    "session_scope",
]
