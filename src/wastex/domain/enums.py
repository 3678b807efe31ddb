"""Domain enumerations for the WasteEx deal engine.

These enums define the canonical states and vocabularies used throughout the
system. They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

import enum


class UserType(enum.StrEnum):
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"


class PartyRole(enum.StrEnum):
    """Fixed role a user plays inside one negotiation or contract."""

    SELLER = "seller"
    BUYER = "buyer"


# ---------------------------------------------------------------------------
# Catalog vocabulary (requests and listings)
# ---------------------------------------------------------------------------


class MaterialCategory(enum.StrEnum):
    """Categories a buyer can request."""

    PLASTIC = "Plastic Materials"
    METAL = "Metal Materials"
    PAPER = "Paper Materials"
    TEXTILE = "Textile Materials"
    CHEMICAL = "Chemical Materials"
    ELECTRONIC = "Electronic Materials"
    RUBBER = "Rubber Materials"
    GLASS = "Glass Materials"
    WOOD = "Wood Materials"
    ORGANIC = "Organic Materials"


class WasteCategory(enum.StrEnum):
    """Categories a seller lists waste under."""

    PLASTIC = "Plastic Waste"
    METAL = "Metal Scrap"
    PAPER = "Paper Waste"
    TEXTILE = "Textile Waste"
    CHEMICAL = "Chemical Waste"
    ELECTRONIC = "Electronic Waste"
    RUBBER = "Rubber Waste"
    GLASS = "Glass Waste"
    WOOD = "Wood Waste"
    ORGANIC = "Organic Waste"


class QuantityUnit(enum.StrEnum):
    KG = "kg"
    TONNES = "tonnes"
    LITERS = "liters"
    PIECES = "pieces"
    CUBIC_METRES = "m3"


class Urgency(enum.StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Frequency(enum.StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ONE_TIME = "one-time"


class QualityGrade(enum.StrEnum):
    GRADE_A = "Grade A"
    GRADE_B = "Grade B"
    GRADE_C = "Grade C"
    INDUSTRIAL = "Industrial Grade"
    FOOD = "Food Grade"
    MEDICAL = "Medical Grade"


class RequestStatus(enum.StrEnum):
    ACTIVE = "active"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class ListingStatus(enum.StrEnum):
    ACTIVE = "active"
    SOLD = "sold"
    INACTIVE = "inactive"


# ---------------------------------------------------------------------------
# Negotiation
# ---------------------------------------------------------------------------


class NegotiationStatus(enum.StrEnum):
    """Lifecycle states of a negotiation (guarded by NegotiationStateMachine)."""

    ACTIVE = "active"
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OriginType(enum.StrEnum):
    """Entity a negotiation was opened from; decides participant roles."""

    LISTING = "listing"
    REQUEST = "request"


class MessageType(enum.StrEnum):
    TEXT = "text"
    FILE = "file"
    OFFER = "offer"
    PRICE_DISCUSSION = "price-discussion"
    TERMS_DISCUSSION = "terms-discussion"


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


class ContractStatus(enum.StrEnum):
    """Lifecycle states of a contract.

    State transitions are enforced by ContractStateMachine.
    See domain/state_machine.py for the transition table.
    """

    DRAFT = "draft"
    PENDING = "pending"
    SIGNED = "signed"
    EXECUTED = "executed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class DeploymentStatus(enum.StrEnum):
    """Saga sub-state of the contract's ledger counterpart."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class PaymentTerms(enum.StrEnum):
    ADVANCE = "advance"
    COD = "cod"
    NET_15 = "net-15"
    NET_30 = "net-30"
    NET_45 = "net-45"


class ContractEventType(enum.StrEnum):
    """Actions recorded in the append-only contract_events table."""

    CONTRACT_CREATED = "CONTRACT_CREATED"
    DEPLOYMENT_CONFIRMED = "DEPLOYMENT_CONFIRMED"
    DEPLOYMENT_FAILED = "DEPLOYMENT_FAILED"
    CONTRACT_SIGNED = "CONTRACT_SIGNED"
    CONTRACT_FULLY_SIGNED = "CONTRACT_FULLY_SIGNED"
    CONTRACT_EXECUTED = "CONTRACT_EXECUTED"
    CONTRACT_COMPLETED = "CONTRACT_COMPLETED"
    CONTRACT_CANCELLED = "CONTRACT_CANCELLED"
    DISPUTE_RAISED = "DISPUTE_RAISED"


# ---------------------------------------------------------------------------
# Payment
# ---------------------------------------------------------------------------


class PaymentStatus(enum.StrEnum):
    """Lifecycle states of an escrow payment (guarded by PaymentStateMachine)."""

    PENDING = "pending"
    HELD_IN_ESCROW = "held_in_escrow"
    RELEASED_TO_SELLER = "released_to_seller"
    REFUNDED = "refunded"
    FAILED = "failed"


class ContractPaymentStatus(enum.StrEnum):
    """Payment progress mirrored onto the contract for quick reads."""

    NOT_INITIATED = "not_initiated"
    PENDING = "pending"
    HELD_IN_ESCROW = "held_in_escrow"
    RELEASED_TO_SELLER = "released_to_seller"
    REFUNDED = "refunded"
    FAILED = "failed"


class TimelineEntryType(enum.StrEnum):
    """Entries written to a payment's timeline."""

    PENDING = "pending"
    FAILED = "failed"
    HELD_IN_ESCROW = "held_in_escrow"
    DELIVERY_CONFIRMED = "delivery_confirmed"
    DISPUTE_RAISED = "dispute_raised"
    RELEASED_TO_SELLER = "released_to_seller"
    REFUNDED = "refunded"


class ShipmentStatus(enum.StrEnum):
    SCHEDULED = "scheduled"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
