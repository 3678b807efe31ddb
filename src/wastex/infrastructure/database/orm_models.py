"""SQLAlchemy 2.0 ORM models for the WasteEx deal engine.

Tables:
    users                 - parties (external collaborator, read here)
    waste_listings        - seller offers (external collaborator, read here)
    material_requests     - buyer demand plus its derived match list
    negotiations          - bilateral channel between one seller and one buyer
    negotiation_messages  - append-only, ordered message log
    contract_sequences    - per company-pair contract number counter
    contracts             - dual-signed agreement with ledger deployment state
    contract_events       - append-only contract audit trail
    payments              - escrow payment, at most one per contract
    payment_timeline      - append-only payment history
    shipments             - logistics status (external collaborator, read here)

Design decisions:
    - UUID primary keys (Uuid is native on PostgreSQL, CHAR(32) elsewhere).
    - Decimal for money and quantities.
    - JSON columns become JSONB on PostgreSQL.
    - Unique constraints carry the concurrency guarantees: one contract per
      negotiation, one payment per contract, unique contract numbers, one
      sequence row per company pair, ordered message slots.
    - Timestamps are stored in UTC and always loaded timezone-aware.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal  # noqa: TC003 - needed at runtime by SQLAlchemy Mapped[]

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from wastex.domain.enums import (
    ContractPaymentStatus,
    ContractStatus,
    DeploymentStatus,
    ListingStatus,
    NegotiationStatus,
    PartyRole,
    PaymentStatus,
    RequestStatus,
)

JSONType = JSON().with_variant(JSONB(), "postgresql")

MONEY = Numeric(16, 2)
QUANTITY = Numeric(14, 3)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator):
    """Timezone-aware DateTime that comes back aware on every backend.

    SQLite drops tzinfo on the way in; the values we write are always UTC,
    so naive values read back are re-tagged as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):  # noqa: ANN001
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        if value is not None:
            value = value.astimezone(UTC)
        return value

    def process_result_value(self, value, dialect):  # noqa: ANN001
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def _status_check(column: str, values: list[str], name: str) -> CheckConstraint:
    allowed = ", ".join(f"'{v}'" for v in values)
    return CheckConstraint(f"{column} IN ({allowed})", name=name)


# ---------------------------------------------------------------------------
# users
# ---------------------------------------------------------------------------
class User(Base):
    """A registered party. Registration and authentication live elsewhere."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    user_type: Mapped[str] = mapped_column(
        String(10), nullable=False, comment="buyer | seller | admin"
    )
    company_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    ledger_address: Mapped[str | None] = mapped_column(
        String(42), nullable=True, comment="EVM address recorded with signatures"
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        _status_check("user_type", ["buyer", "seller", "admin"], "ck_user_valid_type"),
    )

    @property
    def is_admin(self) -> bool:
        return self.user_type == "admin"

    @property
    def display_company(self) -> str:
        return self.company_name or self.name

    def __repr__(self) -> str:
        return f"<User id={self.id} type={self.user_type} company={self.company_name!r}>"


# ---------------------------------------------------------------------------
# waste_listings
# ---------------------------------------------------------------------------
class WasteListing(Base):
    __tablename__ = "waste_listings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    seller_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(40), nullable=False)
    quantity_value: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    quantity_unit: Mapped[str] = mapped_column(String(10), nullable=False, default="kg")
    price_value: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    city: Mapped[str] = mapped_column(String(80), nullable=False)
    state: Mapped[str | None] = mapped_column(String(80), nullable=True)
    urgency: Mapped[str] = mapped_column(String(10), nullable=False)
    frequency: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=ListingStatus.ACTIVE.value
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        Index("idx_listing_category_status", "category", "status"),
        Index("idx_listing_city", "city"),
    )

    def __repr__(self) -> str:
        return f"<WasteListing id={self.id} category={self.category!r} status={self.status}>"


# ---------------------------------------------------------------------------
# material_requests
# ---------------------------------------------------------------------------
class MaterialRequest(Base):
    """Buyer demand. ``matches`` is derived and replaced wholesale on recompute."""

    __tablename__ = "material_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    buyer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    material_type: Mapped[str] = mapped_column(String(120), nullable=False)
    category: Mapped[str] = mapped_column(String(40), nullable=False)
    quantity_value: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    quantity_unit: Mapped[str] = mapped_column(String(10), nullable=False)
    frequency: Mapped[str] = mapped_column(String(10), nullable=False)
    budget_min: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    budget_max: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    preferred_cities: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    state: Mapped[str | None] = mapped_column(String(80), nullable=True)
    quality_grade: Mapped[str] = mapped_column(String(20), nullable=False)
    urgency: Mapped[str] = mapped_column(String(10), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=RequestStatus.ACTIVE.value
    )
    matches: Mapped[list] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        comment="Derived ranking: [{listing_id, score, reasons}]",
    )
    matches_computed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        CheckConstraint("quantity_value > 0", name="ck_request_positive_quantity"),
        CheckConstraint("budget_max > 0", name="ck_request_positive_budget"),
        Index("idx_request_buyer", "buyer_id"),
        Index("idx_request_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<MaterialRequest id={self.id} category={self.category!r} matches={len(self.matches or [])}>"


# ---------------------------------------------------------------------------
# negotiations + negotiation_messages
# ---------------------------------------------------------------------------
class Negotiation(Base):
    """Bilateral channel. Roles are fixed at creation."""

    __tablename__ = "negotiations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    seller_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    buyer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    origin_type: Mapped[str] = mapped_column(String(10), nullable=False)
    listing_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("waste_listings.id"), nullable=True
    )
    request_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("material_requests.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=NegotiationStatus.ACTIVE.value
    )
    current_offer: Mapped[dict | None] = mapped_column(
        JSONType,
        nullable=True,
        default=None,
        comment="Latest offer; advisory only, never copied into contract terms",
    )
    last_activity: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    messages: Mapped[list[NegotiationMessage]] = relationship(
        "NegotiationMessage",
        back_populates="negotiation",
        cascade="all, delete-orphan",
        order_by="NegotiationMessage.sequence.asc()",
        lazy="selectin",
    )
    contract: Mapped[Contract | None] = relationship(
        "Contract",
        back_populates="negotiation",
        uselist=False,
        lazy="selectin",
    )

    __table_args__ = (
        _status_check(
            "status",
            [s.value for s in NegotiationStatus],
            "ck_negotiation_valid_status",
        ),
        CheckConstraint("seller_id <> buyer_id", name="ck_negotiation_distinct_parties"),
        Index("idx_negotiation_seller", "seller_id"),
        Index("idx_negotiation_buyer", "buyer_id"),
        Index("idx_negotiation_activity", "status", "last_activity"),
    )

    def role_of(self, user_id: uuid.UUID) -> PartyRole | None:
        if user_id == self.seller_id:
            return PartyRole.SELLER
        if user_id == self.buyer_id:
            return PartyRole.BUYER
        return None

    def __repr__(self) -> str:
        return f"<Negotiation id={self.id} status={self.status} messages={len(self.messages)}>"


class NegotiationMessage(Base):
    """One message in a negotiation. Rows are never updated except read receipts."""

    __tablename__ = "negotiation_messages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    negotiation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("negotiations.id", ondelete="CASCADE"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(
        Integer, nullable=False, comment="1-based position in the log"
    )
    sender_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[str] = mapped_column(String(20), nullable=False, default="text")
    offer: Mapped[dict | None] = mapped_column(JSONType, nullable=True, default=None)
    read_by: Mapped[dict] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        comment="user id -> ISO timestamp of first read",
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    negotiation: Mapped[Negotiation] = relationship("Negotiation", back_populates="messages")

    __table_args__ = (
        UniqueConstraint("negotiation_id", "sequence", name="uq_message_sequence"),
        Index("idx_message_negotiation", "negotiation_id"),
    )

    def __repr__(self) -> str:
        return f"<NegotiationMessage #{self.sequence} type={self.message_type}>"


# ---------------------------------------------------------------------------
# contract_sequences
# ---------------------------------------------------------------------------
class ContractSequence(Base):
    """Last issued contract number suffix for one exact company pair."""

    __tablename__ = "contract_sequences"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    seller_company: Mapped[str] = mapped_column(String(200), nullable=False)
    buyer_company: Mapped[str] = mapped_column(String(200), nullable=False)
    last_sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("seller_company", "buyer_company", name="uq_sequence_company_pair"),
    )


# ---------------------------------------------------------------------------
# contracts
# ---------------------------------------------------------------------------
class Contract(Base):
    """A dual-signed agreement created from exactly one negotiation."""

    __tablename__ = "contracts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    contract_number: Mapped[str] = mapped_column(String(60), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    negotiation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("negotiations.id"), nullable=False, unique=True
    )
    listing_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("waste_listings.id"), nullable=True
    )

    # --- Seller party ---
    seller_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    seller_company: Mapped[str] = mapped_column(String(200), nullable=False)
    seller_signed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    seller_signature: Mapped[str | None] = mapped_column(Text, nullable=True)
    seller_signer_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    seller_sign_tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)

    # --- Buyer party ---
    buyer_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    buyer_company: Mapped[str] = mapped_column(String(200), nullable=False)
    buyer_signed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    buyer_signature: Mapped[str | None] = mapped_column(Text, nullable=True)
    buyer_signer_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    buyer_sign_tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)

    # --- Terms (entered at creation, independent of any chat offer) ---
    terms: Mapped[dict] = mapped_column(JSONType, nullable=False)
    total_value: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")

    status: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default=ContractStatus.DRAFT.value,
        comment="Guarded by ContractStateMachine",
    )

    # --- Ledger deployment saga ---
    deployment_status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=DeploymentStatus.PENDING.value
    )
    ledger_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    deployment_tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    deployment_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deployment_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    deployment_requested_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    deployed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ContractPaymentStatus.NOT_INITIATED.value
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    negotiation: Mapped[Negotiation] = relationship("Negotiation", back_populates="contract")
    events: Mapped[list[ContractEvent]] = relationship(
        "ContractEvent",
        back_populates="contract",
        cascade="all, delete-orphan",
        order_by="ContractEvent.created_at.asc()",
        lazy="selectin",
    )

    __table_args__ = (
        _status_check("status", [s.value for s in ContractStatus], "ck_contract_valid_status"),
        _status_check(
            "deployment_status",
            [s.value for s in DeploymentStatus],
            "ck_contract_valid_deployment",
        ),
        CheckConstraint("total_value > 0", name="ck_contract_positive_total"),
        CheckConstraint("seller_id <> buyer_id", name="ck_contract_distinct_parties"),
        Index("idx_contract_seller", "seller_id", "status"),
        Index("idx_contract_buyer", "buyer_id", "status"),
        Index("idx_contract_deployment", "deployment_status"),
    )

    def role_of(self, user_id: uuid.UUID) -> PartyRole | None:
        if user_id == self.seller_id:
            return PartyRole.SELLER
        if user_id == self.buyer_id:
            return PartyRole.BUYER
        return None

    def signed_at(self, role: PartyRole) -> datetime | None:
        return getattr(self, f"{role.value}_signed_at")

    @property
    def locally_fully_signed(self) -> bool:
        return self.seller_signed_at is not None and self.buyer_signed_at is not None

    def __repr__(self) -> str:
        return (
            f"<Contract {self.contract_number} status={self.status} "
            f"deployment={self.deployment_status}>"
        )


class ContractEvent(Base):
    """Immutable audit record for a contract. APPEND-ONLY."""

    __tablename__ = "contract_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    contract_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False
    )
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    old_status: Mapped[str | None] = mapped_column(String(10), nullable=True)
    new_status: Mapped[str] = mapped_column(String(10), nullable=False)
    actor: Mapped[str] = mapped_column(
        String(64), nullable=False, default="SYSTEM", comment="User id or SYSTEM"
    )
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata", JSONType, nullable=True, default=None
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    contract: Mapped[Contract] = relationship("Contract", back_populates="events")

    __table_args__ = (
        Index("idx_contract_event_contract", "contract_id"),
        Index("idx_contract_event_type", "event_type"),
    )

    def __repr__(self) -> str:
        return f"<ContractEvent {self.event_type} {self.old_status}->{self.new_status}>"


# ---------------------------------------------------------------------------
# payments + payment_timeline
# ---------------------------------------------------------------------------
class Payment(Base):
    """Escrow payment. Amount split is frozen when the order is created."""

    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    contract_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contracts.id"), nullable=False, unique=True
    )
    buyer_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    seller_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)

    # --- Amounts ---
    amount_total: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    seller_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    platform_fee: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    fee_rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    released_amount: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=Decimal("0")
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.PENDING.value,
        comment="Guarded by PaymentStateMachine",
    )

    # --- Gateway ---
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    gateway_order_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    gateway_payment_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    gateway_signature: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # --- Escrow ---
    held_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    auto_release_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    delivery_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    quality_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    dispute_resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    released_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # --- Refund ---
    refund_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    refunded_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    timeline: Mapped[list[PaymentTimelineEntry]] = relationship(
        "PaymentTimelineEntry",
        back_populates="payment",
        cascade="all, delete-orphan",
        order_by="PaymentTimelineEntry.created_at.asc()",
        lazy="selectin",
    )

    __table_args__ = (
        _status_check("status", [s.value for s in PaymentStatus], "ck_payment_valid_status"),
        CheckConstraint("amount_total > 0", name="ck_payment_positive_total"),
        CheckConstraint(
            "seller_amount + platform_fee = amount_total",
            name="ck_payment_split_sums_to_total",
        ),
        CheckConstraint(
            "released_amount >= 0 AND released_amount <= amount_total",
            name="ck_payment_release_bounded",
        ),
        Index("idx_payment_status_release", "status", "auto_release_date"),
        Index("idx_payment_buyer", "buyer_id", "status"),
        Index("idx_payment_seller", "seller_id", "status"),
    )

    @property
    def can_release(self) -> bool:
        """All manual release conditions hold while funds are in escrow."""
        return (
            self.status == PaymentStatus.HELD_IN_ESCROW.value
            and self.delivery_confirmed
            and self.quality_approved
            and self.dispute_resolved
        )

    def __repr__(self) -> str:
        return f"<Payment id={self.id} status={self.status} total={self.amount_total}>"


class PaymentTimelineEntry(Base):
    """APPEND-ONLY payment history."""

    __tablename__ = "payment_timeline"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    payment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("payments.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    actor: Mapped[str] = mapped_column(String(64), nullable=False, default="SYSTEM")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    payment: Mapped[Payment] = relationship("Payment", back_populates="timeline")

    __table_args__ = (Index("idx_timeline_payment", "payment_id"),)

    def __repr__(self) -> str:
        return f"<PaymentTimelineEntry {self.status}: {self.description!r}>"


# ---------------------------------------------------------------------------
# shipments
# ---------------------------------------------------------------------------
class Shipment(Base):
    """Logistics record owned by the logistics module; read-only here."""

    __tablename__ = "shipments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    contract_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contracts.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    tracking_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    __table_args__ = (Index("idx_shipment_contract", "contract_id"),)
