"""Shared test fixtures for the WasteEx deal engine test suite.

Provides:
    - An in-memory SQLite database (aiosqlite) with the full schema
    - A controllable clock, the simulated ledger and gateway
    - Seed helpers for the collaborator tables (users, listings, shipments)
    - A DealBuilder that walks a deal up to a given lifecycle stage
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from wastex.config import Settings
from wastex.domain.enums import (
    Frequency,
    OriginType,
    PaymentTerms,
    QuantityUnit,
    Urgency,
    UserType,
    WasteCategory,
)
from wastex.domain.settlement import compute_gateway_signature
from wastex.infrastructure.database.engine import build_engine
from wastex.infrastructure.database.orm_models import (
    Base,
    Contract,
    Negotiation,
    Payment,
    Shipment,
    User,
    WasteListing,
)
from wastex.infrastructure.gateway import SimulatedGateway
from wastex.infrastructure.ledger import SimulatedLedger
from wastex.services.contract_service import ContractService
from wastex.services.negotiation_service import NegotiationService
from wastex.services.payment_service import PaymentService

START = datetime(2025, 3, 1, 9, 0, tzinfo=UTC)
GATEWAY_SECRET = "test_gateway_secret"


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def contract_terms(total: int | str = 100000, **overrides: object) -> dict:
    terms = {
        "material_type": "HDPE regrind",
        "quantity_value": "4000",
        "quantity_unit": QuantityUnit.KG.value,
        "price_value": "25",
        "currency": "INR",
        "total_value": str(total),
        "delivery_date": "2025-04-15",
        "payment_terms": PaymentTerms.ADVANCE.value,
        "delivery_location": "Pune",
    }
    terms.update(overrides)
    return terms


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine():
    engine = build_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def ledger() -> SimulatedLedger:
    return SimulatedLedger()


@pytest.fixture
def gateway() -> SimulatedGateway:
    return SimulatedGateway()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        gateway_key_secret=GATEWAY_SECRET,
        escrow_auto_release_days=7,
        max_deployment_attempts=3,
        deployment_stale_after_seconds=900,
    )


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------


class Seed:
    """Inserts rows owned by other modules (users, listings, shipments)."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def user(
        self,
        user_type: str = UserType.BUYER.value,
        company: str | None = None,
        name: str | None = None,
    ) -> User:
        user = User(
            name=name or f"{user_type.title()} Contact",
            user_type=user_type,
            company_name=company,
        )
        self.session.add(user)
        await self.session.flush()
        return user

    async def listing(
        self,
        seller: User,
        *,
        category: str = WasteCategory.PLASTIC.value,
        quantity: str = "1000",
        price: str = "25",
        city: str = "Pune",
        urgency: str = Urgency.MEDIUM.value,
        frequency: str = Frequency.MONTHLY.value,
        status: str = "active",
    ) -> WasteListing:
        listing = WasteListing(
            seller_id=seller.id,
            title=f"{category} lot",
            category=category,
            quantity_value=Decimal(quantity),
            quantity_unit=QuantityUnit.KG.value,
            price_value=Decimal(price),
            city=city,
            urgency=urgency,
            frequency=frequency,
            status=status,
        )
        self.session.add(listing)
        await self.session.flush()
        return listing

    async def shipment(self, contract: Contract, status: str) -> Shipment:
        shipment = Shipment(contract_id=contract.id, status=status)
        self.session.add(shipment)
        await self.session.flush()
        return shipment


@pytest.fixture
def seed(session) -> Seed:
    return Seed(session)


# ---------------------------------------------------------------------------
# Deal builder
# ---------------------------------------------------------------------------


class DealBuilder:
    """Walks one seller/buyer deal forward through the real services."""

    def __init__(
        self,
        session: AsyncSession,
        seed: Seed,
        ledger: SimulatedLedger,
        gateway: SimulatedGateway,
        clock: FixedClock,
        settings: Settings,
    ) -> None:
        self.session = session
        self.seed = seed
        self.ledger = ledger
        self.gateway = gateway
        self.clock = clock
        self.settings = settings
        self.seller: User | None = None
        self.buyer: User | None = None
        self.admin: User | None = None

    def contracts(self) -> ContractService:
        return ContractService(self.session, ledger=self.ledger, clock=self.clock)

    def payments(self) -> PaymentService:
        return PaymentService(
            self.session, gateway=self.gateway, clock=self.clock, settings=self.settings
        )

    async def parties(
        self,
        seller_company: str = "Green Earth Recyclers",
        buyer_company: str = "Blue Ocean Plastics",
    ) -> tuple[User, User]:
        self.seller = await self.seed.user(UserType.SELLER.value, company=seller_company)
        self.buyer = await self.seed.user(UserType.BUYER.value, company=buyer_company)
        self.admin = await self.seed.user(UserType.ADMIN.value, name="Ops Admin")
        return self.seller, self.buyer

    async def negotiation(self) -> Negotiation:
        if self.seller is None:
            await self.parties()
        listing = await self.seed.listing(self.seller)
        return await NegotiationService(self.session, clock=self.clock).create(
            self.buyer,
            title="HDPE regrind, monthly",
            counterparty_id=self.seller.id,
            origin_type=OriginType.LISTING.value,
            origin_id=listing.id,
        )

    async def contract(self, total: int = 100000) -> Contract:
        """A deployed contract awaiting signatures."""
        negotiation = await self.negotiation()
        return await self.contracts().create(
            self.buyer,
            negotiation_id=negotiation.id,
            title="HDPE supply agreement",
            terms=contract_terms(total),
        )

    async def signed_contract(self, total: int = 100000) -> Contract:
        contract = await self.contract(total)
        await self.contracts().sign(self.seller, contract.id, "seller-signature")
        return await self.contracts().sign(self.buyer, contract.id, "buyer-signature")

    async def pending_payment(self, total: int = 100000) -> Payment:
        contract = await self.signed_contract(total)
        return await self.payments().create_order(self.buyer, contract.id)

    def signature_for(self, payment: Payment, gateway_payment_id: str = "pay_TEST123") -> str:
        return compute_gateway_signature(
            self.settings.gateway_key_secret, payment.gateway_order_id, gateway_payment_id
        )

    async def held_payment(self, total: int = 100000) -> Payment:
        payment = await self.pending_payment(total)
        return await self.payments().verify(
            self.buyer,
            payment.id,
            gateway_payment_id="pay_TEST123",
            signature=self.signature_for(payment),
        )


@pytest.fixture
def deal(session, seed, ledger, gateway, clock, settings) -> DealBuilder:
    return DealBuilder(session, seed, ledger, gateway, clock, settings)
