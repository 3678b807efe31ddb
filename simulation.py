#!/usr/bin/env python3
"""WasteEx Deal Engine - End-to-End Simulation.

Walks industrial-waste deals through the real services with a seller, a
buyer and an operations admin:

    Scenario 1: Happy Path
        - Seller lists HDPE regrind, buyer posts a material request
        - Buyer opens a negotiation from the best match, offers are exchanged
        - Contract created, deployed, signed by both parties
        - Buyer pays into escrow, confirms delivery -> released to seller

    Scenario 2: Ledger Outage and Bad Signature
        - Ledger deployment fails -> contract stays draft
        - Admin retries the deployment -> contract pending signatures
        - Buyer submits a forged gateway signature -> payment failed

    Scenario 3: Silent Buyer
        - Funds held in escrow, buyer never confirms delivery
        - Reconciliation sweep after the auto-release date pays the seller

    Scenario 4: Dispute and Refund
        - Buyer disputes an executed contract -> escrow frozen
        - Admin refunds the buyer

Usage:
    # Option A: With Docker (PostgreSQL):
    docker compose up -d
    uv run python simulation.py

    # Option B: Without Docker (SQLite in-memory):
    uv run python simulation.py --sqlite

    # Run a specific scenario:
    uv run python simulation.py --sqlite --scenario 3

The ledger and payment gateway are always the in-process simulated adapters,
so no chain node or gateway account is needed.
"""

from __future__ import annotations

import argparse
import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Any

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from wastex.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from sqlalchemy.pool import StaticPool  # noqa: E402

from wastex.config import get_settings  # noqa: E402
from wastex.domain.enums import MessageType, OriginType, UserType  # noqa: E402
from wastex.domain.settlement import compute_gateway_signature  # noqa: E402
from wastex.infrastructure.database.engine import (  # noqa: E402
    build_engine,
    close_db,
    get_session_factory,
    init_db,
    session_scope,
)
from wastex.infrastructure.database.orm_models import Base, User, WasteListing  # noqa: E402
from wastex.infrastructure.gateway import SimulatedGateway  # noqa: E402
from wastex.infrastructure.ledger import SimulatedLedger  # noqa: E402
from wastex.services.contract_service import ContractService  # noqa: E402
from wastex.services.matching_service import MatchingService  # noqa: E402
from wastex.services.negotiation_service import NegotiationService  # noqa: E402
from wastex.services.payment_service import PaymentService  # noqa: E402
from wastex.services.reconciliation import EscrowReconciler  # noqa: E402

# Module-level state
_sqlite_engine = None
_session_factory = None
_ledger = SimulatedLedger()
_gateway = SimulatedGateway()


# ---------------------------------------------------------------------------
# Database lifecycle helpers
# ---------------------------------------------------------------------------
async def init_database(use_sqlite: bool = False) -> None:
    """Initialize the database engine and create tables."""
    global _sqlite_engine, _session_factory

    if use_sqlite:
        from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

        _sqlite_engine = build_engine(
            "sqlite+aiosqlite://",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        _session_factory = async_sessionmaker(
            bind=_sqlite_engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        async with _sqlite_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database.sqlite_initialized")
    else:
        await init_db()
        _session_factory = get_session_factory()


def unit_of_work():
    """One committed transaction against whichever database is active."""
    return session_scope(_session_factory)


async def shutdown_database() -> None:
    """Close database connections."""
    global _sqlite_engine, _session_factory

    if _sqlite_engine is not None:
        await _sqlite_engine.dispose()
        _sqlite_engine = None
    else:
        await close_db()
    _session_factory = None


# ---------------------------------------------------------------------------
# Bots
# ---------------------------------------------------------------------------
@dataclass
class Party:
    """A registered company contact acting in the simulation."""

    user: User
    label: str

    @classmethod
    async def register(
        cls,
        session: Any,
        user_type: str,
        company: str | None,
        name: str,
        label: str,
    ) -> Party:
        user = User(name=name, user_type=user_type, company_name=company)
        session.add(user)
        await session.flush()
        return cls(user=user, label=label)

    def say(self, event: str, **kw: Any) -> None:
        logger.info(f"{self.label}: {event}", **kw)


@dataclass
class Cast:
    seller: Party
    buyer: Party
    admin: Party
    listings: list[WasteListing] = field(default_factory=list)


async def register_cast(seller_company: str, buyer_company: str) -> Cast:
    async with unit_of_work() as session:
        cast = Cast(
            seller=await Party.register(
                session, UserType.SELLER.value, seller_company, "Priya Nair", "SELLER"
            ),
            buyer=await Party.register(
                session, UserType.BUYER.value, buyer_company, "Arjun Mehta", "BUYER"
            ),
            admin=await Party.register(session, UserType.ADMIN.value, None, "Ops Desk", "ADMIN"),
        )
        for city, price, quantity in (("Pune", "40000", "1500"), ("Nagpur", "38000", "900")):
            listing = WasteListing(
                seller_id=cast.seller.user.id,
                title=f"HDPE regrind, {city}",
                category="Plastic Waste",
                quantity_value=Decimal(quantity),
                quantity_unit="kg",
                price_value=Decimal(price),
                city=city,
                urgency="high",
                frequency="monthly",
                status="active",
            )
            session.add(listing)
            cast.listings.append(listing)
        await session.flush()
    return cast


async def negotiate_and_contract(cast: Cast, total: Decimal, listing: WasteListing) -> str:
    """Open a negotiation from ``listing``, trade offers, create the contract."""
    async with unit_of_work() as session:
        negotiations = NegotiationService(session)
        negotiation = await negotiations.create(
            cast.buyer.user,
            title=listing.title,
            counterparty_id=cast.seller.user.id,
            origin_type=OriginType.LISTING.value,
            origin_id=listing.id,
        )
        await negotiations.post_message(
            cast.buyer.user,
            negotiation.id,
            "Can you do 4 tonnes a month at Rs 24/kg?",
            message_type=MessageType.OFFER.value,
            offer={"price": "24", "quantity": "4000"},
        )
        await negotiations.post_message(
            cast.seller.user,
            negotiation.id,
            "Rs 25/kg, washed and dried, delivered Pune.",
            message_type=MessageType.OFFER.value,
            offer={"price": "25", "quantity": "4000"},
        )
        cast.buyer.say("Negotiation agreed", negotiation_id=str(negotiation.id))

        contract = await ContractService(session, ledger=_ledger).create(
            cast.buyer.user,
            negotiation_id=negotiation.id,
            title="HDPE regrind supply agreement",
            terms={
                "material_type": "HDPE regrind",
                "quantity_value": "4000",
                "quantity_unit": "kg",
                "price_value": "25",
                "currency": "INR",
                "total_value": str(total),
                "delivery_date": "2025-04-15",
                "payment_terms": "advance",
                "delivery_location": "Pune",
            },
        )
        cast.buyer.say(
            "Contract created",
            contract_number=contract.contract_number,
            deployment=contract.deployment_status,
        )
        return str(contract.id)


async def sign_both(cast: Cast, contract_id: str) -> None:
    for party in (cast.seller, cast.buyer):
        async with unit_of_work() as session:
            contract = await ContractService(session, ledger=_ledger).sign(
                party.user, uuid.UUID(contract_id), f"{party.label.lower()}-e-signature"
            )
            party.say("Signed", status=contract.status)


async def pay_into_escrow(cast: Cast, contract_id: str, forge: bool = False) -> str:
    settings = get_settings()
    async with unit_of_work() as session:
        payments = PaymentService(session, gateway=_gateway)
        payment = await payments.create_order(cast.buyer.user, uuid.UUID(contract_id))
        cast.buyer.say(
            "Order opened",
            order_id=payment.gateway_order_id,
            total=str(payment.amount_total),
            platform_fee=str(payment.platform_fee),
        )
        payment_id = payment.id
        order_id = payment.gateway_order_id

    signature = compute_gateway_signature(settings.gateway_key_secret, order_id, "pay_SIM0001")
    if forge:
        signature = "0" * len(signature)

    async with unit_of_work() as session:
        payment = await PaymentService(session).verify(
            cast.buyer.user, payment_id, gateway_payment_id="pay_SIM0001", signature=signature
        )
        cast.buyer.say("Payment verified", status=payment.status)
    return str(payment_id)


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    """Print a prominent banner."""
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    """Print a section header."""
    print(f"\n--- {text} ---\n")


async def print_audit_trail(cast: Cast, contract_id: str) -> None:
    async with unit_of_work() as session:
        events = await ContractService(session).get_events(cast.admin.user, uuid.UUID(contract_id))
    print("\n  Audit trail:")
    for i, evt in enumerate(events, 1):
        old = evt.old_status or "-"
        print(f"    {i}. [{evt.event_type}] {old} -> {evt.new_status} (by {evt.actor})")
    print()


async def print_payment(payment_id: str) -> None:
    async with unit_of_work() as session:
        payment = await PaymentService(session).get_payment(uuid.UUID(payment_id))
    print(f"  Payment {payment.status}: total {payment.amount_total} {payment.currency}, "
          f"seller {payment.seller_amount}, fee {payment.platform_fee}")
    for entry in payment.timeline:
        print(f"    - {entry.status}: {entry.description}")
    print()


# ===========================================================================
# Scenario 1: Happy Path
# ===========================================================================
async def scenario_1_happy_path() -> None:
    banner("SCENARIO 1: Happy Path - Request, Negotiate, Sign, Pay, Deliver")
    cast = await register_cast("Green Earth Recyclers", "Blue Ocean Plastics")

    section("Step 1: Buyer posts a material request")
    async with unit_of_work() as session:
        request = await MatchingService(session).create_material_request(
            cast.buyer.user,
            title="HDPE regrind for blow moulding",
            material_type="HDPE regrind",
            category="Plastic Materials",
            quantity_value=Decimal("1000"),
            quantity_unit="kg",
            frequency="monthly",
            budget_max=Decimal("50000"),
            quality_grade="Grade A",
            urgency="high",
            preferred_cities=["Pune", "Mumbai"],
        )
        for match in request.matches:
            print(f"  match {match['listing_id'][:8]} score={match['score']} "
                  f"({'; '.join(match['reasons'])})")
        best = next(
            listing for listing in cast.listings if str(listing.id) == request.matches[0]["listing_id"]
        )

    section("Step 2: Negotiate and create the contract")
    contract_id = await negotiate_and_contract(cast, Decimal("100000"), best)

    section("Step 3: Both parties sign")
    await sign_both(cast, contract_id)

    section("Step 4: Buyer pays into escrow")
    payment_id = await pay_into_escrow(cast, contract_id)

    section("Step 5: Buyer confirms delivery and quality")
    async with unit_of_work() as session:
        payment = await PaymentService(session).confirm_delivery(
            cast.buyer.user, uuid.UUID(payment_id), quality_approved=True
        )
        cast.seller.say("Escrow outcome", status=payment.status, amount=str(payment.released_amount))

    await print_payment(payment_id)
    await print_audit_trail(cast, contract_id)


# ===========================================================================
# Scenario 2: Ledger outage and forged signature
# ===========================================================================
async def scenario_2_outage_and_forgery() -> None:
    banner("SCENARIO 2: Ledger Outage, Admin Retry, Forged Payment Signature")
    cast = await register_cast("Shakti Metals", "Deccan Polymers")

    section("Step 1: Deployment fails")
    _ledger.fail_next()
    contract_id = await negotiate_and_contract(cast, Decimal("10000"), cast.listings[0])

    section("Step 2: Admin retries the deployment")
    async with unit_of_work() as session:
        contract = await ContractService(session, ledger=_ledger).retry_deployment(
            uuid.UUID(contract_id), actor=cast.admin.user
        )
        cast.admin.say(
            "Deployment retried",
            status=contract.status,
            attempts=contract.deployment_attempts,
        )

    section("Step 3: Sign, then pay with a forged signature")
    await sign_both(cast, contract_id)
    payment_id = await pay_into_escrow(cast, contract_id, forge=True)

    await print_payment(payment_id)
    await print_audit_trail(cast, contract_id)


# ===========================================================================
# Scenario 3: Silent buyer, auto-release
# ===========================================================================
async def scenario_3_auto_release() -> None:
    banner("SCENARIO 3: Silent Buyer - Auto-Release After the Holding Period")
    cast = await register_cast("Kaveri Paper Mills", "Sahyadri Packaging")

    contract_id = await negotiate_and_contract(cast, Decimal("200000"), cast.listings[0])
    await sign_both(cast, contract_id)
    payment_id = await pay_into_escrow(cast, contract_id)

    section("Reconciliation sweep, eight days later")
    async with unit_of_work() as session:
        payment = await PaymentService(session).get_payment(uuid.UUID(payment_id))
        later = payment.auto_release_date + timedelta(days=1)
    report = await EscrowReconciler(_session_factory, _ledger).sweep(now=later)
    print(f"  Sweep report: {report.to_dict()}")

    await print_payment(payment_id)
    await print_audit_trail(cast, contract_id)


# ===========================================================================
# Scenario 4: Dispute and refund
# ===========================================================================
async def scenario_4_dispute_refund() -> None:
    banner("SCENARIO 4: Dispute and Admin Refund")
    cast = await register_cast("Narmada Textiles", "Indus Yarns")

    contract_id = await negotiate_and_contract(cast, Decimal("50000"), cast.listings[0])
    await sign_both(cast, contract_id)
    payment_id = await pay_into_escrow(cast, contract_id)

    section("Buyer disputes the shipment")
    async with unit_of_work() as session:
        contract = await ContractService(session).raise_dispute(
            cast.buyer.user, uuid.UUID(contract_id), "Bales arrived wet and contaminated"
        )
        cast.buyer.say("Dispute raised", status=contract.status)

    section("Admin refunds the buyer")
    async with unit_of_work() as session:
        payment = await PaymentService(session).refund(
            cast.admin.user, uuid.UUID(payment_id), "Quality dispute upheld"
        )
        cast.admin.say("Refunded", status=payment.status)

    await print_payment(payment_id)
    await print_audit_trail(cast, contract_id)


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS = {
    1: scenario_1_happy_path,
    2: scenario_2_outage_and_forgery,
    3: scenario_3_auto_release,
    4: scenario_4_dispute_refund,
}


async def run(scenario: int = 0, use_sqlite: bool = False) -> None:
    await init_database(use_sqlite=use_sqlite)
    try:
        print("\n" + "#" * 70)
        print("  WASTEEX DEAL ENGINE - SIMULATION")
        print(f"  Database: {'SQLite (in-memory)' if use_sqlite else 'PostgreSQL'}")
        print("#" * 70 + "\n")

        if scenario == 0:
            for runner in SCENARIOS.values():
                await runner()
        elif scenario in SCENARIOS:
            await SCENARIOS[scenario]()
        else:
            print(f"Unknown scenario {scenario}. Available: {', '.join(map(str, SCENARIOS))}")
            return

        print("\n" + "=" * 70)
        print("  ALL SCENARIOS COMPLETED")
        print("=" * 70 + "\n")
    finally:
        await shutdown_database()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="WasteEx Deal Engine Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1-4). Default: run all.",
    )
    parser.add_argument(
        "--sqlite",
        action="store_true",
        help="Use SQLite in-memory instead of PostgreSQL (no Docker needed).",
    )
    args = parser.parse_args()
    asyncio.run(run(scenario=args.scenario, use_sqlite=args.sqlite))
