"""Payment Service - escrow custody of a contract's funds.

Lifecycle:
    create_order      buyer opens a gateway order for a signed contract
    verify            gateway signature checked; funds held in escrow and
                      the contract moves to ``executed``
    confirm_delivery  buyer records delivery and quality; releases when
                      every condition holds
    release           admin, condition-based or timeout-based payout to the
                      seller; the contract moves to ``completed``
    refund            admin returns held funds; the contract is cancelled

The amount split is computed once, when the order is created, and frozen on
the payment row.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from wastex.config import get_settings
from wastex.domain.clock import Clock, utcnow
from wastex.domain.enums import (
    ContractPaymentStatus,
    ContractStatus,
    PaymentStatus,
    ShipmentStatus,
    TimelineEntryType,
)
from wastex.domain.exceptions import (
    AuthorizationError,
    ContractNotFoundError,
    DuplicatePaymentError,
    PaymentAlreadyReleasedError,
    PaymentNotFoundError,
    StateError,
)
from wastex.domain.paging import DEFAULT_PAGE_SIZE, Page, check_page
from wastex.domain.settlement import (
    auto_release_due,
    calculate_fee_breakdown,
    compute_auto_release_date,
    signature_matches,
    to_minor_units,
)
from wastex.domain.state_machine import PaymentStateMachine, fire_transition
from wastex.infrastructure.database.orm_models import Payment
from wastex.infrastructure.database.repositories import (
    ContractRepository,
    PaymentRepository,
    ShipmentRepository,
)
from wastex.logging_config import get_logger
from wastex.services.contract_service import ContractService

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from wastex.config import Settings
    from wastex.domain.ports import PaymentGateway
    from wastex.infrastructure.database.orm_models import Contract, User

logger = get_logger(__name__)

SYSTEM_ACTOR = "SYSTEM"
RECEIPT_LENGTH = 10


class PaymentService:
    """Manages escrow payments and drives the contract's settlement states."""

    def __init__(
        self,
        session: AsyncSession,
        gateway: PaymentGateway | None = None,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session = session
        self._gateway = gateway
        self._clock = clock or utcnow
        self._settings = settings or get_settings()
        self._payment_repo = PaymentRepository(session)
        self._contract_repo = ContractRepository(session)
        self._shipment_repo = ShipmentRepository(session)
        self._contracts = ContractService(session, clock=self._clock)

    # ------------------------------------------------------------------
    # Order creation
    # ------------------------------------------------------------------

    async def create_order(self, actor: User, contract_id: uuid.UUID) -> Payment:
        """Open a gateway order for the full contract value.

        The payment row is flushed before the gateway call so the unique
        contract constraint settles a race first; a gateway failure rolls
        the whole unit of work back.
        """
        contract = await self._get_contract_or_raise(contract_id)
        if actor.id != contract.buyer_id:
            raise AuthorizationError("Only the contract's buyer can pay for it")
        if contract.status != ContractStatus.SIGNED:
            raise StateError(f"Contract must be signed before payment (status={contract.status})")
        if await self._payment_repo.get_by_contract(contract.id) is not None:
            raise DuplicatePaymentError(str(contract.id))
        if self._gateway is None:
            raise RuntimeError("PaymentService needs a gateway to create orders")

        breakdown = calculate_fee_breakdown(Decimal(contract.total_value))
        now = self._clock()
        payment = Payment(
            contract_id=contract.id,
            buyer_id=contract.buyer_id,
            seller_id=contract.seller_id,
            amount_total=breakdown.total,
            seller_amount=breakdown.seller_amount,
            platform_fee=breakdown.platform_fee,
            fee_rate=breakdown.rate,
            currency=self._settings.gateway_currency,
            released_amount=Decimal("0"),
            status=PaymentStatus.PENDING.value,
            provider=self._gateway.provider,
            created_at=now,
        )
        payment = await self._payment_repo.create(payment)

        order = await self._gateway.create_order(
            amount=to_minor_units(breakdown.total),
            currency=payment.currency,
            receipt=str(contract.id)[-RECEIPT_LENGTH:],
        )
        payment.gateway_order_id = order.order_id
        await self._payment_repo.add_timeline(
            payment,
            status=TimelineEntryType.PENDING.value,
            description="Payment order created",
            actor=str(actor.id),
            at=now,
        )
        await self._contracts.set_payment_status(contract, ContractPaymentStatus.PENDING)

        logger.info(
            "payment.order_created",
            payment_id=str(payment.id),
            contract_id=str(contract.id),
            order_id=order.order_id,
            total=str(breakdown.total),
            platform_fee=str(breakdown.platform_fee),
        )
        return payment

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    async def verify(
        self,
        actor: User,
        payment_id: uuid.UUID,
        gateway_payment_id: str,
        signature: str,
    ) -> Payment:
        """Check the gateway signature and take custody of the funds.

        A mismatch is not raised: the payment is marked ``failed`` and
        returned so the failure is persisted. Callers inspect ``status``.
        """
        payment = await self._get_payment_or_raise(payment_id)
        if not actor.is_admin and actor.id != payment.buyer_id:
            raise AuthorizationError("Only the buyer can verify this payment")
        if payment.status != PaymentStatus.PENDING:
            raise StateError(f"Only pending payments can be verified (status={payment.status})")
        contract = await self._get_contract_or_raise(payment.contract_id)
        if contract.status != ContractStatus.SIGNED:
            raise StateError(f"Contract is {contract.status}; payment cannot be taken")

        now = self._clock()
        payment.gateway_payment_id = gateway_payment_id

        if not signature_matches(
            self._settings.gateway_key_secret,
            payment.gateway_order_id or "",
            gateway_payment_id,
            signature,
        ):
            new_status = fire_transition(PaymentStateMachine, payment.status, "verification_failed")
            await self._payment_repo.update_status(payment, new_status)
            await self._payment_repo.add_timeline(
                payment,
                status=TimelineEntryType.FAILED.value,
                description="Payment verification failed: signature mismatch",
                actor=str(actor.id),
                at=now,
            )
            await self._contracts.set_payment_status(contract, ContractPaymentStatus.FAILED)
            logger.warning(
                "payment.verification_failed",
                payment_id=str(payment.id),
                contract_id=str(contract.id),
            )
            return payment

        new_status = fire_transition(PaymentStateMachine, payment.status, "verification_succeeded")
        payment.gateway_signature = signature
        payment.held_at = now
        payment.auto_release_date = compute_auto_release_date(
            now, self._settings.escrow_auto_release_days
        )
        await self._payment_repo.update_status(payment, new_status)
        await self._payment_repo.add_timeline(
            payment,
            status=TimelineEntryType.HELD_IN_ESCROW.value,
            description="Payment verified and held in escrow",
            actor=str(actor.id),
            at=now,
        )
        await self._contracts.record_payment_verified(contract, payment.id)

        logger.info(
            "payment.held_in_escrow",
            payment_id=str(payment.id),
            contract_id=str(contract.id),
            auto_release_date=payment.auto_release_date.isoformat(),
        )
        return payment

    # ------------------------------------------------------------------
    # Delivery confirmation
    # ------------------------------------------------------------------

    async def confirm_delivery(
        self,
        actor: User,
        payment_id: uuid.UUID,
        quality_approved: bool,
        delivery_confirmed: bool = True,
    ) -> Payment:
        payment = await self._get_payment_or_raise(payment_id)
        if actor.id != payment.buyer_id:
            raise AuthorizationError("Only the buyer can confirm delivery")
        self._require_held(payment)

        shipment = await self._shipment_repo.latest_for_contract(payment.contract_id)
        if shipment is not None and shipment.status == ShipmentStatus.DELIVERED:
            delivery_confirmed = True

        now = self._clock()
        payment.delivery_confirmed = delivery_confirmed
        payment.quality_approved = quality_approved
        await self._payment_repo.add_timeline(
            payment,
            status=TimelineEntryType.DELIVERY_CONFIRMED.value,
            description=(
                f"Delivery {'confirmed' if delivery_confirmed else 'not confirmed'}, "
                f"quality {'approved' if quality_approved else 'not approved'}"
            ),
            actor=str(actor.id),
            at=now,
        )
        logger.info(
            "payment.delivery_confirmed",
            payment_id=str(payment.id),
            delivery_confirmed=delivery_confirmed,
            quality_approved=quality_approved,
        )

        if payment.can_release:
            contract = await self._get_contract_or_raise(payment.contract_id)
            if contract.status == ContractStatus.EXECUTED:
                await self._release(payment, contract, released_by=str(actor.id), trigger="conditions")
        return payment

    # ------------------------------------------------------------------
    # Release & refund
    # ------------------------------------------------------------------

    async def release(self, actor: User | None, payment_id: uuid.UUID) -> Payment:
        """Pay the seller.

        Allowed for an admin, once every release condition holds, or
        strictly after the auto-release date. ``actor`` is None for the
        reconciliation sweep, which relies on the timeout alone.
        """
        payment = await self._get_payment_or_raise(payment_id)
        if actor is not None and not actor.is_admin and actor.id not in (
            payment.buyer_id,
            payment.seller_id,
        ):
            raise AuthorizationError("Not a party to this payment")
        self._require_held(payment)

        is_admin = actor is not None and actor.is_admin
        auto_due = auto_release_due(self._clock(), payment.auto_release_date)
        if is_admin:
            trigger = "admin"
        elif payment.can_release:
            trigger = "conditions"
        elif auto_due:
            trigger = "auto_release"
        else:
            raise AuthorizationError("Release conditions not met and auto-release date not reached")

        contract = await self._get_contract_or_raise(payment.contract_id)
        if contract.status != ContractStatus.EXECUTED:
            raise StateError(f"Contract is {contract.status}; escrow cannot be released")

        released_by = str(actor.id) if actor is not None else SYSTEM_ACTOR
        await self._release(payment, contract, released_by=released_by, trigger=trigger)
        return payment

    async def refund(self, actor: User, payment_id: uuid.UUID, reason: str) -> Payment:
        payment = await self._get_payment_or_raise(payment_id)
        if not actor.is_admin:
            raise AuthorizationError("Only admins can refund a payment")
        self._require_held(payment)
        contract = await self._get_contract_or_raise(payment.contract_id)

        now = self._clock()
        new_status = fire_transition(PaymentStateMachine, payment.status, "refund")
        await self._claim_transition(
            payment,
            new_status,
            refund_reason=reason,
            refunded_at=now,
            refunded_by=str(actor.id),
        )
        await self._payment_repo.add_timeline(
            payment,
            status=TimelineEntryType.REFUNDED.value,
            description=f"Refunded to buyer: {reason}",
            actor=str(actor.id),
            at=now,
        )
        await self._contracts.record_refund(
            contract, payment.id, refunded_by=str(actor.id), reason=reason
        )
        logger.info("payment.refunded", payment_id=str(payment.id), by=str(actor.id))
        return payment

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def list_mine(
        self,
        actor: User,
        status: str | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> Page[Payment]:
        """Payments the actor pays or receives; admins see every payment."""
        check_page(page, limit)
        items, total = await self._payment_repo.list_for_user(
            None if actor.is_admin else actor.id, status, page, limit
        )
        return Page(page=page, limit=limit, total=total, items=items)

    async def get(self, actor: User, payment_id: uuid.UUID) -> Payment:
        payment = await self._get_payment_or_raise(payment_id)
        if not actor.is_admin and actor.id not in (payment.buyer_id, payment.seller_id):
            raise AuthorizationError("Not a party to this payment")
        return payment

    async def get_payment(self, payment_id: uuid.UUID) -> Payment:
        return await self._get_payment_or_raise(payment_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _release(
        self,
        payment: Payment,
        contract: Contract,
        released_by: str,
        trigger: str,
    ) -> None:
        if payment.seller_amount > payment.amount_total:
            raise StateError("Seller amount exceeds the escrowed total")

        now = self._clock()
        new_status = fire_transition(PaymentStateMachine, payment.status, "release")
        await self._claim_transition(
            payment,
            new_status,
            released_at=now,
            released_amount=payment.seller_amount,
        )
        await self._payment_repo.add_timeline(
            payment,
            status=TimelineEntryType.RELEASED_TO_SELLER.value,
            description=f"Released {payment.seller_amount} {payment.currency} to seller ({trigger})",
            actor=released_by,
            at=now,
        )
        await self._contracts.record_escrow_released(contract, payment.id, released_by=released_by)
        logger.info(
            "payment.released",
            payment_id=str(payment.id),
            contract_id=str(contract.id),
            amount=str(payment.seller_amount),
            trigger=trigger,
        )

    async def _claim_transition(self, payment: Payment, new_status: str, **values: object) -> None:
        """Leave ``held_in_escrow`` only if the stored row is still held.

        A concurrent release or refund that committed first leaves the row
        elsewhere; the reloaded status then raises the matching error.
        """
        claimed = await self._payment_repo.transition_status(
            payment, PaymentStatus.HELD_IN_ESCROW.value, new_status, **values
        )
        if not claimed:
            logger.warning(
                "payment.concurrent_transition_lost",
                payment_id=str(payment.id),
                attempted=new_status,
                current=payment.status,
            )
            self._require_held(payment)
            raise StateError(f"Payment {payment.id} changed while being settled")

    def _require_held(self, payment: Payment) -> None:
        if payment.status == PaymentStatus.RELEASED_TO_SELLER:
            raise PaymentAlreadyReleasedError(str(payment.id))
        if payment.status != PaymentStatus.HELD_IN_ESCROW:
            raise StateError(f"Payment is {payment.status}, not held in escrow")

    async def _get_payment_or_raise(self, payment_id: uuid.UUID) -> Payment:
        payment = await self._payment_repo.get_by_id(payment_id)
        if payment is None:
            raise PaymentNotFoundError(str(payment_id))
        return payment

    async def _get_contract_or_raise(self, contract_id: uuid.UUID) -> Contract:
        contract = await self._contract_repo.get_by_id(contract_id)
        if contract is None:
            raise ContractNotFoundError(str(contract_id))
        return contract
