"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility). The only
exception is a SAVEPOINT around inserts that may lose a uniqueness race,
so the surrounding transaction survives the collision.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError

from wastex.domain.enums import (
    ContractStatus,
    DeploymentStatus,
    ListingStatus,
    PaymentStatus,
)
from wastex.domain.exceptions import (
    ContractNumberCollisionError,
    DuplicatePaymentError,
    MessageSequenceCollisionError,
)
from wastex.infrastructure.database.orm_models import (
    Contract,
    ContractEvent,
    ContractSequence,
    MaterialRequest,
    Negotiation,
    NegotiationMessage,
    Payment,
    PaymentTimelineEntry,
    Shipment,
    User,
    WasteListing,
)

if TYPE_CHECKING:
    import uuid

    from sqlalchemy import Select
    from sqlalchemy.ext.asyncio import AsyncSession

    from wastex.domain.enums import ContractEventType, PartyRole

FIRST_CONTRACT_SEQUENCE = 1001


async def _fetch_page(
    session: AsyncSession,
    stmt: Select,
    page: int,
    limit: int,
) -> tuple[list, int]:
    """Run ``stmt`` for one 1-based page; returns the rows and the unpaged total."""
    total = await session.scalar(select(func.count()).select_from(stmt.order_by(None).subquery()))
    result = await session.execute(stmt.offset((page - 1) * limit).limit(limit))
    return list(result.scalars().all()), int(total or 0)


class UserRepository:
    """Read access to parties."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, user_id: uuid.UUID) -> User | None:
        return await self._session.get(User, user_id)


class ListingRepository:
    """Read access to waste listings."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, listing_id: uuid.UUID) -> WasteListing | None:
        return await self._session.get(WasteListing, listing_id)

    async def get_active_by_category(self, category: str) -> list[WasteListing]:
        """Active listings in one waste category, in stable id order."""
        result = await self._session.execute(
            select(WasteListing)
            .where(
                WasteListing.category == category,
                WasteListing.status == ListingStatus.ACTIVE.value,
            )
            .order_by(WasteListing.id.asc())
        )
        return list(result.scalars().all())


class MaterialRequestRepository:
    """Data access for material requests and their derived matches."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, request: MaterialRequest) -> MaterialRequest:
        self._session.add(request)
        await self._session.flush()
        return request

    async def get_by_id(self, request_id: uuid.UUID) -> MaterialRequest | None:
        return await self._session.get(MaterialRequest, request_id)

    async def replace_matches(
        self,
        request: MaterialRequest,
        matches: list[dict],
        computed_at: datetime,
    ) -> MaterialRequest:
        """Overwrite the stored match list; previous results are discarded."""
        request.matches = matches
        request.matches_computed_at = computed_at
        await self._session.flush()
        return request


class NegotiationRepository:
    """Data access for negotiations and their message log."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, negotiation: Negotiation) -> Negotiation:
        self._session.add(negotiation)
        await self._session.flush()
        return negotiation

    async def get_by_id(self, negotiation_id: uuid.UUID) -> Negotiation | None:
        result = await self._session.execute(
            select(Negotiation).where(Negotiation.id == negotiation_id)
        )
        return result.scalar_one_or_none()

    async def list_for_user(
        self,
        user_id: uuid.UUID | None,
        status: str | None,
        page: int,
        limit: int,
    ) -> tuple[list[Negotiation], int]:
        """Negotiations the user takes part in, most recently active first.

        ``user_id=None`` lists every negotiation.
        """
        stmt = select(Negotiation)
        if user_id is not None:
            stmt = stmt.where(
                or_(Negotiation.seller_id == user_id, Negotiation.buyer_id == user_id)
            )
        if status is not None:
            stmt = stmt.where(Negotiation.status == status)
        stmt = stmt.order_by(Negotiation.last_activity.desc(), Negotiation.id.asc())
        return await _fetch_page(self._session, stmt, page, limit)

    async def append_message(
        self,
        negotiation: Negotiation,
        message: NegotiationMessage,
    ) -> NegotiationMessage:
        """Append at the next sequence slot.

        The (negotiation_id, sequence) unique constraint turns a concurrent
        append into MessageSequenceCollisionError instead of a reordered log.
        """
        result = await self._session.execute(
            select(func.coalesce(func.max(NegotiationMessage.sequence), 0)).where(
                NegotiationMessage.negotiation_id == negotiation.id
            )
        )
        message.negotiation_id = negotiation.id
        message.sequence = int(result.scalar_one()) + 1
        try:
            async with self._session.begin_nested():
                self._session.add(message)
        except IntegrityError as err:
            raise MessageSequenceCollisionError(str(negotiation.id)) from err
        await self._session.refresh(negotiation, attribute_names=["messages"])
        return message

    async def touch(
        self,
        negotiation: Negotiation,
        at: datetime,
        current_offer: dict | None = None,
    ) -> Negotiation:
        negotiation.last_activity = at
        if current_offer is not None:
            negotiation.current_offer = current_offer
        await self._session.flush()
        return negotiation

    async def mark_read(
        self,
        negotiation: Negotiation,
        user_id: uuid.UUID,
        at: datetime,
    ) -> int:
        """Add a read receipt to every message the user has not read yet.

        Returns the number of messages newly marked. Existing receipts keep
        their original timestamp.
        """
        key = str(user_id)
        marked = 0
        for message in negotiation.messages:
            if key in (message.read_by or {}):
                continue
            # Reassign so the JSON column registers the change.
            message.read_by = {**(message.read_by or {}), key: at.isoformat()}
            marked += 1
        await self._session.flush()
        return marked

    async def update_status(self, negotiation: Negotiation, new_status: str) -> Negotiation:
        """Update the status (call AFTER state machine validation)."""
        negotiation.status = new_status
        negotiation.updated_at = datetime.now(UTC)
        await self._session.flush()
        return negotiation


class ContractRepository:
    """Data access for contracts and their number sequence."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, contract: Contract) -> Contract:
        self._session.add(contract)
        await self._session.flush()
        return contract

    async def get_by_id(self, contract_id: uuid.UUID) -> Contract | None:
        result = await self._session.execute(select(Contract).where(Contract.id == contract_id))
        return result.scalar_one_or_none()

    async def get_by_negotiation(self, negotiation_id: uuid.UUID) -> Contract | None:
        result = await self._session.execute(
            select(Contract).where(Contract.negotiation_id == negotiation_id)
        )
        return result.scalar_one_or_none()

    async def list_for_user(
        self,
        user_id: uuid.UUID | None,
        status: str | None,
        page: int,
        limit: int,
    ) -> tuple[list[Contract], int]:
        """Contracts the user is a party to, newest first.

        ``user_id=None`` lists every contract.
        """
        stmt = select(Contract)
        if user_id is not None:
            stmt = stmt.where(or_(Contract.seller_id == user_id, Contract.buyer_id == user_id))
        if status is not None:
            stmt = stmt.where(Contract.status == status)
        stmt = stmt.order_by(Contract.created_at.desc(), Contract.id.asc())
        return await _fetch_page(self._session, stmt, page, limit)

    async def next_sequence(self, seller_company: str, buyer_company: str) -> int:
        """Reserve the next contract number suffix for a company pair.

        Increments the pair's row in place (the row lock serialises
        concurrent callers). On the first contract for a pair the row is
        inserted under a SAVEPOINT; losing that insert race falls back to a
        second increment.
        """
        increment = (
            update(ContractSequence)
            .where(
                ContractSequence.seller_company == seller_company,
                ContractSequence.buyer_company == buyer_company,
            )
            .values(last_sequence=ContractSequence.last_sequence + 1)
            .returning(ContractSequence.last_sequence)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(increment)
        value = result.scalar_one_or_none()
        if value is not None:
            return int(value)

        try:
            async with self._session.begin_nested():
                self._session.add(
                    ContractSequence(
                        seller_company=seller_company,
                        buyer_company=buyer_company,
                        last_sequence=FIRST_CONTRACT_SEQUENCE,
                    )
                )
        except IntegrityError:
            result = await self._session.execute(increment)
            value = result.scalar_one_or_none()
            if value is None:
                raise ContractNumberCollisionError(seller_company, buyer_company) from None
            return int(value)
        return FIRST_CONTRACT_SEQUENCE

    async def claim_signature(
        self,
        contract: Contract,
        role: PartyRole,
        signed_at: datetime,
        signature: str,
        signer_address: str,
        tx_hash: str | None,
    ) -> bool:
        """Record one party's signature only if that role has not signed yet.

        Single conditional UPDATE, so two concurrent signers for the same
        role cannot both win. Returns False when the slot was already taken.
        """
        prefix = role.value
        signed_col = getattr(Contract, f"{prefix}_signed_at")
        stmt = (
            update(Contract)
            .where(Contract.id == contract.id, signed_col.is_(None))
            .values(
                {
                    f"{prefix}_signed_at": signed_at,
                    f"{prefix}_signature": signature,
                    f"{prefix}_signer_address": signer_address,
                    f"{prefix}_sign_tx_hash": tx_hash,
                }
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        await self._session.refresh(contract)
        return result.rowcount == 1

    async def update_status(self, contract: Contract, new_status: str) -> Contract:
        """Update the status (call AFTER state machine validation)."""
        contract.status = new_status
        contract.updated_at = datetime.now(UTC)
        await self._session.flush()
        return contract

    async def deployment_candidates(
        self,
        max_attempts: int,
        stale_before: datetime,
    ) -> list[uuid.UUID]:
        """Draft contracts whose ledger deployment failed or stalled."""
        result = await self._session.execute(
            select(Contract.id)
            .where(
                Contract.status == ContractStatus.DRAFT.value,
                Contract.deployment_attempts < max_attempts,
                or_(
                    Contract.deployment_status == DeploymentStatus.FAILED.value,
                    and_(
                        Contract.deployment_status == DeploymentStatus.PENDING.value,
                        Contract.deployment_requested_at < stale_before,
                    ),
                ),
            )
            .order_by(Contract.created_at.asc())
        )
        return list(result.scalars().all())


class ContractEventRepository:
    """Data access for the append-only contract audit log."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(
        self,
        contract_id: uuid.UUID,
        event_type: ContractEventType,
        old_status: str | None,
        new_status: str,
        actor: str = "SYSTEM",
        metadata: dict | None = None,
    ) -> ContractEvent:
        """Append a new audit event. This is the ONLY write operation allowed."""
        evt = ContractEvent(
            contract_id=contract_id,
            event_type=event_type.value,
            old_status=old_status,
            new_status=new_status,
            actor=actor,
            metadata_json=metadata,
        )
        self._session.add(evt)
        await self._session.flush()
        return evt

    async def get_by_contract(self, contract_id: uuid.UUID) -> list[ContractEvent]:
        """Fetch all events for a contract in chronological order."""
        result = await self._session.execute(
            select(ContractEvent)
            .where(ContractEvent.contract_id == contract_id)
            .order_by(ContractEvent.created_at.asc())
        )
        return list(result.scalars().all())


class PaymentRepository:
    """Data access for escrow payments and their timeline."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, payment: Payment) -> Payment:
        """Insert under a SAVEPOINT; a second payment for the contract loses."""
        try:
            async with self._session.begin_nested():
                self._session.add(payment)
        except IntegrityError as err:
            raise DuplicatePaymentError(str(payment.contract_id)) from err
        return payment

    async def get_by_id(self, payment_id: uuid.UUID) -> Payment | None:
        result = await self._session.execute(select(Payment).where(Payment.id == payment_id))
        return result.scalar_one_or_none()

    async def get_by_contract(self, contract_id: uuid.UUID) -> Payment | None:
        result = await self._session.execute(
            select(Payment).where(Payment.contract_id == contract_id)
        )
        return result.scalar_one_or_none()

    async def list_for_user(
        self,
        user_id: uuid.UUID | None,
        status: str | None,
        page: int,
        limit: int,
    ) -> tuple[list[Payment], int]:
        """Payments the user pays or receives, newest first.

        ``user_id=None`` lists every payment.
        """
        stmt = select(Payment)
        if user_id is not None:
            stmt = stmt.where(or_(Payment.seller_id == user_id, Payment.buyer_id == user_id))
        if status is not None:
            stmt = stmt.where(Payment.status == status)
        stmt = stmt.order_by(Payment.created_at.desc(), Payment.id.asc())
        return await _fetch_page(self._session, stmt, page, limit)

    async def update_status(self, payment: Payment, new_status: str) -> Payment:
        """Update the status (call AFTER state machine validation)."""
        payment.status = new_status
        payment.updated_at = datetime.now(UTC)
        await self._session.flush()
        return payment

    async def transition_status(
        self,
        payment: Payment,
        expected_status: str,
        new_status: str,
        **values: object,
    ) -> bool:
        """Move the payment out of ``expected_status`` with one conditional UPDATE.

        ``values`` are written in the same statement. The row is reloaded
        either way; False means another writer moved it first and nothing
        was written.
        """
        stmt = (
            update(Payment)
            .where(Payment.id == payment.id, Payment.status == expected_status)
            .values(status=new_status, updated_at=datetime.now(UTC), **values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        await self._session.refresh(payment)
        return result.rowcount == 1

    async def add_timeline(
        self,
        payment: Payment,
        status: str,
        description: str,
        actor: str = "SYSTEM",
        at: datetime | None = None,
    ) -> PaymentTimelineEntry:
        entry = PaymentTimelineEntry(
            payment_id=payment.id,
            status=status,
            description=description,
            actor=actor,
            created_at=at or datetime.now(UTC),
        )
        self._session.add(entry)
        await self._session.flush()
        await self._session.refresh(payment, attribute_names=["timeline"])
        return entry

    async def due_for_auto_release(self, now: datetime) -> list[uuid.UUID]:
        """Held payments past their auto-release date on executed contracts."""
        result = await self._session.execute(
            select(Payment.id)
            .join(Contract, Contract.id == Payment.contract_id)
            .where(
                Payment.status == PaymentStatus.HELD_IN_ESCROW.value,
                Payment.auto_release_date < now,
                Contract.status == ContractStatus.EXECUTED.value,
            )
            .order_by(Payment.auto_release_date.asc())
        )
        return list(result.scalars().all())


class ShipmentRepository:
    """Read-only view of logistics records."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def latest_for_contract(self, contract_id: uuid.UUID) -> Shipment | None:
        result = await self._session.execute(
            select(Shipment)
            .where(Shipment.contract_id == contract_id)
            .order_by(Shipment.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
