"""Negotiation Service - bilateral channel between one seller and one buyer.

Roles are fixed when the negotiation opens and follow its origin:
    listing origin -> the creator is the buyer, the counterparty the seller
    request origin -> the creator is the seller, the counterparty the buyer

Offers posted here are advisory. ``current_offer`` tracks the latest one for
display; contract terms are entered separately when the contract is created.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from wastex.domain.clock import Clock, utcnow
from wastex.domain.enums import MessageType, NegotiationStatus, OriginType
from wastex.domain.exceptions import (
    AuthorizationError,
    ListingNotFoundError,
    MaterialRequestNotFoundError,
    NegotiationNotFoundError,
    StateError,
    UserNotFoundError,
    ValidationError,
)
from wastex.domain.paging import DEFAULT_PAGE_SIZE, Page, check_page
from wastex.domain.state_machine import NegotiationStateMachine, fire_transition
from wastex.infrastructure.database.orm_models import Negotiation, NegotiationMessage
from wastex.infrastructure.database.repositories import (
    ListingRepository,
    MaterialRequestRepository,
    NegotiationRepository,
    UserRepository,
)
from wastex.logging_config import get_logger

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from wastex.infrastructure.database.orm_models import User

logger = get_logger(__name__)

_CLOSED = {NegotiationStatus.COMPLETED.value, NegotiationStatus.CANCELLED.value}

# Requested status -> state machine event.
_STATUS_EVENTS = {
    NegotiationStatus.PENDING.value: "hold",
    NegotiationStatus.ACTIVE.value: "resume",
    NegotiationStatus.COMPLETED.value: "complete",
    NegotiationStatus.CANCELLED.value: "cancel",
}


def unread_counts(negotiation: Negotiation) -> dict[str, int]:
    """Messages each participant has neither sent nor read."""
    counts = {}
    for user_id in (negotiation.seller_id, negotiation.buyer_id):
        key = str(user_id)
        counts[key] = sum(
            1
            for message in negotiation.messages
            if message.sender_id != user_id and key not in (message.read_by or {})
        )
    return counts


class NegotiationService:
    """Opens negotiations and manages their message log and status."""

    def __init__(self, session: AsyncSession, clock: Clock | None = None) -> None:
        self._session = session
        self._clock = clock or utcnow
        self._negotiation_repo = NegotiationRepository(session)
        self._user_repo = UserRepository(session)
        self._listing_repo = ListingRepository(session)
        self._request_repo = MaterialRequestRepository(session)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create(
        self,
        actor: User,
        title: str,
        counterparty_id: uuid.UUID,
        origin_type: str,
        origin_id: uuid.UUID,
    ) -> Negotiation:
        if origin_type not in {o.value for o in OriginType}:
            raise ValidationError(f"Unknown origin type {origin_type!r}")
        if counterparty_id == actor.id:
            raise ValidationError("Cannot open a negotiation with yourself")

        counterparty = await self._user_repo.get_by_id(counterparty_id)
        if counterparty is None:
            raise UserNotFoundError(str(counterparty_id))

        listing_id = request_id = None
        if origin_type == OriginType.LISTING:
            if await self._listing_repo.get_by_id(origin_id) is None:
                raise ListingNotFoundError(str(origin_id))
            listing_id = origin_id
            seller_id, buyer_id = counterparty.id, actor.id
        else:
            if await self._request_repo.get_by_id(origin_id) is None:
                raise MaterialRequestNotFoundError(str(origin_id))
            request_id = origin_id
            seller_id, buyer_id = actor.id, counterparty.id

        now = self._clock()
        negotiation = Negotiation(
            title=title,
            seller_id=seller_id,
            buyer_id=buyer_id,
            origin_type=origin_type,
            listing_id=listing_id,
            request_id=request_id,
            status=NegotiationStatus.ACTIVE.value,
            last_activity=now,
            created_at=now,
        )
        negotiation = await self._negotiation_repo.create(negotiation)
        await self._session.refresh(negotiation, attribute_names=["messages", "contract"])

        logger.info(
            "negotiation.created",
            negotiation_id=str(negotiation.id),
            origin=origin_type,
            seller_id=str(seller_id),
            buyer_id=str(buyer_id),
        )
        return negotiation

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def post_message(
        self,
        actor: User,
        negotiation_id: uuid.UUID,
        content: str,
        message_type: str = MessageType.TEXT.value,
        offer: dict | None = None,
    ) -> NegotiationMessage:
        negotiation = await self._get_for_participant(actor, negotiation_id)

        if negotiation.status in _CLOSED:
            raise StateError(f"Negotiation is {negotiation.status}; no further messages")
        if message_type not in {m.value for m in MessageType}:
            raise ValidationError(f"Unknown message type {message_type!r}")
        if not content or not content.strip():
            raise ValidationError("Message content cannot be empty")
        if message_type == MessageType.OFFER and not offer:
            raise ValidationError("An offer message needs an offer payload")

        now = self._clock()
        message = NegotiationMessage(
            sender_id=actor.id,
            content=content.strip(),
            message_type=message_type,
            offer=offer,
            # The sender has implicitly read their own message.
            read_by={str(actor.id): now.isoformat()},
            created_at=now,
        )
        message = await self._negotiation_repo.append_message(negotiation, message)
        await self._negotiation_repo.touch(
            negotiation,
            at=now,
            current_offer=offer if message_type == MessageType.OFFER else None,
        )

        logger.info(
            "negotiation.message_posted",
            negotiation_id=str(negotiation.id),
            sequence=message.sequence,
            message_type=message_type,
            sender_id=str(actor.id),
        )
        return message

    async def mark_read(self, actor: User, negotiation_id: uuid.UUID) -> int:
        """Idempotent: a second call marks nothing and keeps the first timestamps."""
        negotiation = await self._get_for_participant(actor, negotiation_id)
        marked = await self._negotiation_repo.mark_read(negotiation, actor.id, self._clock())
        if marked:
            logger.info(
                "negotiation.messages_read",
                negotiation_id=str(negotiation.id),
                user_id=str(actor.id),
                marked=marked,
            )
        return marked

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def update_status(
        self,
        actor: User,
        negotiation_id: uuid.UUID,
        new_status: str,
    ) -> Negotiation:
        negotiation = await self._get_for_participant(actor, negotiation_id)
        event = _STATUS_EVENTS.get(new_status)
        if event is None:
            raise ValidationError(f"Unknown negotiation status {new_status!r}")

        old_status = negotiation.status
        target = fire_transition(NegotiationStateMachine, old_status, event)
        await self._negotiation_repo.update_status(negotiation, target)
        await self._negotiation_repo.touch(negotiation, at=self._clock())

        logger.info(
            "negotiation.status_changed",
            negotiation_id=str(negotiation.id),
            old_status=old_status,
            new_status=target,
            by=str(actor.id),
        )
        return negotiation

    async def mark_completed(self, negotiation: Negotiation) -> Negotiation:
        """Close the negotiation once a contract has been created from it."""
        if negotiation.status == NegotiationStatus.COMPLETED:
            return negotiation
        target = fire_transition(NegotiationStateMachine, negotiation.status, "complete")
        await self._negotiation_repo.update_status(negotiation, target)
        await self._negotiation_repo.touch(negotiation, at=self._clock())
        logger.info("negotiation.completed", negotiation_id=str(negotiation.id))
        return negotiation

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def list_mine(
        self,
        actor: User,
        status: str | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> Page[Negotiation]:
        """Negotiations the actor takes part in; admins see every negotiation."""
        check_page(page, limit)
        items, total = await self._negotiation_repo.list_for_user(
            None if actor.is_admin else actor.id, status, page, limit
        )
        return Page(page=page, limit=limit, total=total, items=items)

    async def get(self, actor: User, negotiation_id: uuid.UUID) -> Negotiation:
        return await self._get_for_participant(actor, negotiation_id)

    async def get_negotiation(self, negotiation_id: uuid.UUID) -> Negotiation:
        return await self._get_negotiation_or_raise(negotiation_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get_negotiation_or_raise(self, negotiation_id: uuid.UUID) -> Negotiation:
        negotiation = await self._negotiation_repo.get_by_id(negotiation_id)
        if negotiation is None:
            raise NegotiationNotFoundError(str(negotiation_id))
        return negotiation

    async def _get_for_participant(self, actor: User, negotiation_id: uuid.UUID) -> Negotiation:
        negotiation = await self._get_negotiation_or_raise(negotiation_id)
        if negotiation.role_of(actor.id) is None:
            raise AuthorizationError("Not a participant in this negotiation")
        return negotiation
