"""Negotiation REST API routes.

Routes:
    POST   /api/v1/negotiations                 - Open a negotiation
    GET    /api/v1/negotiations                 - My negotiations, paginated
    GET    /api/v1/negotiations/{id}            - Get negotiation + messages
    POST   /api/v1/negotiations/{id}/messages   - Post a message or offer
    POST   /api/v1/negotiations/{id}/read       - Mark messages read
    PUT    /api/v1/negotiations/{id}/status     - Change status
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from wastex.api.deps import get_current_user, get_db_session
from wastex.domain.enums import NegotiationStatus
from wastex.domain.paging import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from wastex.infrastructure.database.orm_models import Negotiation, User
from wastex.schemas.common import Pagination
from wastex.schemas.negotiation import (
    CreateNegotiationRequest,
    MarkReadResponse,
    MessageResponse,
    NegotiationListResponse,
    NegotiationResponse,
    PostMessageRequest,
    UpdateNegotiationStatusRequest,
)
from wastex.services.negotiation_service import NegotiationService, unread_counts

router = APIRouter(prefix="/api/v1/negotiations", tags=["Negotiations"])


def _to_response(negotiation: Negotiation) -> NegotiationResponse:
    response = NegotiationResponse.model_validate(negotiation)
    response.unread_counts = unread_counts(negotiation)
    response.contract_id = negotiation.contract.id if negotiation.contract else None
    return response


@router.post(
    "",
    response_model=NegotiationResponse,
    status_code=201,
    summary="Open a negotiation",
)
async def create_negotiation(
    request: CreateNegotiationRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
) -> NegotiationResponse:
    svc = NegotiationService(session)
    negotiation = await svc.create(
        user,
        title=request.title,
        counterparty_id=request.counterparty_id,
        origin_type=request.origin_type.value,
        origin_id=request.origin_id,
    )
    return _to_response(negotiation)


@router.get("", response_model=NegotiationListResponse, summary="List my negotiations")
async def list_negotiations(
    status: NegotiationStatus | None = Query(None, description="Only negotiations in this status"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
) -> NegotiationListResponse:
    svc = NegotiationService(session)
    listing = await svc.list_mine(
        user, status=status.value if status else None, page=page, limit=limit
    )
    return NegotiationListResponse(
        negotiations=[_to_response(n) for n in listing.items],
        pagination=Pagination.from_page(listing),
    )


@router.get("/{negotiation_id}", response_model=NegotiationResponse)
async def get_negotiation(
    negotiation_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
) -> NegotiationResponse:
    svc = NegotiationService(session)
    return _to_response(await svc.get(user, negotiation_id))


@router.post(
    "/{negotiation_id}/messages",
    response_model=MessageResponse,
    status_code=201,
    summary="Post a message",
)
async def post_message(
    negotiation_id: uuid.UUID,
    request: PostMessageRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    svc = NegotiationService(session)
    message = await svc.post_message(
        user,
        negotiation_id,
        content=request.content,
        message_type=request.message_type.value,
        offer=request.offer.model_dump(mode="json") if request.offer else None,
    )
    return MessageResponse.model_validate(message)


@router.post("/{negotiation_id}/read", response_model=MarkReadResponse)
async def mark_read(
    negotiation_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
) -> MarkReadResponse:
    svc = NegotiationService(session)
    marked = await svc.mark_read(user, negotiation_id)
    return MarkReadResponse(negotiation_id=negotiation_id, marked=marked)


@router.put("/{negotiation_id}/status", response_model=NegotiationResponse)
async def update_status(
    negotiation_id: uuid.UUID,
    request: UpdateNegotiationStatusRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
) -> NegotiationResponse:
    svc = NegotiationService(session)
    negotiation = await svc.update_status(user, negotiation_id, request.status.value)
    return _to_response(negotiation)
