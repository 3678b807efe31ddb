"""Escrow payment REST API routes.

Routes:
    POST   /api/v1/payments/orders                   - Buyer opens a gateway order
    POST   /api/v1/payments/{id}/verify              - Verify gateway signature, hold funds
    POST   /api/v1/payments/{id}/confirm-delivery    - Buyer confirms delivery / quality
    POST   /api/v1/payments/{id}/release             - Release escrow to the seller
    POST   /api/v1/payments/{id}/refund              - Admin refund to the buyer
    GET    /api/v1/payments                          - My payments, paginated
    GET    /api/v1/payments/{id}                     - Payment with timeline
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from wastex.api.deps import get_app_settings, get_current_user, get_db_session, get_gateway
from wastex.config import Settings
from wastex.domain.enums import PaymentStatus
from wastex.domain.paging import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from wastex.domain.ports import PaymentGateway
from wastex.domain.settlement import to_minor_units
from wastex.infrastructure.database.orm_models import User
from wastex.schemas.common import Pagination
from wastex.schemas.payment import (
    ConfirmDeliveryRequest,
    CreateOrderRequest,
    OrderResponse,
    PaymentListResponse,
    PaymentResponse,
    RefundRequest,
    VerifyPaymentRequest,
)
from wastex.services.payment_service import PaymentService

router = APIRouter(prefix="/api/v1/payments", tags=["Payments"])


@router.post(
    "/orders",
    response_model=OrderResponse,
    status_code=201,
    summary="Create a payment order",
)
async def create_order(
    request: CreateOrderRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
    gateway: PaymentGateway = Depends(get_gateway),
    settings: Settings = Depends(get_app_settings),
) -> OrderResponse:
    svc = PaymentService(session, gateway=gateway, settings=settings)
    payment = await svc.create_order(user, request.contract_id)
    return OrderResponse(
        payment=PaymentResponse.model_validate(payment),
        order_id=payment.gateway_order_id,
        amount_minor=to_minor_units(payment.amount_total),
        currency=payment.currency,
        key_id=settings.gateway_key_id,
    )


@router.post(
    "/{payment_id}/verify",
    response_model=PaymentResponse,
    responses={400: {"description": "Signature mismatch; the payment is now failed"}},
)
async def verify_payment(
    payment_id: uuid.UUID,
    request: VerifyPaymentRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
):
    """A mismatch answers 400 but the ``failed`` status is still committed."""
    svc = PaymentService(session, settings=settings)
    payment = await svc.verify(
        user,
        payment_id,
        gateway_payment_id=request.gateway_payment_id,
        signature=request.signature,
    )
    if payment.status == PaymentStatus.FAILED:
        return JSONResponse(
            status_code=400,
            content={
                "error": "INVALID_PAYMENT_SIGNATURE",
                "message": "Payment verification failed",
                "retryable": False,
            },
        )
    return PaymentResponse.model_validate(payment)


@router.post("/{payment_id}/confirm-delivery", response_model=PaymentResponse)
async def confirm_delivery(
    payment_id: uuid.UUID,
    request: ConfirmDeliveryRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> PaymentResponse:
    svc = PaymentService(session, settings=settings)
    payment = await svc.confirm_delivery(
        user,
        payment_id,
        quality_approved=request.quality_approved,
        delivery_confirmed=request.delivery_confirmed,
    )
    return PaymentResponse.model_validate(payment)


@router.post("/{payment_id}/release", response_model=PaymentResponse)
async def release_payment(
    payment_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> PaymentResponse:
    svc = PaymentService(session, settings=settings)
    return PaymentResponse.model_validate(await svc.release(user, payment_id))


@router.post("/{payment_id}/refund", response_model=PaymentResponse)
async def refund_payment(
    payment_id: uuid.UUID,
    request: RefundRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> PaymentResponse:
    svc = PaymentService(session, settings=settings)
    return PaymentResponse.model_validate(await svc.refund(user, payment_id, request.reason))


@router.get("", response_model=PaymentListResponse, summary="List my payments")
async def list_payments(
    status: PaymentStatus | None = Query(None, description="Only payments in this status"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> PaymentListResponse:
    svc = PaymentService(session, settings=settings)
    listing = await svc.list_mine(
        user, status=status.value if status else None, page=page, limit=limit
    )
    return PaymentListResponse(
        payments=[PaymentResponse.model_validate(p) for p in listing.items],
        pagination=Pagination.from_page(listing),
    )


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> PaymentResponse:
    svc = PaymentService(session, settings=settings)
    return PaymentResponse.model_validate(await svc.get(user, payment_id))
