"""Contract REST API routes.

Routes:
    POST   /api/v1/contracts                          - Create from a negotiation + deploy
    GET    /api/v1/contracts                          - My contracts, paginated
    GET    /api/v1/contracts/{id}                     - Get contract details
    GET    /api/v1/contracts/{id}/status              - Lightweight status check
    GET    /api/v1/contracts/{id}/events              - Audit trail
    POST   /api/v1/contracts/{id}/sign                - Sign for the caller's role
    POST   /api/v1/contracts/{id}/cancel              - Cancel
    POST   /api/v1/contracts/{id}/dispute             - Raise a dispute
    POST   /api/v1/contracts/{id}/deployment/retry    - Admin: redeploy to the ledger

A create whose ledger deployment failed still answers 201; the body carries
``deployment_status="failed"`` and the recorded error.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from wastex.api.deps import get_current_user, get_db_session, get_ledger
from wastex.domain.enums import ContractStatus
from wastex.domain.paging import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from wastex.domain.ports import LedgerClient
from wastex.infrastructure.database.orm_models import User
from wastex.logging_config import get_logger
from wastex.schemas.common import Pagination
from wastex.schemas.contract import (
    ContractEventResponse,
    ContractListResponse,
    ContractResponse,
    ContractStatusResponse,
    CreateContractRequest,
    ReasonRequest,
    SignContractRequest,
)
from wastex.services.contract_service import ContractService

router = APIRouter(prefix="/api/v1/contracts", tags=["Contracts"])
logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=ContractResponse,
    status_code=201,
    summary="Create a contract from a negotiation",
)
async def create_contract(
    request: CreateContractRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
    ledger: LedgerClient = Depends(get_ledger),
) -> ContractResponse:
    svc = ContractService(session, ledger=ledger)
    contract = await svc.create(
        user,
        negotiation_id=request.negotiation_id,
        title=request.title,
        terms=request.terms.model_dump(mode="json"),
    )
    return ContractResponse.from_contract(contract)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get("", response_model=ContractListResponse, summary="List my contracts")
async def list_contracts(
    status: ContractStatus | None = Query(None, description="Only contracts in this status"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
) -> ContractListResponse:
    svc = ContractService(session)
    listing = await svc.list_mine(
        user, status=status.value if status else None, page=page, limit=limit
    )
    return ContractListResponse(
        contracts=[ContractResponse.from_contract(c) for c in listing.items],
        pagination=Pagination.from_page(listing),
    )


@router.get("/{contract_id}", response_model=ContractResponse)
async def get_contract(
    contract_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
) -> ContractResponse:
    svc = ContractService(session)
    return ContractResponse.from_contract(await svc.get(user, contract_id))


@router.get("/{contract_id}/status", response_model=ContractStatusResponse)
async def get_contract_status(
    contract_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
) -> ContractStatusResponse:
    svc = ContractService(session)
    await svc.get(user, contract_id)
    return ContractStatusResponse(**await svc.get_status(contract_id))


@router.get("/{contract_id}/events", response_model=list[ContractEventResponse])
async def get_contract_events(
    contract_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
) -> list[ContractEventResponse]:
    svc = ContractService(session)
    events = await svc.get_events(user, contract_id)
    return [ContractEventResponse.model_validate(e) for e in events]


# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------


@router.post("/{contract_id}/sign", response_model=ContractResponse, summary="Sign a contract")
async def sign_contract(
    contract_id: uuid.UUID,
    request: SignContractRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
    ledger: LedgerClient = Depends(get_ledger),
) -> ContractResponse:
    """Sign on the ledger for the caller's role, then record it locally."""
    svc = ContractService(session, ledger=ledger)
    contract = await svc.sign(user, contract_id, request.signature)
    return ContractResponse.from_contract(contract)


# ---------------------------------------------------------------------------
# Cancellation, disputes, deployment retry
# ---------------------------------------------------------------------------


@router.post("/{contract_id}/cancel", response_model=ContractResponse)
async def cancel_contract(
    contract_id: uuid.UUID,
    request: ReasonRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
) -> ContractResponse:
    svc = ContractService(session)
    contract = await svc.cancel(user, contract_id, request.reason)
    return ContractResponse.from_contract(contract)


@router.post("/{contract_id}/dispute", response_model=ContractResponse)
async def raise_dispute(
    contract_id: uuid.UUID,
    request: ReasonRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
) -> ContractResponse:
    svc = ContractService(session)
    contract = await svc.raise_dispute(user, contract_id, request.reason)
    logger.info("api.dispute_raised", contract_id=str(contract_id))
    return ContractResponse.from_contract(contract)


@router.post("/{contract_id}/deployment/retry", response_model=ContractResponse)
async def retry_deployment(
    contract_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
    ledger: LedgerClient = Depends(get_ledger),
) -> ContractResponse:
    svc = ContractService(session, ledger=ledger)
    contract = await svc.retry_deployment(contract_id, actor=user)
    return ContractResponse.from_contract(contract)
