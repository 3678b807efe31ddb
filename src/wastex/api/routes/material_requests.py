"""Material request REST API routes.

Routes:
    POST   /api/v1/material-requests               - Create a request (matches computed)
    GET    /api/v1/material-requests/{id}          - Get a request with its matches
    POST   /api/v1/material-requests/{id}/matches  - Recompute matches
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from wastex.api.deps import get_current_user, get_db_session
from wastex.domain.exceptions import AuthorizationError
from wastex.infrastructure.database.orm_models import User
from wastex.logging_config import get_logger
from wastex.schemas.matching import CreateMaterialRequest, MaterialRequestResponse
from wastex.services.matching_service import MatchingService

router = APIRouter(prefix="/api/v1/material-requests", tags=["Matching"])
logger = get_logger(__name__)


@router.post(
    "",
    response_model=MaterialRequestResponse,
    status_code=201,
    summary="Create a material request",
)
async def create_material_request(
    request: CreateMaterialRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
) -> MaterialRequestResponse:
    svc = MatchingService(session)
    created = await svc.create_material_request(
        user,
        title=request.title,
        material_type=request.material_type,
        category=request.category.value,
        quantity_value=request.quantity_value,
        quantity_unit=request.quantity_unit.value,
        frequency=request.frequency.value,
        budget_min=request.budget_min,
        budget_max=request.budget_max,
        preferred_cities=request.preferred_cities,
        state=request.state,
        quality_grade=request.quality_grade.value,
        urgency=request.urgency.value,
        description=request.description,
    )
    return MaterialRequestResponse.model_validate(created)


@router.get(
    "/{request_id}",
    response_model=MaterialRequestResponse,
    summary="Get a material request",
)
async def get_material_request(
    request_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
) -> MaterialRequestResponse:
    svc = MatchingService(session)
    found = await svc.get_material_request(user, request_id)
    return MaterialRequestResponse.model_validate(found)


@router.post(
    "/{request_id}/matches",
    response_model=MaterialRequestResponse,
    summary="Recompute matches",
)
async def recompute_matches(
    request_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
) -> MaterialRequestResponse:
    """Replace the stored match list with a fresh ranking."""
    svc = MatchingService(session)
    existing = await svc.get_material_request(user, request_id)
    if not user.is_admin and existing.buyer_id != user.id:
        raise AuthorizationError("Only the request owner can recompute matches")
    updated = await svc.recompute_matches(request_id)
    return MaterialRequestResponse.model_validate(updated)
