"""Matching Service - material requests and their ranked listing matches.

Maps ORM rows onto the pure scoring functions in ``domain.matching`` and
stores the ranked result on the request. The stored list is a derived view:
every recompute replaces it wholesale.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from wastex.domain.clock import Clock, utcnow
from wastex.domain.enums import (
    Frequency,
    MaterialCategory,
    QualityGrade,
    QuantityUnit,
    RequestStatus,
    Urgency,
    UserType,
)
from wastex.domain.exceptions import (
    AuthorizationError,
    MaterialRequestNotFoundError,
    ValidationError,
)
from wastex.domain.matching import (
    MAX_MATCHES,
    CandidateListing,
    MatchCriteria,
    map_category,
    rank_matches,
)
from wastex.infrastructure.database.orm_models import MaterialRequest
from wastex.infrastructure.database.repositories import (
    ListingRepository,
    MaterialRequestRepository,
)
from wastex.logging_config import get_logger

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

    from wastex.infrastructure.database.orm_models import User, WasteListing

logger = get_logger(__name__)


def _require_member(value: str, enum_cls: type, field: str) -> str:
    allowed = [member.value for member in enum_cls]
    if value not in allowed:
        raise ValidationError(f"{field} must be one of {allowed}, got {value!r}")
    return value


class MatchingService:
    """Creates material requests and keeps their match lists current."""

    def __init__(self, session: AsyncSession, clock: Clock | None = None) -> None:
        self._session = session
        self._clock = clock or utcnow
        self._request_repo = MaterialRequestRepository(session)
        self._listing_repo = ListingRepository(session)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def create_material_request(
        self,
        buyer: User,
        *,
        title: str,
        material_type: str,
        category: str,
        quantity_value: Decimal,
        quantity_unit: str,
        frequency: str,
        budget_max: Decimal,
        quality_grade: str,
        urgency: str,
        budget_min: Decimal | None = None,
        preferred_cities: Iterable[str] = (),
        state: str | None = None,
        description: str | None = None,
    ) -> MaterialRequest:
        """Persist a buyer's request and compute its matches immediately."""
        if buyer.user_type != UserType.BUYER:
            raise AuthorizationError("Only buyers can create material requests")

        _require_member(category, MaterialCategory, "category")
        _require_member(quantity_unit, QuantityUnit, "quantity unit")
        _require_member(frequency, Frequency, "frequency")
        _require_member(quality_grade, QualityGrade, "quality grade")
        _require_member(urgency, Urgency, "urgency")
        if quantity_value <= 0:
            raise ValidationError("Quantity must be positive")
        if budget_max <= 0:
            raise ValidationError("Maximum budget must be positive")
        if budget_min is not None and budget_min > budget_max:
            raise ValidationError("Minimum budget cannot exceed maximum budget")

        request = MaterialRequest(
            buyer_id=buyer.id,
            title=title,
            material_type=material_type,
            category=category,
            quantity_value=quantity_value,
            quantity_unit=quantity_unit,
            frequency=frequency,
            budget_min=budget_min,
            budget_max=budget_max,
            preferred_cities=[c.strip() for c in preferred_cities if c and c.strip()],
            state=state,
            quality_grade=quality_grade,
            urgency=urgency,
            description=description,
            status=RequestStatus.ACTIVE.value,
        )
        request = await self._request_repo.create(request)
        logger.info(
            "matching.request_created",
            request_id=str(request.id),
            buyer_id=str(buyer.id),
            category=category,
        )
        return await self._compute(request)

    async def recompute_matches(self, request_id: uuid.UUID) -> MaterialRequest:
        """Re-rank against the current listings, replacing the stored list."""
        request = await self._get_request_or_raise(request_id)
        return await self._compute(request)

    async def get_material_request(self, actor: User, request_id: uuid.UUID) -> MaterialRequest:
        """Owner, sellers and admins may read a request."""
        request = await self._get_request_or_raise(request_id)
        if actor.user_type == UserType.BUYER and actor.id != request.buyer_id:
            raise AuthorizationError("Not authorized to view this material request")
        return request

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _compute(self, request: MaterialRequest) -> MaterialRequest:
        criteria = MatchCriteria(
            category=request.category,
            quantity=Decimal(request.quantity_value),
            budget=Decimal(request.budget_max),
            urgency=request.urgency,
            frequency=request.frequency,
            preferred_cities=tuple(request.preferred_cities or ()),
        )
        listings = await self._listing_repo.get_active_by_category(
            map_category(request.category)
        )
        ranked = rank_matches(criteria, (_to_candidate(row) for row in listings), MAX_MATCHES)
        await self._request_repo.replace_matches(
            request,
            [match.to_dict() for match in ranked],
            computed_at=self._clock(),
        )
        logger.info(
            "matching.matches_computed",
            request_id=str(request.id),
            candidates=len(listings),
            matches=len(ranked),
            top_score=ranked[0].score if ranked else None,
        )
        return request

    async def _get_request_or_raise(self, request_id: uuid.UUID) -> MaterialRequest:
        request = await self._request_repo.get_by_id(request_id)
        if request is None:
            raise MaterialRequestNotFoundError(str(request_id))
        return request


def _to_candidate(listing: WasteListing) -> CandidateListing:
    return CandidateListing(
        listing_id=str(listing.id),
        category=listing.category,
        quantity=Decimal(listing.quantity_value),
        price=Decimal(listing.price_value),
        city=listing.city,
        urgency=listing.urgency,
        frequency=listing.frequency,
    )
