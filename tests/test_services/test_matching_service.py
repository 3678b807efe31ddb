"""Tests for MatchingService against an in-memory database."""

from __future__ import annotations

from decimal import Decimal

import pytest

from wastex.domain.enums import (
    Frequency,
    MaterialCategory,
    QualityGrade,
    QuantityUnit,
    Urgency,
    UserType,
    WasteCategory,
)
from wastex.domain.exceptions import AuthorizationError, ValidationError
from wastex.services.matching_service import MatchingService


def _request_fields(**overrides) -> dict:
    fields = {
        "title": "Need HDPE regrind",
        "material_type": "HDPE",
        "category": MaterialCategory.PLASTIC.value,
        "quantity_value": Decimal("1000"),
        "quantity_unit": QuantityUnit.KG.value,
        "frequency": Frequency.MONTHLY.value,
        "budget_max": Decimal("50000"),
        "quality_grade": QualityGrade.GRADE_A.value,
        "urgency": Urgency.HIGH.value,
        "preferred_cities": ["Pune", "Mumbai"],
    }
    fields.update(overrides)
    return fields


class TestCreateMaterialRequest:
    @pytest.mark.asyncio
    async def test_matches_computed_on_create(self, session, seed, clock) -> None:
        buyer = await seed.user(UserType.BUYER.value)
        seller = await seed.user(UserType.SELLER.value)
        best = await seed.listing(
            seller, quantity="1200", price="45000", urgency="high", frequency="monthly"
        )
        await seed.listing(seller, quantity="800", price="49000")
        await seed.listing(seller, category=WasteCategory.METAL.value)

        svc = MatchingService(session, clock=clock)
        request = await svc.create_material_request(buyer, **_request_fields())

        assert len(request.matches) == 2
        assert request.matches[0]["listing_id"] == str(best.id)
        assert request.matches[0]["score"] == 82
        assert request.matches_computed_at == clock.now

    @pytest.mark.asyncio
    async def test_sellers_cannot_create_requests(self, session, seed) -> None:
        seller = await seed.user(UserType.SELLER.value)
        with pytest.raises(AuthorizationError):
            await MatchingService(session).create_material_request(seller, **_request_fields())

    @pytest.mark.asyncio
    async def test_unknown_category_rejected(self, session, seed) -> None:
        buyer = await seed.user(UserType.BUYER.value)
        with pytest.raises(ValidationError):
            await MatchingService(session).create_material_request(
                buyer, **_request_fields(category="Plutonium")
            )

    @pytest.mark.asyncio
    async def test_budget_range_checked(self, session, seed) -> None:
        buyer = await seed.user(UserType.BUYER.value)
        with pytest.raises(ValidationError):
            await MatchingService(session).create_material_request(
                buyer, **_request_fields(budget_min=Decimal("60000"))
            )

    @pytest.mark.asyncio
    async def test_inactive_listings_ignored(self, session, seed) -> None:
        buyer = await seed.user(UserType.BUYER.value)
        seller = await seed.user(UserType.SELLER.value)
        await seed.listing(seller, status="sold")

        request = await MatchingService(session).create_material_request(
            buyer, **_request_fields()
        )
        assert request.matches == []


class TestRecompute:
    @pytest.mark.asyncio
    async def test_recompute_replaces_previous_list(self, session, seed, clock) -> None:
        buyer = await seed.user(UserType.BUYER.value)
        seller = await seed.user(UserType.SELLER.value)
        first = await seed.listing(seller, price="45000")

        svc = MatchingService(session, clock=clock)
        request = await svc.create_material_request(buyer, **_request_fields())
        assert [m["listing_id"] for m in request.matches] == [str(first.id)]

        first.status = "sold"
        second = await seed.listing(seller, price="40000")
        clock.advance(hours=1)

        request = await svc.recompute_matches(request.id)
        assert [m["listing_id"] for m in request.matches] == [str(second.id)]
        assert request.matches_computed_at == clock.now

    @pytest.mark.asyncio
    async def test_other_buyers_cannot_read(self, session, seed) -> None:
        owner = await seed.user(UserType.BUYER.value)
        other = await seed.user(UserType.BUYER.value)
        seller = await seed.user(UserType.SELLER.value)

        svc = MatchingService(session)
        request = await svc.create_material_request(owner, **_request_fields())

        assert (await svc.get_material_request(seller, request.id)).id == request.id
        with pytest.raises(AuthorizationError):
            await svc.get_material_request(other, request.id)
