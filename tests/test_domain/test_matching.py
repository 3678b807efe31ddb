"""Tests for the matching heuristic (pure functions, no database)."""

from __future__ import annotations

from decimal import Decimal

from wastex.domain.enums import Frequency, MaterialCategory, Urgency, WasteCategory
from wastex.domain.matching import (
    MAX_MATCHES,
    CandidateListing,
    MatchCriteria,
    is_candidate,
    map_category,
    match_reasons,
    rank_matches,
    score_listing,
)


def _criteria(**overrides) -> MatchCriteria:
    values = {
        "category": MaterialCategory.PLASTIC.value,
        "quantity": Decimal("1000"),
        "budget": Decimal("50000"),
        "urgency": Urgency.HIGH.value,
        "frequency": Frequency.MONTHLY.value,
        "preferred_cities": ("Pune", "Mumbai"),
    }
    values.update(overrides)
    return MatchCriteria(**values)


def _listing(listing_id: str = "a", **overrides) -> CandidateListing:
    values = {
        "listing_id": listing_id,
        "category": WasteCategory.PLASTIC.value,
        "quantity": Decimal("1200"),
        "price": Decimal("45000"),
        "city": "Pune",
        "urgency": Urgency.HIGH.value,
        "frequency": Frequency.MONTHLY.value,
    }
    values.update(overrides)
    return CandidateListing(**values)


class TestCategoryMapping:
    def test_every_material_category_maps_to_a_waste_category(self) -> None:
        waste_values = {c.value for c in WasteCategory}
        for category in MaterialCategory:
            assert map_category(category.value) in waste_values

    def test_metal_maps_to_scrap(self) -> None:
        assert map_category("Metal Materials") == "Metal Scrap"


class TestScore:
    def test_worked_example_scores_82(self) -> None:
        # 40 category + 20 quantity + 2 price headroom + 10 city + 5 urgency + 5 frequency
        assert score_listing(_criteria(), _listing()) == 82

    def test_quantity_ratio_is_capped(self) -> None:
        huge = _listing(quantity=Decimal("1000000"))
        assert score_listing(_criteria(), huge) == 82

    def test_no_price_points_over_budget(self) -> None:
        over = _listing(price=Decimal("55000"))
        assert score_listing(_criteria(), over) == 80

    def test_no_location_points_without_preferences(self) -> None:
        assert score_listing(_criteria(preferred_cities=()), _listing()) == 72

    def test_score_stays_within_bounds(self) -> None:
        free = _listing(price=Decimal("0"))
        assert score_listing(_criteria(), free) == 100
        tiny = _listing(
            quantity=Decimal("1"),
            price=Decimal("60000"),
            city="Delhi",
            urgency=Urgency.LOW.value,
            frequency=Frequency.DAILY.value,
        )
        assert 0 <= score_listing(_criteria(preferred_cities=()), tiny) <= 100

    def test_non_decreasing_in_quantity_ratio(self) -> None:
        scores = [
            score_listing(_criteria(), _listing(quantity=Decimal(q)))
            for q in ("500", "600", "750", "900", "1000", "1500")
        ]
        assert scores == sorted(scores)

    def test_non_decreasing_in_price_headroom(self) -> None:
        scores = [
            score_listing(_criteria(), _listing(price=Decimal(p)))
            for p in ("50000", "40000", "25000", "10000", "0")
        ]
        assert scores == sorted(scores)


class TestFilters:
    def test_wrong_category_is_excluded(self) -> None:
        assert not is_candidate(_criteria(), _listing(category=WasteCategory.METAL.value))

    def test_quantity_floor_is_half_the_request(self) -> None:
        assert is_candidate(_criteria(), _listing(quantity=Decimal("500")))
        assert not is_candidate(_criteria(), _listing(quantity=Decimal("499")))

    def test_price_ceiling_is_120_percent_of_budget(self) -> None:
        assert is_candidate(_criteria(), _listing(price=Decimal("60000")))
        assert not is_candidate(_criteria(), _listing(price=Decimal("60001")))

    def test_city_filter_only_when_preferences_set(self) -> None:
        elsewhere = _listing(city="Chennai")
        assert not is_candidate(_criteria(), elsewhere)
        assert is_candidate(_criteria(preferred_cities=()), elsewhere)


class TestRanking:
    def test_sorted_by_descending_score(self) -> None:
        listings = [
            _listing("a", price=Decimal("50000")),
            _listing("b", price=Decimal("10000")),
            _listing("c", price=Decimal("30000")),
        ]
        ranked = rank_matches(_criteria(), listings)
        assert [r.listing_id for r in ranked] == ["b", "c", "a"]

    def test_ties_broken_by_listing_id(self) -> None:
        listings = [_listing("c"), _listing("a"), _listing("b")]
        ranked = rank_matches(_criteria(), listings)
        assert [r.listing_id for r in ranked] == ["a", "b", "c"]
        assert len({r.score for r in ranked}) == 1

    def test_at_most_ten_results(self) -> None:
        listings = [_listing(f"l{i:02d}") for i in range(15)]
        assert len(rank_matches(_criteria(), listings)) == MAX_MATCHES

    def test_filtered_listings_never_ranked(self) -> None:
        listings = [_listing("keep"), _listing("drop", city="Chennai")]
        assert [r.listing_id for r in rank_matches(_criteria(), listings)] == ["keep"]

    def test_deterministic(self) -> None:
        listings = [_listing(f"l{i}", price=Decimal(40000 + i * 1000)) for i in range(8)]
        first = rank_matches(_criteria(), listings)
        second = rank_matches(_criteria(), list(reversed(listings)))
        assert first == second

    def test_reasons_serialized(self) -> None:
        (result,) = rank_matches(_criteria(), [_listing()])
        payload = result.to_dict()
        assert payload["score"] == 82
        assert "Category match" in payload["reasons"]
        assert "Preferred location" in payload["reasons"]


class TestReasons:
    def test_partial_quantity_has_no_sufficiency_reason(self) -> None:
        reasons = match_reasons(_criteria(), _listing(quantity=Decimal("600")))
        assert "Sufficient quantity available" not in reasons
        assert "Within budget" in reasons
