"""Matching heuristic: rank waste listings against one material request.

Pure functions over two small value objects so the scoring rules can be
exercised without a database. The service layer maps ORM rows onto
``MatchCriteria`` / ``CandidateListing`` and persists the ranked result.

Filters (all must hold):
    - listing category equals the request category's waste counterpart
    - listing quantity >= 50% of the requested quantity
    - listing price <= 120% of the budget
    - listing city is a preferred city (only when any are set)

Score (additive, rounded half-up, always within 0..100):
    category 40 | quantity ratio (capped at 1) x 20 |
    price headroom (budget - price) / budget x 20 when within budget |
    preferred city 10 | urgency 5 | frequency 5
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from wastex.domain.enums import MaterialCategory, WasteCategory

if TYPE_CHECKING:
    from collections.abc import Iterable

MAX_MATCHES = 10

QUANTITY_FLOOR_RATIO = Decimal("0.5")
PRICE_CEILING_RATIO = Decimal("1.2")

CATEGORY_WEIGHT = Decimal(40)
QUANTITY_WEIGHT = Decimal(20)
PRICE_WEIGHT = Decimal(20)
LOCATION_WEIGHT = Decimal(10)
URGENCY_WEIGHT = Decimal(5)
FREQUENCY_WEIGHT = Decimal(5)

CATEGORY_MAPPING: dict[str, str] = {
    MaterialCategory.PLASTIC: WasteCategory.PLASTIC,
    MaterialCategory.METAL: WasteCategory.METAL,
    MaterialCategory.PAPER: WasteCategory.PAPER,
    MaterialCategory.TEXTILE: WasteCategory.TEXTILE,
    MaterialCategory.CHEMICAL: WasteCategory.CHEMICAL,
    MaterialCategory.ELECTRONIC: WasteCategory.ELECTRONIC,
    MaterialCategory.RUBBER: WasteCategory.RUBBER,
    MaterialCategory.GLASS: WasteCategory.GLASS,
    MaterialCategory.WOOD: WasteCategory.WOOD,
    MaterialCategory.ORGANIC: WasteCategory.ORGANIC,
}


@dataclass(frozen=True)
class MatchCriteria:
    """What a buyer asked for."""

    category: str
    quantity: Decimal
    budget: Decimal
    urgency: str
    frequency: str
    preferred_cities: tuple[str, ...] = ()


@dataclass(frozen=True)
class CandidateListing:
    """What a seller offers."""

    listing_id: str
    category: str
    quantity: Decimal
    price: Decimal
    city: str
    urgency: str
    frequency: str


@dataclass(frozen=True)
class MatchResult:
    listing_id: str
    score: int
    reasons: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        """Serialize for the request's ``matches`` JSON column."""
        return {
            "listing_id": self.listing_id,
            "score": self.score,
            "reasons": list(self.reasons),
        }


def map_category(material_category: str) -> str:
    """Return the listing category that satisfies a request category."""
    return CATEGORY_MAPPING.get(material_category, material_category)


def is_candidate(criteria: MatchCriteria, listing: CandidateListing) -> bool:
    if listing.category != map_category(criteria.category):
        return False
    if listing.quantity < criteria.quantity * QUANTITY_FLOOR_RATIO:
        return False
    if listing.price > criteria.budget * PRICE_CEILING_RATIO:
        return False
    if criteria.preferred_cities and listing.city not in criteria.preferred_cities:
        return False
    return True


def score_listing(criteria: MatchCriteria, listing: CandidateListing) -> int:
    """Additive 0..100 score for one listing."""
    score = Decimal(0)

    if listing.category == map_category(criteria.category):
        score += CATEGORY_WEIGHT

    if criteria.quantity > 0:
        ratio = min(listing.quantity / criteria.quantity, Decimal(1))
        score += ratio * QUANTITY_WEIGHT

    if criteria.budget > 0 and listing.price <= criteria.budget:
        headroom = (criteria.budget - listing.price) / criteria.budget
        score += headroom * PRICE_WEIGHT

    if criteria.preferred_cities and listing.city in criteria.preferred_cities:
        score += LOCATION_WEIGHT

    if criteria.urgency == listing.urgency:
        score += URGENCY_WEIGHT

    if criteria.frequency == listing.frequency:
        score += FREQUENCY_WEIGHT

    return int(score.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def match_reasons(criteria: MatchCriteria, listing: CandidateListing) -> list[str]:
    """Human-readable reasons; not exclusive and not tied to the score weights."""
    reasons = []
    if listing.category == map_category(criteria.category):
        reasons.append("Category match")
    if listing.quantity >= criteria.quantity:
        reasons.append("Sufficient quantity available")
    if listing.price <= criteria.budget:
        reasons.append("Within budget")
    if criteria.preferred_cities and listing.city in criteria.preferred_cities:
        reasons.append("Preferred location")
    if criteria.urgency == listing.urgency:
        reasons.append("Matching urgency")
    if criteria.frequency == listing.frequency:
        reasons.append("Matching frequency")
    return reasons


def rank_matches(
    criteria: MatchCriteria,
    listings: Iterable[CandidateListing],
    limit: int = MAX_MATCHES,
) -> list[MatchResult]:
    """Filter, score and rank listings.

    Sorted by descending score, ties broken by ascending listing id so the
    same inputs always produce the same list.
    """
    results = [
        MatchResult(
            listing_id=listing.listing_id,
            score=score_listing(criteria, listing),
            reasons=tuple(match_reasons(criteria, listing)),
        )
        for listing in listings
        if is_candidate(criteria, listing)
    ]
    results.sort(key=lambda r: (-r.score, r.listing_id))
    return results[:limit]
