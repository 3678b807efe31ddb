"""Escrow settlement rules: platform fee, gateway signatures, release timing.

Framework-free helpers used by the payment service. Amounts are Decimal
throughout; the fee is rounded half-up to whole currency units and the
seller amount is whatever remains, so ``seller_amount + platform_fee``
always equals the contract total.
"""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

DEFAULT_AUTO_RELEASE_DAYS = 7

# (upper bound inclusive, rate); None means "no upper bound".
# The two upper tiers share a rate on purpose: existing fee behaviour is
# kept until the pricing owner confirms a different split.
FEE_TIERS: tuple[tuple[Decimal | None, Decimal], ...] = (
    (Decimal("10000"), Decimal("0.05")),
    (Decimal("100000"), Decimal("0.025")),
    (None, Decimal("0.025")),
)

_WHOLE_UNITS = Decimal("1")
_MINOR_UNITS_PER_UNIT = 100


@dataclass(frozen=True)
class FeeBreakdown:
    total: Decimal
    platform_fee: Decimal
    seller_amount: Decimal
    rate: Decimal


def platform_fee_rate(total: Decimal) -> Decimal:
    for upper_bound, rate in FEE_TIERS:
        if upper_bound is None or total <= upper_bound:
            return rate
    raise AssertionError("fee table must end with an unbounded tier")


def calculate_fee_breakdown(total: Decimal) -> FeeBreakdown:
    """Split a contract total into platform fee and seller payout.

    Example: 200000 -> fee 5000 (2.5%), seller 195000.
    """
    if total <= 0:
        raise ValueError(f"Contract total must be positive, got {total}")
    rate = platform_fee_rate(total)
    fee = (total * rate).quantize(_WHOLE_UNITS, rounding=ROUND_HALF_UP)
    return FeeBreakdown(
        total=total,
        platform_fee=fee,
        seller_amount=total - fee,
        rate=rate,
    )


def to_minor_units(amount: Decimal) -> int:
    """Convert rupees to paise for the gateway."""
    return int((amount * _MINOR_UNITS_PER_UNIT).quantize(_WHOLE_UNITS, rounding=ROUND_HALF_UP))


def compute_gateway_signature(secret: str, order_id: str, gateway_payment_id: str) -> str:
    """HMAC-SHA256 over ``order_id|gateway_payment_id``, hex encoded."""
    message = f"{order_id}|{gateway_payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def signature_matches(
    secret: str,
    order_id: str,
    gateway_payment_id: str,
    supplied_signature: str,
) -> bool:
    """Constant-time comparison over the UTF-8 bytes of both digests."""
    expected = compute_gateway_signature(secret, order_id, gateway_payment_id)
    return hmac.compare_digest(expected.encode(), supplied_signature.encode())


def compute_auto_release_date(
    held_at: datetime,
    days: int = DEFAULT_AUTO_RELEASE_DAYS,
) -> datetime:
    return held_at + timedelta(days=days)


def auto_release_due(now: datetime, auto_release_date: datetime | None) -> bool:
    """True only strictly after the auto-release date."""
    return auto_release_date is not None and now > auto_release_date


def release_conditions_met(
    delivery_confirmed: bool,
    quality_approved: bool,
    dispute_resolved: bool,
) -> bool:
    return delivery_confirmed and quality_approved and dispute_resolved
