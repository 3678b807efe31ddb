"""Injectable time source.

Services take a ``Clock`` so escrow timing can be tested at fixed instants.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)
