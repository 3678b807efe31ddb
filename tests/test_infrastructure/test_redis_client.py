"""Tests for the Redis lock helpers used by the reconciliation loop."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from wastex.infrastructure import redis_client


class TestLocks:
    @pytest.mark.asyncio
    async def test_acquire_returns_token(self) -> None:
        fake = AsyncMock()
        fake.set.return_value = True
        with patch.object(redis_client, "get_redis", return_value=fake):
            token = await redis_client.acquire_lock("sweep", ttl_seconds=60)

        assert token is not None
        fake.set.assert_awaited_once_with("lock:sweep", token, nx=True, ex=60)

    @pytest.mark.asyncio
    async def test_acquire_when_held(self) -> None:
        fake = AsyncMock()
        fake.set.return_value = None
        with patch.object(redis_client, "get_redis", return_value=fake):
            assert await redis_client.acquire_lock("sweep", ttl_seconds=60) is None

    @pytest.mark.asyncio
    async def test_release_checks_owner(self) -> None:
        fake = AsyncMock()
        fake.eval.return_value = 0
        with patch.object(redis_client, "get_redis", return_value=fake):
            assert await redis_client.release_lock("sweep", "stale-token") is False
        fake.eval.assert_awaited_once()
        assert fake.eval.await_args.args[2:] == ("lock:sweep", "stale-token")

    def test_get_redis_before_init(self) -> None:
        with patch.object(redis_client, "_redis_client", None):
            assert redis_client.redis_available() is False
            with pytest.raises(RuntimeError):
                redis_client.get_redis()
