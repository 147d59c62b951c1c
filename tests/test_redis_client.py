"""Tests for the shared Redis client lifecycle."""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import redis.asyncio as aioredis

from app.utils import redis_client

SECRET_URL = "redis://:s3cret-pass@cache.internal:6380/2"


class TestConnectRedis:

    @pytest.mark.asyncio
    async def test_connected_log_omits_credentials(self):
        settings = MagicMock()
        settings.REDIS_URL = SECRET_URL
        log = MagicMock()

        ping = AsyncMock(return_value=True)
        with patch("app.utils.redis_client.get_settings", return_value=settings), \
                patch("app.utils.redis_client.logger", log), \
                patch.object(aioredis.Redis, "ping", ping):
            client = await redis_client.connect_redis()
            try:
                assert redis_client.get_redis() is client
            finally:
                await redis_client.close_redis()

        connected = next(c for c in log.info.call_args_list if c.args[0] == "redis_connected")
        assert connected.kwargs == {"host": "cache.internal", "port": 6380, "db": 2}
        assert "s3cret-pass" not in repr(log.info.call_args_list)
        assert redis_client.get_redis() is None
