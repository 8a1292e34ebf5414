"""
Tests for the lock's Redis client factory.
"""

import pytest

from app.redis import CONNECT_TIMEOUT_SECONDS, SOCKET_TIMEOUT_SECONDS, create_redis


@pytest.mark.asyncio
async def test_client_decodes_responses_for_token_compare():
    client = create_redis("redis://localhost:6379/0")
    kwargs = client.connection_pool.connection_kwargs

    assert kwargs["decode_responses"] is True
    assert kwargs["socket_timeout"] == SOCKET_TIMEOUT_SECONDS
    assert kwargs["socket_connect_timeout"] == CONNECT_TIMEOUT_SECONDS

    await client.aclose()


def test_missing_url_rejected():
    with pytest.raises(RuntimeError):
        create_redis("")
