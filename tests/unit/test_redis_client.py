"""Unit tests for Redis client singleton."""

from unittest.mock import MagicMock, patch

import pytest
from redis import ConnectionError as RedisConnectionError

from shared.redis_client import close_redis_client, get_redis_client


class TestRedisClient:
    """Tests for Redis client singleton."""

    def test_get_redis_client_returns_instance(self):
        """Test that get_redis_client returns a Redis instance."""
        with patch("shared.redis_client.redis.from_url") as mock_from_url:
            mock_client = MagicMock()
            mock_from_url.return_value = mock_client

            # Clear lru_cache before test
            get_redis_client.cache_clear()

            result = get_redis_client()

            assert result == mock_client
            mock_from_url.assert_called_once()

        get_redis_client.cache_clear()

    def test_get_redis_client_is_singleton(self):
        """Test that get_redis_client returns the same instance (cached)."""
        with patch("shared.redis_client.redis.from_url") as mock_from_url:
            mock_from_url.return_value = MagicMock()
            get_redis_client.cache_clear()

            result1 = get_redis_client()
            result2 = get_redis_client()

            assert result1 is result2
            assert mock_from_url.call_count == 1

        get_redis_client.cache_clear()

    def test_redis_client_configuration(self):
        """Test client decodes responses and retries on timeout."""
        with patch("shared.redis_client.redis.from_url") as mock_from_url:
            mock_from_url.return_value = MagicMock()
            get_redis_client.cache_clear()

            get_redis_client()

            args, kwargs = mock_from_url.call_args
            assert args[0] == "redis://localhost:6379/0"
            assert kwargs["decode_responses"] is True
            assert kwargs["retry_on_timeout"] is True
            assert kwargs["health_check_interval"] == 30

        get_redis_client.cache_clear()

    def test_connection_error_propagates(self):
        with patch("shared.redis_client.redis.from_url") as mock_from_url:
            mock_from_url.side_effect = RedisConnectionError("refused")
            get_redis_client.cache_clear()

            with pytest.raises(RedisConnectionError):
                get_redis_client()

        get_redis_client.cache_clear()

    def test_close_redis_client(self):
        """Test close() is called and the cache is reset."""
        with patch("shared.redis_client.redis.from_url") as mock_from_url:
            first, second = MagicMock(), MagicMock()
            mock_from_url.side_effect = [first, second]
            get_redis_client.cache_clear()

            get_redis_client()
            close_redis_client()

            first.close.assert_called_once()
            assert get_redis_client() is second

        get_redis_client.cache_clear()
