# SPDX-License-Identifier: Apache-2.0

"""
Redis service for caching and JWT token management.

This module provides Redis operations using the redis-py client, including
the JWT token blocklist and the per-officer DOB statistics cache.
"""

import os
import json
import time
from typing import Optional, List, Dict, Any, Union
import redis
from opentelemetry import trace
import logging

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

STATISTICS_TTL_SECONDS = 300


class RedisConnectionError(Exception):
    """Raised when Redis connection fails."""
    pass


class RedisService:
    """
    Redis service with the standard redis-py client.

    Every operation degrades to a no-op when Redis is unreachable; callers
    treat the cache and the blocklist as best-effort.
    """

    def __init__(self, redis_url: Optional[str] = None):
        """
        Initialize the Redis service.

        Args:
            redis_url: Redis connection URL (redis://host:port)
        """
        self.redis_url = redis_url or os.getenv("REDIS_URL", "redis://localhost:6379")

        try:
            self.client = redis.from_url(self.redis_url, decode_responses=True)

            # Test connection
            self._test_connection()

            logger.info(f"Redis service initialized successfully at {self.redis_url}")

        except Exception as e:
            logger.error(f"Failed to initialize Redis service: {str(e)}")
            self.client = None

    def _test_connection(self) -> None:
        """Test Redis connection."""
        if not self.client:
            return

        try:
            result = self.client.ping()
            if not result:
                raise RedisConnectionError("Redis ping failed")
        except Exception as e:
            logger.error(f"Redis connection test failed: {str(e)}")
            raise RedisConnectionError(f"Redis connection failed: {str(e)}")

    def is_available(self) -> bool:
        """Check if Redis service is available."""
        return self.client is not None

    def set_with_ttl(self, key: str, value: Union[str, Dict, List], ttl_seconds: int) -> bool:
        """
        Set a key-value pair with expiry.

        Args:
            key: Redis key
            value: Value to store (JSON serialized if not a string)
            ttl_seconds: Time to live in seconds

        Returns:
            True if successful, False otherwise
        """
        if not self.client:
            logger.warning("Redis client not available, skipping set operation")
            return False

        with tracer.start_as_current_span("redis.set") as span:
            span.set_attributes({
                "redis.key": key,
                "redis.ttl": ttl_seconds
            })

            try:
                if isinstance(value, (dict, list)):
                    value = json.dumps(value)

                result = self.client.setex(key, ttl_seconds, value)

                span.set_attribute("redis.result", "success")
                return bool(result)

            except Exception as e:
                span.set_attribute("redis.result", "error")
                logger.error(f"Redis set failed for key {key}: {str(e)}")
                return False

    def get(self, key: str) -> Optional[str]:
        """Get a raw string value, or None when missing or unavailable."""
        if not self.client:
            logger.warning("Redis client not available, skipping get operation")
            return None

        with tracer.start_as_current_span("redis.get") as span:
            span.set_attribute("redis.key", key)

            try:
                value = self.client.get(key)
                span.set_attribute("redis.result", "not_found" if value is None else "hit")
                return value

            except Exception as e:
                span.set_attribute("redis.result", "error")
                logger.error(f"Redis get failed for key {key}: {str(e)}")
                return None

    def get_json(self, key: str) -> Optional[Union[Dict, List]]:
        """Get a JSON value, or None when missing, unreadable or unavailable."""
        value = self.get(key)
        if value is None:
            return None

        try:
            return json.loads(value)
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Cached value for key {key} is not valid JSON")
            return None

    def delete(self, key: str) -> bool:
        """
        Delete a key from Redis.

        Args:
            key: Redis key to delete

        Returns:
            True if key was deleted, False otherwise
        """
        if not self.client:
            logger.warning("Redis client not available, skipping delete operation")
            return False

        with tracer.start_as_current_span("redis.delete") as span:
            span.set_attribute("redis.key", key)

            try:
                result = self.client.delete(key)
                span.set_attribute("redis.result", "success")
                return bool(result)

            except Exception as e:
                span.set_attribute("redis.result", "error")
                logger.error(f"Redis delete failed for key {key}: {str(e)}")
                return False

    def exists(self, key: str) -> bool:
        """Check if a key exists in Redis."""
        if not self.client:
            return False

        try:
            return bool(self.client.exists(key))
        except Exception as e:
            logger.error(f"Redis exists check failed for key {key}: {str(e)}")
            return False

    # JWT token blocklist, written by the identity service

    def is_token_blocked(self, jti: str) -> bool:
        """Check if a JWT token is in the blocklist."""
        return self.exists(f"blocklist:jwt:{jti}")

    # DOB Statistics Caching

    @staticmethod
    def _statistics_key(cpo_id: str, days: int) -> str:
        return f"dob:stats:{cpo_id}:{days}"

    def cache_dob_statistics(self, cpo_id: str, days: int, statistics: Dict[str, int],
                             ttl_seconds: int = STATISTICS_TTL_SECONDS) -> bool:
        """Cache entry counts for an officer and look-back window."""
        if self.client:
            try:
                # Track cached windows so invalidation can clear all of them
                self.client.sadd(f"dob:stats:{cpo_id}:windows", days)
            except Exception as e:
                logger.error(f"Redis sadd failed for officer {cpo_id}: {str(e)}")
        return self.set_with_ttl(self._statistics_key(cpo_id, days), statistics, ttl_seconds)

    def get_cached_dob_statistics(self, cpo_id: str, days: int) -> Optional[Dict[str, int]]:
        """Get cached entry counts for an officer."""
        return self.get_json(self._statistics_key(cpo_id, days))

    def invalidate_dob_statistics(self, cpo_id: str) -> int:
        """
        Drop every cached statistics window for an officer.

        Returns:
            Number of keys deleted
        """
        if not self.client:
            return 0

        with tracer.start_as_current_span("redis.invalidate_dob_statistics") as span:
            span.set_attribute("dob.cpo_id", cpo_id)
            windows_key = f"dob:stats:{cpo_id}:windows"

            try:
                windows = self.client.smembers(windows_key) or set()
                keys = [self._statistics_key(cpo_id, int(days)) for days in windows]
                keys.append(windows_key)
                deleted = self.client.delete(*keys)
                span.set_attribute("redis.deleted", deleted)
                return deleted

            except Exception as e:
                span.set_attribute("redis.result", "error")
                logger.error(f"Redis statistics invalidation failed for officer {cpo_id}: {str(e)}")
                return 0

    def health_check(self) -> Dict[str, Any]:
        """
        Perform Redis health check.

        Returns:
            Health check results
        """
        if not self.is_available():
            return {
                "status": "unavailable",
                "message": "Redis client not initialized",
                "timestamp": time.time()
            }

        try:
            start_time = time.time()
            self.client.ping()
            response_time = (time.time() - start_time) * 1000  # ms

            return {
                "status": "healthy",
                "response_time_ms": round(response_time, 2),
                "timestamp": time.time()
            }

        except Exception as e:
            return {
                "status": "unhealthy",
                "error": str(e),
                "timestamp": time.time()
            }

