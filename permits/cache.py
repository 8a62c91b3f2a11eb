import hashlib
import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Any

import orjson
import redis.asyncio
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class CacheStatus(StrEnum):
    HIT = "HIT"
    MISS = "MISS"
    #: The cache is not configured or not reachable.
    BYPASS = "BYPASS"


def stable_serialize(value: Any) -> str:
    """
    Serialize a value to JSON with object keys sorted at every depth, so that equal values serialize identically
    regardless of key insertion order.
    """
    return orjson.dumps(value, option=orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS, default=str).decode()


def preview_cache_key(
    *, cache_version: int, application_id: str, sworn_only: bool, template_data: dict[str, Any]
) -> str:
    digest = hashlib.sha256(
        stable_serialize(
            {
                "cacheVersion": cache_version,
                "applicationId": application_id,
                "swornOnly": sworn_only,
                "templateData": template_data,
            }
        ).encode()
    ).hexdigest()
    return f"preview:pdf:{digest}"


class PreviewCache:
    """
    A Redis cache of rendered PDF previews.

    The connection is opened on first use and reopened after a failure. While Redis is unreachable, reads report
    :attr:`CacheStatus.BYPASS` and writes are skipped. The outage is logged once, not on every request.
    """

    def __init__(
        self,
        url: str,
        ttl: int,
        client_factory: Callable[[str], redis.asyncio.Redis] = redis.asyncio.from_url,
    ):
        #: The Redis connection string, or "" to disable the cache
        self.url = url
        #: The number of seconds for which entries are kept
        self.ttl = ttl
        self.client_factory = client_factory
        self._client: redis.asyncio.Redis | None = None
        self._unavailable_logged = False

    def _warn_unavailable(self, message: str, error: BaseException) -> None:
        if not self._unavailable_logged:
            self._unavailable_logged = True
            logger.warning("%s Preview cache is bypassed: %s", message, error)

    async def _discard_client(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            try:
                await client.aclose()
            except (RedisError, OSError):
                logger.debug("Error closing Redis client", exc_info=True)

    async def _get_client(self) -> redis.asyncio.Redis | None:
        if not self.url:
            return None
        if self._client is None:
            client = self.client_factory(self.url)
            try:
                await client.ping()
            except (RedisError, OSError) as e:
                self._warn_unavailable("Unable to connect to Redis.", e)
                self._client = client
                await self._discard_client()
                return None
            self._client = client
            self._unavailable_logged = False
        return self._client

    async def get(self, key: str) -> tuple[CacheStatus, bytes | None]:
        client = await self._get_client()
        if client is None:
            return CacheStatus.BYPASS, None
        try:
            value = await client.get(key)
        except (RedisError, OSError) as e:
            self._warn_unavailable("Redis read failed.", e)
            await self._discard_client()
            return CacheStatus.BYPASS, None
        if value is None:
            return CacheStatus.MISS, None
        return CacheStatus.HIT, value

    async def set(self, key: str, value: bytes) -> bool:
        """
        :return: Whether the value was stored.
        """
        client = await self._get_client()
        if client is None:
            return False
        try:
            await client.setex(key, self.ttl, value)
        except (RedisError, OSError) as e:
            self._warn_unavailable("Redis write failed.", e)
            await self._discard_client()
            return False
        return True

    async def aclose(self) -> None:
        await self._discard_client()
