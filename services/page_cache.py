import json
import logging
from redis.asyncio import Redis
from redis.exceptions import RedisError
from config import settings

logger = logging.getLogger(__name__)

redis_client = Redis.from_url(settings.REDIS_URL, decode_responses=True)

KEY_PREFIX = "page:"


class PageCache:
    """
    Rendered page payloads, one Redis hash per route path.

    Each hash field is a viewer/query variant of the page, so revalidating
    a path drops every variant at once.
    """

    def __init__(self, client, ttl: int = settings.PAGE_CACHE_TTL):
        self.client = client
        self.ttl = ttl

    @staticmethod
    def key(path: str) -> str:
        return f"{KEY_PREFIX}{path}"

    async def get(self, path: str, variant: str):
        try:
            raw = await self.client.hget(self.key(path), variant)
        except RedisError as e:
            logger.warning(f"Page cache read failed for {path}: {e}")
            return None
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, path: str, variant: str, payload):
        key = self.key(path)
        try:
            await self.client.hset(key, variant, json.dumps(payload, default=str))
            await self.client.expire(key, self.ttl)
        except RedisError as e:
            logger.warning(f"Page cache write failed for {path}: {e}")

    async def revalidate(self, path: str) -> bool:
        # Runs after the write has committed; on failure the TTL bounds staleness
        try:
            await self.client.delete(self.key(path))
        except RedisError as e:
            logger.error(f"Revalidation failed for {path}: {e}")
            return False
        logger.info(f"Revalidated {path}")
        return True

    async def get_or_render(self, path: str, variant: str, render):
        cached = await self.get(path, variant)
        if cached is not None:
            return cached
        payload = await render()
        await self.set(path, variant, payload)
        return payload


def get_page_cache() -> PageCache:
    return PageCache(redis_client)
