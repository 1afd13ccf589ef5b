# pharmacheck/infra/cache/redis_cache.py
import os
import json
import logging
from typing import Any, List, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from pharmacheck.domain.models import Alert
from pharmacheck.domain.ports import AlertCorpusPort

log = logging.getLogger("pharmacheck.cache")

DEFAULT_TTL = int(os.getenv("ALERT_CACHE_TTL", "900"))  # 15 min
ACTIVE_ALERTS_KEY = "pharmacheck:alerts:active:v1"


class RedisCache:
    """
    Thin JSON cache on redis.asyncio.

        get_json/set_json   JSON values with TTL
        delete, ping
        from_env()          construct from REDIS_URL
    """
    def __init__(self, client: Optional[aioredis.Redis] = None):
        self.r = client or aioredis.from_url(
            os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            encoding="utf-8",
            decode_responses=True,
        )

    @classmethod
    def from_env(cls, url: Optional[str] = None):
        url = url or os.getenv("REDIS_URL", "redis://localhost:6379/0")
        return cls(aioredis.from_url(url, encoding="utf-8", decode_responses=True))

    async def get_json(self, key: str) -> Optional[Any]:
        raw = await self.r.get(key)
        return json.loads(raw) if raw else None

    async def set_json(self, key: str, value: Any, ttl: int = DEFAULT_TTL):
        await self.r.set(key, json.dumps(value, ensure_ascii=False, default=str), ex=ttl)

    async def delete(self, *keys: str) -> int:
        return await self.r.delete(*keys)

    async def ping(self) -> bool:
        return bool(await self.r.ping())

    async def aclose(self) -> None:
        await self.r.aclose()


class CachedAlertCorpus(AlertCorpusPort):
    """
    Read-through cache for the active-alert list. Point lookups go straight to
    the inner corpus. Redis trouble is logged and bypassed, never surfaced.
    """
    def __init__(self, inner: AlertCorpusPort, cache: RedisCache, ttl: int = DEFAULT_TTL):
        self.inner = inner
        self.cache = cache
        self.ttl = ttl

    async def list_active_alerts(self) -> List[Alert]:
        try:
            cached = await self.cache.get_json(ACTIVE_ALERTS_KEY)
        except (RedisError, json.JSONDecodeError) as e:
            log.warning("[cache] read failed, bypassing: %s", e)
            cached = None
        if cached is not None:
            return [Alert.model_validate(a) for a in cached]

        alerts = await self.inner.list_active_alerts()
        try:
            await self.cache.set_json(ACTIVE_ALERTS_KEY, [a.model_dump(mode="json") for a in alerts], ttl=self.ttl)
        except RedisError as e:
            log.warning("[cache] write failed: %s", e)
        return alerts

    async def get_alert_by_id(self, alert_id: str) -> Optional[Alert]:
        return await self.inner.get_alert_by_id(alert_id)

    async def find_by_url(self, url: str) -> Optional[Alert]:
        return await self.inner.find_by_url(url)

    async def invalidate(self) -> None:
        try:
            await self.cache.delete(ACTIVE_ALERTS_KEY)
        except RedisError as e:
            log.warning("[cache] invalidate failed: %s", e)

    async def ping(self) -> bool:
        return await self.inner.ping()

    async def aclose(self) -> None:
        await self.inner.aclose()
        await self.cache.aclose()
