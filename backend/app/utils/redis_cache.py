import json
import logging
import time
from enum import Enum
from typing import Any, Optional

import redis


logger = logging.getLogger(__name__)


class CacheKind(str, Enum):
    BRAND = "marca"
    MODEL = "modelo"
    BRAND_LIST = "marcas:list"
    MODEL_LIST = "modelos:list"
    STATS = "stats"


TTL_SECONDS = {
    CacheKind.BRAND: 6 * 3600,
    CacheKind.MODEL: 4 * 3600,
    CacheKind.BRAND_LIST: 2 * 3600,
    CacheKind.MODEL_LIST: 2 * 3600,
    CacheKind.STATS: 30 * 60,
}


def build_redis(url: Optional[str]) -> Optional[redis.Redis]:
    if not url:
        return None
    return redis.from_url(
        url,
        decode_responses=True,
        socket_connect_timeout=0.2,
        socket_timeout=0.5,
        retry_on_timeout=False,
        health_check_interval=30,
    )


BRAND_SCOPE = "marcas"


def brand_scope(brand_code: str) -> str:
    return f"marca:{brand_code}"


def model_list_scope(brand_code: str) -> str:
    return f"modelos:{brand_code}"


def model_scope(model_code: str) -> str:
    return f"modelo:{model_code}"


def build_brand_list_key(vehicle_type: Optional[str], page: int, size: int, version: int = 0) -> str:
    return "v{v}:{t}:{page}:{size}".format(v=version, t=(vehicle_type or "all").lower(), page=page, size=size)


def build_model_list_key(brand_code: str, page: int, size: int, version: int = 0) -> str:
    return f"{brand_code}:v{version}:{page}:{size}"


def build_brand_count_key(vehicle_type: Optional[str], version: int = 0) -> str:
    return "marcas:v{v}:{t}".format(v=version, t=(vehicle_type or "all").lower())


def build_model_count_key(brand_code: str, version: int = 0) -> str:
    return f"modelos:{brand_code}:v{version}"


def build_entity_key(code: str, version: int = 0) -> str:
    return f"{code}:v{version}"


class CatalogCache:
    """
    Read-through cache for brands, models, list pages and counts.

    Values are stored as JSON with a TTL per kind. Reads never raise: a
    backend error is logged and treated as a miss, and the cache stays off
    for a short cool-down. Writes and deletes are best effort.
    """

    def __init__(self, client: Optional[redis.Redis], prefix: str = "fipe:cache") -> None:
        self.client = client
        self.prefix = prefix
        self._disabled_until: float = 0.0
        self._write_disabled_until: float = 0.0
        self._write_disabled_reason: Optional[str] = None

    def _now(self) -> float:
        return time.time()

    def _mark_disabled(self, reason: str, seconds: int = 60) -> None:
        self._disabled_until = self._now() + seconds
        logger.warning("redis disabled for %ss: %s", seconds, reason)

    def _mark_write_disabled(self, reason: str, seconds: int = 300) -> None:
        self._write_disabled_until = self._now() + seconds
        self._write_disabled_reason = reason
        logger.warning("redis write disabled for %ss: %s", seconds, reason)

    def _redis(self, *, for_delete: bool = False) -> Optional[redis.Redis]:
        if self.client is None:
            return None
        # deletes ignore the cool-down
        if not for_delete and self._disabled_until and self._disabled_until > self._now():
            return None
        return self.client

    def _key(self, kind: CacheKind, key: str) -> str:
        return f"{self.prefix}:{kind.value}:{key}"

    # --- generic operations ---
    def get(self, kind: CacheKind, key: str) -> Optional[Any]:
        client = self._redis()
        if client is None:
            return None
        full_key = self._key(kind, key)
        try:
            raw = client.get(full_key)
        except Exception as exc:
            logger.warning("redis get failed for %s: %s", full_key, exc)
            self._mark_disabled(str(exc))
            return None
        if not raw:
            logger.debug("cache miss: %s", full_key)
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            logger.warning("dropping undecodable cache entry %s: %s", full_key, exc)
            self._delete_keys(client, [full_key])
            return None

    def put(self, kind: CacheKind, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if self._write_disabled_until and self._write_disabled_until > self._now():
            logger.warning(
                "redis write skipped (disabled): %s", self._write_disabled_reason or "unknown"
            )
            return False
        client = self._redis()
        if client is None:
            return False
        ttl_sec = int(ttl if ttl is not None else TTL_SECONDS[kind])
        full_key = self._key(kind, key)
        try:
            client.setex(full_key, ttl_sec, json.dumps(value, ensure_ascii=False, default=str))
            return True
        except Exception as exc:
            msg = str(exc)
            if "MISCONF" in msg or "No space left on device" in msg or "ENOSPC" in msg:
                self._mark_write_disabled(msg, seconds=300)
            logger.warning("redis set failed for %s: %s", full_key, exc)
            return False

    def invalidate(self, kind: CacheKind, key: str) -> int:
        client = self._redis(for_delete=True)
        if client is None:
            return 0
        return self._delete_keys(client, [self._key(kind, key)])

    def invalidate_all(self, kind: CacheKind) -> int:
        return self.delete_by_pattern(self._key(kind, "*"))

    def delete_by_pattern(self, pattern: str) -> int:
        client = self._redis(for_delete=True)
        if client is None:
            return 0
        deleted = 0
        try:
            for key in client.scan_iter(match=pattern, count=200):
                try:
                    deleted += int(client.delete(key))
                except Exception as exc:
                    logger.warning("redis delete failed for %s: %s", key, exc)
                    continue
        except Exception as exc:
            logger.warning("redis scan/delete failed for %s: %s", pattern, exc)
        return deleted

    def _delete_keys(self, client: redis.Redis, keys: list) -> int:
        try:
            return int(client.delete(*keys))
        except Exception as exc:
            logger.warning("redis delete failed: %s", exc)
            return 0

    # --- namespace versions ---
    def _version_key(self, scope: str) -> str:
        return f"{self.prefix}:ver:{scope}"

    def version(self, scope: str) -> Optional[int]:
        """Current generation of a key namespace, or None when the cache is off.

        Callers read it before querying the store and build the cache key with
        it, so a fill computed before an invalidation lands under a retired key.
        """
        client = self._redis()
        if client is None:
            return None
        try:
            raw = client.get(self._version_key(scope))
        except Exception as exc:
            logger.warning("redis version read failed for %s: %s", scope, exc)
            self._mark_disabled(str(exc))
            return None
        try:
            return int(raw or 0)
        except ValueError:
            return 0

    def bump(self, scope: str) -> Optional[int]:
        client = self._redis(for_delete=True)
        if client is None:
            return None
        try:
            return int(client.incr(self._version_key(scope)))
        except Exception as exc:
            logger.warning("redis version bump failed for %s: %s", scope, exc)
            return None

    # --- domain invalidation ---
    def invalidate_brand(self, brand_code: str) -> None:
        self.bump(BRAND_SCOPE)
        self.bump(brand_scope(brand_code))
        # retired generations are dropped eagerly, TTL covers the rest
        self.delete_by_pattern(self._key(CacheKind.BRAND, f"{brand_code}:*"))
        self.invalidate_all(CacheKind.BRAND_LIST)
        self.delete_by_pattern(self._key(CacheKind.STATS, "marcas:*"))
        logger.info("cache invalidated for brand %s", brand_code)

    def invalidate_model(self, model_code: str) -> None:
        self.bump(model_scope(model_code))
        self.delete_by_pattern(self._key(CacheKind.MODEL, f"{model_code}:*"))

    def invalidate_model_lists(self, brand_code: str) -> None:
        self.bump(model_list_scope(brand_code))
        self.delete_by_pattern(self._key(CacheKind.MODEL_LIST, f"{brand_code}:*"))
        self.delete_by_pattern(self._key(CacheKind.STATS, f"modelos:{brand_code}:*"))
        logger.info("cache invalidated for model lists of brand %s", brand_code)

    def clear_all(self) -> int:
        deleted = self.delete_by_pattern(f"{self.prefix}:*")
        logger.info("cache cleared, %d keys deleted", deleted)
        return deleted

    def is_available(self) -> bool:
        client = self._redis()
        if client is None:
            return False
        try:
            return bool(client.ping())
        except Exception as exc:
            logger.warning("redis unavailable: %s", exc)
            self._mark_disabled(str(exc))
            return False


__all__ = [
    "CacheKind",
    "CatalogCache",
    "TTL_SECONDS",
    "build_redis",
    "build_brand_list_key",
    "build_model_list_key",
    "build_brand_count_key",
    "build_model_count_key",
    "build_entity_key",
    "BRAND_SCOPE",
    "brand_scope",
    "model_list_scope",
    "model_scope",
]
