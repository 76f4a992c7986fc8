"""In-process key/value cache with per-domain TTLs and pattern invalidation.

Every repository read goes through ``CacheService.get`` first and populates
the cache on a miss. Writers never wait for TTL expiry: each mutating
repository call invalidates the namespaces it touched, so the TTL only bounds
staleness caused by changes made outside the application.
"""

import logging
import math
import re
import time
from threading import Lock
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from cachetools import TLRUCache

logger = logging.getLogger("craftstore.cache")

_MISSING = object()


def _param_string(params: Mapping[str, Any]) -> str:
    parts = [f"{key}:{value}" for key, value in sorted(params.items()) if value is not None]
    return "|".join(parts)


class CacheKeys:
    """Key builders. Namespaces are the first segment, matched by pattern deletes."""

    @staticmethod
    def categories() -> str:
        return "categories:all"

    @staticmethod
    def category(category_id: str) -> str:
        return f"category:{category_id}"

    @staticmethod
    def category_by_slug(slug: str) -> str:
        return f"category:slug:{slug}"

    @staticmethod
    def products(filters: Mapping[str, Any]) -> str:
        return f"products:{_param_string(filters)}"

    @staticmethod
    def products_page(filters: Mapping[str, Any], page: int, limit: int) -> str:
        return f"products:paginated:{_param_string(filters)}:page:{page}:limit:{limit}"

    @staticmethod
    def product(product_id: str) -> str:
        return f"product:{product_id}"

    @staticmethod
    def orders() -> str:
        return "orders:all"

    @staticmethod
    def order(order_id: str) -> str:
        return f"orders:id:{order_id}"

    @staticmethod
    def orders_by_customer(phone: str) -> str:
        return f"orders:customer:{phone}"

    @staticmethod
    def orders_by_user(user_id: str) -> str:
        return f"orders:user:{user_id}"

    @staticmethod
    def product_stats() -> str:
        return "stats:products"

    @staticmethod
    def analytics(report: str, params: Mapping[str, Any]) -> str:
        return f"analytics:{report}:{_param_string(params)}"

    @staticmethod
    def wishlist(user_id: str) -> str:
        return f"wishlist:{user_id}"


def _expires_at(_key: str, entry: Tuple[int, Any], now: float) -> float:
    ttl = entry[0]
    # a ttl of 0 keeps the entry until it is invalidated or evicted
    return math.inf if ttl == 0 else now + ttl


class CacheService:
    """Thread-safe TTL store shared by every repository of one application.

    Entries live in a ``cachetools.TLRUCache``: each value carries its own TTL,
    expired entries are dropped first when the store is full, and the least
    recently used live entry goes after that.
    """

    def __init__(
        self,
        *,
        enabled: bool = True,
        default_ttl: int = 300,
        max_keys: int = 1000,
        ttls: Optional[Mapping[str, int]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.enabled = enabled
        self.default_ttl = default_ttl
        self.max_keys = max_keys
        self._ttls: Dict[str, int] = dict(ttls or {})
        self._entries: TLRUCache = TLRUCache(maxsize=max_keys, ttu=_expires_at, timer=clock)
        self._slug_ids: Dict[str, str] = {}
        self._lock = Lock()
        self._hits = 0
        self._misses = 0

    def ttl_for(self, domain: str) -> int:
        return self._ttls.get(domain, self.default_ttl)

    def get(self, key: str, default: Any = None) -> Any:
        if not self.enabled:
            return default
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
            else:
                self._hits += 1
        logger.debug("cache_miss" if entry is None else "cache_hit", extra={"key": key})
        return default if entry is None else entry[1]

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self.enabled:
            return False
        if ttl is None:
            ttl = self.default_ttl
        with self._lock:
            self._entries[key] = (ttl, value)
        logger.debug("cache_set", extra={"key": key, "ttl": ttl})
        return True

    def get_or_set(self, key: str, loader: Callable[[], Any], ttl: Optional[int] = None) -> Any:
        cached = self.get(key, _MISSING)
        if cached is not _MISSING:
            return cached
        value = loader()
        if value is not None:
            self.set(key, value, ttl)
        return value

    def delete(self, key: str) -> int:
        if not self.enabled:
            return 0
        with self._lock:
            removed = self._entries.pop(key, None) is not None
        return int(removed)

    def delete_pattern(self, pattern: str) -> int:
        if not self.enabled:
            return 0
        regex = re.compile(pattern)
        with self._lock:
            matching = [key for key in list(self._entries.keys()) if regex.search(key)]
            for key in matching:
                self._entries.pop(key, None)
        if matching:
            logger.debug("cache_pattern_invalidated", extra={"pattern": pattern, "deleted": len(matching)})
        return len(matching)

    def flush(self) -> None:
        with self._lock:
            self._entries.clear()
            self._slug_ids.clear()
        logger.info("cache_flushed")

    def purge_expired(self) -> int:
        with self._lock:
            return len(self._entries.expire())

    def stats(self) -> Dict[str, int]:
        with self._lock:
            self._entries.expire()
            return {"keys": len(self._entries), "hits": self._hits, "misses": self._misses}

    # slug -> id memo, lives alongside the TTL entries and is cleared with categories
    def remember_slug(self, slug: str, category_id: str) -> None:
        with self._lock:
            self._slug_ids[slug] = category_id

    def lookup_slug(self, slug: str) -> Optional[str]:
        with self._lock:
            return self._slug_ids.get(slug)

    def invalidate_product(self, product_id: str) -> None:
        self.delete(CacheKeys.product(product_id))
        self.invalidate_products()
        logger.info("product_cache_invalidated", extra={"product_id": product_id})

    def invalidate_products(self) -> None:
        self.delete_pattern(r"^products?:")
        self.delete_pattern(r"^stats:")
        self.delete_pattern(r"^analytics:")
        self.delete_pattern(r"^wishlist:")

    def invalidate_category(self, category_id: Optional[str] = None) -> None:
        if category_id:
            self.delete(CacheKeys.category(category_id))
        self.delete_pattern(r"^categor(y|ies):")
        self.delete_pattern(r"^products:")
        with self._lock:
            self._slug_ids.clear()
        logger.info("category_cache_invalidated", extra={"category_id": category_id})

    def invalidate_orders(self) -> None:
        self.delete_pattern(r"^orders:")
        self.delete_pattern(r"^analytics:")
        logger.info("orders_cache_invalidated")

    def invalidate_wishlist(self, user_id: str) -> None:
        self.delete(CacheKeys.wishlist(user_id))
