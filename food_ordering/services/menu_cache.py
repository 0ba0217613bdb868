from __future__ import annotations

import json
import logging
from typing import Any, List, Optional

from food_ordering.core.cache import CacheGateway
from food_ordering.core.config import MENU_CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)


def menu_cache_key(restaurant_id: int) -> str:
    return f"menu:{restaurant_id}"


class MenuCache:
    """Read-through / write-invalidate wrapper around the cache gateway.

    Every call swallows backend errors: a missing or broken cache degrades to
    database reads and must never fail the request.
    """

    def __init__(self, gateway: CacheGateway | None, *, ttl_seconds: int = MENU_CACHE_TTL_SECONDS) -> None:
        self._gateway = gateway
        self.ttl_seconds = ttl_seconds

    def get_menu(self, restaurant_id: int) -> Optional[List[dict[str, Any]]]:
        if self._gateway is None:
            return None
        key = menu_cache_key(restaurant_id)
        try:
            raw = self._gateway.get(key)
        except Exception:
            logger.warning("Error reading cached menu key=%s", key, exc_info=True)
            return None
        if raw is None:
            return None
        try:
            cached = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Discarding undecodable cached menu key=%s", key)
            return None
        return cached if isinstance(cached, list) else None

    def store_menu(self, restaurant_id: int, items: List[dict[str, Any]]) -> None:
        if self._gateway is None:
            return
        key = menu_cache_key(restaurant_id)
        try:
            self._gateway.set(key, json.dumps(items, default=str), self.ttl_seconds)
        except Exception:
            logger.warning("Error caching menu key=%s", key, exc_info=True)

    def invalidate(self, restaurant_id: int) -> None:
        if self._gateway is None:
            return
        key = menu_cache_key(restaurant_id)
        try:
            self._gateway.delete(key)
        except Exception:
            logger.warning("Error invalidating cached menu key=%s", key, exc_info=True)
