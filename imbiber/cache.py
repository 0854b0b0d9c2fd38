"""
Keyed TTL cache for catalog API responses.

Entries are JSON envelopes ``{"value", "timestamp", "ttl"}`` in key-value
storage. Expired entries are treated as absent and removed when observed.
The cache fails open: any storage or decoding error is logged and reported as
a miss, so callers always fall through to a live fetch.
"""

import json
import logging
import time
from typing import Any, Callable, Optional

from imbiber.storage import KeyValueStorage

logger = logging.getLogger(__name__)

CACHE_PREFIX = "api_cache:"

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS
DEFAULT_TTL_MS = DAY_MS


def now_ms() -> int:
    """Wall clock in milliseconds since the epoch."""
    return int(time.time() * 1000)


class ApiCache:
    """TTL cache over a KeyValueStorage, scoped by key prefix."""

    def __init__(
        self,
        storage: KeyValueStorage,
        clock: Optional[Callable[[], int]] = None,
        prefix: str = CACHE_PREFIX,
    ):
        self.storage = storage
        self.clock = clock or now_ms
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def set(self, key: str, value: Any, ttl_ms: int = DEFAULT_TTL_MS) -> None:
        """Store a JSON-serializable value, replacing any previous entry."""
        if value is None:
            logger.debug(f"Refusing to cache None for {key}")
            return
        envelope = {"value": value, "timestamp": self.clock(), "ttl": ttl_ms}
        try:
            await self.storage.set_item(self._key(key), json.dumps(envelope))
            logger.debug(f"Cache set: {key} (TTL: {ttl_ms // HOUR_MS}h)")
        except Exception as e:
            logger.error(f"Error setting cache for {key}: {e}")

    async def _read_envelope(self, key: str) -> Optional[dict]:
        raw = await self.storage.get_item(self._key(key))
        if raw is None:
            return None
        envelope = json.loads(raw)
        if not isinstance(envelope, dict) or "timestamp" not in envelope or "ttl" not in envelope:
            raise ValueError("malformed cache envelope")
        return envelope

    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if missing, expired or unreadable."""
        try:
            envelope = await self._read_envelope(key)
            if envelope is None:
                logger.debug(f"Cache miss: {key}")
                return None

            age = self.clock() - envelope["timestamp"]
            if age > envelope["ttl"]:
                logger.debug(f"Cache expired: {key} (age: {age // HOUR_MS}h)")
                await self.remove(key)
                return None

            logger.debug(f"Cache hit: {key} (age: {age // HOUR_MS}h)")
            return envelope.get("value")
        except Exception as e:
            logger.error(f"Error getting cache for {key}: {e}")
            return None

    async def remove(self, key: str) -> None:
        """Delete an entry; missing keys are fine."""
        try:
            await self.storage.remove_item(self._key(key))
        except Exception as e:
            logger.error(f"Error removing cache for {key}: {e}")

    async def clear_all(self) -> int:
        """Delete every entry under this cache's prefix. Returns the count removed."""
        try:
            keys = [k for k in await self.storage.get_all_keys() if k.startswith(self.prefix)]
            await self.storage.multi_remove(keys)
            logger.info(f"Cleared {len(keys)} cache entries")
            return len(keys)
        except Exception as e:
            logger.error(f"Error clearing cache: {e}")
            return 0

    async def get_metadata(self, key: str) -> Optional[dict]:
        """Timestamp, TTL, age and expiry flag of an entry, without evicting it."""
        try:
            envelope = await self._read_envelope(key)
        except Exception as e:
            logger.error(f"Error getting cache metadata for {key}: {e}")
            return None
        if envelope is None:
            return None
        age = self.clock() - envelope["timestamp"]
        return {
            "timestamp": envelope["timestamp"],
            "ttl": envelope["ttl"],
            "age": age,
            "is_expired": age > envelope["ttl"],
        }
