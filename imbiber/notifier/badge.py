"""Unread badge counter, one integer per user in key-value storage."""

import logging

from imbiber.storage import KeyValueStorage

logger = logging.getLogger(__name__)

BADGE_KEY = "bookimbiber_unread_count"


class BadgeCounter:
    def __init__(self, storage: KeyValueStorage):
        self.storage = storage

    def _key(self, user_id: str) -> str:
        return f"{BADGE_KEY}:{user_id}"

    async def get(self, user_id: str) -> int:
        try:
            raw = await self.storage.get_item(self._key(user_id))
            return int(raw) if raw else 0
        except Exception as e:
            logger.debug(f"Could not read badge count for {user_id}: {e}")
            return 0

    async def _set(self, user_id: str, count: int) -> None:
        try:
            await self.storage.set_item(self._key(user_id), str(max(0, count)))
        except Exception as e:
            logger.debug(f"Could not store badge count for {user_id}: {e}")

    async def increment(self, user_id: str) -> None:
        await self._set(user_id, await self.get(user_id) + 1)

    async def decrement(self, user_id: str) -> None:
        await self._set(user_id, await self.get(user_id) - 1)

    async def clear(self, user_id: str) -> None:
        await self._set(user_id, 0)
