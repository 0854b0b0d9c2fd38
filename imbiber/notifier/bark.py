"""
Bark push notification implementation.
https://github.com/Finb/Bark
"""

import logging
from typing import Iterable, Optional

import httpx

from imbiber.books import Book
from imbiber.config import RuntimeConfig, get_runtime_config

logger = logging.getLogger(__name__)

MAX_TITLES_IN_BODY = 3


class BarkNotifier:
    """Bark push notification sender."""

    def __init__(
        self,
        config: Optional[RuntimeConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._config = config
        self._transport = transport

    @property
    def config(self) -> RuntimeConfig:
        return self._config or get_runtime_config()

    def ensure_permissions(self) -> bool:
        """Whether pushes may be sent at all (enabled and a device key is set)."""
        config = self.config
        if not config.bark_enabled:
            logger.debug("Bark push notifications are disabled, skipping")
            return False
        if not config.bark_device_key:
            logger.warning("Bark device key not configured, skipping notification")
            return False
        return True

    async def send(
        self,
        title: str,
        body: str,
        url: Optional[str] = None,
        group: Optional[str] = None,
    ) -> bool:
        """
        Send a push notification via Bark.

        Args:
            title: Notification title
            body: Notification body
            url: Optional URL to open when notification is tapped
            group: Optional group name for grouping notifications

        Returns:
            True if sent successfully, False otherwise
        """
        if not self.ensure_permissions():
            return False

        config = self.config
        endpoint = f"{config.bark_server_url.rstrip('/')}/{config.bark_device_key}"

        payload = {
            "title": title,
            "body": body,
            "group": group or "New Releases",
        }

        if url:
            payload["url"] = url

        try:
            async with httpx.AsyncClient(
                timeout=config.request_timeout, transport=self._transport
            ) as client:
                response = await client.post(endpoint, json=payload)
                response.raise_for_status()

                result = response.json()
                if result.get("code") == 200:
                    logger.info(f"Notification sent: {title}")
                    return True
                else:
                    logger.error(f"Bark API error: {result}")
                    return False

        except httpx.HTTPStatusError as e:
            logger.error(f"Bark HTTP error: {e.response.status_code} - {e.response.text}")
            return False
        except Exception as e:
            logger.error(f"Failed to send Bark notification: {e}")
            return False

    async def notify_release(self, author: str, books: Iterable[Book]) -> bool:
        """Push "<author> has new releases" listing the first few titles."""
        books = list(books)
        titles = ", ".join(book.title for book in books[:MAX_TITLES_IN_BODY])
        url = next((book.info_link for book in books if book.info_link), None)
        return await self.send(
            title=f"{author} has new releases",
            body=titles,
            url=url,
            group=author,
        )
