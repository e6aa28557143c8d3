# storefront/repositories/change_feed.py
"""
Change feed: long-lived subscriptions that deliver "something changed"
notifications (never payloads) for rows matching `column = value`.

Consumers reload what they need on each notification, so they work the
same over Supabase realtime, a message-queue topic or a long poll.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol

from realtime import AuthorizationError, NotConnectedError
from supabase import AsyncClient

from storefront.core.errors import RemoteCallError

logger = logging.getLogger(__name__)

OnChange = Callable[[], None]


class Subscription(Protocol):
    async def close(self) -> None: ...


class ChangeFeed(Protocol):
    async def subscribe(self, table: str, column: str, value: str, on_change: OnChange) -> Subscription: ...


class SupabaseSubscription:
    def __init__(self, client: AsyncClient, channel: Any, topic: str):
        self.client = client
        self.channel = channel
        self.topic = topic
        self.closed = False

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self.client.remove_channel(self.channel)
        logger.debug("unsubscribed %s", self.topic)


class SupabaseChangeFeed:
    """
    Change feed over Supabase realtime `postgres_changes`.
    """

    def __init__(self, client: AsyncClient, schema: str = "public"):
        self.client = client
        self.schema = schema

    async def subscribe(self, table: str, column: str, value: str, on_change: OnChange) -> SupabaseSubscription:
        topic = f"{self.schema}:{table}:{column}={value}"

        def _notify(_payload: Any) -> None:
            # payload has the row for insert/update and the old row for
            # delete; consumers only need to know that a change happened.
            on_change()

        channel = self.client.channel(topic)
        channel.on_postgres_changes(
            "*",
            schema=self.schema,
            table=table,
            filter=f"{column}=eq.{value}",
            callback=_notify,
        )
        try:
            await channel.subscribe()
        except (AuthorizationError, NotConnectedError, OSError, asyncio.TimeoutError) as exc:
            logger.error("subscribing %s failed: %s", topic, exc)
            raise RemoteCallError(f"Live updates unavailable: {exc}") from exc
        logger.debug("subscribed %s", topic)
        return SupabaseSubscription(self.client, channel, topic)
