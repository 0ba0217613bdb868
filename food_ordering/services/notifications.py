from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from threading import Lock
from typing import Any, Callable, DefaultDict, Iterable, List, Set

import redis

from food_ordering.core.config import NOTIFICATIONS_REDIS_ENABLED, REDIS_URL

logger = logging.getLogger(__name__)

SUBSCRIPTION_QUEUE_SIZE = 100


def restaurant_channel(restaurant_id: int) -> str:
    return f"restaurant_{restaurant_id}"


def order_channel(order_id: int) -> str:
    return f"order_{order_id}"


def user_channel(user_id: int) -> str:
    return f"user_{user_id}"


def build_envelope(channel: str, event: str, payload: dict[str, Any]) -> dict[str, Any]:
    return {"type": "event", "channel": channel, "event": event, "payload": payload}


class NotificationPublisher(ABC):
    @abstractmethod
    def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        """Fan an event out to everyone currently on channel. No replay, no ack."""


class Subscription:
    """One connected client: a bounded queue drained by its own event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, *, maxsize: int = SUBSCRIPTION_QUEUE_SIZE) -> None:
        self.loop = loop
        self.queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=maxsize)
        self.channels: Set[str] = set()

    def deliver(self, message: dict[str, Any]) -> None:
        try:
            self.loop.call_soon_threadsafe(self._put, message)
        except RuntimeError:
            # loop already closed: the client is gone
            logger.debug("Dropping message for closed subscription")

    def _put(self, message: dict[str, Any]) -> None:
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("Subscriber queue full; dropping %s on %s", message.get("event"), message.get("channel"))

    async def next_message(self) -> dict[str, Any]:
        return await self.queue.get()


class ChannelHub(NotificationPublisher):
    """In-process pub/sub used by the websocket endpoint.

    publish() may be called from threadpool workers; delivery is handed to
    each subscriber's loop and never blocks the caller.
    """

    def __init__(self) -> None:
        self._channels: DefaultDict[str, Set[Subscription]] = defaultdict(set)
        self._lock = Lock()

    def subscribe(self, loop: asyncio.AbstractEventLoop | None = None) -> Subscription:
        return Subscription(loop or asyncio.get_running_loop())

    def join(self, subscription: Subscription, channel: str) -> None:
        with self._lock:
            self._channels[channel].add(subscription)
            subscription.channels.add(channel)

    def leave(self, subscription: Subscription, channel: str) -> None:
        with self._lock:
            members = self._channels.get(channel)
            if members is not None:
                members.discard(subscription)
                if not members:
                    del self._channels[channel]
            subscription.channels.discard(channel)

    def unsubscribe(self, subscription: Subscription) -> None:
        for channel in list(subscription.channels):
            self.leave(subscription, channel)

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._channels.get(channel, ()))

    def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        with self._lock:
            members = list(self._channels.get(channel, ()))
        if not members:
            logger.debug("No subscribers on %s for %s", channel, event)
            return
        message = build_envelope(channel, event, payload)
        for subscription in members:
            subscription.deliver(message)


class RedisNotificationPublisher(NotificationPublisher):
    """Publishes to Redis channels of the same name for an external websocket bridge."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisNotificationPublisher":
        return cls(redis.Redis.from_url(url, socket_connect_timeout=2, socket_timeout=2))

    def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        message = json.dumps(build_envelope(channel, event, payload), default=str)
        self._client.publish(channel, message)


class FanoutPublisher(NotificationPublisher):
    def __init__(self, publishers: Iterable[NotificationPublisher]) -> None:
        self._publishers: List[NotificationPublisher] = list(publishers)

    def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        for publisher in self._publishers:
            try:
                publisher.publish(channel, event, payload)
            except Exception:
                logger.exception("Publisher %s failed for %s on %s", type(publisher).__name__, event, channel)


def safe_publish(
    publisher: NotificationPublisher | None,
    channel: str,
    event: str,
    payload: dict[str, Any] | Callable[[], dict[str, Any]],
) -> None:
    """Fire-and-forget emission: failures are logged, never raised.

    payload may be a zero-argument callable; it is then built inside the guard.
    """
    if publisher is None:
        return
    try:
        if callable(payload):
            payload = payload()
        publisher.publish(channel, event, payload)
    except Exception:
        logger.exception("Notification failed", extra={"channel": channel, "event": event})


def build_notification_publisher(hub: ChannelHub) -> NotificationPublisher:
    if NOTIFICATIONS_REDIS_ENABLED and REDIS_URL:
        return FanoutPublisher([hub, RedisNotificationPublisher.from_url(REDIS_URL)])
    return hub
