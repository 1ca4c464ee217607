import logging
from collections import defaultdict
from typing import Callable, Dict, List, Optional

import redis

from .events import Event, EventType

logger = logging.getLogger(__name__)

Handler = Callable[[Event], None]


class EventBus:
    """
    In-process dispatcher for domain events.

    Lifecycle services publish after their primary write has committed.
    Handlers run synchronously; a failing handler is logged and skipped so
    the caller's mutation always stands. When a Redis client is supplied,
    every event is mirrored onto the tournament and global channels.
    """

    def __init__(self, redis_client: Optional[redis.Redis] = None):
        self.redis = redis_client
        self._handlers: Dict[EventType, List[Handler]] = defaultdict(list)
        self._catch_all: List[Handler] = []

    def subscribe(self, event_type: EventType, handler: Handler):
        self._handlers[event_type].append(handler)

    def subscribe_all(self, handler: Handler):
        self._catch_all.append(handler)

    def publish(self, event: Event) -> int:
        """Dispatch ``event`` to its handlers. Returns how many handlers succeeded."""
        delivered = 0
        for handler in self._handlers.get(event.type, []) + self._catch_all:
            try:
                handler(event)
                delivered += 1
            except Exception:
                logger.exception(f"Handler {getattr(handler, '__name__', handler)!r} failed for {event.type}")

        self._mirror(event)
        return delivered

    def _mirror(self, event: Event):
        if self.redis is None:
            return
        try:
            if event.tournament_id is not None:
                self.redis.publish(f"tournament:{event.tournament_id}:events", event.to_json())
            self.redis.publish("global:announcements", event.to_json())
        except redis.exceptions.RedisError as e:
            logger.warning(f"Could not mirror {event.type} to Redis: {e}")

    def publish_user_notification(self, user_id: int, payload: str):
        if self.redis is None:
            return
        try:
            self.redis.publish(f"user:{user_id}:notifications", payload)
        except redis.exceptions.RedisError as e:
            logger.warning(f"Could not push notification to user {user_id}: {e}")


def redis_from_url(url: str) -> Optional[redis.Redis]:
    if not url:
        return None
    return redis.from_url(
        url,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5
    )
