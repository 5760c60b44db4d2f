"""
Realtime Broadcaster

Fan-out of visitor events to connected admin dashboards.

Design Decisions:
- One admins group; a connection joins it once and leaves by disconnecting
- Subscribers are anything with an async send_json(), normally Starlette WebSockets
- A joining subscriber is registered before its snapshot is loaded; events
  published meanwhile are held and sent right after the snapshot
- Best effort, at most once: a subscriber whose send fails is dropped
- Runs on the event loop only, so the subscriber set needs no locking
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Protocol, Set

logger = logging.getLogger(__name__)

INIT_VISITORS = "init_visitors"
NEW_VISITOR = "new_visitor"
LOCATION_UPDATED = "location_updated"


class Subscriber(Protocol):
    async def send_json(self, data: Any) -> None:
        ...


SnapshotLoader = Callable[[], Awaitable[List[dict]]]


def make_event(event: str, data: Any) -> dict:
    """Envelope shared by every server-to-client message."""
    return {"event": event, "data": data}


class Broadcaster:
    """Holds the admin subscribers and pushes events to them."""

    def __init__(self):
        self._admins: Set[Subscriber] = set()
        # Subscribers still receiving their snapshot, with the events held for them
        self._joining: Dict[Subscriber, List[dict]] = {}

    @property
    def admin_count(self) -> int:
        return len(self._admins)

    def is_subscribed(self, subscriber: Subscriber) -> bool:
        return subscriber in self._admins or subscriber in self._joining

    async def join_admin(self, subscriber: Subscriber, load_snapshot: SnapshotLoader) -> None:
        """
        Add a subscriber to the admins group and send it the backfill.

        The subscriber is registered before load_snapshot runs. Any event
        broadcast while the snapshot is loading or being sent is queued and
        delivered after init_visitors, so a visit reaches the subscriber
        through the snapshot or the stream.
        """
        held = self._joining.setdefault(subscriber, [])
        try:
            snapshot = await load_snapshot()
        except Exception:
            self._joining.pop(subscriber, None)
            raise

        delivered = await self._send(subscriber, make_event(INIT_VISITORS, snapshot))
        while delivered and held:
            delivered = await self._send(subscriber, held.pop(0))

        self._joining.pop(subscriber, None)
        if delivered:
            self._admins.add(subscriber)
            logger.info(f"Admin subscribed ({self.admin_count} connected)")

    def leave(self, subscriber: Subscriber) -> None:
        self._joining.pop(subscriber, None)
        if subscriber in self._admins:
            self._admins.discard(subscriber)
            logger.info(f"Admin unsubscribed ({self.admin_count} connected)")

    async def broadcast(self, event: str, data: Any) -> int:
        """
        Send an event to every admin subscriber.

        Returns:
            Number of subscribers the event was delivered or queued to
        """
        message = make_event(event, data)
        delivered = 0
        for held in self._joining.values():
            held.append(message)
            delivered += 1
        # Copy: failed subscribers are removed while iterating
        for subscriber in list(self._admins):
            if await self._send(subscriber, message):
                delivered += 1
        logger.debug(f"Broadcast {event} to {delivered} admin(s)")
        return delivered

    async def _send(self, subscriber: Subscriber, message: dict) -> bool:
        try:
            await subscriber.send_json(message)
        except Exception as e:
            logger.warning(f"Dropping admin subscriber after failed send: {e!r}")
            self._admins.discard(subscriber)
            return False
        return True
