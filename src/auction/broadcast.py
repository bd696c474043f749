"""
Event fan-out to auction rooms.

RoomBroadcaster delivers an event to every subscriber of a room. Delivery is
fire-and-forget: a failing subscriber is logged and dropped, and never fails
the transition that produced the event.

EventDispatcher takes the events of a committed transition, numbers them,
appends them to the event log and hands them to the broadcaster in order.
"""

import itertools
import logging
import threading
from typing import Callable, Dict, List, Optional

from .event_store import AuctionEventStore
from .events import AuctionEvent

logger = logging.getLogger(__name__)

# callback(event_name, payload)
Subscriber = Callable[[str, dict], None]


class RoomBroadcaster:
    """Room-based publish/subscribe."""

    def __init__(self):
        self._rooms: Dict[str, Dict[int, Subscriber]] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def subscribe(self, room: str, callback: Subscriber) -> int:
        """
        Join a room.

        Returns:
            Subscription id for unsubscribe()
        """
        with self._lock:
            sub_id = next(self._ids)
            self._rooms.setdefault(room, {})[sub_id] = callback
        logger.debug(f"Subscriber {sub_id} joined {room}")
        return sub_id

    def unsubscribe(self, room: str, sub_id: int) -> None:
        with self._lock:
            subscribers = self._rooms.get(room, {})
            subscribers.pop(sub_id, None)
            if not subscribers:
                self._rooms.pop(room, None)
        logger.debug(f"Subscriber {sub_id} left {room}")

    def subscriber_count(self, room: str) -> int:
        with self._lock:
            return len(self._rooms.get(room, {}))

    def emit(self, room: str, event_name: str, payload: dict) -> int:
        """
        Deliver an event to every subscriber of ``room``.

        Returns:
            Number of subscribers that accepted the event
        """
        with self._lock:
            subscribers = list(self._rooms.get(room, {}).items())

        delivered = 0
        for sub_id, callback in subscribers:
            try:
                callback(event_name, payload)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping subscriber {sub_id} of {room} after failed delivery: {e}")
                self.unsubscribe(room, sub_id)

        return delivered


class EventDispatcher:
    """Numbers, logs and broadcasts committed events."""

    def __init__(
        self,
        broadcaster: Optional[RoomBroadcaster] = None,
        event_store: Optional[AuctionEventStore] = None,
        start_sequence: int = 0
    ):
        """
        Args:
            broadcaster: Room fan-out (a fresh one if None)
            event_store: Optional append-only log of committed events
            start_sequence: Last sequence number already used (when resuming a log)
        """
        self.broadcaster = broadcaster or RoomBroadcaster()
        self.event_store = event_store
        self._sequence = start_sequence

    def dispatch(self, events: List[AuctionEvent]) -> None:
        """
        Deliver events in order.

        A failed log append is reported but does not stop delivery.
        """
        for event in events:
            self._sequence += 1
            event.sequence = self._sequence

            if self.event_store is not None:
                try:
                    self.event_store.append_event(event)
                except OSError as e:
                    logger.error(f"Failed to log event #{event.sequence} {event.name}: {e}", exc_info=True)

            delivered = self.broadcaster.emit(event.room, event.name, event.payload)
            logger.debug(f"Event #{event.sequence} {event.name} -> {event.room} ({delivered} subscribers)")
