"""
Event Fanout for Session Hub

Pushes session events to every connected observer. New observers receive
one full snapshot before anything else; afterwards every event is pushed
to all observers in publish order. Delivery is best-effort: an observer
whose push fails is dropped, with no retry and no replay.
"""

import asyncio
import json
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Set

logger = logging.getLogger(__name__)

class EventType(Enum):
    """Event type enumeration."""
    SNAPSHOT = "snapshot"       # Full state resend
    TOPIC = "topic"             # Topic proposed
    CODE = "code"               # Artifact changed
    BOT_MESSAGE = "bot_message" # Message posted
    HARDWARE = "hardware"       # Hardware design posted
    BOT_JOINED = "bot_joined"   # Agent introduced itself
    TOPIC_READY = "topic_ready" # Topic became ready / current

def encode_event(event_type: EventType, data: Any) -> str:
    """Encode an event as a text/event-stream frame."""
    payload = {
        "type": event_type.value,
        "data": data,
        "timestamp": datetime.now().isoformat(),
    }
    return f"data: {json.dumps(payload, default=str)}\n\n"

class QueueSubscriber:
    """
    Observer handle backed by a bounded asyncio queue.

    ``send`` never blocks; a full queue raises ``asyncio.QueueFull`` so the
    fanout drops the observer instead of buffering without bound.
    """

    def __init__(self, max_pending: int = 256):
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self.dropped = False

    def send(self, frame: str) -> None:
        try:
            self.queue.put_nowait(frame)
        except asyncio.QueueFull:
            self.dropped = True
            raise

class EventFanout:
    """
    Broadcast set of observer handles.

    A handle is any object with a ``send(frame: str)`` method; raising from
    ``send`` removes the handle.
    """

    def __init__(self):
        self._subscribers: Set[Any] = set()
        self.published = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, handle: Any, snapshot: Dict[str, Any]) -> bool:
        """
        Register an observer after pushing it the current snapshot.

        Returns:
            False if the initial push failed (the handle is not added)
        """
        try:
            handle.send(encode_event(EventType.SNAPSHOT, snapshot))
        except Exception as e:
            logger.debug(f"Initial snapshot push failed, observer not added: {e}")
            return False
        self._subscribers.add(handle)
        logger.debug(f"Observer subscribed ({len(self._subscribers)} connected)")
        return True

    def unsubscribe(self, handle: Any) -> None:
        self._subscribers.discard(handle)

    def publish(self, event_type: EventType, data: Any) -> int:
        """
        Push one event to every remaining observer.

        Returns:
            Number of observers the event was delivered to
        """
        self.published += 1
        if not self._subscribers:
            return 0

        frame = encode_event(event_type, data)

        disconnected = set()
        for handle in self._subscribers:
            try:
                handle.send(frame)
            except Exception:
                disconnected.add(handle)

        # Remove failed observers
        if disconnected:
            self._subscribers -= disconnected
            logger.debug(f"Dropped {len(disconnected)} observer(s)")

        return len(self._subscribers)

    def close(self) -> None:
        """Forget every observer."""
        self._subscribers.clear()

async def stream_events(fanout: EventFanout, subscriber: QueueSubscriber,
                        keepalive: Optional[float] = 15.0):
    """
    Yield frames for one observer until it is dropped or the consumer stops.

    Emits a comment line every ``keepalive`` seconds while idle.
    """
    try:
        while True:
            if subscriber.dropped and subscriber.queue.empty():
                break
            try:
                frame = await asyncio.wait_for(subscriber.queue.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            yield frame
    finally:
        fanout.unsubscribe(subscriber)
