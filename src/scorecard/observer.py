"""Per-call observer channel.

One observer per callId: attaching again replaces (and closes) the
previous subscription. Publishing never blocks the producer; a slow
observer loses events once its queue is full. Closing a subscription
only stops delivery and never touches the call.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum

from scorecard.models import STATUS_RANK, CallRecord, iso

logger = logging.getLogger(__name__)

MAX_PENDING_EVENTS = 500


class EventType(Enum):
    STATUS = "status"
    TRANSCRIPT = "transcript"
    AUDIO = "audio"
    IVR = "ivr"
    ERROR = "error"


@dataclass
class ObserverEvent:
    type: EventType
    data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"type": self.type.value, "data": self.data}


_CLOSED = object()


def _is_covered(event: ObserverEvent, segments: set, snapshot_rank: int) -> bool:
    if event.type is EventType.TRANSCRIPT:
        data = event.data
        return (data.get("speaker"), data.get("text"), data.get("timestamp")) in segments
    if event.type is EventType.STATUS:
        return STATUS_RANK.get(event.data.get("status"), snapshot_rank + 1) <= snapshot_rank
    return False


class ObserverSubscription:
    def __init__(self, call_id: str, maxsize: int = MAX_PENDING_EVENTS):
        self.call_id = call_id
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.closed = False
        self.dropped = 0

    def deliver(self, event: ObserverEvent) -> None:
        if self.closed:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1

    async def next(self) -> ObserverEvent | None:
        """Wait for the next event. None once the subscription is closed."""
        if self.closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item

    def discard_covered(self, snapshot: dict) -> int:
        """Drop queued events that the snapshot already reflects.

        Called right after the snapshot is read, so an event published
        between attach and the snapshot read is not delivered twice.
        """
        segments = {(s["speaker"], s["text"], s.get("timestamp")) for s in snapshot["transcript"]}
        snapshot_rank = STATUS_RANK.get(snapshot["status"], -1)
        kept = []
        dropped = 0
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if isinstance(item, ObserverEvent) and _is_covered(item, segments, snapshot_rank):
                dropped += 1
            else:
                kept.append(item)
        for item in kept:
            self._queue.put_nowait(item)
        return dropped

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)


class ObserverHub:
    def __init__(self):
        self._subscriptions: dict[str, ObserverSubscription] = {}

    def attach(self, call_id: str) -> ObserverSubscription:
        subscription = ObserverSubscription(call_id)
        previous = self._subscriptions.get(call_id)
        self._subscriptions[call_id] = subscription
        if previous is not None:
            previous.close()
            logger.info("Observer replaced for %s", call_id)
        else:
            logger.info("Observer attached for %s", call_id)
        return subscription

    def detach(self, call_id: str, subscription: ObserverSubscription) -> None:
        if self._subscriptions.get(call_id) is subscription:
            del self._subscriptions[call_id]
            logger.info("Observer detached for %s", call_id)
        subscription.close()

    def is_attached(self, call_id: str) -> bool:
        return call_id in self._subscriptions

    def publish(self, call_id: str, event: ObserverEvent) -> None:
        subscription = self._subscriptions.get(call_id)
        if subscription is not None:
            subscription.deliver(event)

    def close(self, call_id: str) -> None:
        subscription = self._subscriptions.pop(call_id, None)
        if subscription is not None:
            subscription.close()
            if subscription.dropped:
                logger.warning("Observer for %s dropped %d events", call_id, subscription.dropped)
            logger.info("Observer closed for %s", call_id)


def build_snapshot(record: CallRecord) -> dict:
    """The pull-model view of a call: status plus the transcript so far."""
    return {
        "status": record.status.value,
        "transcript": [seg.to_dict() for seg in record.transcript],
        "duration": record.duration,
        "startTime": iso(record.start_time),
        "endTime": iso(record.end_time),
    }


def status_event(status: str, **extra) -> ObserverEvent:
    return ObserverEvent(EventType.STATUS, {"status": status, **extra})


def transcript_event(speaker: str, text: str, timestamp: float | None = None) -> ObserverEvent:
    data = {"speaker": speaker, "text": text}
    if timestamp is not None:
        data["timestamp"] = timestamp
    return ObserverEvent(EventType.TRANSCRIPT, data)
