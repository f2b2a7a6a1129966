"""Call record store.

Records are owned by the store; callers get copies and change a record
only through update(), which applies a mutator under the store lock so a
read-modify-write on one callId is atomic.
"""

import asyncio
import copy
import logging
import time
import uuid
from typing import Callable, Protocol

from scorecard.errors import NotFoundError
from scorecard.models import CallRecord, PracticeInfo, TranscriptSegment

logger = logging.getLogger(__name__)

Mutator = Callable[[CallRecord], object]


class CallRecordStore(Protocol):
    async def create(self, practice_info: PracticeInfo) -> CallRecord:
        ...

    async def get(self, call_id: str) -> CallRecord | None:
        ...

    async def require(self, call_id: str) -> CallRecord:
        ...

    async def update(self, call_id: str, mutate: Mutator) -> tuple[CallRecord, object]:
        ...

    async def append_transcript(self, call_id: str, segment: TranscriptSegment) -> CallRecord:
        ...

    async def list_all(self) -> list[CallRecord]:
        ...

    async def delete(self, call_id: str) -> None:
        ...


def new_call_id() -> str:
    return uuid.uuid4().hex


class InMemoryCallRecordStore:
    """Process-local store. Lost on restart."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self._records: dict[str, CallRecord] = {}

    async def create(self, practice_info: PracticeInfo) -> CallRecord:
        record = CallRecord(call_id=new_call_id(), practice_info=practice_info)
        async with self._lock:
            self._records[record.call_id] = record
            return copy.deepcopy(record)

    async def get(self, call_id: str) -> CallRecord | None:
        async with self._lock:
            record = self._records.get(call_id)
            return copy.deepcopy(record) if record is not None else None

    async def require(self, call_id: str) -> CallRecord:
        record = await self.get(call_id)
        if record is None:
            raise NotFoundError(f"Call {call_id} not found")
        return record

    async def update(self, call_id: str, mutate: Mutator) -> tuple[CallRecord, object]:
        """Apply mutate(record) atomically and return (copy, mutate's result).

        The mutator works on a scratch copy; if it raises, the stored
        record is left untouched.
        """
        async with self._lock:
            current = self._records.get(call_id)
            if current is None:
                raise NotFoundError(f"Call {call_id} not found")
            scratch = copy.deepcopy(current)
            result = mutate(scratch)
            scratch.updated_at = time.time()
            self._records[call_id] = scratch
            return copy.deepcopy(scratch), result

    async def append_transcript(self, call_id: str, segment: TranscriptSegment) -> CallRecord:
        record, _ = await self.update(call_id, lambda r: r.transcript.append(segment))
        return record

    async def list_all(self) -> list[CallRecord]:
        async with self._lock:
            records = [copy.deepcopy(r) for r in self._records.values()]
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    async def delete(self, call_id: str) -> None:
        async with self._lock:
            if self._records.pop(call_id, None) is None:
                raise NotFoundError(f"Call {call_id} not found")
        logger.info("Deleted call record %s", call_id)
