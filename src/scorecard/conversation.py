"""Turn-based conversation controller.

Each provider webhook is one turn: read the call's state, decide the
caller's next line, persist it, and answer with a call-control document.
Turns for one callId are serialized by a per-call lock; turns for
different calls never share state.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass

from scorecard.call_status import advance_status, mark_completed
from scorecard.caller_state import CallerConversationState
from scorecard.llm import ChatClient
from scorecard.models import CallRecord, CallStatus, Speaker, TranscriptSegment
from scorecard.observer import ObserverHub, status_event, transcript_event
from scorecard.post_call import handle_call_ended
from scorecard.prompts import APOLOGY_LINE, CLOSING_LINE, OPENING_LINES, RETRY_LINE, get_system_prompt
from scorecard.store import CallRecordStore
from scorecard.telephony import (
    build_apology_twiml,
    build_end_twiml,
    build_hangup_twiml,
    build_turn_twiml,
    turn_url,
)

logger = logging.getLogger(__name__)

MAX_STEPS = 12
MAX_TRANSCRIPT_ENTRIES = 20
MIN_CONFIDENCE = 0.2


@dataclass
class TurnResult:
    twiml: str
    line: str
    next_step: int
    ended: bool = False


def is_silence(utterance: str | None, confidence: float | None) -> bool:
    if not utterance or not utterance.strip():
        return True
    return confidence is not None and confidence < MIN_CONFIDENCE


class ConversationController:
    def __init__(
        self,
        store: CallRecordStore,
        hub: ObserverHub,
        chat: ChatClient,
        base_url: str,
        rng: random.Random | None = None,
    ):
        self.store = store
        self.hub = hub
        self.chat = chat
        self.base_url = base_url
        self.rng = rng or random.Random()
        self._states: dict[str, CallerConversationState] = {}
        self._pending: dict[str, int] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, call_id: str) -> asyncio.Lock:
        lock = self._locks.get(call_id)
        if lock is None:
            lock = self._locks[call_id] = asyncio.Lock()
        return lock

    def state_for(self, call_id: str) -> CallerConversationState | None:
        return self._states.get(call_id)

    def pending_step(self, call_id: str) -> int | None:
        """The step the provider will post next, for resuming after touch-tones."""
        return self._pending.get(call_id)

    def release(self, call_id: str) -> None:
        """Drop everything held for a call that has ended or been deleted.

        A turn still waiting on the old lock finds the call terminal and
        hangs up without writing, so the lock can go with the state.
        """
        self._states.pop(call_id, None)
        self._pending.pop(call_id, None)
        self._locks.pop(call_id, None)

    async def take_turn(
        self,
        call_id: str,
        step: int,
        utterance: str | None = None,
        confidence: float | None = None,
    ) -> TurnResult:
        """Run one turn. Raises NotFoundError for an unknown callId; every
        other failure ends the call with the apology document."""
        await self.store.require(call_id)
        async with self._lock_for(call_id):
            record = await self.store.require(call_id)
            if record.status.is_terminal:
                logger.info(
                    "Turn %d for %s arrived after the call ended (%s)", step, call_id, record.status.value,
                )
                self.release(call_id)
                return TurnResult(twiml=build_hangup_twiml(), line="", next_step=step + 1, ended=True)
            try:
                return await self._take_turn(call_id, step, utterance, confidence)
            except Exception as e:
                logger.error("Turn %d failed for %s: %s", step, call_id, e, exc_info=True)
                await self._finish(call_id, APOLOGY_LINE)
                return TurnResult(
                    twiml=build_apology_twiml(), line=APOLOGY_LINE, next_step=step + 1, ended=True,
                )

    async def _take_turn(
        self,
        call_id: str,
        step: int,
        utterance: str | None,
        confidence: float | None,
    ) -> TurnResult:
        state = self._states.get(call_id)
        if state is None:
            state = self._states[call_id] = CallerConversationState()

        if step <= 0:
            line = self.rng.choice(OPENING_LINES)
            record = await self._open(call_id, line)
            state.observe_ai_line(line)
        elif is_silence(utterance, confidence):
            line = RETRY_LINE
            state.step = step
            record = await self._append(call_id, Speaker.AI, line)
        else:
            await self._append(call_id, Speaker.OTHER_PARTY, utterance.strip(), confidence)
            state.observe_other_party(utterance)
            state.step = step
            record = await self.store.require(call_id)
            line = await self._generate_line(record, state)
            state.observe_ai_line(line)
            record = await self._append(call_id, Speaker.AI, line)

        next_step = step + 1
        stage = state.next_stage()
        end = (
            state.end_requested
            or len(record.transcript) > MAX_TRANSCRIPT_ENTRIES
            or next_step > MAX_STEPS
        )
        logger.info(
            "Turn %d for %s: stage=%s end=%s line=%r",
            step, call_id, stage.value, end, line,
        )

        if end:
            await self._finish(call_id, CLOSING_LINE)
            return TurnResult(twiml=build_end_twiml(line), line=line, next_step=next_step, ended=True)

        self._pending[call_id] = next_step
        return TurnResult(
            twiml=build_turn_twiml(line, turn_url(self.base_url, call_id, next_step)),
            line=line,
            next_step=next_step,
        )

    async def _generate_line(self, record: CallRecord, state: CallerConversationState) -> str:
        messages = [
            {"role": "system", "content": get_system_prompt(record.practice_info, state)},
            *state.history,
        ]
        line = await self.chat.complete(messages)
        if not line:
            raise ValueError("language model returned an empty line")
        return line

    async def _open(self, call_id: str, line: str) -> CallRecord:
        def opening(record: CallRecord) -> bool:
            if record.start_time is None:
                record.start_time = time.time()
            changed = advance_status(record, CallStatus.IN_PROGRESS)
            record.transcript.append(TranscriptSegment(Speaker.AI, line, 0.0))
            return changed

        record, changed = await self.store.update(call_id, opening)
        if changed:
            self.hub.publish(call_id, status_event(record.status.value))
        self.hub.publish(call_id, transcript_event(Speaker.AI.value, line, 0.0))
        return record

    async def _append(
        self,
        call_id: str,
        speaker: Speaker,
        text: str,
        confidence: float | None = None,
    ) -> CallRecord:
        def append(record: CallRecord) -> TranscriptSegment:
            segment = TranscriptSegment(speaker, text, record.elapsed(), confidence)
            record.transcript.append(segment)
            return segment

        record, segment = await self.store.update(call_id, append)
        self.hub.publish(call_id, transcript_event(speaker.value, text, segment.timestamp))
        return record

    async def _finish(self, call_id: str, final_line: str) -> None:
        """Record the last line spoken, mark the call completed and release it."""
        self.release(call_id)

        def finish(record: CallRecord) -> bool:
            record.transcript.append(TranscriptSegment(Speaker.AI, final_line, record.elapsed()))
            return mark_completed(record)

        try:
            record, changed = await self.store.update(call_id, finish)
        except Exception as e:
            logger.error("Could not mark %s completed: %s", call_id, e)
            return
        self.hub.publish(
            call_id, transcript_event(Speaker.AI.value, final_line, record.transcript[-1].timestamp),
        )
        if changed:
            self.hub.publish(call_id, status_event(record.status.value))
            handle_call_ended(record)
