"""Media bridge between a Twilio media stream and a realtime speech session.

One bridge run per telephony leg. Inbound frames go to the speech
session verbatim; the session's audio comes back wrapped in Twilio's
media envelope and is also copied to the observer along with
transcripts. Whatever way the run ends, the speech session is closed,
the observer gets a final completed status, and the callId is released.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from fastapi import WebSocket, WebSocketDisconnect

from scorecard.errors import BridgeError, ScorecardError
from scorecard.observer import EventType, ObserverEvent, ObserverHub, status_event, transcript_event
from scorecard.realtime import AUDIO, ERROR, TRANSCRIPT, RealtimeSession

logger = logging.getLogger(__name__)

SessionFactory = Callable[[str], Awaitable[RealtimeSession]]


@dataclass
class BridgeLeg:
    call_id: str
    stream_sid: str = ""
    session: RealtimeSession | None = None
    degraded: bool = False


def media_envelope(stream_sid: str, payload: str) -> str:
    return json.dumps({"event": "media", "streamSid": stream_sid, "media": {"payload": payload}})


class MediaBridge:
    def __init__(self, hub: ObserverHub, session_factory: SessionFactory):
        self.hub = hub
        self.session_factory = session_factory
        self._active: set[str] = set()

    def is_active(self, call_id: str) -> bool:
        return call_id in self._active

    async def run(self, websocket: WebSocket, call_id: str) -> None:
        if call_id in self._active:
            logger.warning("Media stream for %s already bridged, rejecting second leg", call_id)
            await websocket.close()
            return

        self._active.add(call_id)
        leg = BridgeLeg(call_id=call_id)
        pump: asyncio.Task | None = None
        try:
            while True:
                try:
                    text = await websocket.receive_text()
                except WebSocketDisconnect:
                    logger.info("Twilio stream disconnected for %s", call_id)
                    break
                try:
                    msg = json.loads(text)
                except json.JSONDecodeError:
                    logger.warning("Non-JSON frame on media stream for %s", call_id)
                    continue

                event = msg.get("event")
                if event == "start":
                    leg.stream_sid = msg.get("start", {}).get("streamSid", "")
                    logger.info("Twilio stream started for %s: streamSid=%s", call_id, leg.stream_sid)
                    if leg.session is None and not leg.degraded:
                        pump = await self._open_session(websocket, leg)
                    self.hub.publish(call_id, status_event("in-progress"))
                elif event == "media":
                    await self._forward_audio(leg, msg.get("media", {}).get("payload", ""))
                elif event == "stop":
                    logger.info("Twilio stream stopped for %s", call_id)
                    break
        finally:
            if pump is not None:
                pump.cancel()
                try:
                    await pump
                except asyncio.CancelledError:
                    pass
                except Exception as e:
                    logger.error("Relay task for %s failed: %s", call_id, e)
            if leg.session is not None:
                try:
                    await leg.session.close()
                except Exception as e:
                    logger.error("Error closing realtime session for %s: %s", call_id, e)
            self.hub.publish(call_id, status_event("completed"))
            self.hub.close(call_id)
            self._active.discard(call_id)
            logger.info("Bridge released for %s", call_id)

    async def _open_session(self, websocket: WebSocket, leg: BridgeLeg) -> asyncio.Task | None:
        try:
            session = await self.session_factory(leg.call_id)
            await session.connect()
        except ScorecardError as e:
            self._degrade(leg, e)
            return None
        leg.session = session
        return asyncio.create_task(self._pump(websocket, leg, session))

    async def _forward_audio(self, leg: BridgeLeg, payload: str) -> None:
        if leg.session is None or leg.degraded or not payload:
            return
        try:
            await leg.session.send_audio(payload)
        except BridgeError as e:
            self._degrade(leg, e)

    def _degrade(self, leg: BridgeLeg, error: ScorecardError) -> None:
        """Stop relaying AI audio; the call runs on until Twilio ends it."""
        leg.degraded = True
        logger.error("Realtime session failed for %s: %s", leg.call_id, error.message)
        self.hub.publish(leg.call_id, ObserverEvent(EventType.ERROR, {"error": error.message}))

    async def _pump(self, websocket: WebSocket, leg: BridgeLeg, session: RealtimeSession) -> None:
        call_id = leg.call_id
        try:
            async for event in session.events():
                if event.kind == AUDIO:
                    payload = event.data["payload"]
                    if leg.stream_sid:
                        await websocket.send_text(media_envelope(leg.stream_sid, payload))
                    self.hub.publish(call_id, ObserverEvent(EventType.AUDIO, {"payload": payload}))
                elif event.kind == TRANSCRIPT:
                    self.hub.publish(call_id, transcript_event(event.data["speaker"], event.data["text"]))
                elif event.kind == ERROR:
                    logger.error("Realtime error event for %s: %s", call_id, event.data.get("error"))
                    self.hub.publish(call_id, ObserverEvent(EventType.ERROR, event.data))
        except BridgeError as e:
            self._degrade(leg, e)
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.info("Twilio leg closed while relaying audio for %s: %s", call_id, e)
        except Exception as e:
            logger.error("Unexpected realtime event for %s", call_id, exc_info=True)
            self._degrade(leg, BridgeError(f"Realtime relay failed: {e}"))
