"""OpenAI Realtime speech session for the continuous-stream path.

Audio in both directions is base64 G.711 mu-law, the same framing Twilio
media streams use, so frames are relayed without transcoding.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator

import websockets
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

from scorecard.errors import BridgeError

logger = logging.getLogger(__name__)

REALTIME_URL = "wss://api.openai.com/v1/realtime"

AUDIO = "audio"
TRANSCRIPT = "transcript"
ERROR = "error"


@dataclass
class RealtimeEvent:
    kind: str
    data: dict = field(default_factory=dict)


def parse_event(event: dict) -> RealtimeEvent | None:
    """Map a server event onto the few kinds the bridge relays."""
    etype = event.get("type")
    if etype == "response.audio.delta":
        delta = event.get("delta")
        return RealtimeEvent(AUDIO, {"payload": delta}) if delta else None
    if etype == "response.audio_transcript.done":
        return RealtimeEvent(TRANSCRIPT, {"speaker": "ai", "text": event.get("transcript", "")})
    if etype == "conversation.item.input_audio_transcription.completed":
        return RealtimeEvent(TRANSCRIPT, {"speaker": "other-party", "text": event.get("transcript", "")})
    if etype == "error":
        return RealtimeEvent(ERROR, {"error": event.get("error", {})})
    return None


class RealtimeSession:
    def __init__(
        self,
        api_key: str,
        model: str,
        instructions: str,
        voice: str = "alloy",
        url: str = REALTIME_URL,
        connector=None,
    ):
        self.api_key = api_key
        self.model = model
        self.instructions = instructions
        self.voice = voice
        self.url = url
        self._connect = connector or websockets.connect
        self.websocket = None
        self.closed = False

    async def connect(self) -> None:
        headers = [
            ("Authorization", f"Bearer {self.api_key}"),
            ("OpenAI-Beta", "realtime=v1"),
        ]
        url = f"{self.url}?model={self.model}"
        try:
            self.websocket = await self._connect(url, additional_headers=headers)
        except Exception as e:
            raise BridgeError(f"Realtime connect failed: {e}") from e
        await self._send({
            "type": "session.update",
            "session": {
                "voice": self.voice,
                "instructions": self.instructions,
                "input_audio_format": "g711_ulaw",
                "output_audio_format": "g711_ulaw",
                "input_audio_transcription": {"model": "whisper-1"},
                "turn_detection": {"type": "server_vad"},
            },
        })
        logger.info("Realtime session connected: model=%s voice=%s", self.model, self.voice)

    async def _send(self, payload: dict) -> None:
        if self.websocket is None or self.closed:
            return
        try:
            await self.websocket.send(json.dumps(payload))
        except (ConnectionClosedError, ConnectionClosedOK) as e:
            raise BridgeError(f"Realtime session closed: {e}") from e

    async def send_audio(self, payload: str) -> None:
        """Append one base64 audio frame to the model's input buffer."""
        await self._send({"type": "input_audio_buffer.append", "audio": payload})

    async def events(self) -> AsyncIterator[RealtimeEvent]:
        if self.websocket is None:
            raise BridgeError("Realtime session is not connected")
        try:
            async for message in self.websocket:
                if isinstance(message, bytes):
                    continue
                try:
                    raw = json.loads(message)
                except json.JSONDecodeError:
                    logger.warning("Failed to decode realtime payload")
                    continue
                event = parse_event(raw)
                if event is not None:
                    yield event
        except ConnectionClosedOK:
            return
        except ConnectionClosedError as e:
            raise BridgeError(f"Realtime session dropped: {e}") from e

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self.websocket is not None:
            await self.websocket.close()
        logger.info("Realtime session closed")
