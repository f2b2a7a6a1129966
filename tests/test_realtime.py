import json

import pytest

from scorecard.errors import BridgeError
from scorecard.realtime import AUDIO, ERROR, TRANSCRIPT, RealtimeSession, parse_event


class TestParseEvent:
    def test_audio_delta(self):
        event = parse_event({"type": "response.audio.delta", "delta": "AAAA"})
        assert event.kind == AUDIO
        assert event.data == {"payload": "AAAA"}

    def test_empty_audio_delta_ignored(self):
        assert parse_event({"type": "response.audio.delta", "delta": ""}) is None

    def test_ai_transcript(self):
        event = parse_event({"type": "response.audio_transcript.done", "transcript": "Hi there"})
        assert event.kind == TRANSCRIPT
        assert event.data == {"speaker": "ai", "text": "Hi there"}

    def test_other_party_transcript(self):
        event = parse_event({
            "type": "conversation.item.input_audio_transcription.completed",
            "transcript": "Bright Smiles, how can I help?",
        })
        assert event.data["speaker"] == "other-party"

    def test_error(self):
        event = parse_event({"type": "error", "error": {"message": "bad"}})
        assert event.kind == ERROR
        assert event.data == {"error": {"message": "bad"}}

    def test_unrelated_event(self):
        assert parse_event({"type": "session.created"}) is None


class FakeSocket:
    def __init__(self, messages=()):
        self.messages = list(messages)
        self.sent: list[dict] = []
        self.closed = False

    async def send(self, text):
        self.sent.append(json.loads(text))

    def __aiter__(self):
        return self._iter()

    async def _iter(self):
        for message in self.messages:
            yield message

    async def close(self):
        self.closed = True


class TestRealtimeSession:
    @pytest.mark.asyncio
    async def test_connect_configures_session(self):
        sock = FakeSocket()
        seen = {}

        async def connector(url, additional_headers):
            seen["url"] = url
            seen["headers"] = dict(additional_headers)
            return sock

        session = RealtimeSession("sk-test", "gpt-4o-realtime-preview", "Be a patient.", connector=connector)
        await session.connect()

        assert seen["url"].endswith("?model=gpt-4o-realtime-preview")
        assert seen["headers"]["Authorization"] == "Bearer sk-test"
        update = sock.sent[0]
        assert update["type"] == "session.update"
        assert update["session"]["instructions"] == "Be a patient."
        assert update["session"]["input_audio_format"] == "g711_ulaw"
        assert update["session"]["output_audio_format"] == "g711_ulaw"

    @pytest.mark.asyncio
    async def test_connect_failure_is_bridge_error(self):
        async def connector(url, additional_headers):
            raise OSError("connection refused")

        session = RealtimeSession("sk-test", "m", "", connector=connector)
        with pytest.raises(BridgeError, match="connection refused"):
            await session.connect()

    @pytest.mark.asyncio
    async def test_send_audio(self):
        sock = FakeSocket()

        async def connector(url, additional_headers):
            return sock

        session = RealtimeSession("sk-test", "m", "", connector=connector)
        await session.connect()
        await session.send_audio("ulaw")
        assert sock.sent[-1] == {"type": "input_audio_buffer.append", "audio": "ulaw"}

    @pytest.mark.asyncio
    async def test_events_skip_noise(self):
        sock = FakeSocket([
            json.dumps({"type": "session.created"}),
            "not json",
            b"\x00\x01",
            json.dumps({"type": "response.audio.delta", "delta": "AAAA"}),
        ])

        async def connector(url, additional_headers):
            return sock

        session = RealtimeSession("sk-test", "m", "", connector=connector)
        await session.connect()
        events = [event async for event in session.events()]
        assert [e.kind for e in events] == [AUDIO]

    @pytest.mark.asyncio
    async def test_events_before_connect(self):
        session = RealtimeSession("sk-test", "m", "")
        with pytest.raises(BridgeError):
            async for _ in session.events():
                pass

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        sock = FakeSocket()

        async def connector(url, additional_headers):
            return sock

        session = RealtimeSession("sk-test", "m", "", connector=connector)
        await session.connect()
        await session.close()
        await session.close()
        assert sock.closed
        await session.send_audio("ignored")
        assert len(sock.sent) == 1
