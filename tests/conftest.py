import json
import random

import pytest

from scorecard.config import Settings
from scorecard.errors import DialError
from scorecard.models import CallRecord, PracticeInfo, Speaker, TranscriptSegment
from scorecard.observer import ObserverHub
from scorecard.store import InMemoryCallRecordStore


class FakeGateway:
    """Telephony gateway that records what it was asked to do."""

    def __init__(self, sid: str = "CA_test_123", fail_dial: bool = False):
        self.sid = sid
        self.fail_dial = fail_dial
        self.dialed: list[tuple[str, str, str]] = []
        self.tones: list[tuple[str, str, str]] = []
        self.hangups: list[str] = []

    async def place_call(self, destination, call_id, callback_base_url):
        if self.fail_dial:
            raise DialError("The 'To' number is not a valid phone number")
        self.dialed.append((destination, call_id, callback_base_url))
        return self.sid

    async def send_tone(self, provider_call_ref, digits, resume_url):
        self.tones.append((provider_call_ref, digits, resume_url))

    async def hangup(self, provider_call_ref):
        self.hangups.append(provider_call_ref)


class ScriptedChat:
    """Chat client stand-in: caller lines from a script, judge verdicts from a dict."""

    def __init__(self, lines=None, verdict=None):
        self.lines = list(lines or [])
        self.verdict = verdict if verdict is not None else {
            "points": 4, "category": "solid", "evidence": "Yes, we'd love to have you!",
            "justification": "Friendly and clear.",
        }
        self.calls: list[list[dict]] = []
        self.closed = False

    async def complete(self, messages, temperature=0.7, max_tokens=150):
        self.calls.append(messages)
        if not self.lines:
            raise RuntimeError("script exhausted")
        line = self.lines.pop(0)
        if isinstance(line, Exception):
            raise line
        return line

    async def complete_json(self, messages, temperature=0.3):
        self.calls.append(messages)
        if isinstance(self.verdict, Exception):
            raise self.verdict
        if isinstance(self.verdict, str):
            return self.verdict
        return json.dumps(self.verdict)

    async def close(self):
        self.closed = True


@pytest.fixture
def settings():
    return Settings(
        twilio_account_sid="AC_test",
        twilio_auth_token="secret",
        twilio_phone_number="+15125550000",
        public_base_url="https://agent.example.com",
        openai_api_key="sk-test",
    )


@pytest.fixture
def practice():
    return PracticeInfo(
        practice_name="Bright Smiles Dental",
        phone_number="+15125551234",
        city="Austin",
        state="TX",
        insurance_provider="Cigna",
        new_patient_offer="$99 exam, cleaning and x-rays",
    )


@pytest.fixture
def store():
    return InMemoryCallRecordStore()


@pytest.fixture
def hub():
    return ObserverHub()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def rng():
    return random.Random(7)


def seg(speaker: Speaker, text: str, t: float = 0.0) -> TranscriptSegment:
    return TranscriptSegment(speaker=speaker, text=text, timestamp=t)


def ai(text: str, t: float = 0.0) -> TranscriptSegment:
    return seg(Speaker.AI, text, t)


def desk(text: str, t: float = 0.0) -> TranscriptSegment:
    return seg(Speaker.OTHER_PARTY, text, t)


@pytest.fixture
def good_call_transcript():
    """A front desk that greets well, books repeatedly and takes contact details."""
    return [
        ai("Hi, I'm looking for a new dentist. Are you accepting new patients?", 0.0),
        desk("Thank you for calling Bright Smiles Dental, this is Karen speaking.", 2.1),
        ai("Do you take Cigna insurance?", 4.0),
        desk("We do! Would you like to schedule an appointment?", 6.5),
        ai("Maybe, I'm not sure yet. I need to check my schedule.", 9.0),
        desk("No problem, I can hold a spot this week. Can I get your name and phone number?", 11.2),
        ai("Sure, it's Sam.", 14.0),
        desk("Great, I can get you in Thursday morning.", 16.3),
    ]


@pytest.fixture
def answered_record(practice, good_call_transcript):
    return CallRecord(
        call_id="call_abc",
        practice_info=practice,
        provider_call_ref="CA_test_123",
        created_at=1000.0,
        start_time=1006.0,
        end_time=1066.0,
        duration=60,
        transcript=good_call_transcript,
    )
