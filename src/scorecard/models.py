import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from scorecard.errors import ValidationError
from scorecard.scores import RubricScores, SentimentScores

STATUS_RANK = {
    "initiating": 0,
    "ringing": 1,
    "in-progress": 2,
    "voicemail": 3,
    "completed": 4,
    "failed": 4,
}
TERMINAL_STATUSES = {"completed", "failed"}
ACTIVE_STATUSES = {"ringing", "in-progress"}


class CallStatus(Enum):
    INITIATING = "initiating"
    RINGING = "ringing"
    IN_PROGRESS = "in-progress"
    VOICEMAIL = "voicemail"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return STATUS_RANK[self.value]

    @property
    def is_terminal(self) -> bool:
        return self.value in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self.value in ACTIVE_STATUSES


class Speaker(Enum):
    AI = "ai"
    OTHER_PARTY = "other-party"


@dataclass
class PracticeInfo:
    """Target practice metadata, immutable after the call record is created."""

    practice_name: str
    phone_number: str
    city: str | None = None
    state: str | None = None
    insurance_provider: str | None = None
    new_patient_offer: str | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "PracticeInfo":
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        practice_name = payload.get("practiceName")
        phone_number = payload.get("phoneNumber")
        if not isinstance(practice_name, str) or not practice_name.strip():
            raise ValidationError("Practice name and phone number are required")
        if not isinstance(phone_number, str) or not phone_number.strip():
            raise ValidationError("Practice name and phone number are required")

        optional = {}
        for key, attr in OPTIONAL_FIELDS.items():
            value = payload.get(key)
            if value is None:
                continue
            if not isinstance(value, str):
                raise ValidationError(f"{key} must be a string")
            optional[attr] = value
        return cls(practice_name=practice_name, phone_number=phone_number, **optional)

    def to_dict(self) -> dict:
        data = {"practiceName": self.practice_name, "phoneNumber": self.phone_number}
        for key, attr in OPTIONAL_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                data[key] = value
        return data


OPTIONAL_FIELDS = {
    "city": "city",
    "state": "state",
    "insuranceProvider": "insurance_provider",
    "newPatientOffer": "new_patient_offer",
}


@dataclass
class TranscriptSegment:
    speaker: Speaker
    text: str
    timestamp: float = 0.0
    confidence: float | None = None

    def to_dict(self) -> dict:
        data = {"speaker": self.speaker.value, "text": self.text, "timestamp": self.timestamp}
        if self.confidence is not None:
            data["confidence"] = self.confidence
        return data


def iso(ts: float | None) -> str | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


@dataclass
class CallRecord:
    call_id: str
    practice_info: PracticeInfo
    status: CallStatus = CallStatus.INITIATING
    provider_call_ref: str = ""

    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    start_time: float | None = None
    end_time: float | None = None
    duration: int | None = None
    answered_by: str = ""

    transcript: list[TranscriptSegment] = field(default_factory=list)
    audio_url: str | None = None

    rubric_scores: RubricScores | None = None
    sentiment_scores: SentimentScores | None = None
    overall_score: int | None = None
    letter_grade: str | None = None

    def elapsed(self, now: float | None = None) -> float:
        """Seconds since the call was answered, one decimal. 0 before answer."""
        if self.start_time is None:
            return 0.0
        now = time.time() if now is None else now
        return round(max(0.0, now - self.start_time), 1)

    @property
    def is_scored(self) -> bool:
        return self.overall_score is not None

    def to_dict(self) -> dict:
        data = {
            "callId": self.call_id,
            "providerCallRef": self.provider_call_ref or None,
            "status": self.status.value,
            "practiceInfo": self.practice_info.to_dict(),
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
            "startTime": iso(self.start_time),
            "endTime": iso(self.end_time),
            "duration": self.duration,
            "transcript": [seg.to_dict() for seg in self.transcript],
            "audioUrl": self.audio_url,
        }
        if self.answered_by:
            data["answeredBy"] = self.answered_by
        if self.rubric_scores is not None:
            data["rubricScores"] = self.rubric_scores.to_dict()
        if self.sentiment_scores is not None:
            data["sentimentScores"] = self.sentiment_scores.to_dict()
        if self.overall_score is not None:
            data["overallScore"] = self.overall_score
            data["letterGrade"] = self.letter_grade
        return data

    def summary(self) -> dict:
        return {
            "callId": self.call_id,
            "status": self.status.value,
            "practiceName": self.practice_info.practice_name,
            "createdAt": iso(self.created_at),
            "duration": self.duration,
            "overallScore": self.overall_score,
            "letterGrade": self.letter_grade,
        }
