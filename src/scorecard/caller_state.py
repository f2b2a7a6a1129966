"""Mystery-shopper caller state for the turn-based path.

The caller works through an ordered topic list and always asks about the
first unresolved topic. A topic is resolved when the caller's own
generated line mentions it. After every topic is resolved the caller
stalls on booking until it has voiced MAX_HESITATIONS hesitations, then
closes politely.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

MAX_HESITATIONS = 2


class Stage(Enum):
    NEW_PATIENT = "new_patient"
    INSURANCE = "insurance"
    OFFERS = "offers"
    PRICING = "pricing"
    AVAILABILITY = "availability"
    BOOKING_RESISTANCE = "booking_resistance"
    CLOSE = "close"


TOPIC_ORDER = [
    Stage.NEW_PATIENT,
    Stage.INSURANCE,
    Stage.OFFERS,
    Stage.PRICING,
    Stage.AVAILABILITY,
]

TOPIC_PHRASES = {
    Stage.NEW_PATIENT: frozenset({"new patient", "looking for a dentist"}),
    Stage.INSURANCE: frozenset({"insurance", "delta", "cigna"}),
    Stage.OFFERS: frozenset({"special", "promotion", "offer"}),
    Stage.PRICING: frozenset({"cost", "price", "how much"}),
    Stage.AVAILABILITY: frozenset({"available", "appointment", "this week"}),
}

HESITATION_PHRASES = frozenset({"check my schedule", "not sure"})
END_SIGNAL_PHRASES = frozenset({"thank"})

# Receptionist utterances that count as an attempt to book the caller
BOOKING_ATTEMPT_PHRASES = frozenset({
    "schedule", "book", "appointment", "come in", "get you in",
    "opening", "available", "calendar",
})


def match_any_phrase(text: str, phrases: frozenset[str]) -> bool:
    """Case-insensitive substring match against a phrase set."""
    lower = (text or "").lower()
    return any(phrase in lower for phrase in phrases)


@dataclass
class TopicProgress:
    topic: Stage
    resolved: bool = False


@dataclass
class CallerConversationState:
    topics: list[TopicProgress] = field(
        default_factory=lambda: [TopicProgress(topic) for topic in TOPIC_ORDER]
    )
    step: int = 0
    booking_attempts: int = 0
    hesitations: list[str] = field(default_factory=list)
    end_requested: bool = False
    history: list[dict] = field(default_factory=list)

    def next_stage(self) -> Stage:
        for progress in self.topics:
            if not progress.resolved:
                return progress.topic
        if len(self.hesitations) < MAX_HESITATIONS:
            return Stage.BOOKING_RESISTANCE
        return Stage.CLOSE

    def is_resolved(self, topic: Stage) -> bool:
        return any(p.topic == topic and p.resolved for p in self.topics)

    def observe_other_party(self, text: str) -> None:
        self.history.append({"role": "user", "content": text})
        if match_any_phrase(text, BOOKING_ATTEMPT_PHRASES):
            self.booking_attempts += 1

    def observe_ai_line(self, text: str) -> None:
        """Update topic flags from a line the caller is about to speak."""
        self.history.append({"role": "assistant", "content": text})
        for progress in self.topics:
            if not progress.resolved and match_any_phrase(text, TOPIC_PHRASES[progress.topic]):
                progress.resolved = True
        if match_any_phrase(text, HESITATION_PHRASES):
            self.hesitations.append(text)
        if match_any_phrase(text, END_SIGNAL_PHRASES):
            self.end_requested = True
        logger.debug(
            "Caller state: next=%s hesitations=%d end=%s",
            self.next_stage().value, len(self.hesitations), self.end_requested,
        )
