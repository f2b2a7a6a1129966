"""Coaching insights derived from a scored call.

Recommendations: one fixed remediation per category below its threshold,
lowest-scoring first, top three. Best moment and missed opportunity are
first-match over fixed priority lists.
"""

from dataclasses import dataclass, field

from scorecard.models import TranscriptSegment
from scorecard.scores import RubricScores, SentimentScores

MAX_RECOMMENDATIONS = 3
THROUGHOUT = "Throughout the call"

SPEED_TEXT = (
    "Improve answer speed: Calls should be answered within 10 seconds. "
    "Consider adding staff or implementing a call routing system."
)
GREETING_TEXT = (
    "Enhance greeting protocol: Staff should always include the practice name "
    "and their own name when answering calls."
)
BOOKING_TEXT = (
    "Increase booking attempts: Front desk should make at least 2-3 attempts "
    "to schedule the appointment during the call."
)
OFFER_TEXT = (
    "Proactively mention new patient offers: Staff should clearly explain special "
    "promotions with specific details early in the conversation."
)
CONTACT_TEXT = (
    "Capture caller information: Even if they don't book, always collect name "
    "and phone number for follow-up."
)
OBJECTION_TEXT = (
    "Improve objection handling: When callers hesitate, offer to hold a tentative "
    "appointment or schedule a callback."
)
PRICE_TEXT = "Frame pricing with value: Always explain what's included before mentioning the price."
WARMTH_TEXT = (
    "Increase warmth and friendliness: Train staff to use a welcoming tone and "
    "make callers feel valued."
)
CONFIDENCE_TEXT = (
    "Build confidence: Ensure staff know answers to common questions about "
    "pricing, insurance, and availability."
)
EMPATHY_TEXT = (
    "Show more empathy: Acknowledge caller concerns and validate their needs "
    "before moving to solutions."
)


@dataclass
class Moment:
    quote: str
    timestamp: float
    reason: str

    def to_dict(self) -> dict:
        return {"quote": self.quote, "timestamp": self.timestamp, "reason": self.reason}


@dataclass
class CallInsights:
    best_moment: Moment | None = None
    missed_opportunity: Moment | None = None
    recommendations: list[str] = field(default_factory=list)
    booking_attempts: list[str] = field(default_factory=list)
    offer_explanations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "bestMoment": self.best_moment.to_dict() if self.best_moment else None,
            "missedOpportunity": self.missed_opportunity.to_dict() if self.missed_opportunity else None,
            "keyMoments": {
                "bookingAttempts": list(self.booking_attempts),
                "offerExplanations": list(self.offer_explanations),
            },
            "recommendations": list(self.recommendations),
        }


def _timestamp_of(quote: str, transcript: list[TranscriptSegment]) -> float:
    for seg in transcript:
        if seg.text == quote:
            return seg.timestamp
    return 0.0


def recommendations(rubric: RubricScores, sentiment: SentimentScores) -> list[str]:
    checks = [
        (rubric.speed_to_answer.points, 7, SPEED_TEXT),
        (rubric.greeting.points, 4, GREETING_TEXT),
        (rubric.booking_attempts.points, 8, BOOKING_TEXT),
        (rubric.offer.points, 7, OFFER_TEXT),
        (rubric.contact_info.points, 3, CONTACT_TEXT),
        (rubric.objection_handling.points, 4, OBJECTION_TEXT),
        (rubric.price_framing.points, 4, PRICE_TEXT),
        (sentiment.warmth.points, 4, WARMTH_TEXT),
        (sentiment.confidence.points, 4, CONFIDENCE_TEXT),
        (sentiment.empathy.points, 4, EMPATHY_TEXT),
    ]
    below = [(points, text) for points, threshold, text in checks if points < threshold]
    below.sort(key=lambda item: item[0])
    return [text for _, text in below[:MAX_RECOMMENDATIONS]]


def best_moment(rubric: RubricScores, transcript: list[TranscriptSegment]) -> Moment | None:
    if rubric.booking_attempts.attempts:
        quote = rubric.booking_attempts.attempts[0]
        return Moment(
            quote, _timestamp_of(quote, transcript),
            "Strong booking attempt - actively trying to schedule the patient",
        )
    if rubric.offer.points >= 7 and rubric.offer.evidence:
        return Moment(
            rubric.offer.evidence, _timestamp_of(rubric.offer.evidence, transcript),
            "Excellent explanation of new patient offer with specific details",
        )
    if rubric.greeting.points == 6 and rubric.greeting.evidence:
        return Moment(
            rubric.greeting.evidence, _timestamp_of(rubric.greeting.evidence, transcript),
            "Professional greeting with practice name and staff identification",
        )
    return None


def missed_opportunity(rubric: RubricScores, transcript: list[TranscriptSegment]) -> Moment | None:
    if rubric.booking_attempts.count == 0:
        return Moment(
            THROUGHOUT, 0.0,
            "Never attempted to schedule an appointment - missed conversion opportunity",
        )
    if rubric.contact_info.points == 0:
        return Moment(THROUGHOUT, 0.0, "Failed to capture caller contact information for follow-up")
    if rubric.offer.points == 0:
        return Moment(THROUGHOUT, 0.0, "Never mentioned new patient specials or promotions")
    if rubric.objection_handling.points == 0 and rubric.objection_handling.evidence:
        evidence = rubric.objection_handling.evidence
        return Moment(
            evidence, _timestamp_of(evidence, transcript),
            "Caller expressed hesitation but receptionist didn't attempt to overcome it",
        )
    return None


def generate_insights(
    rubric: RubricScores,
    sentiment: SentimentScores,
    transcript: list[TranscriptSegment],
) -> CallInsights:
    return CallInsights(
        best_moment=best_moment(rubric, transcript),
        missed_opportunity=missed_opportunity(rubric, transcript),
        recommendations=recommendations(rubric, sentiment),
        booking_attempts=list(rubric.booking_attempts.attempts),
        offer_explanations=[rubric.offer.evidence] if rubric.offer.evidence else [],
    )
