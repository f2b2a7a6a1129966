from dataclasses import dataclass, field

RUBRIC_MAX = 70
SENTIMENT_MAX = 30
DIMENSION_MAX = 6


@dataclass
class CategoryScore:
    points: int
    category: str
    evidence: str | None = None

    def to_dict(self) -> dict:
        data = {"points": self.points, "category": self.category}
        if self.evidence:
            data["evidence"] = self.evidence
        return data


@dataclass
class SpeedToAnswerScore:
    points: int
    category: str
    seconds: float | None = None

    def to_dict(self) -> dict:
        data = {"points": self.points, "category": self.category}
        if self.seconds is not None:
            data["seconds"] = self.seconds
        return data


@dataclass
class BookingAttemptsScore:
    points: int
    count: int
    attempts: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"points": self.points, "count": self.count, "attempts": list(self.attempts)}


@dataclass
class RubricScores:
    """Objective rubric, nine categories, 70 points."""

    speed_to_answer: SpeedToAnswerScore
    greeting: CategoryScore
    new_patient: CategoryScore
    insurance: CategoryScore
    offer: CategoryScore
    price_framing: CategoryScore
    booking_attempts: BookingAttemptsScore
    contact_info: CategoryScore
    objection_handling: CategoryScore

    def category_points(self) -> dict[str, int]:
        return {
            "speedToAnswer": self.speed_to_answer.points,
            "greetingIdentification": self.greeting.points,
            "newPatientAcceptance": self.new_patient.points,
            "insuranceHandling": self.insurance.points,
            "offerMention": self.offer.points,
            "priceFraming": self.price_framing.points,
            "bookingAttempts": self.booking_attempts.points,
            "contactInfoCapture": self.contact_info.points,
            "objectionHandling": self.objection_handling.points,
        }

    @property
    def total(self) -> int:
        return sum(self.category_points().values())

    def evidence(self) -> dict[str, list[dict]]:
        def quotes(score: CategoryScore) -> list[dict]:
            return [{"quote": score.evidence, "timestamp": 0}] if score.evidence else []

        return {
            "greeting": quotes(self.greeting),
            "newPatient": quotes(self.new_patient),
            "insurance": quotes(self.insurance),
            "offer": quotes(self.offer),
            "priceFraming": quotes(self.price_framing),
            "bookingAttempts": [
                {"quote": quote, "timestamp": i}
                for i, quote in enumerate(self.booking_attempts.attempts)
            ],
            "contactInfo": quotes(self.contact_info),
            "objectionHandling": quotes(self.objection_handling),
        }

    def to_dict(self) -> dict:
        return {
            "speedToAnswer": self.speed_to_answer.to_dict(),
            "greetingIdentification": self.greeting.to_dict(),
            "newPatientAcceptance": self.new_patient.to_dict(),
            "insuranceHandling": self.insurance.to_dict(),
            "offerMention": self.offer.to_dict(),
            "priceFraming": self.price_framing.to_dict(),
            "bookingAttempts": self.booking_attempts.to_dict(),
            "contactInfoCapture": self.contact_info.to_dict(),
            "objectionHandling": self.objection_handling.to_dict(),
            "total": self.total,
            "evidence": self.evidence(),
        }


@dataclass
class SentimentDimension:
    points: int
    justification: str

    def to_dict(self) -> dict:
        return {"points": self.points, "justification": self.justification}


@dataclass
class SentimentScores:
    """Soft-skill dimensions, 0-6 each, 30 points."""

    warmth: SentimentDimension
    confidence: SentimentDimension
    clarity: SentimentDimension
    empathy: SentimentDimension
    professional_tone: SentimentDimension

    def dimensions(self) -> dict[str, SentimentDimension]:
        return {
            "warmth": self.warmth,
            "confidence": self.confidence,
            "clarity": self.clarity,
            "empathy": self.empathy,
            "professionalTone": self.professional_tone,
        }

    @property
    def total(self) -> int:
        return sum(d.points for d in self.dimensions().values())

    def to_dict(self) -> dict:
        data = {name: d.to_dict() for name, d in self.dimensions().items()}
        data["total"] = self.total
        return data
