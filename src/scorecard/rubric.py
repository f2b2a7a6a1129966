"""Objective rubric scoring, 70 points across nine categories.

Speed to answer, greeting, booking attempts and contact capture are
scored deterministically from the transcript. The other five
categories go to the language-model judge.
"""

import asyncio
import logging
import re

from scorecard.judge import Judge
from scorecard.models import PracticeInfo, TranscriptSegment
from scorecard.prompts import insurance_for
from scorecard.scores import BookingAttemptsScore, CategoryScore, RubricScores, SpeedToAnswerScore
from scorecard.transcript import ai_lines, other_party_lines, to_plain_text

logger = logging.getLogger(__name__)

STAFF_NAME_RE = re.compile(r"\b(this is|my name is|i'm|speaking with)\s+\w+", re.IGNORECASE)
GENERIC_GREETING_RE = re.compile(r"\b(hello|hi|good morning|good afternoon)\b", re.IGNORECASE)

BOOKING_PATTERNS = [
    re.compile(r"\b(schedule|book|appointment|come in|available|calendar|when can you)\b", re.IGNORECASE),
    re.compile(r"\b(what day|this week|next week|monday|tuesday|wednesday|thursday|friday)\b", re.IGNORECASE),
    re.compile(r"\b(let me get you|let's get you|i can get you in)\b", re.IGNORECASE),
]

NAME_REQUEST_RE = re.compile(
    r"\b(your name|what's your name|may i have your name|can i get your name)\b", re.IGNORECASE,
)
CONTACT_REQUEST_RE = re.compile(r"\b(phone number|email|contact|callback|reach you)\b", re.IGNORECASE)
CONTACT_EVIDENCE_RE = re.compile(r"name|phone|email", re.IGNORECASE)

HESITATION_RE = re.compile(
    r"\b(not sure|check my schedule|let me think|need to|maybe|i'll call back)\b", re.IGNORECASE,
)

NO_OBJECTION = CategoryScore(points=3, category="mild reassurance", evidence="No objection raised")

# name -> (max points, fallback category, prompt template)
JUDGED_CATEGORIES = {
    "newPatientAcceptance": (6, "no/dismissive", """Analyze this dental office phone call transcript and score the receptionist's response to the new patient inquiry.

Transcript:
{transcript}

Score based on these criteria:
- 6 points: Clear yes + next step ("Yes, we'd love to have you! Let me get you scheduled...")
- 4 points: Clear yes only ("Yes, we are accepting new patients")
- 2 points: Hesitant ("We might have room" or "Let me check")
- 0 points: No or dismissive ("We're not taking new patients" or ignores question)

Return JSON: {{ "points": number, "category": string, "evidence": string }}"""),
    "insuranceHandling": (8, "wrong/none", """Analyze this dental office phone call transcript and score the receptionist's insurance handling.

Insurance asked about: {insurance}

Transcript:
{transcript}

Score based on these criteria:
- 8 points: Clear answer + keeps booking flow moving
- 6 points: "Bring card, we'll verify" + moves forward
- 5 points: Clear answer but conversation stalls
- 2 points: Insurance becomes a gate (won't move forward without verification)
- 0 points: Wrong/confusing/no answer

Return JSON: {{ "points": number, "category": string, "evidence": string }}"""),
    "offerMention": (10, "no mention", """Analyze this dental office phone call transcript and score how the receptionist mentioned new patient offers/specials.

{expected_offer}

Transcript:
{transcript}

Score based on these criteria:
- 10 points: Specific offer with details ("$99 cleaning, exam, and x-rays")
- 7 points: Vague offer mentioned ("We have a new patient special")
- 3 points: "Check our website" or uncertainty
- 0 points: No mention at all

Return JSON: {{ "points": number, "category": string, "evidence": string }}"""),
    "priceFraming": (6, "avoidance", """Analyze this dental office phone call transcript and score how the receptionist handled pricing questions.

Transcript:
{transcript}

Score based on these criteria:
- 6 points: Value framing before number ("With our comprehensive exam including x-rays, it's $150")
- 4 points: Range + value ("Typically $120-$180 depending on what you need")
- 2 points: Raw price only ("It's $150")
- 0 points: Avoidance ("You'll need to call insurance" or doesn't answer)

Return JSON: {{ "points": number, "category": string, "evidence": string }}"""),
    "objectionHandling": (6, "lets lead walk", """Analyze this dental office phone call transcript and score how the receptionist handled the caller's hesitation/objection.

Transcript:
{transcript}

Score based on these criteria:
- 6 points: Provides reassurance + creates easy next step ("No problem! I can hold a spot for you and call tomorrow to confirm")
- 3 points: Mild reassurance ("That's fine, just give us a call when you're ready")
- 0 points: Lets lead walk away with no follow-up attempt

Return JSON: {{ "points": number, "category": string, "evidence": string }}"""),
}


def score_speed_to_answer(
    call_start: float | None,
    first_answer: float | None,
    voicemail: bool = False,
) -> SpeedToAnswerScore:
    if call_start is None or first_answer is None or voicemail:
        return SpeedToAnswerScore(points=0, category="30+ sec / voicemail")

    seconds = round(max(0.0, first_answer - call_start), 1)
    if seconds <= 10:
        return SpeedToAnswerScore(points=10, category="≤10 sec", seconds=seconds)
    if seconds <= 20:
        return SpeedToAnswerScore(points=7, category="11-20 sec", seconds=seconds)
    if seconds <= 30:
        return SpeedToAnswerScore(points=4, category="21-30 sec", seconds=seconds)
    return SpeedToAnswerScore(points=0, category="30+ sec / voicemail", seconds=seconds)


def score_greeting(transcript: list[TranscriptSegment], practice_info: PracticeInfo) -> CategoryScore:
    lines = other_party_lines(transcript)
    if not lines:
        return CategoryScore(points=0, category="no greeting")

    first = lines[0].text
    lower = first.lower()
    has_practice_name = practice_info.practice_name.lower() in lower
    has_staff_name = bool(STAFF_NAME_RE.search(lower))

    if has_practice_name and has_staff_name:
        return CategoryScore(points=6, category="name + staff", evidence=first)
    if has_practice_name:
        return CategoryScore(points=4, category="name only", evidence=first)
    if GENERIC_GREETING_RE.search(lower):
        return CategoryScore(points=2, category="generic", evidence=first)
    return CategoryScore(points=0, category="no greeting")


def score_booking_attempts(transcript: list[TranscriptSegment]) -> BookingAttemptsScore:
    """Count distinct receptionist lines with booking language. Repeats count once."""
    attempts: list[str] = []
    for seg in other_party_lines(transcript):
        if any(p.search(seg.text) for p in BOOKING_PATTERNS) and seg.text not in attempts:
            attempts.append(seg.text)

    count = len(attempts)
    if count >= 3:
        points = 12
    elif count == 2:
        points = 8
    elif count == 1:
        points = 4
    else:
        points = 0
    return BookingAttemptsScore(points=points, count=count, attempts=attempts)


def score_contact_capture(transcript: list[TranscriptSegment]) -> CategoryScore:
    lines = [seg.text for seg in other_party_lines(transcript)]
    full_text = " ".join(lines).lower()

    asks_name = bool(NAME_REQUEST_RE.search(full_text))
    asks_contact = bool(CONTACT_REQUEST_RE.search(full_text))
    evidence = next((line for line in lines if CONTACT_EVIDENCE_RE.search(line)), None)

    if asks_name and asks_contact:
        return CategoryScore(points=6, category="name + contact", evidence=evidence)
    if asks_name or asks_contact:
        return CategoryScore(points=3, category="one item", evidence=evidence)
    return CategoryScore(points=0, category="no attempt")


def caller_hesitated(transcript: list[TranscriptSegment]) -> bool:
    return any(HESITATION_RE.search(seg.text) for seg in ai_lines(transcript))


def build_judge_prompt(name: str, transcript_text: str, practice_info: PracticeInfo) -> str:
    _, _, template = JUDGED_CATEGORIES[name]
    if practice_info.new_patient_offer:
        expected_offer = f"Expected offer: {practice_info.new_patient_offer}"
    else:
        expected_offer = "No specific offer provided"
    return template.format(
        transcript=transcript_text,
        insurance=insurance_for(practice_info),
        expected_offer=expected_offer,
    )


async def _judge_category(
    judge: Judge,
    name: str,
    transcript_text: str,
    practice_info: PracticeInfo,
) -> CategoryScore:
    max_points, fallback, _ = JUDGED_CATEGORIES[name]
    prompt = build_judge_prompt(name, transcript_text, practice_info)
    return await judge.score_category(name, prompt, max_points, fallback)


async def score_rubric(
    judge: Judge,
    transcript: list[TranscriptSegment],
    practice_info: PracticeInfo,
    call_start: float | None,
    first_answer: float | None,
    voicemail: bool = False,
) -> RubricScores:
    transcript_text = to_plain_text(transcript)
    judged = ["newPatientAcceptance", "insuranceHandling", "offerMention", "priceFraming"]
    hesitated = caller_hesitated(transcript)
    if hesitated:
        judged.append("objectionHandling")

    results = await asyncio.gather(
        *(_judge_category(judge, name, transcript_text, practice_info) for name in judged)
    )
    verdicts = dict(zip(judged, results))

    scores = RubricScores(
        speed_to_answer=score_speed_to_answer(call_start, first_answer, voicemail),
        greeting=score_greeting(transcript, practice_info),
        new_patient=verdicts["newPatientAcceptance"],
        insurance=verdicts["insuranceHandling"],
        offer=verdicts["offerMention"],
        price_framing=verdicts["priceFraming"],
        booking_attempts=score_booking_attempts(transcript),
        contact_info=score_contact_capture(transcript),
        objection_handling=verdicts["objectionHandling"] if hesitated else NO_OBJECTION,
    )
    logger.info("Rubric scored: total=%d %s", scores.total, scores.category_points())
    return scores
