"""Soft-skill sentiment scoring, five dimensions of 0-6 points.

Each dimension is judged on the receptionist's lines only. A transcript
with no receptionist lines scores zero everywhere without a judge call.
"""

import asyncio
import logging

from scorecard.judge import Judge
from scorecard.models import TranscriptSegment
from scorecard.scores import SentimentDimension, SentimentScores
from scorecard.transcript import other_party_lines

logger = logging.getLogger(__name__)

NOTHING_TO_ANALYZE = "No receptionist messages to analyze"

# dimension -> (what to analyze, 6 / 4-5 / 2-3 / 0-1 point criteria)
DIMENSIONS = {
    "warmth": (
        "the warmth and friendliness",
        "Genuinely warm, welcoming, makes caller feel valued",
        "Friendly and pleasant",
        "Neutral, professional but not particularly warm",
        "Cold, robotic, or unwelcoming",
    ),
    "confidence": (
        "the confidence level",
        "Very confident, authoritative, knows answers immediately",
        "Confident and self-assured",
        "Somewhat uncertain, hesitant",
        "Very uncertain, frequently unsure or apologetic",
    ),
    "clarity": (
        "the clarity of communication",
        "Crystal clear, easy to understand, well-organized responses",
        "Clear and understandable",
        "Somewhat unclear or confusing at times",
        "Confusing, rambling, or hard to follow",
    ),
    "empathy": (
        "the empathy and understanding",
        "Highly empathetic, acknowledges concerns, validates feelings",
        "Shows understanding and consideration",
        "Minimal empathy, mostly transactional",
        "No empathy, dismissive of concerns",
    ),
    "professionalTone": (
        "the professional tone",
        "Highly professional, polished, appropriate language",
        "Professional and appropriate",
        "Somewhat casual or informal",
        "Unprofessional, inappropriate, or too casual",
    ),
}

PROMPT_TEMPLATE = """Analyze {subject} in these receptionist messages from a dental office call.

Messages:
{messages}

Score 0-6 based on:
- 6 points: {top}
- 4-5 points: {good}
- 2-3 points: {fair}
- 0-1 points: {poor}

Provide a brief justification (1-2 sentences).

Return JSON: {{ "points": number, "justification": string }}"""


def build_dimension_prompt(name: str, messages: str) -> str:
    subject, top, good, fair, poor = DIMENSIONS[name]
    return PROMPT_TEMPLATE.format(
        subject=subject, messages=messages, top=top, good=good, fair=fair, poor=poor,
    )


def zero_scores() -> SentimentScores:
    def empty() -> SentimentDimension:
        return SentimentDimension(points=0, justification=NOTHING_TO_ANALYZE)

    return SentimentScores(
        warmth=empty(), confidence=empty(), clarity=empty(), empathy=empty(), professional_tone=empty(),
    )


async def score_sentiment(judge: Judge, transcript: list[TranscriptSegment]) -> SentimentScores:
    messages = "\n".join(seg.text for seg in other_party_lines(transcript))
    if not messages.strip():
        logger.info("No receptionist lines, sentiment scored zero")
        return zero_scores()

    names = list(DIMENSIONS)
    results = await asyncio.gather(
        *(judge.score_dimension(name, build_dimension_prompt(name, messages)) for name in names)
    )
    by_name = dict(zip(names, results))
    scores = SentimentScores(
        warmth=by_name["warmth"],
        confidence=by_name["confidence"],
        clarity=by_name["clarity"],
        empathy=by_name["empathy"],
        professional_tone=by_name["professionalTone"],
    )
    logger.info("Sentiment scored: total=%d", scores.total)
    return scores
