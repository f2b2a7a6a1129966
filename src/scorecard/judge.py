"""Language-model judge for the rubric categories and sentiment dimensions.

The judge never raises: an HTTP failure, unparseable JSON or a verdict
without numeric points is logged as a JudgeError and replaced with the
category's fallback (zero points, lowest category).
"""

import json
import logging

from scorecard.errors import JudgeError
from scorecard.llm import ChatClient, describe_error
from scorecard.scores import DIMENSION_MAX, CategoryScore, SentimentDimension

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert evaluator of dental practice front-desk phone calls. "
    "Return ONLY valid JSON, no markdown and no explanation."
)

UNABLE_TO_ASSESS = "Unable to assess"


def parse_judge_response(raw: str) -> dict:
    """Parse a judge response into a dict.

    Handles: clean JSON, markdown-fenced JSON, extra whitespace.
    Raises ValueError for anything that is not a JSON object.
    """
    cleaned = (raw or "").strip()

    # Strip markdown code fences if present
    if cleaned.startswith("```"):
        lines = cleaned.split("\n", 1)
        if len(lines) > 1:
            cleaned = lines[1]
        cleaned = cleaned.rsplit("```", 1)[0].strip()

    try:
        verdict = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ValueError(f"Judge returned invalid JSON: {e}\nRaw: {raw!r}")

    if not isinstance(verdict, dict):
        raise ValueError(f"Judge returned {type(verdict).__name__}, expected dict")
    return verdict


def clamp_points(value, max_points: int) -> int:
    """Coerce a judge's points to an int in [0, max_points].

    Raises ValueError for missing or non-numeric points.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Non-numeric points: {value!r}")
    return max(0, min(max_points, int(round(value))))


class Judge:
    def __init__(self, chat: ChatClient):
        self.chat = chat

    async def _verdict(self, prompt: str) -> dict:
        raw = await self.chat.complete_json([
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ])
        return parse_judge_response(raw)

    async def score_category(
        self,
        name: str,
        prompt: str,
        max_points: int,
        fallback_category: str,
    ) -> CategoryScore:
        try:
            verdict = await self._verdict(prompt)
            points = clamp_points(verdict.get("points"), max_points)
        except Exception as e:
            err = JudgeError(f"{name}: {describe_error(e)}")
            logger.warning("Judge fallback for %s", err.message)
            return CategoryScore(points=0, category=fallback_category)

        category = verdict.get("category")
        evidence = verdict.get("evidence")
        return CategoryScore(
            points=points,
            category=category if isinstance(category, str) and category else fallback_category,
            evidence=evidence if isinstance(evidence, str) and evidence else None,
        )

    async def score_dimension(self, name: str, prompt: str) -> SentimentDimension:
        try:
            verdict = await self._verdict(prompt)
            points = clamp_points(verdict.get("points"), DIMENSION_MAX)
        except Exception as e:
            err = JudgeError(f"{name}: {describe_error(e)}")
            logger.warning("Judge fallback for %s", err.message)
            return SentimentDimension(points=0, justification=UNABLE_TO_ASSESS)

        justification = verdict.get("justification")
        if not isinstance(justification, str) or not justification:
            justification = UNABLE_TO_ASSESS
        return SentimentDimension(points=points, justification=justification)
