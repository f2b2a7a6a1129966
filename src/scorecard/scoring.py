"""Scoring engine: rubric + sentiment + grades + insights for one call.

Scores are written to the call record once. A later request returns the
stored scores unless recomputation is asked for explicitly.
"""

import asyncio
import logging
from dataclasses import dataclass

from scorecard.call_status import is_machine
from scorecard.errors import ValidationError
from scorecard.grading import GradeBreakdown, grade_breakdown
from scorecard.insights import CallInsights, generate_insights
from scorecard.judge import Judge
from scorecard.models import CallRecord
from scorecard.rubric import score_rubric
from scorecard.scores import RubricScores, SentimentScores
from scorecard.sentiment import score_sentiment
from scorecard.store import CallRecordStore

logger = logging.getLogger(__name__)


@dataclass
class ScoreReport:
    rubric: RubricScores
    sentiment: SentimentScores
    overall: int
    grades: GradeBreakdown
    insights: CallInsights

    def to_dict(self) -> dict:
        return {
            "rubric": self.rubric.to_dict(),
            "sentiment": self.sentiment.to_dict(),
            "overall": self.overall,
            "grades": self.grades.to_dict(),
            "insights": self.insights.to_dict(),
        }


def build_report(record: CallRecord, rubric: RubricScores, sentiment: SentimentScores) -> ScoreReport:
    return ScoreReport(
        rubric=rubric,
        sentiment=sentiment,
        overall=rubric.total + sentiment.total,
        grades=grade_breakdown(rubric.total, sentiment.total),
        insights=generate_insights(rubric, sentiment, record.transcript),
    )


class ScoringEngine:
    def __init__(self, store: CallRecordStore, judge: Judge):
        self.store = store
        self.judge = judge

    async def compute(self, record: CallRecord) -> ScoreReport:
        """Score a record without touching the store."""
        rubric, sentiment = await asyncio.gather(
            score_rubric(
                self.judge,
                record.transcript,
                record.practice_info,
                call_start=record.created_at,
                first_answer=record.start_time,
                voicemail=is_machine(record.answered_by),
            ),
            score_sentiment(self.judge, record.transcript),
        )
        return build_report(record, rubric, sentiment)

    async def score_call(self, call_id: str, rescore: bool = False) -> ScoreReport:
        record = await self.store.require(call_id)
        if record.is_scored and not rescore:
            return self.stored_report(record)
        if not record.transcript:
            raise ValidationError("No transcript available")

        report = await self.compute(record)

        def persist(current: CallRecord) -> bool:
            if current.is_scored and not rescore:
                return False
            current.rubric_scores = report.rubric
            current.sentiment_scores = report.sentiment
            current.overall_score = report.overall
            current.letter_grade = report.grades.overall
            return True

        stored, written = await self.store.update(call_id, persist)
        if not written:
            return self.stored_report(stored)
        logger.info(
            "Scored call %s: overall=%d grade=%s rescore=%s",
            call_id, report.overall, report.grades.overall, rescore,
        )
        return report

    async def get_scores(self, call_id: str) -> ScoreReport:
        record = await self.store.require(call_id)
        if not record.is_scored:
            raise ValidationError("Call not yet scored")
        return self.stored_report(record)

    def stored_report(self, record: CallRecord) -> ScoreReport:
        return build_report(record, record.rubric_scores, record.sentiment_scores)
