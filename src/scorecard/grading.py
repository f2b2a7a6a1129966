from dataclasses import dataclass

from scorecard.scores import RUBRIC_MAX, SENTIMENT_MAX

GRADE_THRESHOLDS = [(90, "A"), (80, "B"), (70, "C"), (60, "D")]


@dataclass
class GradeBreakdown:
    overall: str
    objective: str
    sentiment: str

    def to_dict(self) -> dict:
        return {"overall": self.overall, "objective": self.objective, "sentiment": self.sentiment}


def score_to_grade(score: float) -> str:
    """Letter grade for a 0-100 score."""
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return "F"


def percentage(points: int, max_points: int) -> float:
    return points * 100 / max_points


def grade_breakdown(rubric_total: int, sentiment_total: int) -> GradeBreakdown:
    return GradeBreakdown(
        overall=score_to_grade(rubric_total + sentiment_total),
        objective=score_to_grade(percentage(rubric_total, RUBRIC_MAX)),
        sentiment=score_to_grade(percentage(sentiment_total, SENTIMENT_MAX)),
    )
