"""Per-question and per-submission score calculation.

Scores are always derived server-side from the raw answer and the
question definition; client-supplied scores are never used.
"""
from __future__ import annotations

import math
import re
from typing import Iterable, Mapping, Optional

# Interpretation bands assume a fixed 100-point scale regardless of the
# survey's achievable range.
INTERPRETATION_MAX_SCORE = 100

SCORE_BANDS = (
    (80, "Excellent! You scored in the top range."),
    (60, "Good score! You're above average."),
    (40, "Average score. There's room for improvement."),
)
LOWEST_BAND = "Below average. Consider areas for development."

_NUMBER_RE = re.compile(r"\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


def _to_float(value) -> float:
    """Leading-number parse: "7" -> 7.0, "7.5abc" -> 7.5, "abc" -> 0.0."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        number = float(value)
    else:
        m = _NUMBER_RE.match(str(value or ""))
        number = float(m.group(0)) if m else 0.0
    return number if math.isfinite(number) else 0.0


def question_score(question_type: str, min_score, max_score, answer) -> float:
    """Score one answer against its question's type and range."""
    lo, hi = float(min_score), float(max_score)
    if question_type == "rating":
        return max(lo, min(hi, _to_float(answer)))
    if question_type == "yes_no":
        return hi if answer == "yes" else lo
    if question_type == "multiple_choice":
        # option value is taken verbatim as the score
        return _to_float(answer)
    return 0.0


def score_for(question, answer) -> float:
    return question_score(question.question_type, question.min_score, question.max_score, answer)


def total_score(questions: Iterable, responses: Mapping[int, str]) -> float:
    """Sum of per-question scores over answered questions.

    The survey's declared scoring_method is not applied here; totals are
    always sums.
    """
    total = 0.0
    for q in questions:
        if q.id in responses:
            total += score_for(q, responses[q.id])
    return total


def interpret_score(score: Optional[float], max_possible: float = INTERPRETATION_MAX_SCORE) -> str:
    percentage = (float(score or 0) / max_possible) * 100 if max_possible else 0.0
    for threshold, text in SCORE_BANDS:
        if percentage >= threshold:
            return text
    return LOWEST_BAND


def format_score(score: Optional[float]) -> str:
    value = float(score or 0)
    return str(int(value)) if value.is_integer() else f"{value:.2f}"
