"""
Review Scoring

Pure functions that turn a submission's reviews into a confidence-qualified
score and order submissions for triage.

Each review carries three rubric scores in [1, 5]:
- curiosity_vs_ego
- participation_vs_spectatorship
- emotional_intelligence

Any object exposing those three attributes can be scored (ORM ``Review``
rows, request schemas, or plain test doubles).
"""

import enum
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, TypeVar

RUBRIC_DIMENSIONS: tuple[str, ...] = (
    "curiosity_vs_ego",
    "participation_vs_spectatorship",
    "emotional_intelligence",
)


class ReviewScores(Protocol):
    curiosity_vs_ego: int
    participation_vs_spectatorship: int
    emotional_intelligence: int


class ConfidenceLevel(str, enum.Enum):
    """How much weight an average deserves, by number of reviews."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SortOption(str, enum.Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    HIGHEST_SCORE = "highest_score"
    LOWEST_SCORE = "lowest_score"
    NEEDS_REVIEW = "needs_review"


@dataclass(frozen=True)
class ScoreBreakdown:
    """Per-dimension averages; None when there are no reviews."""

    curiosity_vs_ego: float | None
    participation_vs_spectatorship: float | None
    emotional_intelligence: float | None


@dataclass(frozen=True)
class ScoringResult:
    average_score: float | None
    review_count: int
    confidence: ConfidenceLevel
    breakdown: ScoreBreakdown


def review_average(review: ReviewScores) -> float:
    """Mean of one review's three rubric scores."""
    return sum(getattr(review, dimension) for dimension in RUBRIC_DIMENSIONS) / 3


def dimension_average(reviews: Sequence[ReviewScores], dimension: str) -> float | None:
    """Mean of one rubric dimension across reviews, or None if there are none."""
    if dimension not in RUBRIC_DIMENSIONS:
        raise ValueError(f"Unknown rubric dimension: {dimension}")
    if not reviews:
        return None
    return sum(getattr(review, dimension) for review in reviews) / len(reviews)


def overall_average(reviews: Sequence[ReviewScores]) -> float | None:
    """
    Flat mean over every rubric score of every review.

    Averages all ``3 * len(reviews)`` numbers directly; it is not a mean of
    per-review means (the two agree here only because every review has
    exactly three scores).
    """
    if not reviews:
        return None

    total = sum(getattr(review, dimension) for review in reviews for dimension in RUBRIC_DIMENSIONS)
    return total / (len(reviews) * len(RUBRIC_DIMENSIONS))


def confidence_level(review_count: int) -> ConfidenceLevel:
    """0 reviews: none, 1: low, 2: medium, 3 or more: high."""
    if review_count <= 0:
        return ConfidenceLevel.NONE
    if review_count == 1:
        return ConfidenceLevel.LOW
    if review_count == 2:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.HIGH


def score_submission(reviews: Iterable[ReviewScores]) -> ScoringResult:
    """Complete scoring result for one submission's reviews."""
    reviews = list(reviews)

    return ScoringResult(
        average_score=overall_average(reviews),
        review_count=len(reviews),
        confidence=confidence_level(len(reviews)),
        breakdown=ScoreBreakdown(
            curiosity_vs_ego=dimension_average(reviews, "curiosity_vs_ego"),
            participation_vs_spectatorship=dimension_average(
                reviews, "participation_vs_spectatorship"
            ),
            emotional_intelligence=dimension_average(reviews, "emotional_intelligence"),
        ),
    )


class SortableSubmission(Protocol):
    created_at: datetime
    scoring: ScoringResult


S = TypeVar("S", bound=SortableSubmission)


def _score_key(item: Any, descending: bool) -> tuple[bool, float]:
    average = item.scoring.average_score
    if average is None:
        # Unscored items always sort last
        return (True, 0.0)
    return (False, -average if descending else average)


def sort_submissions(submissions: Iterable[S], sort_by: SortOption | str) -> list[S]:
    """
    Return a new list ordered for triage. The input is never mutated.

    The sort is stable: items comparing equal keep their input order.
    Unknown sort keys return an unordered copy.
    """
    items = list(submissions)

    try:
        option = SortOption(sort_by)
    except ValueError:
        return items

    if option is SortOption.NEWEST:
        return sorted(items, key=lambda s: s.created_at, reverse=True)
    if option is SortOption.OLDEST:
        return sorted(items, key=lambda s: s.created_at)
    if option is SortOption.HIGHEST_SCORE:
        return sorted(items, key=lambda s: _score_key(s, descending=True))
    if option is SortOption.LOWEST_SCORE:
        return sorted(items, key=lambda s: _score_key(s, descending=False))

    # NEEDS_REVIEW: fewest reviews first, then newest first
    return sorted(items, key=lambda s: (s.scoring.review_count, -s.created_at.timestamp()))
