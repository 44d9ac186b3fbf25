"""Value objects of the study session model."""

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Literal

from mindcue.domain.common import EntityId, ValidationError, ValueObject


@dataclass(frozen=True)
class SessionId(EntityId):
    """Server-issued study session identifier."""


@dataclass(frozen=True)
class CardId(EntityId):
    """Server-issued card identifier."""


@dataclass(frozen=True)
class QualityGrade(ValueObject):
    """
    Caller-supplied recall grade for a card.

    The scale is an open small integer range; the server interprets it.
    Bounds are supplied by configuration through ``create``.
    """

    value: int

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise ValidationError(
                "Quality grade must be an integer", field="quality", value=self.value
            )
        if self.value < 0:
            raise ValidationError(
                "Quality grade cannot be negative", field="quality", value=self.value
            )

    @classmethod
    def create(cls, value: int, minimum: int = 0, maximum: int = 5) -> "QualityGrade":
        """
        Create a grade, enforcing the configured scale.

        Raises:
            ValidationError: If the value is not an integer within bounds
        """
        grade = cls(value)
        if not minimum <= grade.value <= maximum:
            raise ValidationError(
                f"Quality grade must be between {minimum} and {maximum}",
                field="quality",
                value=value,
            )
        return grade

    def is_correct(self, threshold: int) -> bool:
        """Whether this grade counts as a correct recall."""
        return self.value >= threshold


@dataclass(frozen=True)
class SessionProgress(ValueObject):
    """Server-reported position within a session."""

    cards_reviewed: int
    total_cards: int
    remaining_cards: int

    @classmethod
    def create(
        cls, cards_reviewed: int, total_cards: int, remaining_cards: int | None = None
    ) -> "SessionProgress":
        """Create progress, deriving the remaining count when absent."""
        if remaining_cards is None:
            remaining_cards = max(0, total_cards - cards_reviewed)
        return cls(
            cards_reviewed=cards_reviewed,
            total_cards=total_cards,
            remaining_cards=remaining_cards,
        )


@dataclass(frozen=True)
class QualityBreakdown(ValueObject):
    """Per-grade counts and percentages plus the mean grade."""

    counts: dict[int, int] = field(default_factory=dict)
    percentages: dict[int, float] = field(default_factory=dict)
    average: float = 0.0

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @classmethod
    def from_grades(cls, grades: Iterable[int]) -> "QualityBreakdown":
        """Build a breakdown from individual grades (percentages on a 0-100 scale)."""
        counts = Counter(grades)
        total = sum(counts.values())
        if total == 0:
            return cls()
        return cls(
            counts=dict(sorted(counts.items())),
            percentages={grade: count * 100.0 / total for grade, count in sorted(counts.items())},
            average=sum(grade * count for grade, count in counts.items()) / total,
        )


def compute_accuracy(correct_responses: int, cards_reviewed: int) -> float:
    """Fraction of reviewed cards answered correctly; 0 when nothing was reviewed."""
    if cards_reviewed <= 0:
        return 0.0
    return correct_responses / cards_reviewed


StatsSource = Literal["server", "local"]


@dataclass(frozen=True)
class SessionStats(ValueObject):
    """Final statistics for a study session."""

    total_cards: int
    cards_reviewed: int
    correct_responses: int
    incorrect_responses: int
    accuracy: float
    average_response_time: float | None = None
    duration: float | None = None
    quality_breakdown: QualityBreakdown | None = None
    source: StatsSource = "server"

    @classmethod
    def create(
        cls,
        total_cards: int,
        cards_reviewed: int,
        correct_responses: int,
        incorrect_responses: int,
        accuracy: float | None = None,
        average_response_time: float | None = None,
        duration: float | None = None,
        quality_breakdown: QualityBreakdown | None = None,
        source: StatsSource = "server",
    ) -> "SessionStats":
        """Create stats, computing accuracy from the counters when it is absent."""
        if accuracy is None:
            accuracy = compute_accuracy(correct_responses, cards_reviewed)
        return cls(
            total_cards=total_cards,
            cards_reviewed=cards_reviewed,
            correct_responses=correct_responses,
            incorrect_responses=incorrect_responses,
            accuracy=accuracy,
            average_response_time=average_response_time,
            duration=duration,
            quality_breakdown=quality_breakdown,
            source=source,
        )
