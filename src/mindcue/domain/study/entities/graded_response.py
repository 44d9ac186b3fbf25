"""Graded response to a card."""

from dataclasses import dataclass, field
from datetime import UTC, datetime

from mindcue.domain.study.value_objects import QualityGrade


@dataclass(frozen=True)
class GradedResponse:
    """A learner's grade for one card. Discarded once the server accepts it."""

    card_reference: str
    quality: QualityGrade
    submitted_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def is_correct(self, threshold: int) -> bool:
        return self.quality.is_correct(threshold)
