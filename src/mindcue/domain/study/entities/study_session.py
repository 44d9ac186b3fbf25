"""
StudySession aggregate.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime

from mindcue.domain.common import Entity, ValidationError
from mindcue.domain.study.entities.graded_response import GradedResponse
from mindcue.domain.study.value_objects import (
    QualityBreakdown,
    SessionId,
    SessionProgress,
    compute_accuracy,
)


@dataclass(eq=False)
class StudySession(Entity[SessionId]):
    """
    One bounded study interaction with a deck.

    Business Rules:
    - Counters are never negative
    - cards_reviewed never exceeds total_cards; a server reporting more
      reviewed cards than the known total raises the total
    - Server-reported counters take precedence over local increments
    - A completed session has an end time
    """

    # Identity
    id: SessionId
    deck_id: str

    # Plan
    total_cards: int
    new_cards: int = 0
    review_cards: int = 0

    # Progress
    cards_reviewed: int = 0
    correct_responses: int = 0
    incorrect_responses: int = 0

    # Time tracking
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    is_complete: bool = False

    # Local-only history for fallback statistics
    _grades: list[int] = field(default_factory=list, repr=False)
    _response_times: list[float] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        """Validate invariants."""
        for name in (
            "total_cards",
            "new_cards",
            "review_cards",
            "cards_reviewed",
            "correct_responses",
            "incorrect_responses",
        ):
            if getattr(self, name) < 0:
                raise ValidationError(f"{name} cannot be negative", field=name)
        self._keep_within_total()

    @property
    def session_id(self) -> str:
        return self.id.value

    @property
    def remaining_cards(self) -> int:
        return max(0, self.total_cards - self.cards_reviewed)

    @property
    def accuracy(self) -> float:
        return compute_accuracy(self.correct_responses, self.cards_reviewed)

    @property
    def duration(self) -> float:
        """Elapsed seconds, up to the end time once the session is complete."""
        end = self.end_time or datetime.now(UTC)
        return max(0.0, (end - self.start_time).total_seconds())

    @property
    def average_response_time(self) -> float | None:
        if not self._response_times:
            return None
        return sum(self._response_times) / len(self._response_times)

    @property
    def quality_breakdown(self) -> QualityBreakdown | None:
        if not self._grades:
            return None
        return QualityBreakdown.from_grades(self._grades)

    def apply_progress(self, progress: SessionProgress) -> None:
        """Take the server's view of how far the session has progressed."""
        self.cards_reviewed = max(0, progress.cards_reviewed)
        if progress.total_cards > 0:
            self.total_cards = progress.total_cards
        self._keep_within_total()

    def record_response(
        self, response: GradedResponse, presented_at: datetime, correct_threshold: int
    ) -> None:
        """
        Count an accepted response locally.

        Args:
            response: The response the server accepted
            presented_at: When the answered card was shown
            correct_threshold: Lowest grade counted as correct
        """
        self.cards_reviewed += 1
        if response.is_correct(correct_threshold):
            self.correct_responses += 1
        else:
            self.incorrect_responses += 1
        self._grades.append(response.quality.value)
        latency = (response.submitted_at - presented_at).total_seconds()
        if latency >= 0:
            self._response_times.append(latency)
        self._keep_within_total()

    def apply_server_counts(
        self, cards_reviewed: int, correct_responses: int, incorrect_responses: int
    ) -> None:
        """Override local counters with the server's authoritative values."""
        self.cards_reviewed = max(0, cards_reviewed)
        self.correct_responses = max(0, correct_responses)
        self.incorrect_responses = max(0, incorrect_responses)
        self._keep_within_total()

    def complete(self, at: datetime | None = None) -> None:
        """Mark the session as exhausted."""
        if self.is_complete:
            return
        self.is_complete = True
        self.end_time = at or datetime.now(UTC)

    def _keep_within_total(self) -> None:
        if self.cards_reviewed > self.total_cards:
            self.total_cards = self.cards_reviewed

    @classmethod
    def start(
        cls,
        session_id: str,
        deck_id: str,
        total_cards: int,
        new_cards: int = 0,
        review_cards: int = 0,
    ) -> "StudySession":
        """
        Factory method for a freshly opened session.

        Args:
            session_id: Server-issued session identifier
            deck_id: Deck being studied
            total_cards: Cards planned for the session
            new_cards: Never-seen cards among them
            review_cards: Due review cards among them

        Returns:
            New StudySession with zeroed progress counters
        """
        return cls(
            id=SessionId(session_id),
            deck_id=deck_id,
            total_cards=max(0, total_cards),
            new_cards=max(0, new_cards),
            review_cards=max(0, review_cards),
        )

    def __repr__(self) -> str:
        return (
            f"StudySession(id={self.id}, deck_id={self.deck_id!r}, "
            f"reviewed={self.cards_reviewed}/{self.total_cards})"
        )
