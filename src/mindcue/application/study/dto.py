"""Results returned by the study API, already mapped onto the domain model."""

from dataclasses import dataclass

from mindcue.domain.study.entities.card import Card
from mindcue.domain.study.value_objects import SessionProgress


@dataclass(frozen=True)
class SessionStart:
    """An opened session as announced by the server."""

    session_id: str
    deck_id: str
    total_cards: int
    new_cards: int = 0
    review_cards: int = 0
    message: str | None = None


@dataclass(frozen=True)
class NextCardResult:
    """The server's next-card decision."""

    card: Card | None
    card_index: str | None = None
    progress: SessionProgress | None = None
    session_complete: bool = False
    message: str | None = None

    @property
    def exhausted(self) -> bool:
        """True when the session has no more cards to present."""
        return self.card is None or self.session_complete


@dataclass(frozen=True)
class AnswerCounts:
    """Counters the server reports after accepting an answer."""

    cards_reviewed: int
    correct_responses: int
    incorrect_responses: int


@dataclass(frozen=True)
class AnswerResult:
    """Outcome of submitting an answer."""

    counts: AnswerCounts | None = None
    message: str | None = None
