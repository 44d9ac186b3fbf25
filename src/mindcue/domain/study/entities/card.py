"""
Card entity for a study session.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime

from mindcue.domain.common import Entity, ValidationError
from mindcue.domain.study.value_objects import CardId

DEFAULT_DIFFICULTY = 3
MAX_EXAMPLES = 2


@dataclass(eq=False)
class Card(Entity[CardId]):
    """
    The card currently presented to the learner.

    Business Rules:
    - A card carries at most two examples (a sentence and its translation)
    - Difficulty defaults to the mid-value when the server omits it
    - ``card_index`` is the server's position token; answers fall back to
      the card id when the server sent none
    """

    id: CardId
    deck_id: str
    front: str
    back: str
    examples: tuple[str, ...] = ()
    tags: frozenset[str] = frozenset()
    part_of_speech: str | None = None
    difficulty: int = DEFAULT_DIFFICULTY
    card_index: str | None = None
    presented_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        """Validate invariants."""
        if len(self.examples) > MAX_EXAMPLES:
            raise ValidationError(
                f"A card carries at most {MAX_EXAMPLES} examples",
                field="examples",
                value=len(self.examples),
            )

    @property
    def answer_reference(self) -> str:
        """Identifier sent back to the server when answering this card."""
        return self.card_index if self.card_index is not None else self.id.value

    def __repr__(self) -> str:
        return f"Card(id={self.id}, front={self.front!r})"
