"""Observable state of a study session controller."""

from dataclasses import dataclass
from enum import StrEnum

from mindcue.domain.study.entities.card import Card
from mindcue.domain.study.entities.study_session import StudySession
from mindcue.domain.study.value_objects import SessionStats
from mindcue.exceptions import StudyClientError


class SessionState(StrEnum):
    """Lifecycle of one study session."""

    IDLE = "idle"
    STARTING = "starting"
    FETCHING_CARD = "fetching_card"
    CARD_READY = "card_ready"
    SUBMITTING_ANSWER = "submitting_answer"
    COMPLETE = "complete"
    FAILED = "failed"
    AUTH_FAILED = "auth_failed"


STARTABLE_STATES = frozenset({SessionState.IDLE, SessionState.FAILED, SessionState.COMPLETE})
ANSWERABLE_STATES = frozenset({SessionState.CARD_READY, SessionState.FAILED})


@dataclass(frozen=True)
class SessionSnapshot:
    """Everything an observer may read, captured at one point in time."""

    state: SessionState
    session: StudySession | None
    current_card: Card | None
    stats: SessionStats | None
    error: StudyClientError | None
    authentication_failed: bool
    is_busy: bool

    @property
    def is_complete(self) -> bool:
        return self.state is SessionState.COMPLETE
