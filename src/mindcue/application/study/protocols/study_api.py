from collections.abc import Callable
from typing import Protocol

from mindcue.application.study.dto import AnswerResult, NextCardResult, SessionStart
from mindcue.domain.study.value_objects import SessionStats


class StudyApiProtocol(Protocol):
    async def start_session(self, deck_id: str) -> SessionStart: ...

    async def next_card(
        self, session_id: str, force_update: bool = False, deck_id: str | None = None
    ) -> NextCardResult: ...

    async def submit_answer(
        self, session_id: str, card_index: str, quality: int
    ) -> AnswerResult: ...

    async def session_stats(self, session_id: str) -> SessionStats: ...

    def on_unauthorized(self, listener: Callable[[str], None]) -> Callable[[], None]: ...
