"""State machine driving one study session against the study API."""

import asyncio
import copy
from collections.abc import Callable, Coroutine
from typing import Any

import structlog

from mindcue.application.study.protocols import StudyApiProtocol
from mindcue.application.study.session_state import (
    ANSWERABLE_STATES,
    STARTABLE_STATES,
    SessionSnapshot,
    SessionState,
)
from mindcue.domain.common import ValidationError
from mindcue.domain.study.entities.card import Card
from mindcue.domain.study.entities.graded_response import GradedResponse
from mindcue.domain.study.entities.study_session import StudySession
from mindcue.domain.study.services.stats_aggregator import SessionStatsAggregator
from mindcue.domain.study.value_objects import QualityGrade, SessionStats
from mindcue.exceptions import (
    AuthorizationError,
    InvalidRequestError,
    SessionBusyError,
    SessionStateError,
    StudyClientError,
)

logger = structlog.get_logger(__name__)

SessionListener = Callable[[SessionSnapshot], None]

_OBSERVABLE = frozenset(
    {"state", "session", "current_card", "stats", "error", "authentication_failed", "busy"}
)


class StudySessionController:
    """
    Owns one study session and sequences the calls that drive it.

    Only one operation may be in flight at a time. Follow-up work (the
    first card after starting, the next card after an answer, the final
    statistics after the last card) runs as a scheduled continuation that
    keeps the in-flight slot until it finishes.

    Remote failures never raise out of the operations; they are surfaced as
    ``error`` together with the ``FAILED`` or ``AUTH_FAILED`` state. Calling
    an operation from a state that does not allow it raises immediately.
    A first 401 sets ``authentication_failed`` even when the client's retry
    then succeeds; ``reset_auth_failure`` clears it.

    Every operation remembers the epoch it started in. ``start_session``
    and ``end_session`` move to a new epoch, so a response that arrives for
    an abandoned session is dropped without touching state.
    """

    def __init__(
        self,
        api: StudyApiProtocol,
        *,
        stats_aggregator: SessionStatsAggregator | None = None,
        min_quality: int = 0,
        max_quality: int = 5,
        correct_threshold: int = 3,
    ) -> None:
        self._api = api
        self._aggregator = stats_aggregator or SessionStatsAggregator()
        self._min_quality = min_quality
        self._max_quality = max_quality
        self._correct_threshold = correct_threshold

        self._state = SessionState.IDLE
        self._session: StudySession | None = None
        self._current_card: Card | None = None
        self._stats: SessionStats | None = None
        self._error: StudyClientError | None = None
        self._authentication_failed = False
        self._busy = False

        self._epoch = 0
        self._continuation: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._listeners: list[SessionListener] = []
        self._unsubscribe_unauthorized = api.on_unauthorized(self._on_unauthorized)

    # --- Observation ---

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> StudySession | None:
        return self._session

    @property
    def current_card(self) -> Card | None:
        return self._current_card

    @property
    def stats(self) -> SessionStats | None:
        return self._stats

    @property
    def error(self) -> StudyClientError | None:
        return self._error

    @property
    def authentication_failed(self) -> bool:
        return self._authentication_failed

    @property
    def is_busy(self) -> bool:
        return self._busy

    def snapshot(self) -> SessionSnapshot:
        """Capture the observable state; later changes do not affect the snapshot."""
        return SessionSnapshot(
            state=self._state,
            session=copy.deepcopy(self._session),
            current_card=self._current_card,
            stats=self._stats,
            error=self._error,
            authentication_failed=self._authentication_failed,
            is_busy=self._busy,
        )

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Call ``listener`` with a snapshot after every state change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # --- Operations ---

    async def start_session(self, deck_id: str) -> None:
        """
        Open a new session for ``deck_id``, discarding any previous one.

        Args:
            deck_id: Deck to study

        Raises:
            SessionBusyError: If another operation is in flight
            SessionStateError: If the controller is not idle, failed or complete
            InvalidRequestError: If the deck id is empty
        """
        self._ensure_not_busy("start session")
        if self._state not in STARTABLE_STATES:
            raise SessionStateError("start session", self._state)
        if not deck_id or not deck_id.strip():
            raise InvalidRequestError("Deck id cannot be empty")

        self._epoch += 1
        epoch = self._epoch
        self._commit(
            state=SessionState.STARTING,
            session=None,
            current_card=None,
            stats=None,
            error=None,
            busy=True,
        )
        try:
            try:
                start = await self._api.start_session(deck_id)
            except StudyClientError as e:
                self._fail(epoch, "start session", e)
                return

            if self._is_stale(epoch):
                logger.info("stale_response_ignored", operation="start session", deck_id=deck_id)
                return

            session = StudySession.start(
                session_id=start.session_id,
                deck_id=start.deck_id,
                total_cards=start.total_cards,
                new_cards=start.new_cards,
                review_cards=start.review_cards,
            )
            self._commit(session=session, state=SessionState.FETCHING_CARD)
            logger.info(
                "study_session_started",
                session_id=session.session_id,
                deck_id=session.deck_id,
                total_cards=session.total_cards,
            )
            self._schedule(self._fetch_next_card(epoch, force_update=False))
        finally:
            self._finish(epoch)

    async def fetch_next_card(self, force_update: bool = False) -> None:
        """
        Fetch the next card of the active session.

        Raises:
            SessionBusyError: If another operation is in flight
            SessionStateError: If there is no active session
        """
        self._ensure_not_busy("fetch next card")
        if self._session is None or self._state is SessionState.AUTH_FAILED:
            raise SessionStateError("fetch next card", self._state)

        epoch = self._epoch
        self._commit(busy=True)
        await self._fetch_next_card(epoch, force_update)

    async def record_response(self, quality: int) -> None:
        """
        Submit a grade for the current card.

        On failure the card is kept so the same response can be retried.

        Raises:
            SessionBusyError: If another operation is in flight
            SessionStateError: If there is no current card to answer
            InvalidRequestError: If the grade is outside the configured scale
        """
        self._ensure_not_busy("record response")
        card = self._current_card
        session = self._session
        if card is None or session is None or self._state not in ANSWERABLE_STATES:
            raise SessionStateError("record response", self._state)
        try:
            grade = QualityGrade.create(quality, self._min_quality, self._max_quality)
        except ValidationError as e:
            raise InvalidRequestError(e.message) from e

        epoch = self._epoch
        response = GradedResponse(card_reference=card.answer_reference, quality=grade)
        self._commit(state=SessionState.SUBMITTING_ANSWER, error=None, busy=True)
        try:
            try:
                result = await self._api.submit_answer(
                    session.session_id, response.card_reference, grade.value
                )
            except StudyClientError as e:
                self._fail(epoch, "record response", e)
                return

            if self._is_stale(epoch, session.session_id):
                logger.info("stale_response_ignored", operation="record response")
                return

            session.record_response(response, card.presented_at, self._correct_threshold)
            if result.counts is not None:
                # The server's counters are authoritative
                session.apply_server_counts(
                    cards_reviewed=result.counts.cards_reviewed,
                    correct_responses=result.counts.correct_responses,
                    incorrect_responses=result.counts.incorrect_responses,
                )
            self._commit(current_card=None, state=SessionState.FETCHING_CARD)
            logger.info(
                "response_recorded",
                session_id=session.session_id,
                card_id=str(card.id),
                quality=grade.value,
                cards_reviewed=session.cards_reviewed,
            )
            self._schedule(self._fetch_next_card(epoch, force_update=False))
        finally:
            self._finish(epoch)

    def end_session(self) -> None:
        """Discard all local session state and return to idle. No remote call is made."""
        if self._state is SessionState.IDLE and self._session is None:
            logger.debug("end_session_ignored", reason="no active session")
            return

        session_id = self._session.session_id if self._session else None
        self._epoch += 1
        self._commit(
            state=SessionState.IDLE,
            session=None,
            current_card=None,
            stats=None,
            error=None,
            authentication_failed=False,
            busy=False,
        )
        logger.info("study_session_ended", session_id=session_id)

    def reset_auth_failure(self) -> None:
        """Clear the authentication failure so a new session can be started."""
        if not self._authentication_failed and self._state is not SessionState.AUTH_FAILED:
            return
        state = SessionState.IDLE if self._state is SessionState.AUTH_FAILED else self._state
        self._commit(authentication_failed=False, error=None, state=state)
        logger.info("auth_failure_reset")

    async def settle(self) -> None:
        """Wait until every scheduled continuation has finished."""
        while pending := [task for task in self._tasks if not task.done()]:
            await asyncio.gather(*pending)

    async def aclose(self) -> None:
        """Cancel scheduled continuations and stop listening to the client."""
        self._unsubscribe_unauthorized()
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    # --- Continuations ---

    async def _fetch_next_card(self, epoch: int, force_update: bool) -> None:
        try:
            session = self._session
            if self._is_stale(epoch) or session is None:
                return
            self._commit(state=SessionState.FETCHING_CARD, error=None)

            try:
                result = await self._api.next_card(
                    session.session_id, force_update=force_update, deck_id=session.deck_id
                )
            except StudyClientError as e:
                self._fail(epoch, "fetch next card", e)
                return

            if self._is_stale(epoch, session.session_id):
                logger.info("stale_response_ignored", operation="fetch next card")
                return

            if not result.exhausted:
                if result.progress is not None:
                    session.apply_progress(result.progress)
                self._commit(current_card=result.card, state=SessionState.CARD_READY)
                logger.info(
                    "next_card_ready",
                    session_id=session.session_id,
                    card_id=str(result.card.id) if result.card else None,
                    card_index=result.card_index,
                )
                return

            session.complete()
            self._commit(current_card=None, state=SessionState.COMPLETE)
            logger.info(
                "study_session_complete",
                session_id=session.session_id,
                cards_reviewed=session.cards_reviewed,
            )
            self._schedule(self._fetch_session_stats(epoch))
        finally:
            self._finish(epoch)

    async def _fetch_session_stats(self, epoch: int) -> None:
        try:
            session = self._session
            if self._is_stale(epoch) or session is None:
                return

            remote = None
            try:
                remote = await self._api.session_stats(session.session_id)
            except StudyClientError as e:
                # Best effort: completion stands and stats fall back to local counters
                logger.warning(
                    "session_stats_fetch_failed",
                    session_id=session.session_id,
                    error=e.message,
                    status_code=e.status_code,
                )

            if self._is_stale(epoch, session.session_id):
                logger.info("stale_response_ignored", operation="fetch session stats")
                return

            stats = self._aggregator.finalize(session, remote)
            self._commit(stats=stats)
            logger.info(
                "session_stats_ready",
                session_id=session.session_id,
                source=stats.source,
                cards_reviewed=stats.cards_reviewed,
                accuracy=stats.accuracy,
            )
        finally:
            self._finish(epoch)

    def _schedule(self, operation: Coroutine[Any, Any, None]) -> None:
        """Run ``operation`` as the next in-flight continuation."""
        task = asyncio.create_task(operation)
        self._continuation = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # --- Internal state handling ---

    def _commit(self, **changes: Any) -> None:
        """Apply observable changes in one step and notify listeners once."""
        unknown = changes.keys() - _OBSERVABLE
        if unknown:
            raise AttributeError(f"Not observable: {', '.join(sorted(unknown))}")
        previous = self._state
        for name, value in changes.items():
            setattr(self, f"_{name}", value)
        if self._state is not previous:
            logger.debug("session_state_changed", previous=previous, current=self._state)

        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)

    def _on_unauthorized(self, operation: str) -> None:
        # First 401 of an operation; the client retries it once
        if not self._busy or self._authentication_failed:
            return
        logger.warning("session_credential_rejected", operation=operation)
        self._commit(authentication_failed=True)

    def _fail(self, epoch: int, operation: str, error: StudyClientError) -> None:
        if self._is_stale(epoch):
            logger.info("stale_failure_ignored", operation=operation, error=error.message)
            return

        if isinstance(error, AuthorizationError):
            logger.warning("session_authentication_failed", operation=operation)
            self._commit(
                state=SessionState.AUTH_FAILED,
                session=None,
                current_card=None,
                stats=None,
                error=error,
                authentication_failed=True,
            )
            return

        logger.error(
            "session_operation_failed",
            operation=operation,
            error=error.message,
            error_type=type(error).__name__,
            status_code=error.status_code,
        )
        self._commit(state=SessionState.FAILED, error=error)

    def _finish(self, epoch: int) -> None:
        """Release the in-flight slot unless a continuation has taken it over."""
        if self._is_stale(epoch) or self._has_pending_continuation():
            return
        if self._busy:
            self._commit(busy=False)

    def _has_pending_continuation(self) -> bool:
        task = self._continuation
        if task is None or task.done():
            return False
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        return task is not current

    def _is_stale(self, epoch: int, session_id: str | None = None) -> bool:
        if epoch != self._epoch:
            return True
        if session_id is not None:
            return self._session is None or self._session.session_id != session_id
        return False

    def _ensure_not_busy(self, operation: str) -> None:
        if self._busy:
            raise SessionBusyError(operation)
