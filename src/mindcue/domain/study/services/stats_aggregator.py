"""Final statistics for a completed study session."""

from dataclasses import replace

import structlog

from mindcue.domain.study.entities.study_session import StudySession
from mindcue.domain.study.value_objects import SessionStats

logger = structlog.get_logger(__name__)


class SessionStatsAggregator:
    """
    Reconciles server-reported statistics with the session's own counters.

    Server values win wherever the server supplied them. Without server
    statistics the result is synthesized entirely from the session, so a
    completed session always yields a usable ``SessionStats``.
    """

    def finalize(self, session: StudySession, remote: SessionStats | None) -> SessionStats:
        """
        Produce the final statistics for ``session``.

        Args:
            session: The completed session
            remote: Statistics returned by the server, or None if the fetch failed

        Returns:
            SessionStats tagged with its source
        """
        if remote is None:
            logger.info("session_stats_synthesized", session_id=session.session_id)
            return self.from_session(session)

        filled = remote
        if filled.total_cards == 0 and session.total_cards > 0:
            filled = replace(filled, total_cards=session.total_cards)
        if filled.duration is None:
            filled = replace(filled, duration=session.duration)
        if filled.average_response_time is None and session.average_response_time is not None:
            filled = replace(filled, average_response_time=session.average_response_time)
        return filled

    @staticmethod
    def from_session(session: StudySession) -> SessionStats:
        """Synthesize statistics purely from local counters."""
        return SessionStats.create(
            total_cards=session.total_cards,
            cards_reviewed=session.cards_reviewed,
            correct_responses=session.correct_responses,
            incorrect_responses=session.incorrect_responses,
            average_response_time=session.average_response_time,
            duration=session.duration,
            quality_breakdown=session.quality_breakdown,
            source="local",
        )
