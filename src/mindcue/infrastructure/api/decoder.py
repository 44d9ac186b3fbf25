"""Maps raw study API responses onto the domain model."""

import json
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from mindcue.application.study.dto import AnswerCounts, AnswerResult, NextCardResult, SessionStart
from mindcue.domain.study.entities.card import DEFAULT_DIFFICULTY, MAX_EXAMPLES, Card
from mindcue.domain.study.value_objects import (
    CardId,
    QualityBreakdown,
    SessionProgress,
    SessionStats,
)
from mindcue.exceptions import DecodeError, ServerError
from mindcue.infrastructure.api.schemas import (
    AnswerPayload,
    CardPayload,
    NextCardPayload,
    QualityBreakdownPayload,
    ResponseEnvelope,
    SessionStatsResponsePayload,
    StartSessionPayload,
)

logger = structlog.get_logger(__name__)

ENVELOPE_KEYS = frozenset({"success", "status", "message", "error", "data"})

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class ResponseDecoder:
    """
    Turns response bodies into domain results.

    Every body goes through the same steps: parse JSON, read the envelope,
    reject explicit failures, merge a ``data`` payload with the flat top
    level, then validate against the operation's schema.
    """

    def __init__(self, default_difficulty: int = DEFAULT_DIFFICULTY) -> None:
        self.default_difficulty = default_difficulty

    def decode_start_session(
        self, raw: bytes | str, deck_id: str, status_code: int = 200
    ) -> SessionStart:
        """Decode a start-session response. A missing session id is a DecodeError."""
        envelope, payload = self._open(raw, status_code)
        start = self._validate(StartSessionPayload, payload, raw)
        return SessionStart(
            session_id=start.session_id,
            deck_id=start.deck_id or deck_id,
            total_cards=start.total_cards,
            new_cards=start.new_cards,
            review_cards=start.review_cards,
            message=start.message or envelope.message,
        )

    def decode_next_card(
        self, raw: bytes | str, deck_id: str | None = None, status_code: int = 200
    ) -> NextCardResult:
        """
        Decode a next-card response.

        An absent card means the session is exhausted. A card without an id
        is a DecodeError rather than an exhausted session.
        """
        envelope, payload = self._open(raw, status_code)
        next_card = self._validate(NextCardPayload, payload, raw)

        card = None
        if next_card.card is not None:
            card = self._to_card(next_card.card, next_card.card_index, deck_id)

        progress = None
        if next_card.progress is not None:
            progress = SessionProgress.create(
                cards_reviewed=next_card.progress.cards_reviewed,
                total_cards=next_card.progress.total_cards,
                remaining_cards=next_card.progress.remaining_cards,
            )

        return NextCardResult(
            card=card,
            card_index=next_card.card_index,
            progress=progress,
            session_complete=next_card.session_complete,
            message=next_card.message or envelope.message,
        )

    def decode_answer(self, raw: bytes | str, status_code: int = 200) -> AnswerResult:
        """Decode a submit-answer response; the stats block is optional."""
        envelope, payload = self._open(raw, status_code)
        answer = self._validate(AnswerPayload, payload, raw)
        counts = None
        if answer.stats is not None:
            counts = AnswerCounts(
                cards_reviewed=answer.stats.cards_reviewed,
                correct_responses=answer.stats.correct_responses,
                incorrect_responses=answer.stats.incorrect_responses,
            )
        return AnswerResult(counts=counts, message=answer.message or envelope.message)

    def decode_session_stats(self, raw: bytes | str, status_code: int = 200) -> SessionStats:
        """Decode a session-stats response, computing accuracy when the server omits it."""
        _, payload = self._open(raw, status_code)
        stats = self._validate(SessionStatsResponsePayload, payload, raw).stats
        return SessionStats.create(
            total_cards=stats.total_cards,
            cards_reviewed=stats.cards_reviewed,
            correct_responses=stats.correct_responses,
            incorrect_responses=stats.incorrect_responses,
            accuracy=stats.accuracy,
            average_response_time=stats.average_response_time,
            duration=stats.duration_seconds,
            quality_breakdown=self._to_breakdown(stats.quality),
            source="server",
        )

    def _open(self, raw: bytes | str, status_code: int) -> tuple[ResponseEnvelope, dict[str, Any]]:
        document = self._load(raw)
        envelope = ResponseEnvelope.model_validate(document)
        if not envelope.succeeded:
            logger.warning(
                "response_reported_failure", status_code=status_code, message=envelope.message
            )
            raise ServerError(status_code, envelope.message)
        return envelope, self._payload(document)

    @staticmethod
    def _load(raw: bytes | str) -> dict[str, Any]:
        try:
            document = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecodeError(f"invalid JSON ({e})", raw) from e
        if not isinstance(document, dict):
            raise DecodeError(f"expected a JSON object, got {type(document).__name__}", raw)
        return document

    @staticmethod
    def _payload(document: dict[str, Any]) -> dict[str, Any]:
        """Merge a ``data`` payload over the flat top level; ``data`` keys win."""
        payload = {key: value for key, value in document.items() if key not in ENVELOPE_KEYS}
        data = document.get("data")
        if isinstance(data, dict):
            payload.update(data)
        return payload

    @staticmethod
    def _validate(schema: type[SchemaT], payload: dict[str, Any], raw: bytes | str) -> SchemaT:
        try:
            return schema.model_validate(payload)
        except PydanticValidationError as e:
            reason = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or schema.__name__}: {error['msg']}"
                for error in e.errors()
            )
            logger.error("response_decode_failed", schema=schema.__name__, reason=reason)
            raise DecodeError(reason, raw) from e

    def _to_card(self, payload: CardPayload, card_index: str | None, deck_id: str | None) -> Card:
        examples = self._examples(payload)
        return Card(
            id=CardId(payload.id),
            deck_id=payload.deck_id or deck_id or "",
            front=payload.front or payload.field_text("Word", "Front", "word") or "",
            back=payload.back or payload.field_text("Definition", "Back", "definition") or "",
            examples=examples,
            tags=frozenset(payload.tags),
            part_of_speech=payload.part_of_speech
            or payload.field_text("Part-of-Speech", "PartOfSpeech"),
            difficulty=(
                payload.difficulty if payload.difficulty is not None else self.default_difficulty
            ),
            card_index=card_index,
        )

    @staticmethod
    def _examples(payload: CardPayload) -> tuple[str, ...]:
        # A sentence and its translation, only when both halves are present
        dutch = payload.field_text("Dutch")
        english = payload.field_text("English")
        if dutch and english:
            return (dutch, english)
        if payload.examples:
            return tuple(payload.examples[:MAX_EXAMPLES])
        return ()

    @staticmethod
    def _to_breakdown(payload: QualityBreakdownPayload | None) -> QualityBreakdown | None:
        if payload is None:
            return None
        return QualityBreakdown(
            counts=dict(sorted(payload.counts.items())),
            percentages=dict(sorted(payload.percentages.items())),
            average=payload.average,
        )
