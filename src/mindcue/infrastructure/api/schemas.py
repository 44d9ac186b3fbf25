"""Pydantic schemas for study API responses.

The study service answers with several loosely-versioned shapes. Each
logical value lists its accepted spellings in priority order; the first
one present wins. Only identity fields (session id, card id) are strict,
every other value degrades to its documented default.
"""

import re
from typing import Annotated, Any

import structlog
from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    ValidatorFunctionWrapHandler,
    WrapValidator,
    model_validator,
)

logger = structlog.get_logger(__name__)

FAILURE_STATUSES = frozenset({"error", "fail", "failed", "failure"})


def _lenient(default: Any) -> WrapValidator:
    """Fall back to ``default`` instead of failing when a value has the wrong type."""

    def validate(value: Any, handler: ValidatorFunctionWrapHandler) -> Any:
        if value is None:
            return default
        try:
            return handler(value)
        except ValidationError:
            logger.warning("response_value_ignored", value=repr(value)[:80], default=default)
            return default

    return WrapValidator(validate)


def _identifier(value: Any) -> str:
    """Normalize a string or numeric identifier to a non-empty string."""
    if isinstance(value, bool):
        raise ValueError("identifier must be a string or a number")
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, str) and value.strip():
        return value.strip()
    raise ValueError("identifier must be a non-empty string or a number")


def _optional_identifier(value: Any) -> str | None:
    if value is None:
        return None
    try:
        return _identifier(value)
    except ValueError:
        logger.warning("response_identifier_ignored", value=repr(value)[:80])
        return None


def _tag_list(value: Any) -> list[str]:
    """Accept a list of tags or a whitespace-separated tag string."""
    if value is None:
        return []
    if isinstance(value, str):
        return value.split()
    if isinstance(value, list | tuple | set):
        return [str(tag).strip() for tag in value if tag is not None and str(tag).strip()]
    logger.warning("response_tags_ignored", value=repr(value)[:80])
    return []


def _string_list(value: Any) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, str):
        return [value]
    if isinstance(value, list | tuple):
        return [str(item) for item in value if item is not None and str(item).strip()]
    return None


Identifier = Annotated[str, BeforeValidator(_identifier)]
OptionalIdentifier = Annotated[str | None, BeforeValidator(_optional_identifier)]
Count = Annotated[int, _lenient(0)]
OptionalCount = Annotated[int | None, _lenient(None)]
OptionalFloat = Annotated[float | None, _lenient(None)]
OptionalText = Annotated[str | None, _lenient(None)]
OptionalBool = Annotated[bool | None, _lenient(None)]
TagList = Annotated[list[str], BeforeValidator(_tag_list)]
StringList = Annotated[list[str] | None, BeforeValidator(_string_list)]


def _aliases(*names: str) -> AliasChoices:
    return AliasChoices(*names)


REVIEWED = _aliases("cardsReviewed", "reviewed", "cards_reviewed")
TOTAL = _aliases("totalCards", "total", "total_cards")
REMAINING = _aliases("remainingCards", "remaining", "remaining_cards")
CORRECT = _aliases("correctResponses", "correct", "correct_responses")
INCORRECT = _aliases("incorrectResponses", "incorrect", "incorrect_responses")

ANSWER_STATS_KEYS = frozenset(
    {
        "cardsReviewed",
        "reviewed",
        "cards_reviewed",
        "correctResponses",
        "correct",
        "correct_responses",
        "incorrectResponses",
        "incorrect",
        "incorrect_responses",
    }
)
SESSION_STATS_KEYS = ANSWER_STATS_KEYS | {"totalCards", "total", "total_cards", "accuracy"}
NESTED_STATS_KEYS = ("stats", "sessionStats", "session_stats")


class LenientModel(BaseModel):
    """Base for response schemas: unknown keys are ignored, names and aliases both accepted."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ResponseEnvelope(LenientModel):
    """Outer wrapper (``success``, ``status``, ``message``) around a payload."""

    success: OptionalBool = None
    status: OptionalText = None
    message: OptionalText = Field(None, validation_alias=_aliases("message", "error"))

    @property
    def succeeded(self) -> bool:
        """An absent success flag means success unless ``status`` says otherwise."""
        if self.success is not None:
            return self.success
        if self.status is not None:
            return self.status.strip().lower() not in FAILURE_STATUSES
        return True


class StartSessionPayload(LenientModel):
    """Payload of ``POST /decks/{deckId}/start``."""

    session_id: Identifier = Field(validation_alias=_aliases("sessionId", "session_id"))
    deck_id: OptionalIdentifier = Field(None, validation_alias=_aliases("deckId", "deck_id"))
    total_cards: Count = Field(0, validation_alias=TOTAL)
    new_cards: Count = Field(0, validation_alias=_aliases("newCards", "new_cards"))
    review_cards: Count = Field(0, validation_alias=_aliases("reviewCards", "review_cards"))
    message: OptionalText = None


class ProgressPayload(LenientModel):
    """Session progress; ``current`` is the next-card endpoint's spelling of reviewed."""

    cards_reviewed: Count = Field(
        0, validation_alias=_aliases("cardsReviewed", "reviewed", "cards_reviewed", "current")
    )
    total_cards: Count = Field(0, validation_alias=TOTAL)
    remaining_cards: OptionalCount = Field(None, validation_alias=REMAINING)


class CardPayload(LenientModel):
    """A card as sent by the next-card endpoint."""

    id: Identifier = Field(validation_alias=_aliases("id", "_id", "cardId", "card_id"))
    deck_id: OptionalIdentifier = Field(None, validation_alias=_aliases("deckId", "deck_id"))
    note_fields: Annotated[dict[str, Any], _lenient({})] = Field(
        default_factory=dict, validation_alias=_aliases("fields", "note_fields")
    )
    front: OptionalText = None
    back: OptionalText = None
    examples: StringList = None
    tags: TagList = Field(default_factory=list)
    part_of_speech: OptionalText = Field(
        None, validation_alias=_aliases("partOfSpeech", "part_of_speech")
    )
    difficulty: OptionalCount = None

    def field_text(self, *names: str) -> str | None:
        """Text of the first named note field that is present and non-empty."""
        for name in names:
            value = self.note_fields.get(name)
            # Note fields may be plain strings or {"value": ..., "order": ...} objects
            if isinstance(value, dict):
                value = value.get("value")
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None


class NextCardPayload(LenientModel):
    """Payload of ``GET /study/session/{sessionId}/next``."""

    card_index: OptionalIdentifier = Field(
        None, validation_alias=_aliases("cardIndex", "card_index")
    )
    card: CardPayload | None = None
    progress: Annotated[ProgressPayload | None, _lenient(None)] = None
    session_complete: Annotated[bool, _lenient(False)] = Field(
        False, validation_alias=_aliases("sessionComplete", "session_complete", "isComplete")
    )
    message: OptionalText = None


class AnswerStatsPayload(LenientModel):
    """Running counters returned after an answer."""

    cards_reviewed: Count = Field(0, validation_alias=REVIEWED)
    correct_responses: Count = Field(0, validation_alias=CORRECT)
    incorrect_responses: Count = Field(0, validation_alias=INCORRECT)


class AnswerPayload(LenientModel):
    """Payload of ``POST /study/session/{sessionId}/answer``."""

    stats: Annotated[AnswerStatsPayload | None, _lenient(None)] = Field(
        None, validation_alias=_aliases(*NESTED_STATS_KEYS)
    )
    message: OptionalText = None

    @model_validator(mode="before")
    @classmethod
    def lift_flat_stats(cls, data: Any) -> Any:
        """Treat counters found directly in the payload as the stats block."""
        if not isinstance(data, dict):
            return data
        if any(isinstance(data.get(key), dict) for key in NESTED_STATS_KEYS):
            return data
        if data.keys() & ANSWER_STATS_KEYS:
            return {**data, "stats": data}
        return data


_GRADE_KEY = re.compile(r"^quality_?(\d+)(Percent|_percent)?$")


class QualityBreakdownPayload(LenientModel):
    """Per-grade counts ``quality<N>``, percentages ``quality<N>Percent``, mean grade."""

    counts: dict[int, int] = Field(default_factory=dict)
    percentages: dict[int, float] = Field(default_factory=dict)
    average: Annotated[float, _lenient(0.0)] = Field(
        0.0, validation_alias=_aliases("averageQuality", "average_quality", "average")
    )

    @model_validator(mode="before")
    @classmethod
    def collect_grade_keys(cls, data: Any) -> Any:
        """Gather ``quality<N>`` style keys for any grade N."""
        if not isinstance(data, dict):
            return data
        counts: dict[int, int] = {}
        percentages: dict[int, float] = {}
        for key, value in data.items():
            match = _GRADE_KEY.match(str(key))
            if match is None or isinstance(value, bool) or not isinstance(value, int | float):
                continue
            grade = int(match.group(1))
            if match.group(2):
                percentages[grade] = float(value)
            else:
                counts[grade] = int(value)
        return {**data, "counts": counts, "percentages": percentages}


class SessionStatsPayload(LenientModel):
    """Final statistics of a session."""

    total_cards: Count = Field(0, validation_alias=TOTAL)
    cards_reviewed: Count = Field(0, validation_alias=REVIEWED)
    correct_responses: Count = Field(0, validation_alias=CORRECT)
    incorrect_responses: Count = Field(0, validation_alias=INCORRECT)
    accuracy: OptionalFloat = None
    average_response_time: OptionalFloat = Field(
        None,
        validation_alias=_aliases(
            "averageResponseTime", "avg_time", "average_time", "average_response_time"
        ),
    )
    duration: OptionalFloat = Field(
        None, validation_alias=_aliases("duration", "session_duration")
    )
    duration_minutes: OptionalFloat = Field(
        None, validation_alias=_aliases("durationMinutes", "duration_minutes")
    )
    quality: Annotated[QualityBreakdownPayload | None, _lenient(None)] = Field(
        None,
        validation_alias=_aliases(
            "qualityStats", "quality_stats", "qualityBreakdown", "quality_breakdown"
        ),
    )

    @property
    def duration_seconds(self) -> float | None:
        if self.duration is not None:
            return self.duration
        if self.duration_minutes is not None:
            return self.duration_minutes * 60
        return None


class SessionStatsResponsePayload(LenientModel):
    """Payload of ``GET /study/session/{sessionId}/stats``."""

    stats: SessionStatsPayload = Field(validation_alias=_aliases(*NESTED_STATS_KEYS))

    @model_validator(mode="before")
    @classmethod
    def locate_stats(cls, data: Any) -> Any:
        """Find the stats block nested under a known key or flat in the payload."""
        if not isinstance(data, dict):
            return data
        for key in NESTED_STATS_KEYS:
            if isinstance(data.get(key), dict):
                return {"stats": data[key]}
        if data.keys() & SESSION_STATS_KEYS:
            return {"stats": data}
        raise ValueError("Stats not found in any expected field")
