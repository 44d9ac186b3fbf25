"""Tests for the resilient response decoder."""

import json

import pytest

from mindcue.application.study.dto import AnswerCounts
from mindcue.domain.study.value_objects import CardId
from mindcue.exceptions import DecodeError, ServerError
from mindcue.infrastructure.api.decoder import ResponseDecoder
from tests.conftest import card_payload


def encode(document: object) -> bytes:
    return json.dumps(document).encode()


@pytest.fixture
def decoder() -> ResponseDecoder:
    return ResponseDecoder()


class TestEnvelope:
    """Envelope normalization shared by every operation."""

    def test_data_envelope_and_flat_shape_decode_alike(self, decoder: ResponseDecoder) -> None:
        fields = {
            "sessionId": "s1",
            "deckId": "d1",
            "totalCards": 10,
            "newCards": 7,
            "reviewCards": 3,
        }
        nested = decoder.decode_start_session(encode({"success": True, "data": fields}), "d1")
        flat = decoder.decode_start_session(encode(fields), "d1")
        assert nested == flat
        assert nested.session_id == "s1"
        assert nested.total_cards == 10

    def test_missing_success_flag_defaults_to_success(self, decoder: ResponseDecoder) -> None:
        result = decoder.decode_start_session(encode({"data": {"sessionId": "s1"}}), "d1")
        assert result.session_id == "s1"

    def test_explicit_failure_is_server_error(self, decoder: ResponseDecoder) -> None:
        body = encode({"success": False, "message": "Deck is empty"})
        with pytest.raises(ServerError) as exc_info:
            decoder.decode_start_session(body, "d1", status_code=200)
        assert exc_info.value.status_code == 200
        assert exc_info.value.message == "Deck is empty"

    def test_failure_status_string_is_server_error(self, decoder: ResponseDecoder) -> None:
        with pytest.raises(ServerError):
            decoder.decode_answer(encode({"status": "error", "error": "bad card"}))

    def test_success_status_string_is_accepted(self, decoder: ResponseDecoder) -> None:
        result = decoder.decode_answer(encode({"status": "success"}))
        assert result.counts is None

    def test_invalid_json_is_decode_error_with_raw_body(self, decoder: ResponseDecoder) -> None:
        with pytest.raises(DecodeError) as exc_info:
            decoder.decode_answer(b"<html>gateway timeout</html>")
        assert exc_info.value.raw_body == b"<html>gateway timeout</html>"

    def test_non_object_json_is_decode_error(self, decoder: ResponseDecoder) -> None:
        with pytest.raises(DecodeError):
            decoder.decode_answer(encode([1, 2, 3]))


class TestStartSession:
    """Decoding of the start-session payload."""

    def test_missing_session_id_fails_loudly(self, decoder: ResponseDecoder) -> None:
        body = encode({"success": True, "data": {"deckId": "d1", "totalCards": 5}})
        with pytest.raises(DecodeError) as exc_info:
            decoder.decode_start_session(body, "d1")
        assert "session" in exc_info.value.reason.lower()
        assert exc_info.value.raw_body == body

    def test_numeric_session_id_is_normalized(self, decoder: ResponseDecoder) -> None:
        result = decoder.decode_start_session(encode({"sessionId": 42}), "d1")
        assert result.session_id == "42"

    def test_missing_counts_default_to_zero(self, decoder: ResponseDecoder) -> None:
        result = decoder.decode_start_session(encode({"sessionId": "s1"}), "d1")
        assert (result.total_cards, result.new_cards, result.review_cards) == (0, 0, 0)

    def test_wrong_typed_counts_degrade_to_zero(self, decoder: ResponseDecoder) -> None:
        body = encode({"sessionId": "s1", "totalCards": 4, "newCards": "many", "reviewCards": None})
        result = decoder.decode_start_session(body, "d1")
        assert result.total_cards == 4
        assert result.new_cards == 0
        assert result.review_cards == 0

    def test_deck_id_falls_back_to_requested_deck(self, decoder: ResponseDecoder) -> None:
        result = decoder.decode_start_session(encode({"sessionId": "s1"}), "d9")
        assert result.deck_id == "d9"

    def test_message_from_data_wins_over_top_level(self, decoder: ResponseDecoder) -> None:
        body = encode({"message": "outer", "data": {"sessionId": "s1", "message": "inner"}})
        assert decoder.decode_start_session(body, "d1").message == "inner"


class TestNextCard:
    """Decoding of the next-card payload."""

    def test_card_fields_map_onto_card(self, decoder: ResponseDecoder) -> None:
        body = encode({"success": True, "data": {"cardIndex": "0", "card": card_payload()}})
        card = decoder.decode_next_card(body, "d1").card
        assert card is not None
        assert card.id == CardId("c1")
        assert card.front == "huis"
        assert card.back == "house"
        assert card.examples == ("Het huis is groot.", "The house is big.")
        assert card.part_of_speech == "noun"
        assert card.tags == frozenset({"a1", "nouns"})
        assert card.deck_id == "d1"
        assert card.difficulty == 3
        assert card.card_index == "0"

    def test_numeric_and_string_card_index_yield_same_card(
        self, decoder: ResponseDecoder
    ) -> None:
        as_string = decoder.decode_next_card(encode({"cardIndex": "7", "card": card_payload()}))
        as_number = decoder.decode_next_card(encode({"cardIndex": 7, "card": card_payload()}))
        assert as_string.card_index == as_number.card_index == "7"
        assert as_string.card == as_number.card
        assert as_string.card is not None and as_number.card is not None
        assert as_string.card.answer_reference == as_number.card.answer_reference == "7"

    def test_examples_need_both_languages(self, decoder: ResponseDecoder) -> None:
        payload = card_payload()
        del payload["fields"]["English"]
        card = decoder.decode_next_card(encode({"card": payload})).card
        assert card is not None
        assert card.examples == ()

    def test_absent_card_signals_exhaustion(self, decoder: ResponseDecoder) -> None:
        body = encode({"success": True, "data": {"sessionComplete": True}})
        result = decoder.decode_next_card(body)
        assert result.card is None
        assert result.exhausted

    def test_card_without_id_fails_loudly(self, decoder: ResponseDecoder) -> None:
        payload = card_payload()
        del payload["id"]
        with pytest.raises(DecodeError):
            decoder.decode_next_card(encode({"card": payload}))

    def test_progress_current_total_shape(self, decoder: ResponseDecoder) -> None:
        body = encode({"card": card_payload(), "progress": {"current": 3, "total": 10}})
        progress = decoder.decode_next_card(body).progress
        assert progress is not None
        assert progress.cards_reviewed == 3
        assert progress.total_cards == 10
        assert progress.remaining_cards == 7

    def test_progress_alias_priority(self, decoder: ResponseDecoder) -> None:
        body = encode(
            {
                "card": card_payload(),
                "progress": {"cardsReviewed": 2, "reviewed": 9, "total_cards": 5, "remaining": 1},
            }
        )
        progress = decoder.decode_next_card(body).progress
        assert progress is not None
        assert progress.cards_reviewed == 2
        assert progress.total_cards == 5
        assert progress.remaining_cards == 1

    def test_malformed_progress_is_dropped(self, decoder: ResponseDecoder) -> None:
        result = decoder.decode_next_card(encode({"card": card_payload(), "progress": "3/10"}))
        assert result.card is not None
        assert result.progress is None

    def test_top_level_card_shape(self, decoder: ResponseDecoder) -> None:
        body = encode(
            {
                "card": {
                    "id": 12,
                    "deckId": "d2",
                    "front": "boom",
                    "back": "tree",
                    "examples": ["a", "b", "c"],
                    "tags": "plants nature",
                    "difficulty": 5,
                }
            }
        )
        card = decoder.decode_next_card(body, "d1").card
        assert card is not None
        assert str(card.id) == "12"
        assert card.deck_id == "d2"
        assert card.examples == ("a", "b")
        assert card.tags == frozenset({"plants", "nature"})
        assert card.difficulty == 5
        assert card.answer_reference == "12"

    def test_default_difficulty_is_configurable(self) -> None:
        card = ResponseDecoder(default_difficulty=2).decode_next_card(
            encode({"card": card_payload()})
        ).card
        assert card is not None
        assert card.difficulty == 2


class TestAnswer:
    """Decoding of the submit-answer payload."""

    @pytest.mark.parametrize("key", ["stats", "sessionStats", "session_stats"])
    def test_nested_stats_keys(self, decoder: ResponseDecoder, key: str) -> None:
        body = encode({key: {"cardsReviewed": 1, "correctResponses": 1, "incorrectResponses": 0}})
        counts = decoder.decode_answer(body).counts
        assert counts is not None
        assert counts == AnswerCounts(cards_reviewed=1, correct_responses=1, incorrect_responses=0)

    def test_stats_as_data_block(self, decoder: ResponseDecoder) -> None:
        body = encode({"success": True, "data": {"reviewed": 4, "correct": 3, "incorrect": 1}})
        counts = decoder.decode_answer(body).counts
        assert counts is not None
        assert counts == AnswerCounts(cards_reviewed=4, correct_responses=3, incorrect_responses=1)

    def test_snake_case_aliases(self, decoder: ResponseDecoder) -> None:
        stats = {"cards_reviewed": 2, "correct_responses": 1, "incorrect_responses": 1}
        body = encode({"stats": stats})
        counts = decoder.decode_answer(body).counts
        assert counts is not None
        assert counts.cards_reviewed == 2

    def test_no_stats(self, decoder: ResponseDecoder) -> None:
        result = decoder.decode_answer(encode({"success": True, "message": "Recorded"}))
        assert result.counts is None
        assert result.message == "Recorded"


class TestSessionStats:
    """Decoding of the session-stats payload."""

    def test_accuracy_computed_when_absent(self, decoder: ResponseDecoder) -> None:
        body = encode({"stats": {"totalCards": 10, "cardsReviewed": 4, "correctResponses": 3}})
        stats = decoder.decode_session_stats(body)
        assert stats.accuracy == pytest.approx(0.75)
        assert stats.source == "server"

    def test_accuracy_zero_when_nothing_reviewed(self, decoder: ResponseDecoder) -> None:
        stats = decoder.decode_session_stats(encode({"stats": {"totalCards": 10}}))
        assert stats.accuracy == 0.0

    def test_server_accuracy_kept(self, decoder: ResponseDecoder) -> None:
        body = encode({"stats": {"cardsReviewed": 4, "correctResponses": 3, "accuracy": 0.5}})
        assert decoder.decode_session_stats(body).accuracy == 0.5

    def test_flat_data_block_with_duration_minutes(self, decoder: ResponseDecoder) -> None:
        body = encode(
            {
                "success": True,
                "data": {
                    "sessionId": "s1",
                    "isActive": False,
                    "durationMinutes": 2,
                    "totalCards": 10,
                    "cardsReviewed": 10,
                    "correctResponses": 8,
                    "incorrectResponses": 2,
                },
            }
        )
        stats = decoder.decode_session_stats(body)
        assert stats.cards_reviewed == 10
        assert stats.duration == 120
        assert stats.accuracy == pytest.approx(0.8)

    def test_alias_fields(self, decoder: ResponseDecoder) -> None:
        body = encode(
            {
                "sessionStats": {
                    "total": 6,
                    "reviewed": 6,
                    "correct": 5,
                    "incorrect": 1,
                    "avg_time": 4.5,
                    "session_duration": 300,
                }
            }
        )
        stats = decoder.decode_session_stats(body)
        assert stats.total_cards == 6
        assert stats.incorrect_responses == 1
        assert stats.average_response_time == 4.5
        assert stats.duration == 300

    def test_quality_breakdown_any_grade(self, decoder: ResponseDecoder) -> None:
        body = encode(
            {
                "stats": {
                    "cardsReviewed": 4,
                    "qualityStats": {
                        "quality0": 1,
                        "quality3": 2,
                        "quality5": 1,
                        "quality0Percent": 25.0,
                        "quality3Percent": 50.0,
                        "quality5Percent": 25.0,
                        "averageQuality": 2.75,
                    },
                }
            }
        )
        breakdown = decoder.decode_session_stats(body).quality_breakdown
        assert breakdown is not None
        assert breakdown.counts == {0: 1, 3: 2, 5: 1}
        assert breakdown.percentages[3] == 50.0
        assert breakdown.average == 2.75
        assert breakdown.total == 4

    def test_missing_stats_block_is_decode_error(self, decoder: ResponseDecoder) -> None:
        with pytest.raises(DecodeError) as exc_info:
            decoder.decode_session_stats(encode({"success": True, "data": {"sessionId": "s1"}}))
        assert "Stats not found" in exc_info.value.reason
