"""MindCue study REST API client with bearer authentication."""

from collections.abc import Callable
from types import TracebackType
from typing import Any, Self
from urllib.parse import quote

import httpx
import structlog

from mindcue.application.study.dto import AnswerResult, NextCardResult, SessionStart
from mindcue.application.study.protocols import CredentialProvider
from mindcue.domain.study.entities.card import DEFAULT_DIFFICULTY
from mindcue.domain.study.value_objects import SessionStats
from mindcue.exceptions import (
    AuthenticationExpiredError,
    InvalidRequestError,
    ServerError,
    TransportError,
)
from mindcue.infrastructure.api.decoder import ResponseDecoder

logger = structlog.get_logger(__name__)

MAX_ATTEMPTS = 2

UnauthorizedListener = Callable[[str], None]


def _segment(value: str, name: str) -> str:
    """Percent-encode one path segment, rejecting empty identifiers."""
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequestError(f"{name} cannot be empty")
    return quote(value.strip(), safe="")


class StudyApiClient:
    """HTTP client for the MindCue study session API.

    Every operation follows the same policy: attach the current bearer
    token, and on a 401 invalidate the credential and try exactly once
    more. Any other failure is raised straight away.
    """

    def __init__(
        self,
        base_url: str,
        credentials: CredentialProvider,
        *,
        timeout: float = 30.0,
        invalidate_before_retry: bool = True,
        default_difficulty: int = DEFAULT_DIFFICULTY,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.strip().rstrip("/")
        try:
            url = httpx.URL(self.base_url)
        except httpx.InvalidURL as e:
            raise InvalidRequestError(f"Invalid base URL {base_url!r}: {e}") from e
        if url.scheme not in ("http", "https") or not url.host:
            raise InvalidRequestError(f"Invalid base URL {base_url!r}")

        self.credentials = credentials
        self.invalidate_before_retry = invalidate_before_retry
        self.decoder = ResponseDecoder(default_difficulty=default_difficulty)
        self._unauthorized_listeners: list[UnauthorizedListener] = []
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    def on_unauthorized(self, listener: UnauthorizedListener) -> Callable[[], None]:
        """
        Call ``listener`` with the operation name when a request first gets a 401.

        Returns a callable that unregisters the listener.
        """
        self._unauthorized_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._unauthorized_listeners:
                self._unauthorized_listeners.remove(listener)

        return unsubscribe

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    def _auth_headers(self, operation: str) -> dict[str, str]:
        token = self.credentials.current_token()
        if not token:
            logger.warning("auth_token_missing", operation=operation)
            return {}
        logger.debug("auth_token_attached", operation=operation, token_prefix=token[:10])
        return {"Authorization": f"Bearer {token}"}

    def _invalidate_credential(self, operation: str) -> None:
        logger.warning("auth_credential_invalidated", operation=operation)
        self.credentials.invalidate()

    async def _send(
        self, operation: str, method: str, path: str, attempt: int, **kwargs: Any
    ) -> httpx.Response:
        headers = self._auth_headers(operation)
        try:
            response = await self._client.request(method, path, headers=headers, **kwargs)
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            raise InvalidRequestError(f"Invalid request for {operation}: {e}") from e
        except httpx.RequestError as e:
            # Includes redirect loops and corrupt content encodings
            logger.error(
                "request_transport_failed", operation=operation, attempt=attempt, error=str(e)
            )
            raise TransportError(f"Network error during {operation}: {e}", cause=e) from e
        logger.info(
            "response_received",
            operation=operation,
            attempt=attempt,
            status_code=response.status_code,
        )
        logger.debug("response_body", operation=operation, body=response.text[:2000])
        return response

    async def _request(
        self, operation: str, method: str, path: str, **kwargs: Any
    ) -> httpx.Response:
        """Make an authenticated API request with the two-attempt reauthentication policy."""
        for attempt in range(1, MAX_ATTEMPTS + 1):
            response = await self._send(operation, method, path, attempt, **kwargs)
            if response.status_code != 401:
                break

            logger.warning("request_unauthorized", operation=operation, attempt=attempt)
            if attempt < MAX_ATTEMPTS:
                for listener in list(self._unauthorized_listeners):
                    listener(operation)
                if self.invalidate_before_retry:
                    self._invalidate_credential(operation)
                continue

            if not self.invalidate_before_retry:
                self._invalidate_credential(operation)
            raise AuthenticationExpiredError

        if not response.is_success:
            logger.error("request_failed", operation=operation, status_code=response.status_code)
            raise ServerError(
                response.status_code,
                f"Failed to {operation}. Server returned {response.status_code}",
            )
        return response

    # --- Session endpoints ---

    async def start_session(self, deck_id: str) -> SessionStart:
        """Open a study session for a deck."""
        path = f"/decks/{_segment(deck_id, 'Deck id')}/start"
        logger.info("session_start_requested", deck_id=deck_id)
        response = await self._request("start session", "POST", path)
        start = self.decoder.decode_start_session(response.content, deck_id, response.status_code)
        logger.info(
            "session_start_decoded", session_id=start.session_id, total_cards=start.total_cards
        )
        return start

    async def next_card(
        self, session_id: str, force_update: bool = False, deck_id: str | None = None
    ) -> NextCardResult:
        """Fetch the next card; a result without a card means the session is exhausted."""
        path = f"/study/session/{_segment(session_id, 'Session id')}/next"
        params = {"forceUpdate": "true"} if force_update else None
        logger.info("next_card_requested", session_id=session_id, force_update=force_update)
        response = await self._request("fetch next card", "GET", path, params=params)
        return self.decoder.decode_next_card(response.content, deck_id, response.status_code)

    async def submit_answer(self, session_id: str, card_index: str, quality: int) -> AnswerResult:
        """Submit the quality grade for a card."""
        path = f"/study/session/{_segment(session_id, 'Session id')}/answer"
        if not card_index:
            raise InvalidRequestError("Card index cannot be empty")
        body = {"cardIndex": card_index, "quality": quality}
        logger.info(
            "answer_submitted", session_id=session_id, card_index=card_index, quality=quality
        )
        response = await self._request("submit answer", "POST", path, json=body)
        return self.decoder.decode_answer(response.content, response.status_code)

    async def session_stats(self, session_id: str) -> SessionStats:
        """Fetch the statistics of a session."""
        path = f"/study/session/{_segment(session_id, 'Session id')}/stats"
        logger.info("session_stats_requested", session_id=session_id)
        response = await self._request("fetch session stats", "GET", path)
        return self.decoder.decode_session_stats(response.content, response.status_code)
