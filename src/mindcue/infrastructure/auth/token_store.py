"""In-process holder of the bearer credential."""

from collections.abc import Callable

import structlog

logger = structlog.get_logger(__name__)


class TokenStore:
    """
    Bearer token shared with the study engine.

    The sign-in flow sets the token; the engine reads it per request and
    calls ``invalidate`` when the server no longer accepts it. Listeners
    registered with ``on_invalidated`` are told so the user can be sent
    back to sign-in.
    """

    def __init__(self, token: str | None = None) -> None:
        self._token = token
        self._listeners: list[Callable[[], None]] = []

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None

    def current_token(self) -> str | None:
        return self._token

    def set_token(self, token: str) -> None:
        """Store a freshly issued token."""
        if not token or not token.strip():
            raise ValueError("Token cannot be empty")
        self._token = token.strip()
        logger.info("auth_token_stored")

    def invalidate(self) -> None:
        """Drop the token and notify listeners."""
        logger.warning("auth_token_invalidated", had_token=self._token is not None)
        self._token = None
        for listener in list(self._listeners):
            listener()

    def on_invalidated(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Register a listener; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
