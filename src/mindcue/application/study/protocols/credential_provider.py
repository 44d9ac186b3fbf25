from typing import Protocol


class CredentialProvider(Protocol):
    """Owner of the bearer credential. The engine only reads it or asks for it to be dropped."""

    def current_token(self) -> str | None: ...

    def invalidate(self) -> None: ...
