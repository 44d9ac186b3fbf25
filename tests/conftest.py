"""Pytest configuration and fixtures."""

import json
from collections import defaultdict
from collections.abc import AsyncGenerator
from typing import Any

import httpx
import pytest
import pytest_asyncio

from mindcue.infrastructure.api.client import StudyApiClient
from mindcue.infrastructure.auth.token_store import TokenStore

BASE_URL = "https://study.test/api/user"
API_PREFIX = "/api/user"
TEST_TOKEN = "test-token-0123456789"


class RecordingTokenStore(TokenStore):
    """TokenStore that counts invalidation signals."""

    def __init__(self, token: str | None = TEST_TOKEN) -> None:
        super().__init__(token)
        self.invalidations = 0

    def invalidate(self) -> None:
        self.invalidations += 1
        super().invalidate()


class FakeStudyServer:
    """Scripted study API: queued responses per route, every request recorded."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[httpx.Response | Exception]] = defaultdict(list)
        self.requests: list[httpx.Request] = []

    def enqueue(
        self,
        method: str,
        path: str,
        status_code: int = 200,
        json_body: Any = None,
        *,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
        error: Exception | None = None,
    ) -> None:
        """
        Queue one response (or transport error) for ``method`` ``path``.

        ``content`` is sent as-is, undecoded until the client reads it.
        """
        key = (method, f"{API_PREFIX}{path}")
        if error is not None:
            self.routes[key].append(error)
        elif content is not None:
            self.routes[key].append(
                httpx.Response(status_code, headers=headers, stream=httpx.ByteStream(content))
            )
        else:
            self.routes[key].append(httpx.Response(status_code, json=json_body))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(500, json={"success": False, "message": "unscripted request"})
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == f"{API_PREFIX}{path}"]

    @staticmethod
    def body(request: httpx.Request) -> Any:
        return json.loads(request.content)


def card_payload(card_id: str = "c1", word: str = "huis", definition: str = "house") -> dict:
    """A next-card ``card`` object in the server's note-field shape."""
    return {
        "id": card_id,
        "fields": {
            "Word": word,
            "Definition": definition,
            "Dutch": f"Het {word} is groot.",
            "English": f"The {definition} is big.",
            "Part-of-Speech": "noun",
        },
        "tags": ["a1", "nouns"],
    }


@pytest.fixture
def token_store() -> RecordingTokenStore:
    """Token store holding a valid-looking token."""
    return RecordingTokenStore()


@pytest.fixture
def server() -> FakeStudyServer:
    """Scripted study API."""
    return FakeStudyServer()


@pytest_asyncio.fixture
async def api_client(
    server: FakeStudyServer, token_store: RecordingTokenStore
) -> AsyncGenerator[StudyApiClient, None]:
    """Study API client wired to the fake server."""
    client = StudyApiClient(BASE_URL, token_store, transport=server.transport)
    try:
        yield client
    finally:
        await client.close()
