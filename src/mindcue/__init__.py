"""MindCue study session engine."""

from mindcue.application.study.session_controller import StudySessionController
from mindcue.application.study.session_state import SessionSnapshot, SessionState
from mindcue.infrastructure.api.client import StudyApiClient
from mindcue.infrastructure.auth.token_store import TokenStore

__version__ = "0.1.0"

__all__ = [
    "SessionSnapshot",
    "SessionState",
    "StudyApiClient",
    "StudySessionController",
    "TokenStore",
]
