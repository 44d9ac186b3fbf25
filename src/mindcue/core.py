import httpx
from dependency_injector import containers, providers

from mindcue.application.study.session_controller import StudySessionController
from mindcue.config import Settings, configure_logging, get_settings
from mindcue.domain.study.services.stats_aggregator import SessionStatsAggregator
from mindcue.infrastructure.api.client import StudyApiClient
from mindcue.infrastructure.auth.token_store import TokenStore


class Container(containers.DeclarativeContainer):
    """Dependency injection container."""

    settings = providers.Singleton(get_settings)

    # Initialized by the host application with container.init_resources()
    logging_config = providers.Resource(
        configure_logging, environment=settings.provided.ENVIRONMENT
    )

    # Swapped for httpx.MockTransport in tests; None means a real network transport
    transport = providers.Object(None)

    # Auth collaborator, shared by every client and controller
    token_store = providers.Singleton(TokenStore, token=settings.provided.AUTH_TOKEN)

    study_api_client = providers.Singleton(
        StudyApiClient,
        base_url=settings.provided.API_BASE_URL,
        credentials=token_store,
        timeout=settings.provided.REQUEST_TIMEOUT,
        invalidate_before_retry=settings.provided.INVALIDATE_BEFORE_RETRY,
        default_difficulty=settings.provided.DEFAULT_CARD_DIFFICULTY,
        transport=transport,
    )

    stats_aggregator = providers.Factory(SessionStatsAggregator)

    # Each caller owns its own controller instance
    session_controller = providers.Factory(
        StudySessionController,
        api=study_api_client,
        stats_aggregator=stats_aggregator,
        min_quality=settings.provided.MIN_QUALITY,
        max_quality=settings.provided.MAX_QUALITY,
        correct_threshold=settings.provided.CORRECT_QUALITY_THRESHOLD,
    )


def create_container(
    settings: Settings | None = None, transport: httpx.AsyncBaseTransport | None = None
) -> Container:
    """Build a container, optionally with explicit settings and HTTP transport."""
    new_container = Container()
    if settings is not None:
        new_container.settings.override(providers.Object(settings))
    if transport is not None:
        new_container.transport.override(providers.Object(transport))
    return new_container

