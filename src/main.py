"""karaoke-scout FastAPI application entry point.

Wires together all providers, services, and routes via dependency injection.
Loads configuration from ``.env`` and ``config/config.yaml`` and configures
structured logging.

Also provides ``build_pipeline`` for the CLI, which needs the same wiring
without the web server.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI, WebSocket
from pydantic import ValidationError

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router as api_router
from src.api.websocket import websocket_progress
from src.config.loader import PipelineConfig, load_config
from src.config.settings import Settings
from src.interfaces.llm_provider import ILLMProvider
from src.pipeline.orchestrator import ScheduleParsingPipeline
from src.pipeline.progress_tracker import ProgressTracker
from src.providers.entity_store.sqlite_entity_store import SQLiteEntityStore
from src.providers.fetcher.httpx_fetcher import HttpxContentFetcher
from src.providers.llm.anthropic_provider import AnthropicLLMProvider
from src.providers.llm.ollama_provider import OllamaLLMProvider
from src.providers.llm.openai_provider import OpenAILLMProvider
from src.providers.staging.sqlite_staging_store import SQLiteStagingStore
from src.services.aggregator import Aggregator
from src.services.discovery_service import DiscoveryService
from src.services.extraction_service import ExtractionPool
from src.services.review_service import ReviewGateway
from src.utils.concurrency import CallThrottle
from src.utils.errors import ConfigurationError
from src.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=config.get("logging", {}).get("level", settings.log_level),
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# LLM provider selection
# ---------------------------------------------------------------------------


def _build_llm_provider(app_settings: Settings) -> ILLMProvider:
    """Select the first available LLM provider based on configured API keys.

    Priority order: Anthropic -> OpenAI -> Ollama (local fallback).
    """
    if app_settings.anthropic_api_key:
        return AnthropicLLMProvider(settings=app_settings)
    if app_settings.openai_api_key:
        return OpenAILLMProvider(settings=app_settings)
    return OllamaLLMProvider(settings=app_settings)


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def build_pipeline(
    app_settings: Settings | None = None,
    app_config: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Construct every provider and service with injected dependencies.

    Returns a flat dict of named components; the web app stores them on
    ``app.state``, the CLI uses them directly.  Stores still need
    ``initialize()`` and the fetcher ``close()``.
    """
    s = app_settings or settings
    try:
        pipeline_config = PipelineConfig.from_config(app_config or config)
    except ValidationError as exc:
        raise ConfigurationError(message=f"Invalid pipeline configuration: {exc}") from exc
    storage = (app_config or config).get("storage", {})

    llm = _build_llm_provider(s)
    fetcher = HttpxContentFetcher(
        timeout=pipeline_config.fetch_timeout_seconds,
        max_bytes=pipeline_config.fetch_max_bytes,
    )
    staging = SQLiteStagingStore(storage.get("staging_db_path", s.staging_db_path))
    entities = SQLiteEntityStore(storage.get("entities_db_path", s.entities_db_path))

    discovery = DiscoveryService(
        fetcher=fetcher,
        fetch_max_attempts=pipeline_config.fetch_max_attempts,
        retry_base_delay=pipeline_config.retry_base_delay_seconds,
        max_parallel_seeds=pipeline_config.max_parallel_seeds,
    )
    # One throttle per process: concurrent runs share the provider's limit.
    throttle = CallThrottle(
        pipeline_config.max_concurrent_calls, pipeline_config.call_stagger_seconds
    )
    extraction_pool = ExtractionPool(
        llm=llm,
        fetcher=fetcher,
        throttle=throttle,
        max_concurrent_calls=pipeline_config.max_concurrent_calls,
        call_stagger=pipeline_config.call_stagger_seconds,
        unit_timeout=pipeline_config.unit_timeout_seconds,
        max_attempts=pipeline_config.model_max_attempts,
        retry_base_delay=pipeline_config.retry_base_delay_seconds,
        retry_max_delay=pipeline_config.retry_max_delay_seconds,
        fetch_max_attempts=pipeline_config.fetch_max_attempts,
        html_max_chars=pipeline_config.html_max_chars,
    )
    aggregator = Aggregator(similarity_threshold=pipeline_config.name_similarity_threshold)
    progress_tracker = ProgressTracker()

    pipeline = ScheduleParsingPipeline(
        discovery=discovery,
        extraction_pool=extraction_pool,
        aggregator=aggregator,
        staging=staging,
        progress_tracker=progress_tracker,
        config=pipeline_config,
    )
    review_gateway = ReviewGateway(staging=staging, entities=entities)

    provider_registry = {
        "llm": llm.is_available(),
        "llm_provider": llm.get_provider_name(),
        "vision": llm.supports_vision(),
        "fetcher": fetcher.get_provider_name(),
    }

    return {
        "settings": s,
        "pipeline_config": pipeline_config,
        "llm": llm,
        "fetcher": fetcher,
        "staging_store": staging,
        "entity_store": entities,
        "pipeline": pipeline,
        "review_gateway": review_gateway,
        "progress_tracker": progress_tracker,
        "provider_registry": provider_registry,
        "primary_llm_name": llm.get_provider_name(),
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup, clean up on shutdown."""
    components = build_pipeline(settings)

    for key, value in components.items():
        setattr(application.state, key, value)

    await components["staging_store"].initialize()
    await components["entity_store"].initialize()

    _logger.info(
        "app_startup",
        version="0.1.0",
        environment=settings.app_env,
        primary_llm=components["primary_llm_name"],
        llm_available=components["provider_registry"]["llm"],
    )

    yield

    await components["fetcher"].close()
    _logger.info("app_shutdown", message="HTTP client closed")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="karaoke-scout API",
        version="0.1.0",
        description=(
            "Discover karaoke show schedules on venue websites and social media "
            "groups, extract them with an AI model, and stage the deduplicated "
            "results for human review."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    application.include_router(api_router)

    @application.websocket("/ws/progress/{schedule_id}")
    async def ws_progress(websocket: WebSocket, schedule_id: str) -> None:
        await websocket_progress(websocket, schedule_id)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
