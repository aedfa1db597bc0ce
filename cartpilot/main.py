"""FastAPI application entry point for the Cartpilot shopping assistant."""

import logging
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cartpilot.api.conversations import create_conversations_router
from cartpilot.capabilities import HttpCapabilityBindings, demo_bindings
from cartpilot.capabilities.base import CapabilityBindings
from cartpilot.core.config import get_settings
from cartpilot.core.errors import TurnInProgressError, turn_in_progress_handler, unhandled_exception_handler
from cartpilot.core.logging import configure_logging, request_id_middleware
from cartpilot.core.metrics import MetricsCollector
from cartpilot.functions import FunctionRouter, default_functions, function_schemas
from cartpilot.memory.store import InMemoryTurnLogStore, SQLiteTurnLogStore, TurnLogStore
from cartpilot.model.chat_completions import OpenAIChatModel
from cartpilot.orchestrator.orchestrator import TurnOrchestrator
from cartpilot.orchestrator.revalidation import AddressRevalidator
from cartpilot.orchestrator.session import SessionRegistry

settings = get_settings()
logger = logging.getLogger("cartpilot.app")


def _build_store() -> TurnLogStore:
    if settings.turn_log_backend == "memory":
        return InMemoryTurnLogStore()
    return SQLiteTurnLogStore(settings.sqlite_path)


def _build_capabilities() -> CapabilityBindings:
    if settings.commerce_api_url:
        return HttpCapabilityBindings(
            str(settings.commerce_api_url),
            token=settings.commerce_api_token,
            timeout=settings.capability_timeout_seconds,
        )
    return demo_bindings()


turn_log_store = _build_store()
capabilities = _build_capabilities()
sessions = SessionRegistry(turn_log_store, capabilities)
metrics = MetricsCollector()
function_router = FunctionRouter(default_functions(), timeout=settings.capability_timeout_seconds)
model = OpenAIChatModel(
    api_key=settings.openai_api_key,
    functions=function_schemas(),
    base_url=settings.openai_base_url,
    model=settings.openai_model,
    temperature=settings.openai_temperature,
    max_tokens=settings.openai_max_tokens,
    timeout=settings.openai_timeout_seconds,
    stream=settings.stream_responses,
)
orchestrator = TurnOrchestrator(
    model,
    function_router,
    max_iterations=settings.max_function_iterations,
    metrics=metrics,
)
revalidator = AddressRevalidator(timeout=settings.address_validation_timeout_seconds)

app = FastAPI(title=settings.app_name, version="0.1.0", docs_url="/docs")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.middleware("http")(request_id_middleware)

app.include_router(
    create_conversations_router(
        orchestrator,
        sessions,
        revalidator,
        event_buffer_size=settings.event_buffer_size,
    )
)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, Any]:
    """Return basic service status for monitoring."""

    return {
        "status": "ok",
        "environment": settings.environment,
        "model_configured": settings.model_enabled,
        "commerce_backend": "http" if settings.commerce_api_url else "in-memory",
    }


@app.get("/functions", tags=["functions"])
async def list_functions() -> list[dict[str, Any]]:
    """Function catalogue exactly as exposed to the model."""

    return function_schemas()


@app.on_event("startup")
async def startup_logging() -> None:
    level = configure_logging(settings.log_level)
    logger.info("Logging configured at %s level for %s environment", logging.getLevelName(level), settings.environment)
    logger.info("Model: %s, turn log backend: %s", model.describe(), settings.turn_log_backend)
    if not settings.model_enabled:
        logger.warning("OPENAI_API_KEY is not set, chat requests will fail until it is configured")


@app.on_event("shutdown")
async def close_bindings() -> None:
    sessions.reset()
    if isinstance(capabilities, HttpCapabilityBindings):
        await capabilities.aclose()


app.add_exception_handler(TurnInProgressError, turn_in_progress_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


@app.get("/metrics", tags=["metrics"])
async def metrics_endpoint() -> dict:
    snapshot = metrics.snapshot()
    return {
        "total_turns": snapshot.total_turns,
        "function_calls": snapshot.function_calls,
        "function_failures": snapshot.function_failures,
        "stop_reasons": snapshot.stop_reasons,
    }
