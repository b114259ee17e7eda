"""
FastAPI application entry point.

Run with: uvicorn src.main:app --reload
"""

from contextlib import asynccontextmanager
import uuid

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from src.core.config import session_config, settings
from src.core.logging import configure_logging, get_logger, bind_context, clear_context
from src.persistence.database import init_database
from src.api.routes import health, sessions
from src.api.exception_handlers import setup_exception_handlers

# Configure logging before anything else
configure_logging()
log = get_logger(__name__)


# =============================================================================
# Correlation ID Middleware
# =============================================================================


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds a unique correlation ID to each request.

    - Generates a UUID4 request_id for each incoming request
    - Binds it to structlog context for all logs in that request
    - Adds X-Request-ID header to responses
    """

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())

        bind_context(request_id=request_id)

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_context()


# =============================================================================
# Startup checks
# =============================================================================

API_KEY_SETTINGS = {
    "openai": ("openai_api_key", "OPENAI_API_KEY"),
    "anthropic": ("anthropic_api_key", "ANTHROPIC_API_KEY"),
    "deepseek": ("deepseek_api_key", "DEEPSEEK_API_KEY"),
}


def check_api_keys() -> list[str]:
    """
    Report providers whose API key is missing.

    Missing keys do not stop startup: calls to such a provider fail with
    ProviderError, which sessions degrade to the fallback reply. A missing
    key for the default provider is logged as an error.

    Returns:
        List of warning messages (empty if all keys are configured)
    """
    warnings = []
    for provider, (attr_name, env_var) in API_KEY_SETTINGS.items():
        if not getattr(settings, attr_name, None):
            warnings.append(f"{env_var} not set; provider '{provider}' unavailable")

    default = settings.llm_default_provider
    if default in API_KEY_SETTINGS:
        attr_name, env_var = API_KEY_SETTINGS[default]
        if not getattr(settings, attr_name, None):
            log.error("default_provider_key_missing", provider=default, env_var=env_var)
    else:
        log.error("default_provider_unknown", provider=default)

    for warning in warnings:
        log.warning("llm_api_key_missing", detail=warning)

    return warnings


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    log.info(
        "application_starting",
        debug=settings.debug,
        database_path=str(settings.database_path),
        advancement_strategy=session_config.advancement.strategy,
    )

    check_api_keys()

    await init_database()

    log.info("application_started")

    yield

    log.info("application_shutting_down")


app = FastAPI(
    title="Therapy Session Orchestrator",
    description="Phase-driven therapy conversations with language-model providers",
    version="0.1.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS middleware for development
if settings.debug:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_middleware(CorrelationIDMiddleware)

setup_exception_handlers(app)

app.include_router(health.router, tags=["system"])
app.include_router(sessions.router)


@app.get("/")
async def root():
    """Root endpoint with basic info."""
    return {"name": "Therapy Session Orchestrator", "version": "0.1.0", "status": "running"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
