"""
Global exception handlers for FastAPI.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

import structlog

from src.core.exceptions import (
    ConfigurationError,
    InvalidTransitionError,
    NotFoundError,
    ProviderError,
    SessionCompletedError,
    TherapySystemError,
    ValidationError,
)

log = structlog.get_logger(__name__)


def _error_response(status_code: int, error_type: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"type": error_type, "message": message}},
    )


def setup_exception_handlers(app: FastAPI):
    """Register custom exception handlers with the FastAPI application.

    Maps TherapySystemError subclasses to HTTP status codes, hides internal
    and configuration errors behind generic 500 responses, and catches
    everything else.
    """

    @app.exception_handler(TherapySystemError)
    async def therapy_system_error_handler(
        request: Request,
        exc: TherapySystemError,
    ) -> JSONResponse:
        """Handle TherapySystemError exceptions with appropriate HTTP status codes.

        404 for not found, 409 for a completed session, 400 for other
        validation errors, 502 for provider errors that escaped the
        orchestrator's fallback handling.
        """
        log_ctx = log.bind(
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        )

        if isinstance(exc, InvalidTransitionError):
            # Orchestrator only requests legal transitions
            log_ctx.error(
                "internal_invariant_violated",
                from_phase=exc.from_phase,
                to_phase=exc.to_phase,
            )
            return _error_response(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "InternalServerError",
                "An unexpected error occurred",
            )

        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        message = exc.message

        if isinstance(exc, NotFoundError):
            status_code = status.HTTP_404_NOT_FOUND
        elif isinstance(exc, SessionCompletedError):
            status_code = status.HTTP_409_CONFLICT
        elif isinstance(exc, ValidationError):
            status_code = status.HTTP_400_BAD_REQUEST
        elif isinstance(exc, ProviderError):
            status_code = status.HTTP_502_BAD_GATEWAY
            message = "The language model provider is unavailable"

        log_ctx.warning(
            "request_error",
            message=exc.message,
            status_code=status_code,
        )

        return _error_response(status_code, type(exc).__name__, message)

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(
        request: Request,
        exc: ConfigurationError,
    ) -> JSONResponse:
        """Handle configuration errors with HTTP 500 status."""
        log.error(
            "configuration_error",
            path=request.url.path,
            message=exc.message,
        )

        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "ConfigurationError",
            "Server configuration error",
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Handle all unhandled exceptions with HTTP 500 status."""
        log_ctx = log.bind(
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        )

        log_ctx.error(
            "unhandled_exception",
            message=str(exc),
            exc_info=exc,
        )

        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "InternalServerError",
            "An unexpected error occurred",
        )
