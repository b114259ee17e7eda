"""
Structured logging configuration using structlog.

Provides consistent, structured logging across the application with:
- JSON output in production
- Pretty console output in development
- Context binding for request and session tracing
- File output to logs/ directory (one file per process run)
"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import List

import structlog
from structlog.typing import Processor

from src.core.config import settings


def _cull_old_logs(logs_dir: Path, keep: int) -> None:
    """Delete old log files, keeping only the N most recent.

    Args:
        logs_dir: Directory containing log files
        keep: Number of recent log files to retain
    """
    log_files = sorted(
        logs_dir.glob("therapy_*.log"),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )

    for old_file in log_files[keep:]:
        try:
            os.remove(old_file)
        except OSError:
            pass  # Another process may hold or have removed it


def configure_logging(log_sessions_to_keep: int = 5) -> None:
    """Configure structlog for the application.

    Call this once at application startup, before any logging.

    Creates a new timestamped log file per run and culls old logs,
    keeping only the most recent N runs.

    Args:
        log_sessions_to_keep: Number of recent run logs to retain (default: 5)

    Outputs:
        - Console (colored in dev, JSON in production)
        - File: logs/therapy_YYYYMMDD_HHMMSS.log
    """
    logs_dir = Path("logs")
    logs_dir.mkdir(exist_ok=True)

    # keep-1 to make room for the new file
    _cull_old_logs(logs_dir, keep=log_sessions_to_keep - 1)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = logs_dir / f"therapy_{timestamp}.log"

    shared_processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
    ]

    if settings.debug:
        processors = shared_processors + [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        processors = shared_processors + [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]

    # Clear existing handlers so reconfiguration (tests, reloads) does not duplicate output
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    root_logger.setLevel(logging.INFO)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(console_handler)

    file_handler = logging.FileHandler(log_file, mode="w")
    file_handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(file_handler)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        Bound structlog logger

    Usage:
        from src.core.logging import get_logger

        log = get_logger(__name__)
        log.info("something_happened", key="value")
    """
    return structlog.get_logger(name)


def bind_context(**kwargs) -> None:
    """
    Bind context variables that will be included in all subsequent logs.

    Useful for request-scoped context like session_id:

        bind_context(session_id=session.id, request_id=request_id)
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from the logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context variables from the logging context.

    Call this after request completion to prevent context leakage
    between requests.
    """
    structlog.contextvars.clear_contextvars()
