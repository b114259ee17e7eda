"""Dependency injection for API routes."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from src.core.config import settings
from src.llm.client import LLMProviderRegistry, build_default_registry
from src.persistence.repositories import (
    MessageRepository,
    ProfileRepository,
    SessionRepository,
)
from src.services.session_locks import SessionLockRegistry
from src.services.session_service import SessionService


def get_session_repository() -> SessionRepository:
    """FastAPI dependency injection for SessionRepository.

    Each request gets a new repository with the database path from settings.
    """
    return SessionRepository(str(settings.database_path))


def get_profile_repository() -> ProfileRepository:
    return ProfileRepository(str(settings.database_path))


def get_message_repository() -> MessageRepository:
    return MessageRepository(str(settings.database_path))


@lru_cache(maxsize=1)
def get_shared_llm_registry() -> LLMProviderRegistry:
    """Cached provider registry.

    Created once per process and reused across requests.
    """
    return build_default_registry()


@lru_cache(maxsize=1)
def get_shared_session_locks() -> SessionLockRegistry:
    """Process-wide per-session locks.

    Must be shared: a fresh registry per request would not serialize
    concurrent turns for the same session.
    """
    return SessionLockRegistry()


def get_session_service(
    session_repo: Annotated[SessionRepository, Depends(get_session_repository)],
    profile_repo: Annotated[ProfileRepository, Depends(get_profile_repository)],
    message_repo: Annotated[MessageRepository, Depends(get_message_repository)],
    llm: Annotated[LLMProviderRegistry, Depends(get_shared_llm_registry)],
    locks: Annotated[SessionLockRegistry, Depends(get_shared_session_locks)],
) -> SessionService:
    """FastAPI dependency injection for SessionService."""
    return SessionService(
        session_repo=session_repo,
        profile_repo=profile_repo,
        message_repo=message_repo,
        llm=llm,
        locks=locks,
    )


# Type aliases for dependency injection
SessionServiceDep = Annotated[SessionService, Depends(get_session_service)]
