"""Tests for exception hierarchy."""

import pytest


def test_exception_hierarchy():
    """All exceptions inherit from TherapySystemError."""
    from src.core.exceptions import (
        ConfigurationError,
        InvalidTransitionError,
        LLMRateLimitError,
        LLMTimeoutError,
        NotFoundError,
        ProfileNotFoundError,
        ProviderError,
        SessionCompletedError,
        SessionNotFoundError,
        TherapySystemError,
        UnknownProviderError,
        ValidationError,
    )

    assert issubclass(ConfigurationError, TherapySystemError)
    assert issubclass(ProfileNotFoundError, NotFoundError)
    assert issubclass(SessionNotFoundError, NotFoundError)
    assert issubclass(NotFoundError, TherapySystemError)
    assert issubclass(SessionCompletedError, ValidationError)
    assert issubclass(InvalidTransitionError, TherapySystemError)
    assert issubclass(LLMTimeoutError, ProviderError)
    assert issubclass(LLMRateLimitError, ProviderError)
    assert issubclass(UnknownProviderError, ProviderError)


def test_exceptions_can_be_raised():
    """Exceptions can be raised and caught."""
    from src.core.exceptions import SessionNotFoundError

    with pytest.raises(SessionNotFoundError) as exc_info:
        raise SessionNotFoundError("Session test-123 not found")

    assert exc_info.value.message == "Session test-123 not found"


def test_invalid_transition_carries_phases():
    from src.core.exceptions import InvalidTransitionError

    error = InvalidTransitionError("feedback", "mood_check")

    assert error.from_phase == "feedback"
    assert error.to_phase == "mood_check"
    assert "feedback" in error.message


def test_provider_error_carries_provider():
    from src.core.exceptions import LLMTimeoutError

    error = LLMTimeoutError("timed out", provider="anthropic")
    assert error.provider == "anthropic"
