"""
Custom exception hierarchy for the therapy session system.

All application exceptions inherit from TherapySystemError.
"""

from typing import Optional


class TherapySystemError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(TherapySystemError):
    """Invalid or missing configuration."""

    pass


# =============================================================================
# Lookup Errors
# =============================================================================


class NotFoundError(TherapySystemError):
    """A referenced record does not exist."""

    pass


class ProfileNotFoundError(NotFoundError):
    """Profile does not exist."""

    pass


class SessionNotFoundError(NotFoundError):
    """Session does not exist."""

    pass


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(TherapySystemError):
    """Input validation failed."""

    pass


class SessionCompletedError(ValidationError):
    """Attempted operation on completed session."""

    pass


# =============================================================================
# Flow Errors
# =============================================================================


class InvalidTransitionError(TherapySystemError):
    """Requested phase change is not in the transition table.

    The orchestrator only requests legal transitions, so this surfacing at
    runtime indicates a broken internal invariant.
    """

    def __init__(self, from_phase: str, to_phase: str):
        self.from_phase = from_phase
        self.to_phase = to_phase
        super().__init__(f"Invalid transition from {from_phase} to {to_phase}")


# =============================================================================
# LLM Errors
# =============================================================================


class ProviderError(TherapySystemError):
    """Language-model call failed (transport, provider or response error)."""

    def __init__(self, message: str, provider: Optional[str] = None):
        self.provider = provider
        super().__init__(message)


class LLMTimeoutError(ProviderError):
    """LLM call timed out."""

    pass


class LLMRateLimitError(ProviderError):
    """LLM rate limit exceeded."""

    pass


class UnknownProviderError(ProviderError):
    """No provider registered under the requested id."""

    pass
