"""
Application settings management.

Settings are loaded from environment variables with .env file support.
Session flow parameters (context compression, phase advancement, LLM
sampling) are loaded from config/session_config.yaml.
All configuration is validated using Pydantic.
"""

from pathlib import Path
from typing import Dict, Literal, Optional

import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # ==========================================================================
    # Paths
    # ==========================================================================

    config_dir: Path = Field(
        default=Path("config"),
        description="Directory containing YAML configuration files",
    )

    # ==========================================================================
    # Database
    # ==========================================================================

    database_path: Path = Field(
        default=Path("data/therapy.db"), description="Path to SQLite database file"
    )

    # ==========================================================================
    # LLM Configuration
    # ==========================================================================

    llm_default_provider: str = Field(
        default="openai",
        description="Provider used when a profile has no registered preference",
    )

    # API Keys (required for providers you use)
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    anthropic_api_key: Optional[str] = Field(
        default=None, description="Anthropic API key"
    )
    deepseek_api_key: Optional[str] = Field(
        default=None, description="DeepSeek API key"
    )

    llm_timeout: float = Field(
        default=30.0, gt=0, le=300, description="Per-request LLM timeout in seconds"
    )
    llm_max_retries: int = Field(
        default=0,
        ge=0,
        le=5,
        description="Retries after a timeout or rate limit (0 = degrade immediately)",
    )
    llm_retry_base_delay: float = Field(
        default=1.0, ge=0, description="Base delay for exponential retry backoff"
    )

    # ==========================================================================
    # Session Defaults
    # ==========================================================================

    max_message_length: int = Field(
        default=4000, ge=1, description="Maximum accepted user message length"
    )

    # ==========================================================================
    # Server Configuration
    # ==========================================================================

    host: str = Field(default="127.0.0.1", description="Server host address")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")


# ============================================================================
# Session Flow Configuration (from YAML)
# ============================================================================


class ContextConfig(BaseModel):
    """History compression parameters for the context window.

    Transcripts at or below ``threshold`` messages are sent verbatim.
    Longer ones keep ``keep_head`` opening messages, ``keep_tail`` recent
    messages, and at most ``max_middle`` messages sampled from the rest
    with a fixed ``middle_stride``.
    """

    threshold: int = Field(default=10, ge=0)
    keep_head: int = Field(default=2, ge=0)
    keep_tail: int = Field(default=8, ge=0)
    max_middle: int = Field(default=5, ge=0)
    middle_stride: int = Field(default=2, ge=1)

    @model_validator(mode="after")
    def check_threshold_covers_retained(self) -> "ContextConfig":
        """The retained head and tail must fit under the threshold."""
        if self.keep_head + self.keep_tail > self.threshold:
            raise ValueError(
                "keep_head + keep_tail must not exceed the compression threshold"
            )
        return self

    @property
    def max_window(self) -> int:
        """Upper bound on the compressed window length."""
        return max(self.threshold, self.keep_head + self.max_middle + self.keep_tail)


class AdvancementConfig(BaseModel):
    """Phase advancement policy configuration."""

    strategy: Literal["fixed_turn_count", "model_signaled", "external_classifier"] = (
        "fixed_turn_count"
    )
    default_turns_per_phase: int = Field(
        default=1, ge=1, description="User turns before leaving a phase"
    )
    turns_per_phase: Dict[str, int] = Field(
        default_factory=lambda: {"main_therapy": 6},
        description="Per-phase overrides keyed by phase value",
    )
    advance_marker: str = Field(
        default="[[ADVANCE_PHASE]]",
        description="Token the model appends when the phase goal is met",
    )
    advance_acknowledgement: str = Field(
        default="Thank you. Let's move on to the next part of our session.",
        min_length=1,
        description="Reply shown when the model sends only the advance marker",
    )


class SamplingConfig(BaseModel):
    """Sampling parameters for one kind of model call."""

    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1000, ge=1, le=8192)


class LLMCallsConfig(BaseModel):
    """Sampling for regular turns and the closing summary turn."""

    turn: SamplingConfig = Field(default_factory=SamplingConfig)
    summary: SamplingConfig = Field(
        default_factory=lambda: SamplingConfig(temperature=0.3, max_tokens=1200)
    )


class SessionFlowConfig(BaseModel):
    """
    Complete session flow configuration loaded from session_config.yaml.
    """

    context: ContextConfig = Field(default_factory=ContextConfig)
    advancement: AdvancementConfig = Field(default_factory=AdvancementConfig)
    llm: LLMCallsConfig = Field(default_factory=LLMCallsConfig)
    fallback_reply: str = Field(
        default=(
            "I'm sorry, I could not generate a response just now. "
            "Please try again."
        ),
        min_length=1,
    )


def load_session_config(config_path: Optional[Path] = None) -> SessionFlowConfig:
    """
    Load session flow configuration from YAML file.

    Args:
        config_path: Path to session_config.yaml. If None, looks in the
            project config/ directory, then in the working directory.

    Returns:
        SessionFlowConfig with validated settings (defaults if no file)

    Raises:
        pydantic.ValidationError: If config validation fails
    """
    if config_path is None:
        project_root = Path(__file__).resolve().parent.parent.parent
        candidates = [
            project_root / "config" / "session_config.yaml",
            Path.cwd() / "config" / "session_config.yaml",
        ]
        config_path = next((p for p in candidates if p.exists()), None)
        if config_path is None:
            return SessionFlowConfig()

    config_path = Path(config_path).resolve()

    if not config_path.exists():
        return SessionFlowConfig()

    with open(str(config_path)) as f:
        config_data = yaml.safe_load(f)

    if not config_data:
        return SessionFlowConfig()

    return SessionFlowConfig(**config_data)


# Global settings instance
settings = Settings()

# Global session flow config instance
session_config = load_session_config()
