"""Tests for configuration module."""

import os
import pytest
from pydantic import ValidationError

from src.core.config import (
    ContextConfig,
    SessionFlowConfig,
    Settings,
    load_session_config,
)


def test_settings_defaults():
    """Settings have sensible defaults."""
    s = Settings(_env_file=None)

    assert s.llm_default_provider == "openai"
    assert s.llm_timeout == 30.0
    assert s.llm_max_retries == 0
    assert s.max_message_length == 4000


def test_settings_from_env():
    """Settings can be overridden via environment variables."""
    os.environ["LLM_DEFAULT_PROVIDER"] = "anthropic"
    os.environ["LLM_MAX_RETRIES"] = "2"

    try:
        s = Settings(_env_file=None)

        assert s.llm_default_provider == "anthropic"
        assert s.llm_max_retries == 2
    finally:
        del os.environ["LLM_DEFAULT_PROVIDER"]
        del os.environ["LLM_MAX_RETRIES"]


def test_settings_validation():
    """Settings validate constraints."""
    with pytest.raises(ValidationError):
        Settings(_env_file=None, llm_timeout=0)

    with pytest.raises(ValidationError):
        Settings(_env_file=None, llm_max_retries=10)


class TestSessionFlowConfig:
    """Tests for session_config.yaml loading."""

    def test_defaults(self):
        config = SessionFlowConfig()

        assert config.context.threshold == 10
        assert config.context.keep_head == 2
        assert config.context.keep_tail == 8
        assert config.context.max_middle == 5
        assert config.context.middle_stride == 2
        assert config.context.max_window == 15
        assert config.advancement.strategy == "fixed_turn_count"
        assert config.advancement.turns_per_phase == {"main_therapy": 6}
        assert config.llm.summary.temperature == 0.3

    def test_head_and_tail_must_fit_threshold(self):
        with pytest.raises(ValidationError):
            ContextConfig(threshold=5, keep_head=2, keep_tail=4)

    def test_unknown_strategy_rejected(self):
        with pytest.raises(ValidationError):
            SessionFlowConfig(advancement={"strategy": "coin_flip"})

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "session_config.yaml"
        path.write_text(
            "advancement:\n"
            "  strategy: model_signaled\n"
            "  advance_marker: '<<NEXT>>'\n"
            "fallback_reply: 'One moment please.'\n"
        )

        config = load_session_config(path)

        assert config.advancement.strategy == "model_signaled"
        assert config.advancement.advance_marker == "<<NEXT>>"
        assert config.fallback_reply == "One moment please."
        assert config.context.threshold == 10

    def test_missing_or_empty_file_gives_defaults(self, tmp_path):
        assert load_session_config(tmp_path / "missing.yaml") == SessionFlowConfig()

        empty = tmp_path / "empty.yaml"
        empty.write_text("")
        assert load_session_config(empty) == SessionFlowConfig()

    def test_project_config_loads(self):
        config = load_session_config()
        assert config.advancement.default_turns_per_phase >= 1


def test_global_settings_available():
    """Global settings instance is importable."""
    from src.core.config import session_config, settings

    assert settings is not None
    assert hasattr(settings, "database_path")
    assert isinstance(session_config, SessionFlowConfig)
