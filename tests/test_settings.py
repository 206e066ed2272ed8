"""Tests for foundation_buddy.settings."""

import pytest

from foundation_buddy.settings import (
    DEFAULT_GREETING,
    STREAM_FIRST_CHUNK_TIMEOUT_SECONDS,
    ChatSettings,
    GenerationMode,
    load_settings,
)

# ========================================================================
# load_settings
# ========================================================================


class TestLoadSettings:
    def test_defaults(self):
        settings = load_settings()
        assert settings.greeting == DEFAULT_GREETING
        assert settings.mode is GenerationMode.STREAMING
        assert settings.history_mode == "keep"
        assert settings.first_chunk_timeout == STREAM_FIRST_CHUNK_TIMEOUT_SECONDS
        assert settings.temperature is None
        assert settings.log_level == "WARNING"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("FOUNDATION_BUDDY_GREETING", "Hey!")
        monkeypatch.setenv("FOUNDATION_BUDDY_MODE", "respond")
        monkeypatch.setenv("FOUNDATION_BUDDY_HISTORY_MODE", "HYBRID")
        monkeypatch.setenv("FOUNDATION_BUDDY_RESPONSE_TIMEOUT", "30")
        monkeypatch.setenv("FOUNDATION_BUDDY_TEMPERATURE", "0.4")
        monkeypatch.setenv("FOUNDATION_BUDDY_MAX_RESPONSE_TOKENS", "256")
        monkeypatch.setenv("FOUNDATION_BUDDY_LOG_LEVEL", "debug")

        settings = load_settings()

        assert settings.greeting == "Hey!"
        assert settings.mode is GenerationMode.ONE_SHOT
        assert settings.history_mode == "hybrid"
        assert settings.response_timeout == 30.0
        assert settings.temperature == 0.4
        assert settings.max_response_tokens == 256
        assert settings.log_level == "DEBUG"

    def test_blank_values_fall_back_to_defaults(self, monkeypatch):
        monkeypatch.setenv("FOUNDATION_BUDDY_GREETING", "   ")
        assert load_settings().greeting == DEFAULT_GREETING

    @pytest.mark.parametrize(
        "name, value",
        [
            ("FIRST_CHUNK_TIMEOUT", "soon"),
            ("MAX_RESPONSE_TOKENS", "many"),
            ("MODE", "telepathy"),
        ],
    )
    def test_invalid_values_name_the_variable(self, monkeypatch, name, value):
        monkeypatch.setenv(f"FOUNDATION_BUDDY_{name}", value)
        with pytest.raises(ValueError, match=f"FOUNDATION_BUDDY_{name}"):
            load_settings()


# ========================================================================
# ChatSettings validation
# ========================================================================


class TestChatSettings:
    @pytest.mark.parametrize(
        "kwargs, message",
        [
            ({"greeting": "  "}, "greeting"),
            ({"history_mode": "forever"}, "history_mode"),
            ({"response_timeout": 0}, "response_timeout"),
            ({"temperature": 3.0}, "temperature"),
            ({"max_response_tokens": 0}, "max_response_tokens"),
        ],
    )
    def test_rejects_invalid_values(self, kwargs, message):
        with pytest.raises(ValueError, match=message):
            ChatSettings(**kwargs)

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("streaming", GenerationMode.STREAMING),
            ("Stream", GenerationMode.STREAMING),
            ("respond", GenerationMode.ONE_SHOT),
            ("one-shot", GenerationMode.ONE_SHOT),
            (GenerationMode.ONE_SHOT, GenerationMode.ONE_SHOT),
        ],
    )
    def test_mode_parsing(self, value, expected):
        assert GenerationMode.parse(value) is expected
