from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum

DEFAULT_GREETING = "Hello! How can I help you today?"
DEFAULT_INSTRUCTIONS = (
    "You are Foundation Buddy, a friendly assistant running entirely on-device "
    "with Apple Foundation Models. Be concise, practical, and explicit about uncertainty."
)
DEFAULT_HISTORY_MODE = "keep"
VALID_HISTORY_MODES = ("keep", "clear", "hybrid")
STREAM_FIRST_CHUNK_TIMEOUT_SECONDS = 25.0
STREAM_CHUNK_IDLE_TIMEOUT_SECONDS = 12.0
RESPONSE_TIMEOUT_SECONDS = 120.0
DEFAULT_LOG_LEVEL = "WARNING"

ENV_PREFIX = "FOUNDATION_BUDDY_"


class GenerationMode(str, Enum):
    """How replies are delivered: growing snapshots or one final result."""

    STREAMING = "streaming"
    ONE_SHOT = "respond"

    @classmethod
    def parse(cls, value: str | GenerationMode) -> GenerationMode:
        if isinstance(value, cls):
            return value
        needle = str(value).strip().lower().replace("-", "_")
        aliases = {
            "streaming": cls.STREAMING,
            "stream": cls.STREAMING,
            "respond": cls.ONE_SHOT,
            "one_shot": cls.ONE_SHOT,
            "oneshot": cls.ONE_SHOT,
        }
        if needle not in aliases:
            raise ValueError(f"Unknown generation mode '{value}'; expected 'streaming' or 'respond'.")
        return aliases[needle]


@dataclass(frozen=True)
class ChatSettings:
    """Runtime configuration for the chat controller and the Apple backend."""

    greeting: str = DEFAULT_GREETING
    instructions: str = DEFAULT_INSTRUCTIONS
    mode: GenerationMode = GenerationMode.STREAMING
    history_mode: str = DEFAULT_HISTORY_MODE
    first_chunk_timeout: float = STREAM_FIRST_CHUNK_TIMEOUT_SECONDS
    chunk_idle_timeout: float = STREAM_CHUNK_IDLE_TIMEOUT_SECONDS
    response_timeout: float = RESPONSE_TIMEOUT_SECONDS
    temperature: float | None = None
    max_response_tokens: int | None = None
    log_level: str = DEFAULT_LOG_LEVEL

    def __post_init__(self) -> None:
        if not self.greeting.strip():
            raise ValueError("greeting must not be empty")
        if self.history_mode not in VALID_HISTORY_MODES:
            raise ValueError(
                f"history_mode must be one of {', '.join(VALID_HISTORY_MODES)}; "
                f"got '{self.history_mode}'"
            )
        for name in ("first_chunk_timeout", "chunk_idle_timeout", "response_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")
        if self.temperature is not None and not 0.0 <= self.temperature <= 2.0:
            raise ValueError("temperature must be between 0.0 and 2.0")
        if self.max_response_tokens is not None and self.max_response_tokens <= 0:
            raise ValueError("max_response_tokens must be > 0")


def _env(name: str) -> str | None:
    value = os.getenv(ENV_PREFIX + name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _env_float(name: str, default: float | None) -> float | None:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number; got '{raw}'") from None


def _env_int(name: str, default: int | None) -> int | None:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer; got '{raw}'") from None


def load_settings() -> ChatSettings:
    """Build ``ChatSettings`` from ``FOUNDATION_BUDDY_*`` environment variables and defaults.

    Invalid values raise ``ValueError`` naming the offending variable.
    """
    raw_mode = _env("MODE")
    try:
        mode = GenerationMode.parse(raw_mode) if raw_mode else GenerationMode.STREAMING
    except ValueError as exc:
        raise ValueError(f"{ENV_PREFIX}MODE: {exc}") from None

    return ChatSettings(
        greeting=_env("GREETING") or DEFAULT_GREETING,
        instructions=_env("INSTRUCTIONS") or DEFAULT_INSTRUCTIONS,
        mode=mode,
        history_mode=(_env("HISTORY_MODE") or DEFAULT_HISTORY_MODE).lower(),
        first_chunk_timeout=_env_float("FIRST_CHUNK_TIMEOUT", STREAM_FIRST_CHUNK_TIMEOUT_SECONDS),
        chunk_idle_timeout=_env_float("CHUNK_IDLE_TIMEOUT", STREAM_CHUNK_IDLE_TIMEOUT_SECONDS),
        response_timeout=_env_float("RESPONSE_TIMEOUT", RESPONSE_TIMEOUT_SECONDS),
        temperature=_env_float("TEMPERATURE", None),
        max_response_tokens=_env_int("MAX_RESPONSE_TOKENS", None),
        log_level=(_env("LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
    )
