"""
Backend protocol for text generation, plus factories for the Apple SDK objects.

Any object implementing ``TextBackend`` can drive a ``ChatController``; the
production implementation is ``foundation_buddy.backends.AppleFMBackend``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from .exceptions import require_apple_fm

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from .availability import Availability
    from .cancellation import CancellationToken


@dataclass(frozen=True)
class GenerationOptions:
    """Sampling knobs forwarded to the model. ``None`` keeps the model default."""

    temperature: float | None = None
    maximum_response_tokens: int | None = None

    def is_default(self) -> bool:
        return self.temperature is None and self.maximum_response_tokens is None


@runtime_checkable
class TextBackend(Protocol):
    """Narrow request/response and request/stream contract with a language model."""

    def is_available(self) -> bool: ...

    def unavailability_reason(self) -> Availability: ...

    async def respond(
        self,
        prompt: str,
        options: GenerationOptions | None = None,
        *,
        cancellation: CancellationToken | None = None,
    ) -> str: ...

    def stream_response(
        self,
        prompt: str,
        options: GenerationOptions | None = None,
        *,
        cancellation: CancellationToken | None = None,
    ) -> AsyncIterator[str]: ...

    def reset(self) -> None: ...


def create_model() -> Any:
    """Instantiate the system language model."""
    fm = require_apple_fm()
    return fm.SystemLanguageModel()


def create_session(instructions: str | None = None, model: Any = None) -> Any:
    """Create a ``LanguageModelSession`` bound to ``model`` (or a fresh system model)."""
    fm = require_apple_fm()
    if model is None:
        model = fm.SystemLanguageModel()
    if instructions:
        return fm.LanguageModelSession(model=model, instructions=instructions)
    return fm.LanguageModelSession(model=model)


def create_sdk_options(options: GenerationOptions | None) -> Any:
    """Translate ``GenerationOptions`` into the SDK's options object, or None for defaults."""
    if options is None or options.is_default():
        return None
    fm = require_apple_fm()
    kwargs: dict[str, Any] = {}
    if options.temperature is not None:
        kwargs["temperature"] = options.temperature
    if options.maximum_response_tokens is not None:
        kwargs["maximum_response_tokens"] = options.maximum_response_tokens
    return fm.GenerationOptions(**kwargs)
