"""
Apple Foundation Models backend.

Wraps ``apple_fm_sdk.SystemLanguageModel`` / ``LanguageModelSession`` behind the
``TextBackend`` protocol. The SDK is imported lazily so the rest of the package
(and its tests) work on machines without it.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import TYPE_CHECKING, Any, Callable

from .availability import Availability, availability_from_reason
from .exceptions import GenerationFailedError
from .protocols import create_model, create_sdk_options, create_session
from .settings import (
    DEFAULT_HISTORY_MODE,
    DEFAULT_INSTRUCTIONS,
    RESPONSE_TIMEOUT_SECONDS,
    STREAM_CHUNK_IDLE_TIMEOUT_SECONDS,
    STREAM_FIRST_CHUNK_TIMEOUT_SECONDS,
    VALID_HISTORY_MODES,
    ChatSettings,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from .cancellation import CancellationToken
    from .protocols import GenerationOptions

logger = logging.getLogger("foundation_buddy")


def is_context_overflow(exc: BaseException) -> bool:
    """Whether ``exc`` is the SDK's context-window-exceeded error."""
    error_str = f"{type(exc).__name__}: {exc}"
    return (
        "Context window size exceeded" in error_str
        or "ExceededContextWindowSizeError" in error_str
    )


class AppleFMBackend:
    """On-device text generation through Apple Foundation Models.

    Args:
        instructions: System instructions for every session.
        model: A ``SystemLanguageModel``; created on demand when omitted.
        session_factory: Zero-argument callable returning a new session.
            Defaults to ``LanguageModelSession(model=model, instructions=instructions)``.
        history_mode:
            - 'keep': (Default) One session for the whole conversation. A reply
              that is stopped or times out drops the session it ran on.
            - 'clear': A fresh session per turn. No memory between turns.
            - 'hybrid': Like 'keep', but when the context window overflows the
              session is recreated and the turn retried once.
        first_chunk_timeout: Seconds to wait for the first streamed snapshot.
        chunk_idle_timeout: Seconds to wait between streamed snapshots.
        response_timeout: Seconds to wait for a one-shot response.
    """

    def __init__(
        self,
        instructions: str = DEFAULT_INSTRUCTIONS,
        *,
        model: Any = None,
        session_factory: Callable[[], Any] | None = None,
        history_mode: str = DEFAULT_HISTORY_MODE,
        first_chunk_timeout: float = STREAM_FIRST_CHUNK_TIMEOUT_SECONDS,
        chunk_idle_timeout: float = STREAM_CHUNK_IDLE_TIMEOUT_SECONDS,
        response_timeout: float = RESPONSE_TIMEOUT_SECONDS,
    ):
        if history_mode not in VALID_HISTORY_MODES:
            raise ValueError(f"history_mode must be one of {', '.join(VALID_HISTORY_MODES)}")
        self.instructions = instructions
        self.model = model if model is not None else create_model()
        self._session_factory = session_factory or self._default_session
        self.history_mode = history_mode
        self.first_chunk_timeout = first_chunk_timeout
        self.chunk_idle_timeout = chunk_idle_timeout
        self.response_timeout = response_timeout
        self._session: Any = None

    @classmethod
    def from_settings(cls, settings: ChatSettings, **kwargs: Any) -> AppleFMBackend:
        return cls(
            settings.instructions,
            history_mode=settings.history_mode,
            first_chunk_timeout=settings.first_chunk_timeout,
            chunk_idle_timeout=settings.chunk_idle_timeout,
            response_timeout=settings.response_timeout,
            **kwargs,
        )

    def _default_session(self) -> Any:
        return create_session(instructions=self.instructions, model=self.model)

    # -- availability --------------------------------------------------------

    def is_available(self) -> bool:
        is_available, _reason = self.model.is_available()
        return bool(is_available)

    def unavailability_reason(self) -> Availability:
        is_available, reason = self.model.is_available()
        if is_available:
            return Availability.AVAILABLE
        return availability_from_reason(reason)

    # -- sessions ------------------------------------------------------------

    def reset(self) -> None:
        """Forget the conversation history held by the current session."""
        self._session = None

    def _session_for_turn(self) -> Any:
        if self.history_mode == "clear" or self._session is None:
            self._session = self._session_factory()
        return self._session

    def _request_kwargs(self, options: GenerationOptions | None) -> dict[str, Any]:
        sdk_options = create_sdk_options(options)
        return {} if sdk_options is None else {"options": sdk_options}

    # -- generation ----------------------------------------------------------

    async def respond(
        self,
        prompt: str,
        options: GenerationOptions | None = None,
        *,
        cancellation: CancellationToken | None = None,
    ) -> str:
        kwargs = self._request_kwargs(options)
        retried = False
        while True:
            session = self._session_for_turn()
            start_time = time.perf_counter()
            try:
                result = await asyncio.wait_for(
                    session.respond(prompt, **kwargs), timeout=self.response_timeout
                )
            except asyncio.CancelledError:
                self.reset()
                raise
            except TimeoutError as exc:
                self.reset()
                raise GenerationFailedError(
                    f"Timed out waiting for the model after {self.response_timeout:.0f}s."
                ) from exc
            except Exception as exc:
                if self._should_retry(exc, retried, cancellation):
                    retried = True
                    continue
                raise
            logger.debug(
                "[FoundationBuddy] Response received in %.3fs.", time.perf_counter() - start_time
            )
            return str(result)

    async def stream_response(
        self,
        prompt: str,
        options: GenerationOptions | None = None,
        *,
        cancellation: CancellationToken | None = None,
    ) -> AsyncIterator[str]:
        """Yield cumulative snapshots until the model finishes or ``cancellation`` is set."""
        kwargs = self._request_kwargs(options)
        retried = False
        first_chunk_seen = False
        finished = False
        while True:
            session = self._session_for_turn()
            iterator = None
            try:
                iterator = session.stream_response(prompt, **kwargs).__aiter__()
                while cancellation is None or not cancellation.cancelled:
                    timeout = (
                        self.chunk_idle_timeout if first_chunk_seen else self.first_chunk_timeout
                    )
                    try:
                        snapshot = await asyncio.wait_for(anext(iterator), timeout=timeout)
                    except StopAsyncIteration:
                        finished = True
                        return
                    except TimeoutError as exc:
                        label = "response stream" if first_chunk_seen else "first response chunk"
                        raise GenerationFailedError(
                            f"Timed out waiting for {label} after {timeout:.0f}s."
                        ) from exc
                    if cancellation is not None and cancellation.cancelled:
                        logger.debug("[FoundationBuddy Stream] Dropping snapshot after stop.")
                        return
                    first_chunk_seen = True
                    yield str(snapshot)
                return
            except GenerationFailedError:
                raise
            except Exception as exc:
                # Partial output was already shown; only a clean restart may retry.
                if not first_chunk_seen and self._should_retry(exc, retried, cancellation):
                    retried = True
                    continue
                raise
            finally:
                aclose = getattr(iterator, "aclose", None)
                if aclose is not None:
                    with contextlib.suppress(Exception):
                        await aclose()
                if not finished and session is self._session:
                    # The session may still be generating the abandoned reply.
                    self.reset()

    def _should_retry(
        self, exc: Exception, retried: bool, cancellation: CancellationToken | None
    ) -> bool:
        if retried or self.history_mode != "hybrid" or not is_context_overflow(exc):
            return False
        if cancellation is not None and cancellation.cancelled:
            return False
        logger.info(
            "[FoundationBuddy] Context window exceeded in 'hybrid' mode. "
            "Clearing history and retrying turn..."
        )
        self.reset()
        return True
