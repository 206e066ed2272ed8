"""
Generation Session Controller.

Owns the ``SessionState`` and a ``ConversationStore`` and runs at most one
generation request at a time against a ``TextBackend``. Submitting while a
request is in flight is treated as a request to stop it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import TYPE_CHECKING, Callable

from .availability import Availability
from .cancellation import CancellationToken
from .conversation import ConversationStore, Message
from .exceptions import GenerationFailedError, UnavailableError
from .protocols import GenerationOptions
from .settings import ChatSettings, GenerationMode

if TYPE_CHECKING:
    from .protocols import TextBackend

logger = logging.getLogger("foundation_buddy")

StateObserver = Callable[[str], None]


class TurnOutcome(str, Enum):
    """What a call to ``ChatController.submit`` ended up doing."""

    IGNORED = "ignored"
    STOPPED = "stopped"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


def is_valid_input(text: str | None) -> bool:
    return bool(text and text.strip())


class SessionState:
    """Observable controller state. ``busy`` is true exactly while a request is active."""

    def __init__(self, mode: GenerationMode = GenerationMode.STREAMING):
        self._mode = mode
        self._active_request: CancellationToken | None = None
        self._draft = ""
        self._last_error: str | None = None
        self._observers: list[StateObserver] = []

    @property
    def busy(self) -> bool:
        return self._active_request is not None

    @property
    def active_request(self) -> CancellationToken | None:
        return self._active_request

    @active_request.setter
    def active_request(self, token: CancellationToken | None) -> None:
        if token is self._active_request:
            return
        self._active_request = token
        self._notify("busy")

    @property
    def mode(self) -> GenerationMode:
        return self._mode

    @mode.setter
    def mode(self, value: GenerationMode) -> None:
        value = GenerationMode.parse(value)
        if value is self._mode:
            return
        self._mode = value
        self._notify("mode")

    @property
    def draft(self) -> str:
        return self._draft

    @draft.setter
    def draft(self, value: str) -> None:
        if value == self._draft:
            return
        self._draft = value
        self._notify("draft")

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @last_error.setter
    def last_error(self, value: str | None) -> None:
        if value == self._last_error:
            return
        self._last_error = value
        self._notify("last_error")

    def subscribe(self, observer: StateObserver) -> Callable[[], None]:
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _notify(self, field_name: str) -> None:
        for observer in list(self._observers):
            try:
                observer(field_name)
            except Exception:
                logger.warning(
                    "[FoundationBuddy] Session observer failed on %s.", field_name, exc_info=True
                )

    def __repr__(self) -> str:
        return f"SessionState(busy={self.busy}, mode={self._mode.value!r})"


class ChatController:
    """Drives one chat: validates input, issues requests, mirrors results into the store."""

    def __init__(
        self,
        backend: TextBackend,
        store: ConversationStore | None = None,
        settings: ChatSettings | None = None,
    ):
        self.settings = settings or ChatSettings()
        self.backend = backend
        self.store = store or ConversationStore(greeting=self.settings.greeting)
        self.state = SessionState(mode=self.settings.mode)
        self.options = GenerationOptions(
            temperature=self.settings.temperature,
            maximum_response_tokens=self.settings.max_response_tokens,
        )
        self._request_task: asyncio.Task | None = None
        self._turn_count = 0

    @property
    def busy(self) -> bool:
        return self.state.busy

    def can_send(self, text: str | None = None) -> bool:
        """Whether the send/stop control should be enabled for ``text`` (default: the draft)."""
        if self.state.busy:
            return True
        return is_valid_input(self.state.draft if text is None else text)

    def set_mode(self, mode: GenerationMode | str) -> None:
        self.state.mode = GenerationMode.parse(mode)

    def set_draft(self, text: str) -> None:
        self.state.draft = text

    async def submit(
        self, user_text: str | None = None, mode: GenerationMode | str | None = None
    ) -> TurnOutcome:
        """Send one user turn, or stop the in-flight turn if one is running.

        ``user_text`` defaults to the current draft. Whitespace-only input is
        ignored. Raises ``UnavailableError`` before touching the log when the
        backend cannot serve requests, and ``GenerationFailedError`` when the
        backend fails mid-request. ``busy`` is always cleared on return.
        """
        if self.state.busy:
            self.stop()
            return TurnOutcome.STOPPED

        text = self.state.draft if user_text is None else user_text
        if not is_valid_input(text):
            logger.debug("[FoundationBuddy] Ignoring empty submission.")
            return TurnOutcome.IGNORED

        reason = self.backend.unavailability_reason()
        if reason is not Availability.AVAILABLE:
            error = UnavailableError(reason)
            self.state.last_error = str(error)
            logger.warning("[FoundationBuddy] Model unavailable: %s", reason.value)
            raise error

        turn_mode = GenerationMode.parse(mode) if mode is not None else self.state.mode
        self._turn_count += 1
        token = CancellationToken(label=f"turn-{self._turn_count}")
        self.state.last_error = None
        self.state.active_request = token

        self.store.append(Message(content=text, is_from_user=True))
        self.store.append(Message(content="", is_from_user=False))
        self.state.draft = ""

        prompt = text.strip()
        request = asyncio.create_task(self._run_request(prompt, turn_mode, token))
        self._request_task = request
        logger.info(
            "[FoundationBuddy] Turn %d started (%s, %d chars).",
            self._turn_count,
            turn_mode.value,
            len(prompt),
        )
        start_time = time.perf_counter()

        try:
            await asyncio.wait({request})
        except asyncio.CancelledError:
            token.cancel()
            request.cancel()
            raise
        finally:
            if self.state.active_request is token:
                self.state.active_request = None
            if self._request_task is request:
                self._request_task = None

        elapsed = time.perf_counter() - start_time
        if request.cancelled() or token.cancelled:
            if not request.cancelled() and request.exception() is not None:
                logger.debug("[FoundationBuddy] %s raised after stop; ignored.", token.label)
            logger.info("[FoundationBuddy] %s cancelled after %.3fs.", token.label, elapsed)
            return TurnOutcome.CANCELLED

        exc = request.exception()
        if exc is None:
            logger.info("[FoundationBuddy] %s completed in %.3fs.", token.label, elapsed)
            return TurnOutcome.COMPLETED

        logger.error("[FoundationBuddy] %s failed: %s", token.label, exc, exc_info=exc)
        if isinstance(exc, (UnavailableError, GenerationFailedError)):
            self.state.last_error = str(exc)
            raise exc
        message = f"The model failed to respond: {exc}"
        self.state.last_error = message
        raise GenerationFailedError(message) from exc

    async def _run_request(
        self, prompt: str, mode: GenerationMode, token: CancellationToken
    ) -> None:
        if mode is GenerationMode.STREAMING:
            stream = self.backend.stream_response(prompt, self.options, cancellation=token)
            try:
                async for snapshot in stream:
                    if token.cancelled:
                        break
                    self.store.replace_last_content(str(snapshot))
            finally:
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()
            return

        result = await self.backend.respond(prompt, self.options, cancellation=token)
        if not token.cancelled:
            self.store.replace_last_content(str(result))

    def stop(self) -> bool:
        """Cancel the in-flight request. Returns False when there was nothing to stop."""
        token = self.state.active_request
        if token is None:
            return False
        if token.cancel():
            logger.info("[FoundationBuddy] Stop requested for %s.", token.label)
        task = self._request_task
        if task is not None and not task.done():
            task.cancel()
        return True

    def reset_conversation(self) -> None:
        """Stop any request, return to idle, clear the draft and restore the greeting."""
        self.stop()
        self.state.active_request = None
        self._request_task = None
        self.state.draft = ""
        self.state.last_error = None
        self.store.reset()
        try:
            self.backend.reset()
        except Exception:
            logger.warning("[FoundationBuddy] Backend reset failed.", exc_info=True)
        logger.info("[FoundationBuddy] Conversation reset.")
