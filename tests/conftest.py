"""
Shared fixtures: scripted text backends and SDK mocks.

No test talks to the real Apple Foundation Model; backends here follow the
``TextBackend`` protocol and are driven by asyncio events so tests can stop
a reply at an exact point.
"""

import asyncio
import os
from unittest.mock import AsyncMock, MagicMock

import pytest

from foundation_buddy.availability import Availability
from foundation_buddy.session import ChatController
from foundation_buddy.settings import ENV_PREFIX, ChatSettings, GenerationMode


class ScriptedBackend:
    """Backend returning canned replies.

    ``hold`` (an ``asyncio.Event``) pauses the request before it finishes: a
    one-shot reply waits on it before returning, a stream waits on it after
    emitting ``hold_after`` snapshots.
    """

    def __init__(
        self,
        reply="Hi there",
        snapshots=("Once", "Once upon", "Once upon a time"),
        *,
        available=True,
        reason=Availability.DEVICE_NOT_ELIGIBLE,
        error=None,
        error_after=None,
        hold=None,
        hold_after=0,
    ):
        self.reply = reply
        self.snapshots = list(snapshots)
        self.available = available
        self.reason = reason
        self.error = error
        self.error_after = error_after
        self.hold = hold
        self.hold_after = hold_after
        self.calls = []
        self.completed = 0
        self.reset_count = 0

    def is_available(self):
        return self.available

    def unavailability_reason(self):
        return Availability.AVAILABLE if self.available else self.reason

    async def respond(self, prompt, options=None, *, cancellation=None):
        self.calls.append(("respond", prompt, cancellation))
        if self.hold is not None:
            await self.hold.wait()
        if self.error is not None:
            raise self.error
        self.completed += 1
        return self.reply

    async def stream_response(self, prompt, options=None, *, cancellation=None):
        self.calls.append(("stream", prompt, cancellation))
        for index, snapshot in enumerate(self.snapshots):
            if self.error is not None and self.error_after == index:
                raise self.error
            if self.hold is not None and index == self.hold_after:
                await self.hold.wait()
            if cancellation is not None and cancellation.cancelled:
                return
            yield snapshot
            await asyncio.sleep(0)
        if self.error is not None and self.error_after == len(self.snapshots):
            raise self.error
        self.completed += 1

    def reset(self):
        self.reset_count += 1


async def wait_until(predicate, timeout=1.0):
    """Spin the event loop until ``predicate()`` is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep developer FOUNDATION_BUDDY_* variables out of every test."""
    for name in list(os.environ):
        if name.startswith(ENV_PREFIX):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def backend():
    return ScriptedBackend()


@pytest.fixture
def one_shot_settings():
    return ChatSettings(mode=GenerationMode.ONE_SHOT)


@pytest.fixture
def streaming_settings():
    return ChatSettings(mode=GenerationMode.STREAMING)


@pytest.fixture
def make_controller():
    def factory(backend=None, **settings_kwargs):
        settings = ChatSettings(**settings_kwargs)
        return ChatController(backend or ScriptedBackend(), settings=settings)

    return factory


def make_mock_model(available=True, reason=None):
    """Create a mock ``SystemLanguageModel``."""
    model = MagicMock()
    model.is_available.return_value = (available, reason)
    return model


def make_mock_session(reply="Hi there", snapshots=()):
    """Create a mock ``LanguageModelSession`` with ``respond`` and ``stream_response``."""
    session = MagicMock()
    session.respond = AsyncMock(return_value=reply)

    async def stream_response(prompt, **kwargs):
        for snapshot in snapshots:
            yield snapshot

    session.stream_response = MagicMock(side_effect=stream_response)
    return session
