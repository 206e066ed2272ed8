"""Tests for foundation_buddy.cancellation."""

import threading

from foundation_buddy.cancellation import CancellationToken

# ========================================================================
# CancellationToken
# ========================================================================


class TestCancellationToken:
    def test_cancel_is_idempotent(self):
        token = CancellationToken()
        assert not token.cancelled
        assert token.cancel() is True
        assert token.cancel() is False
        assert token.cancelled

    def test_default_label(self):
        assert CancellationToken().label == "request"

    def test_repr_shows_state(self):
        token = CancellationToken(label="turn-7")
        token.cancel()
        assert repr(token) == "CancellationToken(label='turn-7', cancelled=True)"

    def test_cancel_from_another_thread_is_visible(self):
        token = CancellationToken()
        worker = threading.Thread(target=token.cancel)
        worker.start()
        worker.join(timeout=1.0)
        assert token.cancelled
