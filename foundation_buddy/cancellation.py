from __future__ import annotations

import threading


class CancellationToken:
    """Cooperative stop handle for one generation request.

    The token is passed into the backend call and checked at every suspension
    point. It wraps a ``threading.Event`` so it is safe to poll from any thread.
    """

    def __init__(self, label: str = "request"):
        self.label = label
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> bool:
        """Request cancellation. Returns False if it was already requested."""
        if self._event.is_set():
            return False
        self._event.set()
        return True

    def __repr__(self) -> str:
        return f"CancellationToken(label={self.label!r}, cancelled={self.cancelled})"
