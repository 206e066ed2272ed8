from __future__ import annotations

from enum import Enum
from typing import Any


class Availability(str, Enum):
    """Closed set of model availability states."""

    AVAILABLE = "available"
    DEVICE_NOT_ELIGIBLE = "device_not_eligible"
    FEATURE_NOT_ENABLED = "feature_not_enabled"
    ASSETS_NOT_READY = "assets_not_ready"
    UNKNOWN = "unknown"

    @property
    def message(self) -> str:
        return _MESSAGES[self]


_MESSAGES = {
    Availability.AVAILABLE: "The on-device model is ready.",
    Availability.DEVICE_NOT_ELIGIBLE: "This device does not support Apple Intelligence.",
    Availability.FEATURE_NOT_ENABLED: "Apple Intelligence is turned off in System Settings.",
    Availability.ASSETS_NOT_READY: "The model is still downloading. Try again in a few minutes.",
    Availability.UNKNOWN: "The on-device model is unavailable for an unknown reason.",
}

# Substring patterns checked in order against the normalized SDK reason.
_REASON_PATTERNS = (
    ("eligible", Availability.DEVICE_NOT_ELIGIBLE),
    ("enabled", Availability.FEATURE_NOT_ENABLED),
    ("ready", Availability.ASSETS_NOT_READY),
    ("asset", Availability.ASSETS_NOT_READY),
)


def availability_from_reason(reason: Any) -> Availability:
    """Map an SDK unavailability reason (enum member, string or None) onto ``Availability``."""
    if isinstance(reason, Availability):
        return reason
    if reason is None:
        return Availability.UNKNOWN
    raw = getattr(reason, "name", None) or getattr(reason, "value", None) or reason
    needle = str(raw).rsplit(".", 1)[-1].replace("_", "").lower()
    for pattern, availability in _REASON_PATTERNS:
        if pattern in needle:
            return availability
    return Availability.UNKNOWN
