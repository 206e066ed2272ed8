"""
Error types and the Apple Foundation Models setup check for FoundationBuddy.
"""

from __future__ import annotations

import importlib
from typing import Any

from .availability import Availability

_INSTALL_HINT = (
    "FoundationBuddy requires the Apple Foundation Models SDK (python-apple-fm-sdk).\n"
    "It only runs on macOS 26+ with Apple Intelligence enabled and must be installed manually:\n"
    "    pip install 'foundation-buddy[apple]'\n"
)


class FoundationBuddyError(Exception):
    """Base class for every error raised by FoundationBuddy."""


class AppleFMSetupError(FoundationBuddyError):
    """The Apple Foundation Models SDK could not be imported."""


class UnavailableError(FoundationBuddyError):
    """The language model backend cannot serve requests right now."""

    def __init__(self, reason: Availability = Availability.UNKNOWN):
        self.reason = reason
        super().__init__(reason.message)


class GenerationFailedError(FoundationBuddyError):
    """The backend raised an error while producing a response."""


def require_apple_fm() -> Any:
    """Import and return ``apple_fm_sdk``, raising ``AppleFMSetupError`` when missing."""
    try:
        return importlib.import_module("apple_fm_sdk")
    except ImportError as exc:
        raise AppleFMSetupError(f"\n\n[FoundationBuddy] Error: {_INSTALL_HINT}") from exc
