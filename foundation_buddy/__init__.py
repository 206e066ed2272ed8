"""
FoundationBuddy: a single-screen chat assistant for the on-device Apple Foundation Model.

The core is UI-agnostic: a ``ConversationStore`` holding the message log and a
``ChatController`` that sends one request per user turn to a pluggable
``TextBackend`` (``AppleFMBackend`` in production), streaming or one-shot, with
cooperative stop. The terminal (``foundation-buddy chat``) and toga desktop
surfaces are thin views over the controller.
"""

from .availability import Availability
from .backends import AppleFMBackend
from .cancellation import CancellationToken
from .conversation import ConversationStore, Message, StoreEvent
from .exceptions import (
    AppleFMSetupError,
    FoundationBuddyError,
    GenerationFailedError,
    UnavailableError,
)
from .protocols import GenerationOptions, TextBackend
from .session import ChatController, SessionState, TurnOutcome
from .settings import ChatSettings, GenerationMode, load_settings

__version__ = "0.1.0"

__all__ = [
    "AppleFMBackend",
    "AppleFMSetupError",
    "Availability",
    "CancellationToken",
    "ChatController",
    "ChatSettings",
    "ConversationStore",
    "FoundationBuddyError",
    "GenerationFailedError",
    "GenerationMode",
    "GenerationOptions",
    "Message",
    "SessionState",
    "StoreEvent",
    "TextBackend",
    "TurnOutcome",
    "UnavailableError",
    "load_settings",
]
