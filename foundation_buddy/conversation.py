"""
Conversation Store: the ordered, append-only log of chat messages a view renders.

All mutation is expected to happen on the event loop thread that owns the
controller; the store itself does no locking.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable

from .settings import DEFAULT_GREETING

logger = logging.getLogger("foundation_buddy")


def utc_now() -> datetime:
    """Return the current UTC time truncated to whole seconds."""
    return datetime.now(UTC).replace(microsecond=0)


@dataclass
class Message:
    """One chat turn. Only an in-flight assistant placeholder has its content rewritten."""

    content: str
    is_from_user: bool
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def role(self) -> str:
        return "user" if self.is_from_user else "assistant"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "created_at": self.timestamp.isoformat(),
            "content": self.content,
        }


class StoreEvent(str, Enum):
    APPENDED = "appended"
    CONTENT_REPLACED = "content_replaced"
    RESET = "reset"


StoreObserver = Callable[[StoreEvent, Message], None]


class ConversationStore:
    """Ordered message log that is never empty: it starts from (and resets to) a greeting."""

    def __init__(self, greeting: str = DEFAULT_GREETING):
        self.greeting = greeting
        self._messages: list[Message] = [self._greeting_message()]
        self._observers: list[StoreObserver] = []

    def _greeting_message(self) -> Message:
        return Message(content=self.greeting, is_from_user=False)

    # -- reads ---------------------------------------------------------------

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def last(self) -> Message:
        return self._messages[-1]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self):
        return iter(tuple(self._messages))

    def visible_messages(self) -> list[Message]:
        """Messages to render. Empty ones (e.g. a fresh placeholder) stay stored but hidden."""
        return [message for message in self._messages if message.content]

    # -- writes --------------------------------------------------------------

    def append(self, message: Message) -> Message:
        self._messages.append(message)
        self._notify(StoreEvent.APPENDED, message)
        return message

    def replace_last_content(self, text: str) -> Message:
        """Overwrite the content of the final entry, which must be an assistant message."""
        message = self._messages[-1]
        if message.is_from_user:
            raise ValueError("Only an assistant placeholder may have its content replaced.")
        if message.content == text:
            return message
        message.content = text
        self._notify(StoreEvent.CONTENT_REPLACED, message)
        return message

    def reset(self) -> Message:
        """Drop every message and start again from the greeting."""
        greeting = self._greeting_message()
        self._messages = [greeting]
        self._notify(StoreEvent.RESET, greeting)
        return greeting

    # -- observers -----------------------------------------------------------

    def subscribe(self, observer: StoreObserver) -> Callable[[], None]:
        """Register ``observer`` for change events; returns an unsubscribe callable."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _notify(self, event: StoreEvent, message: Message) -> None:
        for observer in list(self._observers):
            try:
                observer(event, message)
            except Exception:
                logger.warning(
                    "[FoundationBuddy] Conversation observer failed on %s.", event.value, exc_info=True
                )

    # -- rendering & export --------------------------------------------------

    def render_transcript(self) -> str:
        """Render visible messages into plain transcript text."""
        lines: list[str] = []
        for message in self.visible_messages():
            role = "You" if message.is_from_user else "Assistant"
            lines.append(f"{role} | {message.timestamp:%H:%M}")
            lines.append(message.content)
            lines.append("")
        return "\n".join(lines).strip()

    def to_records(self) -> list[dict[str, Any]]:
        return [message.to_dict() for message in self._messages if message.content]

    def export_jsonl(self, target: Path) -> Path:
        """Write one metadata line followed by one JSON line per visible message."""
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("w", encoding="utf-8") as handle:
            handle.write(
                json.dumps(
                    {"type": "chat_metadata", "exported_at": utc_now().isoformat()},
                    ensure_ascii=False,
                )
                + "\n"
            )
            for record in self.to_records():
                handle.write(json.dumps({"type": "message", **record}, ensure_ascii=False) + "\n")
        return target

    def export_markdown(self, target: Path, title: str = "Foundation Buddy Chat") -> Path:
        target.parent.mkdir(parents=True, exist_ok=True)
        lines = [f"# {title}", "", f"Exported: {utc_now().isoformat()}", ""]
        for message in self.visible_messages():
            role = "User" if message.is_from_user else "Assistant"
            lines.append(f"## {role} ({message.timestamp.isoformat()})")
            lines.append("")
            lines.append(message.content)
            lines.append("")
        target.write_text("\n".join(lines), encoding="utf-8")
        return target
