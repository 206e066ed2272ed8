"""Single-window desktop chat for the on-device Apple Foundation Model, built with Toga.

The window is a thin view over ``ChatController``: it re-renders the transcript
on every conversation change, swaps Send for Stop and shows a spinner while a
reply is generating. Errors appear in a dialog without blocking the chat.
"""

from __future__ import annotations

import asyncio
import logging

import toga
from toga.style import Pack
from toga.style.pack import COLUMN, HIDDEN, ROW, VISIBLE

from .availability import Availability
from .backends import AppleFMBackend
from .conversation import Message, StoreEvent
from .exceptions import FoundationBuddyError
from .session import ChatController
from .settings import ChatSettings, GenerationMode, load_settings

logger = logging.getLogger("foundation_buddy")

FONT_SIZE_BODY = 12
FONT_SIZE_META = 10
COLOR_APP_BG = "#0E1218"
COLOR_INPUT_BG = "#1A1E26"
COLOR_ACCENT = "#5E9BFF"
COLOR_DANGER = "#C2455A"
COLOR_TEXT_PRIMARY = "#F6FAFF"
COLOR_TEXT_MUTED = "#9AA8BC"

SEND_LABEL = "Send"
STOP_LABEL = "Stop"
GENERATING_CAPTION = "Generating…"


class FoundationBuddyApp(toga.App):
    """Toga desktop app for chatting with the local Apple Foundation Model."""

    def __init__(self, *args, settings: ChatSettings | None = None, **kwargs):
        self.settings = settings or load_settings()
        super().__init__(*args, **kwargs)

    def startup(self) -> None:
        """Build UI, create the controller and wire change notifications."""
        backend = AppleFMBackend.from_settings(self.settings)
        self.controller = ChatController(backend, settings=self.settings)
        self._error_task: asyncio.Task | None = None

        self._build_ui()
        self._install_settings_menu()

        self.controller.store.subscribe(self.on_conversation_changed)
        self.controller.state.subscribe(self.on_state_changed)

        self._render_transcript()
        self._refresh_controls()

        reason = backend.unavailability_reason()
        if reason is Availability.AVAILABLE:
            self._set_status_text(f"Model available. Reply mode: {self.controller.state.mode.value}.")
        else:
            self._set_status_text(f"Model unavailable. {reason.message}")

        self.main_window.show()

    # -- layout --------------------------------------------------------------

    def _build_ui(self) -> None:
        """Construct transcript, status line and compose row."""
        self.transcript_view = toga.MultilineTextInput(
            readonly=True,
            style=Pack(
                flex=1,
                margin=(12, 12, 6, 12),
                font_size=FONT_SIZE_BODY,
                background_color=COLOR_INPUT_BG,
                color=COLOR_TEXT_PRIMARY,
            ),
        )
        self.loading_spinner = toga.ActivityIndicator(
            style=Pack(margin=(0, 6, 0, 0), visibility=HIDDEN)
        )
        self.status_label = toga.Label(
            "",
            style=Pack(flex=1, font_size=FONT_SIZE_META, color=COLOR_TEXT_MUTED),
        )
        status_row = toga.Box(style=Pack(direction=ROW, margin=(0, 14, 6, 14)))
        status_row.add(self.loading_spinner)
        status_row.add(self.status_label)
        self.prompt_input = toga.TextInput(
            placeholder="Ask Anything...",
            on_change=self.on_prompt_change,
            on_confirm=self.on_prompt_confirm,
            style=Pack(flex=1, margin=(0, 8, 0, 0), font_size=FONT_SIZE_BODY),
        )
        self.send_button = toga.Button(
            SEND_LABEL,
            on_press=self.on_send,
            enabled=False,
            style=Pack(
                width=84,
                background_color=COLOR_ACCENT,
                color="#FFFFFF",
                font_weight="bold",
            ),
        )

        compose_row = toga.Box(style=Pack(direction=ROW, margin=(6, 12, 12, 12)))
        compose_row.add(self.prompt_input)
        compose_row.add(self.send_button)

        root = toga.Box(style=Pack(direction=COLUMN, flex=1, background_color=COLOR_APP_BG))
        root.add(self.transcript_view)
        root.add(status_row)
        root.add(compose_row)

        self.main_window = toga.MainWindow(title="Foundation Buddy", size=(520, 760))
        self.main_window.content = root

    def _install_settings_menu(self) -> None:
        """Settings menu: reply mode toggles and Clear Chat."""
        settings_group = toga.Group("Settings", order=60)
        self.streaming_command = toga.Command(
            self.on_select_streaming,
            text="Streaming",
            tooltip="Show replies as they are generated",
            group=settings_group,
            section=0,
            order=10,
            id="mode-streaming",
        )
        self.respond_command = toga.Command(
            self.on_select_respond,
            text="Respond",
            tooltip="Show replies once they are complete",
            group=settings_group,
            section=0,
            order=20,
            id="mode-respond",
        )
        self.clear_command = toga.Command(
            self.on_clear_chat,
            text="Clear Chat",
            shortcut=toga.Key.MOD_1 + toga.Key.K,
            group=settings_group,
            section=1,
            order=10,
            id="clear-chat",
        )
        self.commands.add(self.streaming_command, self.respond_command, self.clear_command)

    # -- rendering -----------------------------------------------------------

    def _set_status_text(self, text: str) -> None:
        self.status_label.text = text

    def _render_transcript(self) -> None:
        """Render visible messages and keep the newest one in view."""
        self.transcript_view.value = self.controller.store.render_transcript()
        self.transcript_view.scroll_to_bottom()

    def _refresh_controls(self) -> None:
        """Disable typing while busy and turn Send into Stop."""
        busy = self.controller.busy
        self.prompt_input.readonly = busy
        self.send_button.text = STOP_LABEL if busy else SEND_LABEL
        self.send_button.style.background_color = COLOR_DANGER if busy else COLOR_ACCENT
        self.send_button.enabled = self.controller.can_send(self.prompt_input.value or "")
        self.streaming_command.enabled = self.controller.state.mode is not GenerationMode.STREAMING
        self.respond_command.enabled = self.controller.state.mode is not GenerationMode.ONE_SHOT

    def _set_typing_indicator(self, busy: bool) -> None:
        """Show the spinner and caption while a reply is pending."""
        if busy:
            self.loading_spinner.style.visibility = VISIBLE
            self.loading_spinner.start()
            self._set_status_text(GENERATING_CAPTION)
            return
        self.loading_spinner.stop()
        self.loading_spinner.style.visibility = HIDDEN
        if self.status_label.text == GENERATING_CAPTION:
            self._set_status_text(f"Reply mode: {self.controller.state.mode.value}.")

    def on_conversation_changed(self, event: StoreEvent, message: Message) -> None:
        del event, message
        self._render_transcript()

    def on_state_changed(self, field_name: str) -> None:
        if field_name == "busy":
            self._set_typing_indicator(self.controller.busy)
        if field_name == "draft" and self.prompt_input.value != self.controller.state.draft:
            self.prompt_input.value = self.controller.state.draft
        if field_name == "last_error" and self.controller.state.last_error:
            self._set_status_text(self.controller.state.last_error)
        if field_name == "mode":
            self._set_status_text(f"Reply mode: {self.controller.state.mode.value}.")
        self._refresh_controls()

    def _show_error(self, title: str, message: str) -> None:
        """Show an error dialog without blocking the chat."""
        if self._error_task is not None and not self._error_task.done():
            return
        self._error_task = asyncio.create_task(
            self.main_window.dialog(toga.ErrorDialog(title, message))
        )

    # -- handlers ------------------------------------------------------------

    def on_prompt_change(self, widget: toga.Widget) -> None:
        del widget
        self.controller.set_draft(self.prompt_input.value or "")
        self._refresh_controls()

    async def on_prompt_confirm(self, widget: toga.Widget) -> None:
        if self.controller.busy or not self.controller.can_send():
            return
        await self.on_send(widget)

    async def on_send(self, widget: toga.Widget) -> None:
        """Send the draft, or stop the reply in progress."""
        del widget
        try:
            await self.controller.submit()
        except FoundationBuddyError as exc:
            logger.warning("[FoundationBuddy] %s", exc)
            self._show_error("Foundation Buddy", str(exc))

    async def on_select_streaming(self, command: object | None = None, **kwargs) -> None:
        self.controller.set_mode(GenerationMode.STREAMING)

    async def on_select_respond(self, command: object | None = None, **kwargs) -> None:
        self.controller.set_mode(GenerationMode.ONE_SHOT)

    async def on_clear_chat(self, command: object | None = None, **kwargs) -> None:
        self.controller.reset_conversation()
        self._set_status_text("Chat cleared.")


def main(settings: ChatSettings | None = None) -> FoundationBuddyApp:
    """Briefcase entrypoint."""
    return FoundationBuddyApp(
        formal_name="Foundation Buddy",
        app_id="com.foundationbuddy.chat",
        settings=settings,
    )
