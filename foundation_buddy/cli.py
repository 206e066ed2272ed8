"""
FoundationBuddy CLI: terminal chat, one-shot questions and model diagnostics.

Registered as `foundation-buddy` console script via pyproject.toml.
"""

import asyncio
import contextlib
import importlib.util
import logging
import platform
import shlex
import signal
import sys
from dataclasses import replace
from pathlib import Path

import click

from .availability import Availability
from .backends import AppleFMBackend
from .conversation import Message, StoreEvent
from .exceptions import AppleFMSetupError, GenerationFailedError, UnavailableError
from .protocols import TextBackend
from .session import ChatController, TurnOutcome
from .settings import ChatSettings, GenerationMode, load_settings

logger = logging.getLogger("foundation_buddy")

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]
MODE_CHOICES = [mode.value for mode in GenerationMode]

TYPING_TEXT = "Assistant is typing…"
# Carriage return plus ANSI erase-line.
CLEAR_LINE = "\r\x1b[K"

HELP_TEXT = """Slash Commands
/help                          Show command help
/stream                        Stream replies as they are generated
/respond                       Wait for the complete reply
/mode                          Show the current reply mode
/clear                         Clear the chat and start over
/export [jsonl|md] [path]      Export the current chat
/quit                          Leave the chat (Ctrl-D works too)

Press Ctrl-C while a reply is being generated to stop it.
"""


def build_backend(settings: ChatSettings) -> TextBackend:
    """Create the text generation backend used by every command."""
    return AppleFMBackend.from_settings(settings)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _notify_error(exc: Exception) -> None:
    """Surface an error as a single non-fatal notification line."""
    click.secho(f"! {exc}", fg="red", err=True)


def _fail_missing_dependencies(*, command_name: str, missing: list[str]) -> None:
    """Exit with actionable install guidance when optional dependencies are absent."""
    if not missing:
        return
    click.secho(
        f"{command_name} requires optional dependencies that are missing:",
        fg="red",
        err=True,
        bold=True,
    )
    for module in missing:
        click.echo(f"  - {module}", err=True)
    click.echo("", err=True)
    click.secho("Install with:", fg="cyan", err=True)
    click.echo("  pip install 'foundation-buddy[app]'", err=True)
    raise SystemExit(2)


class ReplyPrinter:
    """Echo the assistant placeholder's content as it grows.

    ``show_typing()`` prints a dim indicator line that is erased as soon as
    the first content arrives or the turn ends.
    """

    def __init__(self, prefix: str = ""):
        self.prefix = prefix
        self._shown = ""
        self._typing = False

    def start(self) -> None:
        self._shown = ""

    def show_typing(self) -> None:
        if self._typing or self._shown:
            return
        click.secho(TYPING_TEXT, dim=True, nl=False)
        self._typing = True

    def _clear_typing(self) -> None:
        if self._typing:
            click.echo(CLEAR_LINE, nl=False)
            self._typing = False

    def __call__(self, event: StoreEvent, message: Message) -> None:
        if event is not StoreEvent.CONTENT_REPLACED or message.is_from_user:
            return
        self._clear_typing()
        text = message.content
        if not self._shown and self.prefix:
            click.secho(self.prefix, fg="cyan", nl=False)
        if text.startswith(self._shown):
            click.echo(text[len(self._shown) :], nl=False)
        else:
            # The model revised earlier text; reprint the whole snapshot.
            click.echo("\n" + text, nl=False)
        self._shown = text

    def finish(self) -> None:
        self._clear_typing()
        if self._shown:
            click.echo()
        self._shown = ""


async def run_turn(
    controller: ChatController,
    text: str,
    printer: ReplyPrinter,
    mode: GenerationMode | None = None,
) -> TurnOutcome | None:
    """Run one turn with Ctrl-C mapped to stop. Errors are reported, not raised."""
    loop = asyncio.get_running_loop()
    stop_on_interrupt = False
    with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
        loop.add_signal_handler(signal.SIGINT, controller.stop)
        stop_on_interrupt = True

    printer.start()
    try:
        outcome = await controller.submit(text, mode)
    except (UnavailableError, GenerationFailedError) as exc:
        printer.finish()
        _notify_error(exc)
        return None
    finally:
        if stop_on_interrupt:
            loop.remove_signal_handler(signal.SIGINT)

    printer.finish()
    if outcome is TurnOutcome.CANCELLED:
        click.secho("[stopped]", fg="yellow")
    return outcome


def _export(controller: ChatController, args: list[str]) -> None:
    fmt = "jsonl"
    destination: Path | None = None
    if args:
        first = args[0].lower()
        if first in {"jsonl", "md"}:
            fmt = first
            if len(args) > 1:
                destination = Path(args[1]).expanduser()
        else:
            destination = Path(args[0]).expanduser()

    if destination is None:
        suffix = ".md" if fmt == "md" else ".jsonl"
        destination = Path.cwd() / f"foundation-buddy-chat{suffix}"

    if fmt == "md" or destination.suffix.lower() == ".md":
        target = controller.store.export_markdown(destination.with_suffix(".md"))
    else:
        target = controller.store.export_jsonl(destination.with_suffix(".jsonl"))
    click.secho(f"Exported chat to {target}", fg="green")


def handle_command(controller: ChatController, raw_text: str) -> bool:
    """Execute a slash command. Returns False when the user asked to quit."""
    try:
        tokens = shlex.split(raw_text)
    except ValueError as exc:
        _notify_error(ValueError(f"Command parse error: {exc}"))
        return True

    command = tokens[0].lower() if tokens else "/"
    args = tokens[1:]

    if command in {"/quit", "/exit"}:
        return False
    if command == "/help":
        click.echo(HELP_TEXT)
    elif command == "/stream":
        controller.set_mode(GenerationMode.STREAMING)
        click.secho("Reply mode: streaming", fg="green")
    elif command == "/respond":
        controller.set_mode(GenerationMode.ONE_SHOT)
        click.secho("Reply mode: respond", fg="green")
    elif command == "/mode":
        click.echo(f"Reply mode: {controller.state.mode.value}")
    elif command == "/clear":
        controller.reset_conversation()
        click.secho("Chat cleared.", fg="green")
        click.secho(f"Assistant: {controller.store.last.content}", fg="cyan")
    elif command == "/export":
        try:
            _export(controller, args)
        except OSError as exc:
            _notify_error(exc)
    else:
        click.secho(f"Unknown command: {command}. Try /help.", fg="yellow")
    return True


async def chat_loop(controller: ChatController) -> None:
    """Read-eval-print loop over one conversation."""
    printer = ReplyPrinter(prefix="Assistant: ")

    def on_state_changed(field_name: str) -> None:
        if field_name == "busy" and controller.busy:
            printer.show_typing()

    unsubscribe = controller.store.subscribe(printer)
    unsubscribe_state = controller.state.subscribe(on_state_changed)
    try:
        click.secho(f"Assistant: {controller.store.last.content}", fg="cyan")
        reason = controller.backend.unavailability_reason()
        if reason is not Availability.AVAILABLE:
            click.secho(f"Model unavailable: {reason.message}", fg="yellow", err=True)

        while True:
            try:
                raw = click.prompt("You", prompt_suffix="> ", default="", show_default=False)
            except (EOFError, click.Abort):
                click.echo()
                break

            text = raw.strip()
            if text.startswith("/"):
                if not handle_command(controller, text):
                    break
                continue

            await run_turn(controller, raw, printer)
    finally:
        unsubscribe_state()
        unsubscribe()
        controller.reset_conversation()


# ── Main group ────────────────────────────────────────────────────────────────


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="foundation-buddy")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Logging verbosity (defaults to FOUNDATION_BUDDY_LOG_LEVEL or WARNING).",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str | None) -> None:
    """FoundationBuddy: chat with the on-device Apple Foundation Model."""
    try:
        settings = load_settings()
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc
    if log_level:
        settings = replace(settings, log_level=log_level.upper())
    _configure_logging(settings.log_level)
    ctx.obj = settings


def _settings_with_mode(settings: ChatSettings, mode: str | None) -> ChatSettings:
    if mode is None:
        return settings
    return replace(settings, mode=GenerationMode.parse(mode))


# ── Chat ──────────────────────────────────────────────────────────────────────


@cli.command()
@click.option(
    "--mode",
    type=click.Choice(MODE_CHOICES, case_sensitive=False),
    default=None,
    help="Stream replies as they arrive, or wait for the full reply.",
)
@click.pass_obj
def chat(settings: ChatSettings, mode: str | None) -> None:
    """Start an interactive chat in the terminal.

    \b
    Examples:
        foundation-buddy chat
        foundation-buddy chat --mode respond
    """
    settings = _settings_with_mode(settings, mode)
    controller = ChatController(build_backend(settings), settings=settings)
    asyncio.run(chat_loop(controller))


@cli.command()
@click.argument("prompt", nargs=-1, required=True)
@click.option(
    "--mode",
    type=click.Choice(MODE_CHOICES, case_sensitive=False),
    default=None,
    help="Stream the reply as it arrives, or print it once complete.",
)
@click.pass_obj
def ask(settings: ChatSettings, prompt: tuple[str, ...], mode: str | None) -> None:
    """Ask a single question and print the reply.

    \b
    Examples:
        foundation-buddy ask "What is the capital of France?"
        foundation-buddy ask --mode respond Summarize the plot of Hamlet
    """
    settings = _settings_with_mode(settings, mode)
    controller = ChatController(build_backend(settings), settings=settings)
    text = " ".join(prompt)
    if not text.strip():
        raise click.UsageError("PROMPT must not be empty.")

    printer = ReplyPrinter()
    controller.store.subscribe(printer)
    outcome = asyncio.run(run_turn(controller, text, printer))
    if outcome is None:
        raise SystemExit(1)
    if outcome is TurnOutcome.CANCELLED:
        raise SystemExit(130)


# ── Diagnostics ───────────────────────────────────────────────────────────────


@cli.command()
@click.pass_obj
def doctor(settings: ChatSettings) -> None:
    """Check whether the on-device model can serve requests."""
    click.secho("\nFoundationBuddy doctor\n", fg="cyan", bold=True)
    click.echo(f"  Python:        {platform.python_version()} ({sys.platform})")
    click.echo(f"  Reply mode:    {settings.mode.value}")
    click.echo(f"  History mode:  {settings.history_mode}")
    click.echo()

    reason = build_backend(settings).unavailability_reason()
    if reason is Availability.AVAILABLE:
        click.secho(f"  Model: {reason.message}", fg="green")
        return
    click.secho(f"  Model unavailable ({reason.value}): {reason.message}", fg="red", err=True)
    raise SystemExit(1)


# ── Desktop app ───────────────────────────────────────────────────────────────


@cli.command(name="app")
@click.pass_obj
def app_cmd(settings: ChatSettings) -> None:
    """Launch the desktop chat window (requires the 'app' extra)."""
    missing = [name for name in ("toga",) if importlib.util.find_spec(name) is None]
    _fail_missing_dependencies(command_name="foundation-buddy app", missing=missing)

    from .app import main as app_main

    app_main(settings).main_loop()


# ── Entry point ───────────────────────────────────────────────────────────────


def cli_entry() -> None:
    """Entry point for the console_scripts."""
    try:
        cli()
    except AppleFMSetupError as exc:
        click.secho(str(exc), fg="red", err=True)
        raise SystemExit(2) from exc


if __name__ == "__main__":
    cli_entry()
