"""Terminal front end for the keymentor assistant."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Any, Dict, Sequence, TextIO

from .errors import ConfigError
from .services.config import AssistantConfig, coerce_field, load_config
from .services.settings import SettingsStore, redact_secret
from .ui.bootstrap import AssistantApp, create_assistant
from .ui.events import StatusMessage
from .ui.models.request_models import PendingRequest, RequestPhase
from .utils import logging as logging_utils

_LOGGER = logging.getLogger(__name__)
_PROMPT = "you> "
_HELP_TEXT = """Commands:
  /new              start a new conversation
  /clear            clear the panel (keeps the restore pointer)
  /history          list stored conversations
  /open N           open conversation N from the history
  /delete N         delete conversation N from the history
  /clear-history    delete every stored conversation
  /apply            copy the last reply into the prompt
  /preprompt TEXT   set the preprompt for the active settings scope
  /scope            toggle between global and project settings
  /apikey KEY       save an API key (empty to clear)
  /debug            toggle debug logging
  /quit             save and exit
Press Ctrl-C while waiting for a reply to cancel it."""


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    """Configure logging for the terminal session."""

    log_path = logging_utils.setup_logging(debug=debug, force=force)
    _LOGGER.debug("Logging to %s (debug=%s)", log_path, debug)


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point invoked by the `keymentor` console script."""

    args = _parse_cli_args(argv)
    try:
        overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc
    if args.restore:
        overrides["restore_conversation"] = args.restore
    if args.data_dir:
        overrides["data_dir"] = Path(args.data_dir).expanduser()

    try:
        config = load_config(overrides=overrides)
    except ConfigError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc

    settings = SettingsStore(Path(config.data_dir).expanduser() / "settings.json")
    debug = config.debug or settings.get_current_debug_mode()
    configure_logging(debug)

    if args.dump_settings:
        _dump_settings(config, settings, overrides=overrides)
        return

    try:
        asyncio.run(_run_repl(create_assistant(config, settings=settings)))
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown path
        _LOGGER.info("Shutdown requested by user.")


async def _run_repl(app: AssistantApp, *, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
    source = stdin or sys.stdin
    out = stdout or sys.stdout
    panel = app.panel
    app.event_bus.subscribe(StatusMessage, lambda event: _print_status(event, out))

    decision = panel.open()
    if decision is not None:
        _print_transcript(app, out)
        out.write(f"(resumed conversation {decision.conversation_id})\n")
    out.write("Ask a question, or /help for commands.\n")
    try:
        while True:
            line = await _read_line(source, out)
            if line is None:
                break
            text = line.rstrip("\n")
            if text.startswith("/"):
                if not _handle_command(app, text, out):
                    break
                continue
            panel.composer_text = text
            pending = panel.submit()
            if pending is None:
                continue
            await _await_reply(app)
            _print_outcome(app, pending, out)
    finally:
        panel.close()
        await app.aclose()


async def _read_line(source: TextIO, out: TextIO) -> str | None:
    out.write(_PROMPT)
    out.flush()
    line = await asyncio.to_thread(source.readline)
    return line or None


async def _await_reply(app: AssistantApp) -> None:
    loop = asyncio.get_running_loop()
    installed = False
    with contextlib.suppress(NotImplementedError, RuntimeError):
        loop.add_signal_handler(signal.SIGINT, app.panel.cancel)
        installed = True
    try:
        while app.controller.is_loading:
            await asyncio.sleep(0.05)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def _handle_command(app: AssistantApp, text: str, out: TextIO) -> bool:
    """Run a slash command; return ``False`` when the session should end."""

    panel = app.panel
    command, _, argument = text.partition(" ")
    argument = argument.strip()
    if command in {"/quit", "/exit"}:
        return False
    if command == "/help":
        out.write(_HELP_TEXT + "\n")
    elif command == "/new":
        panel.new_conversation()
        out.write("Started a new conversation.\n")
    elif command == "/clear":
        panel.clear()
        out.write("Cleared.\n")
    elif command == "/history":
        items = panel.history_items()
        if not items:
            out.write("No saved conversations.\n")
        for item in items:
            out.write(f"{item.index:>3}. {item.summary} ({item.message_count} messages, {item.updated_at})\n")
    elif command in {"/open", "/delete"}:
        index = _parse_index(argument)
        if index is None:
            out.write(f"Usage: {command} N\n")
        elif command == "/open" and panel.open_history_item(index):
            _print_transcript(app, out)
        elif command == "/delete" and panel.delete_history_item(index):
            out.write(f"Deleted conversation #{index}.\n")
    elif command == "/clear-history":
        if panel.clear_history():
            out.write("History cleared.\n")
    elif command == "/apply":
        response = panel.apply_response()
        if response is not None:
            out.write(f"Prompt set to the last reply ({len(response)} chars).\n")
    elif command == "/preprompt":
        panel.set_preprompt(argument)
    elif command == "/scope":
        out.write(f"Settings scope: {panel.toggle_scope()}\n")
    elif command == "/apikey":
        panel.set_api_key(argument or None)
    elif command == "/debug":
        enabled = panel.toggle_debug()
        logging_utils.set_debug(enabled or app.config.debug)
        out.write(f"Debug logging {'on' if enabled else 'off'}.\n")
    else:
        out.write(f"Unknown command {command}; try /help\n")
    return True


def _parse_index(value: str) -> int | None:
    try:
        return int(value, 10)
    except ValueError:
        return None


def _print_status(event: StatusMessage, out: TextIO) -> None:
    prefix = {"error": "!", "warning": "?"}.get(event.level, "-")
    out.write(f"{prefix} {event.message}\n")


def _print_transcript(app: AssistantApp, out: TextIO) -> None:
    for message in app.panel.messages:
        out.write(_format_message(message.role, message.content))


def _print_outcome(app: AssistantApp, pending: PendingRequest, out: TextIO) -> None:
    if pending.status is RequestPhase.CANCELLED:
        out.write(f"(cancelled) {pending.submitted_prompt}\n")
        return
    messages = app.panel.messages
    if messages and messages[-1].role != "user":
        out.write(_format_message(messages[-1].role, messages[-1].content))


def _format_message(role: str, content: str) -> str:
    label = {"user": "you", "assistant": "mentor", "error": "error"}.get(role, role)
    return f"{label}> {content}\n"


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="keymentor",
        description="Chat with an assistant about the keyboard shortcuts in your setup.",
    )
    parser.add_argument(
        "--restore",
        choices=("never", "session", "always"),
        help="How to resume the previous conversation on start.",
    )
    parser.add_argument(
        "--data-dir",
        metavar="PATH",
        help="Override the default ~/.keymentor data directory.",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective configuration (with secrets redacted) and exit.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override a configuration value (repeatable).",
    )
    return parser.parse_args(argv)


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    known = AssistantConfig.__dataclass_fields__  # type: ignore[attr-defined]
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in known:
            raise ValueError(f"Unknown setting '{key}'.")
        overrides[key] = coerce_field(key, raw_value.strip())
    return overrides


def _dump_settings(
    config: AssistantConfig,
    settings: SettingsStore,
    *,
    overrides: Dict[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    payload = config.to_dict()
    payload["api_key"] = redact_secret(payload.get("api_key"))
    scope = settings.get_selected_scope()
    current = settings.load(scope)
    output = {
        "config": payload,
        "settings": {
            "scope": scope,
            "preprompt": current.preprompt,
            "api_key": redact_secret(current.api_key),
            "debug_enabled": current.debug_enabled,
        },
        "meta": {
            "global_settings_path": str(settings.global_path),
            "cli_overrides": sorted(overrides.keys()),
            "environment_variables": _active_env_overrides(),
        },
    }
    json.dump(output, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("KEYMENTOR_"))


if __name__ == "__main__":  # pragma: no cover
    main()
