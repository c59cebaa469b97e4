"""Command line entry point running trigger blocks in a Markdown file."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Mapping, Sequence, TextIO, get_args, get_origin, get_type_hints

from .ai.backends import GenerationBackend, OpenAIBackend, RelayBackend
from .ai.client import AIClient
from .editor.document_model import FileDocument
from .events import EventBus, UserEditOverwritten
from .reconcile.context import WorkspaceContext
from .reconcile.controller import TriggerController
from .reconcile.driver import ReconciliationDriver, ReconciliationResult
from .services.settings import Settings, SettingsStore, redact_secret
from .triggers.scanner import scan
from .utils import logging as logging_utils

_LOGGER = logging.getLogger(__name__)
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}


def configure_logging(debug: bool = False) -> Path:
    log_path = logging_utils.setup_logging(debug)
    _LOGGER.debug("Logging to %s (debug=%s)", log_path, debug)
    return log_path


def load_settings(
    path: Path | None = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        return active_store.load(overrides=overrides)
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        return Settings()


def build_backend(settings: Settings) -> GenerationBackend:
    if settings.backend == "relay":
        return RelayBackend(
            settings.relay_url,
            credential=settings.api_key,
            timeout=settings.request_timeout,
            headers=settings.default_headers,
        )
    return OpenAIBackend(AIClient(settings.client_settings()))


def build_controller(
    document: FileDocument,
    settings: Settings,
    *,
    context_paths: Sequence[Path | str] = (),
    backend: GenerationBackend | None = None,
    event_bus: EventBus | None = None,
    stream: TextIO | None = None,
) -> TriggerController:
    errors = stream or sys.stderr
    context = WorkspaceContext.from_paths([*settings.context_files, *context_paths])
    driver = ReconciliationDriver(
        document,
        backend or build_backend(settings),
        context=context,
        settings=settings,
        error_reporter=lambda message: print(f"error: {message}", file=errors),
        event_bus=event_bus,
    )
    return TriggerController(
        document,
        driver,
        debounce_seconds=settings.scan_debounce_seconds,
        event_bus=event_bus,
    )


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the ``quillstream`` console script."""

    args = _parse_cli_args(argv)
    debug = args.debug or _env_flag("QUILLSTREAM_DEBUG")
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("QUILLSTREAM_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    store = SettingsStore(resolved_path)
    try:
        overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2
    settings = load_settings(resolved_path, store=store, overrides=overrides or None)

    if args.dump_settings:
        _dump_settings(settings, store, overrides=overrides)
        return 0
    if args.file is None:
        print("A document path is required.", file=sys.stderr)
        return 2
    if settings.debug_logging and not debug:
        configure_logging(True)

    try:
        document = FileDocument(args.file)
    except (OSError, UnicodeDecodeError) as exc:
        print(f"Cannot open {args.file}: {exc}", file=sys.stderr)
        return 2

    if args.list or (args.line is None and not args.all):
        _print_triggers(document.get_current_text())
        return 0

    bus: EventBus = EventBus()
    bus.subscribe(UserEditOverwritten, _warn_overwrite)
    controller = build_controller(document, settings, context_paths=args.context, event_bus=bus)
    results = asyncio.run(_run(controller, line=args.line, run_all=args.all))
    if args.all:
        return 0 if all(result.ok for result in results) else 1
    return 0 if results and results[0].ok else 1


async def _run(
    controller: TriggerController, *, line: int | None, run_all: bool
) -> list[ReconciliationResult]:
    if run_all:
        return await controller.run_all()
    assert line is not None
    result = await controller.activate_line(line)
    if result is None:
        print(f"No trigger block covers line {line}.", file=sys.stderr)
        return []
    return [result]


def _print_triggers(text: str, stream: TextIO | None = None) -> None:
    destination = stream or sys.stdout
    triggers = scan(text)
    if not triggers:
        destination.write("No trigger blocks found.\n")
        return
    for trigger in triggers:
        headline = trigger.topic.split("\n", 1)[0]
        destination.write(
            f"{trigger.start_line}-{trigger.end_line}\t{trigger.kind.value}\t{headline}\n"
        )


def _warn_overwrite(event: UserEditOverwritten) -> None:
    _LOGGER.warning("Session %s overwrote an external edit to the file", event.session_id)


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="quillstream",
        description="Generate the ai-template / ai-write / ai-update blocks of a Markdown file in place.",
    )
    parser.add_argument("file", nargs="?", type=Path, help="Markdown document to edit.")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--list", action="store_true", help="List trigger blocks and exit.")
    mode.add_argument("--line", type=int, metavar="N", help="Run the block covering 0-based line N.")
    mode.add_argument("--all", action="store_true", help="Run every block top to bottom.")
    parser.add_argument(
        "--context",
        metavar="PATH",
        action="append",
        default=[],
        help="Extra file included in the prompt context (repeatable).",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.quillstream/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings for this run (repeatable).",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings (with secrets redacted) and exit.",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        overrides[key] = _coerce_value(type_hints.get(key, str), raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    target = _resolve_annotation(annotation)
    if target is bool:
        lowered = raw_value.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"Cannot coerce '{raw_value}' to a boolean.")
    if target is int:
        return int(raw_value, 10)
    if target is float:
        return float(raw_value)
    if target in (list, dict):
        try:
            return json.loads(raw_value)
        except json.JSONDecodeError as exc:
            raise ValueError(f"{target.__name__} overrides must be valid JSON") from exc
    if raw_value.lower() in {"none", "null"} and target is not str:
        return None
    return raw_value


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    if origin in {list, dict}:
        return origin
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    return args[0] if args else origin


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    payload = asdict(settings)
    payload["api_key"] = redact_secret(settings.api_key)
    output = {
        "settings": payload,
        "meta": {
            "path": str(store.path),
            "cli_overrides": sorted(overrides),
            "environment_variables": sorted(name for name in os.environ if name.startswith("QUILLSTREAM_")),
        },
    }
    json.dump(output, destination, indent=2)
    destination.write("\n")
