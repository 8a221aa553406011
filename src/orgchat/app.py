"""Command-line entry point: create threads, respond at a node, append turns."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Sequence, TextIO

from .ai.client import AIClient, ClientSettings
from .ai.transport import RecordingTransport, StreamingTransport, Transport
from .conversation.messages import RoleConfiguration
from .conversation.quoting import RegionQuotingPipeline, SourceContext
from .conversation.responder import ThreadResponder
from .conversation.threads import ThreadStore, append_top_level_heading
from .core.ranges import LineRange
from .documents.org_document import OrgDocument
from .errors import ConfigurationError, ErrorCode, OrgChatError
from .services.settings import Settings, SettingsStore, coerce_setting, redact_secret
from .utils import logging as logging_utils
from .utils.file_io import read_text

LOGGER = logging.getLogger(__name__)

Handler = Callable[[argparse.Namespace, Settings], int]


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    level = logging.DEBUG if debug else logging.INFO
    log_path = logging_utils.setup_logging(level, force=force)
    LOGGER.debug("Logging to %s at %s", log_path, logging.getLevelName(level))


def build_transport(settings: Settings, *, dry_run: bool = False) -> tuple[Transport, AIClient | None]:
    """Return the transport for ``settings`` and the client it owns, if any."""

    if dry_run:
        return RecordingTransport(), None
    client = AIClient(ClientSettings.from_settings(settings))
    return StreamingTransport(client), client


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the ``orgchat`` console script; returns the exit status."""

    args = build_parser().parse_args(argv)
    debug = args.debug or os.environ.get("ORGCHAT_DEBUG", "").strip().lower() in {"1", "true", "yes", "on"}
    configure_logging(debug)

    try:
        overrides = parse_overrides(args.overrides)
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2

    settings_path = args.settings_path or os.environ.get("ORGCHAT_SETTINGS_PATH")
    store = SettingsStore(Path(settings_path).expanduser() if settings_path else None)
    try:
        settings = store.load(overrides=overrides)
        if args.dump_settings:
            dump_settings(settings, store, overrides=overrides)
            return 0
        if args.command is None:
            print("A command is required (new, respond, append).", file=sys.stderr)
            return 2
        if settings.debug_logging and not debug:
            configure_logging(True, force=True)
        handler: Handler = args.handler
        return handler(args, settings)
    except OrgChatError as exc:
        LOGGER.error("%s", exc)
        print(str(exc), file=sys.stderr)
        if exc.suggestion:
            print(exc.suggestion, file=sys.stderr)
        return 1


def parse_overrides(items: Sequence[str]) -> Dict[str, Any]:
    """Turn repeated ``KEY=VALUE`` arguments into typed settings overrides."""

    overrides: Dict[str, Any] = {}
    for item in items:
        key, sep, value = item.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ValueError(f"{item!r} must look like KEY=VALUE")
        overrides[key] = coerce_setting(key, value)
    return overrides


def dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    """Write the effective settings as JSON with the API key redacted."""

    payload = asdict(settings)
    payload["api_key"] = redact_secret(settings.api_key)
    meta = {
        "path": str(store.path),
        "secret_backend": store.vault.strategy,
        "cli_overrides": sorted(overrides),
        "environment_variables": sorted(name for name in os.environ if name.startswith("ORGCHAT_")),
        "log_path": str(logging_utils.get_log_path() or ""),
    }
    destination = stream or sys.stdout
    json.dump({"settings": payload, "meta": meta}, destination, indent=2)
    destination.write("\n")


def _cmd_new(args: argparse.Namespace, settings: Settings) -> int:
    seed: str | None = None
    if args.source:
        source = Path(args.source).expanduser()
        try:
            text = read_text(source)
        except OSError as exc:
            raise ConfigurationError(
                error_code=ErrorCode.FILE_UNREADABLE,
                message=f"Unable to read {source}: {exc.strerror or exc}",
                details={"path": str(source)},
            ) from exc
        if args.lines:
            try:
                text = LineRange.parse(args.lines).select(text)
            except ValueError as exc:
                print(f"Invalid --lines value: {exc}", file=sys.stderr)
                return 2
        context = SourceContext.from_path(source, language=args.language)
        seed = RegionQuotingPipeline.from_settings(settings).quote(text, context)
    created = ThreadStore.from_settings(settings).new_thread(RoleConfiguration.from_settings(settings), seed=seed)
    print(created.path)
    return 0


def _cmd_append(args: argparse.Namespace, settings: Settings) -> int:
    store = ThreadStore.from_settings(settings)
    document = store.open(args.file)
    cursor = append_top_level_heading(document, RoleConfiguration.from_settings(settings))
    store.save(document)
    LOGGER.info("Appended a top-level heading to %s; input goes at offset %s", document.metadata.path, cursor)
    return 0


def _cmd_respond(args: argparse.Namespace, settings: Settings) -> int:
    store = ThreadStore.from_settings(settings)
    document = store.open(args.file)
    transport, client = build_transport(settings, dry_run=args.dry_run)
    written = asyncio.run(_respond(document, args.line, settings, transport, client, store))
    if isinstance(transport, RecordingTransport):
        messages, _ = transport.calls[-1]
        json.dump([message.to_payload() for message in messages], sys.stdout, indent=2)
        sys.stdout.write("\n")
    else:
        LOGGER.info("Streamed %s character(s) into %s", written, document.metadata.path)
    return 0


async def _respond(
    document: OrgDocument,
    line: int | None,
    settings: Settings,
    transport: Transport,
    client: AIClient | None,
    store: ThreadStore,
) -> Any:
    try:
        node = document.node_at_line(line) if line is not None else document.last_node()
        handle = ThreadResponder().respond(document, node, RoleConfiguration.from_settings(settings), transport)
        return await handle.wait()
    finally:
        # Partial replies are kept, so save whatever reached the document.
        if document.dirty:
            store.save(document)
        if client is not None:
            await client.aclose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="orgchat",
        description="Hold branching LLM conversations inside Org outline files.",
    )
    parser.add_argument("--debug", action="store_true", help="Log debug output to the log file.")
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings (API key redacted) and exit.",
    )
    parser.add_argument("--settings-path", metavar="PATH", help="Settings file (default: ~/.orgchat/settings.json).")
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override a setting for this run; may be repeated.",
    )
    commands = parser.add_subparsers(dest="command")

    new = commands.add_parser("new", help="Create a thread file and print its path.")
    new.add_argument("--from", dest="source", metavar="FILE", help="Seed the thread with text quoted from FILE.")
    new.add_argument("--lines", metavar="START:END", help="Quote only these lines of FILE (1-based, inclusive).")
    new.add_argument("--language", help="Language name for the source block around quoted code.")
    new.set_defaults(handler=_cmd_new)

    respond = commands.add_parser("respond", help="Stream a reply under a node of FILE.")
    respond.add_argument("file", metavar="FILE")
    respond.add_argument("--line", type=int, help="1-based line inside the node to answer (default: last node).")
    respond.add_argument(
        "--dry-run",
        action="store_true",
        help="Open the reply nodes and print the request instead of calling the model.",
    )
    respond.set_defaults(handler=_cmd_respond)

    append = commands.add_parser("append", help="Append a top-level user heading to FILE.")
    append.add_argument("file", metavar="FILE")
    append.set_defaults(handler=_cmd_append)
    return parser


if __name__ == "__main__":  # pragma: no cover - manual invocation
    raise SystemExit(main())
