"""CLI interface for turnlog."""

from __future__ import annotations

import json
import logging
import sys
import threading
import time
from datetime import timedelta
from pathlib import Path

import click

from .models import Conversation, Turn


def _emit(conversations: list[Conversation], json_output: bool) -> None:
    if json_output:
        click.echo(
            json.dumps([c.to_dict() for c in conversations], indent=2, ensure_ascii=False)
        )
        return
    if not conversations:
        click.echo("No conversations found.")
        return
    for conv in conversations:
        click.echo(conv.to_markdown())


def _seconds(value: float | None) -> timedelta | None:
    return timedelta(seconds=value) if value else None


@click.group()
@click.version_option(package_name="turnlog")
@click.option("--verbose", "-v", count=True, help="Log INFO (-v) or DEBUG (-vv).")
def cli(verbose: int) -> None:
    """turnlog — rebuild voice-agent conversations from pipeline logs."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG if verbose > 1 else logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )


@cli.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True))
@click.option(
    "--format",
    "log_format",
    type=click.Choice(["auto", "context", "events"]),
    default="auto",
    help="How to rebuild turns.",
)
@click.option(
    "--prefer-universal",
    is_flag=True,
    envvar="TURNLOG_PREFER_UNIVERSAL",
    help="Keep universal context dumps over later plain ones.",
)
@click.option("--json-output", "-j", is_flag=True, help="Output as JSON.")
def replay(
    paths: tuple[str, ...], log_format: str, prefer_universal: bool, json_output: bool
) -> None:
    """Rebuild conversations from the log files in PATHS."""
    from .core import normalize_lines
    from .events import LogFormat
    from .reader import read_log_file
    from .scanner import scan_paths

    files = scan_paths(list(paths))
    if not files:
        raise click.UsageError("No log files found.")

    lines = []
    for path in files:
        lines.extend(read_log_file(path))

    fmt = None if log_format == "auto" else LogFormat(log_format)
    sessions = normalize_lines(lines, log_format=fmt, prefer_universal=prefer_universal)
    conversations = [Conversation(sid, turns) for sid, turns in sessions.items()]
    _emit(conversations, json_output)


@cli.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True))
@click.option(
    "--max-idle",
    type=float,
    default=60.0,
    show_default=True,
    envvar="TURNLOG_MAX_IDLE",
    help="Seconds without lines before a session is finalized.",
)
@click.option(
    "--max-age",
    type=float,
    default=None,
    envvar="TURNLOG_MAX_AGE",
    help="Seconds after its first line before a session is finalized.",
)
@click.option(
    "--prefer-universal",
    is_flag=True,
    envvar="TURNLOG_PREFER_UNIVERSAL",
    help="Keep universal context dumps over later plain ones.",
)
@click.option("--from-start", is_flag=True, help="Replay existing file content first.")
@click.option("--json-output", "-j", is_flag=True, help="Output as JSON.")
def follow(
    paths: tuple[str, ...],
    max_idle: float,
    max_age: float | None,
    prefer_universal: bool,
    from_start: bool,
    json_output: bool,
) -> None:
    """Follow PATHS and print each conversation once its session goes quiet."""
    from .core import ConversationEngine
    from .reader import parse_log_record
    from .store import EvictionPolicy
    from .watcher import LogTailer

    engine = ConversationEngine(
        eviction=EvictionPolicy(max_idle=_seconds(max_idle), max_age=_seconds(max_age)),
        prefer_universal=prefer_universal,
    )
    # The tailer thread ingests while the main loop evicts.
    lock = threading.Lock()

    def on_line(path: Path, text: str) -> None:
        line = parse_log_record(text)
        if line is None:
            return
        with lock:
            engine.ingest(line)

    def flush(finished: dict[str, list[Turn]]) -> None:
        conversations = [Conversation(sid, t) for sid, t in finished.items() if t]
        if conversations:
            _emit(conversations, json_output)

    tailer = LogTailer(list(paths), on_line, from_start=from_start)
    click.echo(f"Following {len(paths)} path(s)... (Ctrl+C to stop)", err=True)
    try:
        tailer.start()
        while True:
            time.sleep(1)
            with lock:
                finished = engine.evict_expired()
            flush(finished)
    except KeyboardInterrupt:
        click.echo("\nStopping.", err=True)
    finally:
        tailer.stop()
        with lock:
            finished = {sid: engine.reconciler.evict(sid) for sid in engine.sessions}
        flush(finished)


@cli.command()
@click.argument("line", required=False)
def inspect(line: str | None) -> None:
    """Show what turnlog extracts from a single LINE (stdin if omitted)."""
    from .assembler import assemble_turns
    from .context import parse_context_log
    from .extract import extract_session_id, parse_tts_log

    text = line if line is not None else sys.stdin.read()
    click.echo(f"Session: {extract_session_id(text) or '-'}")

    tts = parse_tts_log(text)
    if tts is not None:
        click.echo(f"TTS: {tts}")

    messages = parse_context_log(text)
    if messages:
        click.echo(f"Messages: {len(messages)}")
        for msg in messages:
            click.echo(f"  [{msg.role.value}] {msg.content[:200]}")
        for turn in assemble_turns(messages):
            reply = turn.assistant_message if turn.assistant_message is not None else "-"
            click.echo(f"Turn {turn.turn_id}: {turn.user_message!r} -> {reply!r}")
