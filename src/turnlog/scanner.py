"""Discovery of exported and rotated pipeline log files."""

from __future__ import annotations

import os
from pathlib import Path

LOG_EXTENSIONS = (".log", ".jsonl", ".txt")


def is_log_file(path: Path, extensions: tuple[str, ...] = LOG_EXTENSIONS) -> bool:
    """True when any suffix of *path* is a log extension.

    Rotated files such as ``bot.log.1`` or ``bot.log.2026-01-28`` count.
    """
    return any(s.lower() in extensions for s in path.suffixes)


def scan_paths(
    paths: list[str | Path],
    *,
    extensions: tuple[str, ...] = LOG_EXTENSIONS,
    ignore_hidden: bool = True,
) -> list[Path]:
    """Collect log files under *paths*, oldest first.

    Files named explicitly are kept whatever their extension; directories are
    walked recursively and filtered with ``is_log_file``. Files are ordered by
    modification time so rotated logs replay in the order they were written.
    """
    found: dict[str, tuple[float, Path]] = {}

    for p in paths:
        root = Path(p).expanduser().resolve()
        if root.is_file():
            _add(root, found)
        elif root.is_dir():
            for dirpath, dirnames, filenames in os.walk(root):
                if ignore_hidden:
                    dirnames[:] = [d for d in dirnames if not d.startswith(".")]
                for fname in filenames:
                    if ignore_hidden and fname.startswith("."):
                        continue
                    fp = Path(dirpath) / fname
                    if is_log_file(fp, extensions):
                        _add(fp, found)

    return [fp for _, fp in sorted(found.values())]


def _add(fp: Path, found: dict[str, tuple[float, Path]]) -> None:
    real = str(fp.resolve())
    if real not in found:
        found[real] = (fp.stat().st_mtime, fp)
