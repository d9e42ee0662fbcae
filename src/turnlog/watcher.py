"""Log tailer — follows growing log files using watchdog."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .scanner import LOG_EXTENSIONS

logger = logging.getLogger(__name__)


class _TailHandler(FileSystemEventHandler):
    """Read bytes appended to log files and dispatch complete lines."""

    def __init__(
        self,
        callback: Callable[[Path, str], None],
        files: set[Path],
        dirs: set[Path],
        extensions: tuple[str, ...] = LOG_EXTENSIONS,
    ) -> None:
        self._callback = callback
        self._files = files
        self._dirs = dirs
        self._extensions = extensions
        self._offsets: dict[Path, int] = {}
        self._lock = threading.Lock()

    def _is_tracked(self, path: Path) -> bool:
        if path in self._files:
            return True
        return path.suffix.lower() in self._extensions and any(
            d in path.parents for d in self._dirs
        )

    def seek_end(self, path: Path) -> None:
        """Skip everything already in *path*."""
        with self._lock:
            self._offsets[path] = path.stat().st_size if path.exists() else 0

    def read_appended(self, path: Path) -> list[str]:
        """Return complete lines written to *path* since the last read.

        A trailing partial line is left for the next call. A file that shrank
        (rotated or truncated) is read again from the start.
        """
        with self._lock:
            offset = self._offsets.get(path, 0)
            try:
                size = path.stat().st_size
            except FileNotFoundError:
                self._offsets.pop(path, None)
                return []
            if size < offset:
                logger.info("%s was truncated, reading from start", path)
                offset = 0
            if size == offset:
                return []
            with path.open("rb") as fh:
                fh.seek(offset)
                data = fh.read(size - offset)
            end = data.rfind(b"\n")
            if end == -1:
                return []
            self._offsets[path] = offset + end + 1
        text = data[: end + 1].decode("utf-8", errors="replace")
        return [line for line in text.splitlines() if line.strip()]

    def _dispatch(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        path = Path(str(event.src_path)).resolve()
        if not self._is_tracked(path):
            return
        for line in self.read_appended(path):
            self._callback(path, line)

    def on_created(self, event: FileSystemEvent) -> None:
        logger.debug("File created: %s", event.src_path)
        self._dispatch(event)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._dispatch(event)


class LogTailer:
    """Follow log files and directories, calling back once per new line.

    Parameters
    ----------
    paths:
        Log files or directories to follow.
    callback:
        Called with ``(file_path, line)`` for every complete line appended.
    from_start:
        Replay existing content of named files on ``start()`` instead of
        only following new writes.
    """

    def __init__(
        self,
        paths: list[str | Path],
        callback: Callable[[Path, str], None],
        *,
        from_start: bool = False,
    ) -> None:
        self._paths = [Path(p).expanduser().resolve() for p in paths]
        files = {p for p in self._paths if p.is_file()}
        dirs = {p for p in self._paths if p.is_dir()}
        self._handler = _TailHandler(callback, files, dirs)
        self._callback = callback
        self._from_start = from_start
        self._observer = Observer()

    @property
    def handler(self) -> _TailHandler:
        return self._handler

    def start(self) -> None:
        """Start following in a background thread."""
        for p in self._paths:
            if p.is_file():
                if self._from_start:
                    for line in self._handler.read_appended(p):
                        self._callback(p, line)
                else:
                    self._handler.seek_end(p)
                self._observer.schedule(self._handler, str(p.parent), recursive=False)
                logger.info("Following %s", p)
            elif p.is_dir():
                for child in p.rglob("*"):
                    if child.is_file() and child.suffix.lower() in LOG_EXTENSIONS:
                        self._handler.seek_end(child.resolve())
                self._observer.schedule(self._handler, str(p), recursive=True)
                logger.info("Following log files under %s", p)
        self._observer.start()

    def stop(self) -> None:
        """Stop following."""
        self._observer.stop()
        self._observer.join()

    def __enter__(self) -> LogTailer:
        self.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self.stop()
