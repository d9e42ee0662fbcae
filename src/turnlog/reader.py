"""Log file reader — turn exported pipeline logs into ``LogLine`` objects.

Two shapes are accepted, mixed freely within one file:

* JSON records as returned by the log API, e.g.
  ``{"timestamp": "2026-01-28T09:00:23.557Z", "log": "..."}``
  (``"message"`` is accepted in place of ``"log"``);
* plain text lines, timestamped from their ``YYYY-MM-DD HH:MM:SS.mmm`` prefix.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from .extract import extract_timestamp
from .models import LogLine, utcnow


def parse_log_record(text: str, *, default_timestamp: datetime | None = None) -> LogLine | None:
    """Parse one record. Blank lines and JSON without a log body give ``None``."""
    text = text.strip()
    if not text:
        return None

    if text.startswith("{"):
        try:
            obj = json.loads(text)
        except json.JSONDecodeError:
            obj = None
        if isinstance(obj, dict):
            body = obj.get("log") or obj.get("message") or ""
            if not isinstance(body, str) or not body.strip():
                return None
            timestamp = (
                _parse_iso(obj.get("timestamp"))
                or extract_timestamp(body)
                or default_timestamp
                or utcnow()
            )
            return LogLine(raw_text=body, timestamp=timestamp)

    timestamp = extract_timestamp(text) or default_timestamp or utcnow()
    return LogLine(raw_text=text, timestamp=timestamp)


def read_log_file(path: str | Path) -> list[LogLine]:
    """Read every record of a log export. Missing files give ``[]``.

    Records without a timestamp of their own inherit the previous one, so
    file order is preserved when lines are later sorted by time.
    """
    path = Path(path)
    if not path.exists():
        return []

    lines: list[LogLine] = []
    last: datetime | None = None
    for raw in path.read_text(encoding="utf-8", errors="replace").splitlines():
        line = parse_log_record(raw, default_timestamp=last)
        if line is None:
            continue
        last = line.timestamp
        lines.append(line)
    return lines


def _parse_iso(value: object) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
