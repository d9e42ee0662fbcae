"""Single-field extractors for pipeline log lines.

Each function is total: an unrecognized line yields ``None`` so one odd
line never aborts a stream.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone

SESSION_ID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
    re.IGNORECASE,
)

# "MurfTTSService#20: Generating TTS [text]" and "Generating TTS: [text]"
TTS_PATTERNS = (
    re.compile(r"Generating TTS \[(.+)\]"),
    re.compile(r"Generating TTS:\s*\[(.+)\]"),
)

# "2026-01-29 05:06:53.714 | DEBUG | ..."
TIMESTAMP_PATTERN = re.compile(r"(\d{4}-\d{2}-\d{2})\s+(\d{2}:\d{2}:\d{2}\.\d{3})")

CONTEXT_MARKER = "context ["
TTS_MARKER = "Generating TTS"


def extract_session_id(line: str) -> str | None:
    """Return the first UUID-shaped substring of *line*, or ``None``."""
    if not line or not isinstance(line, str):
        return None
    match = SESSION_ID_PATTERN.search(line)
    return match.group(0) if match else None


def parse_tts_log(line: str) -> str | None:
    """Return the bracketed text of a ``Generating TTS`` line, or ``None``."""
    if not line or TTS_MARKER not in line:
        return None
    for pattern in TTS_PATTERNS:
        match = pattern.search(line)
        if match:
            return match.group(1)
    return None


def extract_timestamp(line: str) -> datetime | None:
    """Parse the ``YYYY-MM-DD HH:MM:SS.mmm`` stamp embedded in *line*.

    The pipeline writes UTC, so the result is tz-aware UTC.
    """
    if not line:
        return None
    match = TIMESTAMP_PATTERN.search(line)
    if not match:
        return None
    try:
        parsed = datetime.strptime(
            f"{match.group(1)} {match.group(2)}", "%Y-%m-%d %H:%M:%S.%f"
        )
    except ValueError:
        return None
    return parsed.replace(tzinfo=timezone.utc)


def is_context_line(line: str) -> bool:
    return bool(line) and CONTEXT_MARKER in line


def is_tts_line(line: str) -> bool:
    return bool(line) and TTS_MARKER in line
