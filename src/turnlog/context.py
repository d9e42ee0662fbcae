"""Context-dump parser.

The LLM service logs the conversation it is about to send as a Python list
repr::

    ... Generating chat from universal context [{'role': 'system', 'content':
    '...'}, {'role': 'user', 'content': "It's me"}, ...]

That is not JSON: values switch between single and double quotes depending
on their contents, and quotes inside text are only sometimes escaped.
``ContextScanner`` walks the payload as a small state machine::

    SEEK_ROLE_MARKER -> SEEK_CONTENT_KEY -> SCAN_CONTENT_VALUE -> SEEK_ROLE_MARKER

A quote closes a value only when it is followed by structural text
(``}``, ``, ``, ``}\\n`` or ``},``). A malformed entry is skipped or
truncated, never fatal.
"""

from __future__ import annotations

import logging
from enum import Enum

from .extract import CONTEXT_MARKER
from .models import ParsedMessage, Role

logger = logging.getLogger(__name__)

ROLE_MARKERS: dict[Role, str] = {
    Role.USER: "'role': 'user'",
    Role.ASSISTANT: "'role': 'assistant'",
}
ROLE_KEY = "'role':"
CONTENT_KEYS = ("'content': '", "'content': \"")
VALUE_TERMINATORS = ("}", ", ", "}\n", "},")

# How far to jump past a role marker that has no content key.
SKIP_OFFSET = 10


class ScanState(Enum):
    SEEK_ROLE_MARKER = "seek_role_marker"
    SEEK_CONTENT_KEY = "seek_content_key"
    SCAN_CONTENT_VALUE = "scan_content_value"
    DONE = "done"


class ContextScanner:
    """Character scanner over the text inside ``context [...]``.

    Parameters
    ----------
    payload:
        The array body, without the ``context [`` prefix.
    """

    def __init__(self, payload: str) -> None:
        self._text = payload
        self._pos = 0
        self._state = ScanState.SEEK_ROLE_MARKER
        self._role = Role.USER
        self._marker_pos = 0
        self._quote = "'"
        self._value_start = 0
        self.messages: list[ParsedMessage] = []

    @property
    def state(self) -> ScanState:
        return self._state

    def run(self) -> list[ParsedMessage]:
        """Scan to the end of the payload and return the messages found."""
        handlers = {
            ScanState.SEEK_ROLE_MARKER: self._seek_role_marker,
            ScanState.SEEK_CONTENT_KEY: self._seek_content_key,
            ScanState.SCAN_CONTENT_VALUE: self._scan_content_value,
        }
        while self._state is not ScanState.DONE:
            self._state = handlers[self._state]()
        return self.messages

    def _seek_role_marker(self) -> ScanState:
        nearest: tuple[int, Role] | None = None
        for role, marker in ROLE_MARKERS.items():
            idx = self._text.find(marker, self._pos)
            if idx != -1 and (nearest is None or idx < nearest[0]):
                nearest = (idx, role)
        if nearest is None:
            return ScanState.DONE
        self._marker_pos, self._role = nearest
        return ScanState.SEEK_CONTENT_KEY

    def _seek_content_key(self) -> ScanState:
        start = self._marker_pos + len(ROLE_MARKERS[self._role])
        limit = self._text.find(ROLE_KEY, start)
        if limit == -1:
            limit = len(self._text)

        found: tuple[int, str] | None = None
        for key in CONTENT_KEYS:
            idx = self._text.find(key, start)
            if idx != -1 and idx < limit and (found is None or idx < found[0]):
                found = (idx, key)

        if found is None:
            logger.debug(
                "No content key for %s entry at offset %d, skipping",
                self._role.value,
                self._marker_pos,
            )
            self._pos = self._marker_pos + SKIP_OFFSET
            return ScanState.SEEK_ROLE_MARKER

        idx, key = found
        self._quote = key[-1]
        self._value_start = idx + len(key)
        return ScanState.SCAN_CONTENT_VALUE

    def _scan_content_value(self) -> ScanState:
        text = self._text
        end = self._value_start
        escaped = False
        while end < len(text):
            char = text[end]
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == self._quote and text.startswith(VALUE_TERMINATORS, end + 1):
                break
            end += 1
        else:
            logger.debug(
                "Unterminated %s content at offset %d, keeping partial value",
                self._role.value,
                self._value_start,
            )

        content = unescape(text[self._value_start:end])
        self.messages.append(ParsedMessage(role=self._role, content=content))
        self._pos = end + 1
        return ScanState.SEEK_ROLE_MARKER


def unescape(value: str) -> str:
    """Undo the repr escaping of quotes and newlines."""
    return value.replace("\\'", "'").replace('\\"', '"').replace("\\n", "\n")


def extract_payload(line: str) -> str | None:
    """Return the text after ``context [`` without the closing bracket."""
    if not line:
        return None
    idx = line.find(CONTEXT_MARKER)
    if idx == -1:
        return None
    payload = line[idx + len(CONTEXT_MARKER):].rstrip()
    if payload.endswith("]"):
        payload = payload[:-1]
    return payload


def parse_context_log(line: str) -> list[ParsedMessage]:
    """Parse a context-dump line into ordered user/assistant messages.

    Returns an empty list when the line carries no ``context [`` payload.
    """
    payload = extract_payload(line)
    if payload is None:
        return []
    return ContextScanner(payload).run()
