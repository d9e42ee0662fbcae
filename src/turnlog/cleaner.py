"""Strip knowledge-base injection blocks from user messages.

The retrieval layer prepends a ``[KNOWLEDGE BASE CONTEXT]`` block (a fenced
JSON payload) to the user's words before they reach the model. Removal is
tiered; the first tier that gets rid of the marker wins:

1. marker through a ```` ```json ```` fence and its closing fence;
2. the same with backslash-escaped fences (```` \\`\\`\\`json ````);
3. the last non-empty line that is not a fence or ``---`` separator.
"""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

KB_MARKER = "[KNOWLEDGE BASE CONTEXT]"

_FENCED_BLOCK = re.compile(
    r"\[KNOWLEDGE BASE CONTEXT\].*?```json.*?```\s*", re.DOTALL
)
_ESCAPED_FENCED_BLOCK = re.compile(
    r"\[KNOWLEDGE BASE CONTEXT\].*?`?\\`\\`\\`json.*?`?\\`\\`\\`\s*", re.DOTALL
)
_NOISE_TOKENS = ("```", "---")


def clean_user_message(message: str) -> str:
    """Return *message* without its knowledge-base block.

    Messages without the marker are returned unchanged.
    """
    if not message or KB_MARKER not in message:
        return message

    cleaned = _FENCED_BLOCK.sub("", message, count=1)
    if KB_MARKER in cleaned:
        cleaned = _ESCAPED_FENCED_BLOCK.sub("", cleaned, count=1)
    if KB_MARKER in cleaned:
        logger.debug("KB block not fenced as expected, using last-line fallback")
        line = _last_plain_line(cleaned)
        if line is not None:
            return line
    return cleaned.strip()


def _last_plain_line(text: str) -> str | None:
    for line in reversed(text.split("\n")):
        line = line.strip()
        if line and not any(tok in line for tok in _NOISE_TOKENS):
            return line
    return None
