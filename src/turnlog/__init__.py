"""turnlog — conversation reconstruction from voice pipeline logs."""

from .assembler import assemble_turns
from .cleaner import clean_user_message
from .context import parse_context_log
from .core import ConversationEngine, normalize_lines
from .extract import extract_session_id, parse_tts_log
from .models import (
    ContextSnapshot,
    Conversation,
    LogLine,
    ParsedMessage,
    Role,
    SessionAccumulator,
    SessionState,
    TTSEvent,
    Turn,
)
from .reconciler import SessionReconciler
from .store import EvictionPolicy, SessionStore

__all__ = [
    "ContextSnapshot",
    "Conversation",
    "ConversationEngine",
    "EvictionPolicy",
    "LogLine",
    "ParsedMessage",
    "Role",
    "SessionAccumulator",
    "SessionReconciler",
    "SessionState",
    "SessionStore",
    "TTSEvent",
    "Turn",
    "assemble_turns",
    "clean_user_message",
    "extract_session_id",
    "normalize_lines",
    "parse_context_log",
    "parse_tts_log",
]
