"""Tests for the session merge reconciler."""

from datetime import datetime, timedelta, timezone

from turnlog.models import ContextSnapshot, ParsedMessage, Role, SessionState, TTSEvent
from turnlog.reconciler import SessionReconciler
from turnlog.store import EvictionPolicy, SessionStore

SID = "fa0489e4-b49c-4bc0-a116-4953c784ea6d"
T0 = datetime(2026, 1, 28, 9, 0, 23, 557000, tzinfo=timezone.utc)

FARM_MESSAGES = [
    ParsedMessage(Role.USER, "Tell me about your company."),
    ParsedMessage(Role.ASSISTANT, "Farm Vaidya is a team of agriculture experts..."),
    ParsedMessage(Role.USER, "Who is the CEO?"),
]


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


def tts(text: str, seconds: float) -> TTSEvent:
    return TTSEvent(text=text, timestamp=at(seconds))


def make() -> SessionReconciler:
    return SessionReconciler(SessionStore())


def test_merge_tts_into_last_turn():
    rec = make()
    rec.ingest_context(SID, ContextSnapshot(FARM_MESSAGES, captured_at=T0))
    rec.ingest_tts(SID, tts("The CEO of Farm Vaidya is Dr. Ramadugu Praveen.", 1.57))
    rec.ingest_tts(
        SID, tts("He has extensive experience in horticulture and agricultural science.", 1.572)
    )

    turns = rec.finalize(SID)
    assert len(turns) == 2
    assert turns[0].assistant_message == "Farm Vaidya is a team of agriculture experts..."
    assert turns[1].assistant_message == (
        "The CEO of Farm Vaidya is Dr. Ramadugu Praveen. "
        "He has extensive experience in horticulture and agricultural science."
    )
    assert rec.state(SID) is SessionState.MERGED


def test_finalize_is_idempotent():
    rec = make()
    rec.ingest_context(SID, ContextSnapshot(FARM_MESSAGES, captured_at=T0))
    rec.ingest_tts(SID, tts("Dr. Praveen.", 2))
    first = rec.finalize(SID)
    second = rec.finalize(SID)
    assert first == second


def test_existing_reply_never_overwritten():
    rec = make()
    msgs = FARM_MESSAGES[:2]
    rec.ingest_context(SID, ContextSnapshot(msgs, captured_at=T0))
    rec.ingest_tts(SID, tts("Something else entirely.", 3))
    turns = rec.finalize(SID)
    assert turns[-1].assistant_message == "Farm Vaidya is a team of agriculture experts..."


def test_tts_sorted_by_timestamp():
    rec = make()
    rec.ingest_context(SID, ContextSnapshot(FARM_MESSAGES, captured_at=T0))
    rec.ingest_tts(SID, tts("second", 5))
    rec.ingest_tts(SID, tts("first", 4))
    assert rec.finalize(SID)[-1].assistant_message == "first second"


def test_tts_before_context_ignored():
    rec = make()
    rec.ingest_tts(SID, tts("Welcome to Farm Vaidya!", -5))
    rec.ingest_context(SID, ContextSnapshot(FARM_MESSAGES, captured_at=T0))
    rec.ingest_tts(SID, tts("Same timestamp as context.", 0))
    assert rec.finalize(SID)[-1].assistant_message is None


def test_no_context_means_no_turns():
    rec = make()
    rec.ingest_tts(SID, tts("hello", 1))
    assert rec.finalize(SID) == []
    assert rec.state(SID) is SessionState.EMPTY
    assert rec.finalize("unknown-session") == []


def test_empty_turn_list_is_noop():
    rec = make()
    rec.ingest_context(SID, ContextSnapshot([], captured_at=T0))
    rec.ingest_tts(SID, tts("orphan", 1))
    assert rec.finalize(SID) == []


def test_new_context_supersedes_and_drops_older_tts():
    store = SessionStore()
    rec = SessionReconciler(store)
    rec.ingest_context(SID, ContextSnapshot(FARM_MESSAGES, captured_at=T0))
    rec.ingest_tts(SID, tts("Reply to the CEO question.", 1))
    rec.finalize(SID)

    newer = FARM_MESSAGES + [
        ParsedMessage(Role.ASSISTANT, "Reply to the CEO question."),
        ParsedMessage(Role.USER, "Where are you based?"),
    ]
    rec.ingest_context(SID, ContextSnapshot(newer, captured_at=at(10)))
    assert rec.state(SID) is SessionState.AWAITING_MERGE
    assert store.get(SID).pending_tts == []
    assert store.get(SID).dropped_tts == 1

    rec.ingest_tts(SID, tts("In Hyderabad.", 11))
    turns = rec.finalize(SID)
    assert [t.turn_id for t in turns] == [1, 2, 3]
    assert turns[1].assistant_message == "Reply to the CEO question."
    assert turns[2].assistant_message == "In Hyderabad."


def test_tts_after_finalize_merges_on_next_finalize():
    rec = make()
    rec.ingest_context(SID, ContextSnapshot(FARM_MESSAGES, captured_at=T0))
    assert rec.finalize(SID)[-1].assistant_message is None
    rec.ingest_tts(SID, tts("Late reply.", 3))
    assert rec.finalize(SID)[-1].assistant_message == "Late reply."


def test_returned_turns_are_copies():
    rec = make()
    rec.ingest_context(SID, ContextSnapshot(FARM_MESSAGES, captured_at=T0))
    rec.finalize(SID)[-1].assistant_message = "tampered"
    rec.ingest_tts(SID, tts("real", 1))
    assert rec.finalize(SID)[-1].assistant_message == "real"


def test_prefer_universal_keeps_universal_snapshot():
    rec = SessionReconciler(SessionStore(), prefer_universal=True)
    rec.ingest_context(SID, ContextSnapshot(FARM_MESSAGES, captured_at=T0, universal=True))
    rec.ingest_context(
        SID,
        ContextSnapshot([ParsedMessage(Role.USER, "partial")], captured_at=at(1)),
    )
    assert len(rec.finalize(SID)) == 2


def test_sessions_are_independent():
    other = "11111111-2222-3333-4444-555555555555"
    rec = make()
    rec.ingest_context(SID, ContextSnapshot(FARM_MESSAGES, captured_at=T0))
    rec.ingest_context(other, ContextSnapshot(FARM_MESSAGES[:1], captured_at=T0))
    rec.ingest_tts(other, tts("Other reply.", 1))
    assert rec.finalize(SID)[-1].assistant_message is None
    assert rec.finalize(other)[-1].assistant_message == "Other reply."


def test_evict_expired_finalizes_and_removes():
    store = SessionStore(EvictionPolicy(max_idle=timedelta(seconds=30)))
    rec = SessionReconciler(store)
    rec.ingest_context(SID, ContextSnapshot(FARM_MESSAGES, captured_at=T0))
    rec.ingest_tts(SID, tts("Dr. Praveen.", 2))

    assert rec.evict_expired(now=at(10)) == {}
    evicted = rec.evict_expired(now=at(40))
    assert list(evicted) == [SID]
    assert evicted[SID][-1].assistant_message == "Dr. Praveen."
    assert SID not in store
