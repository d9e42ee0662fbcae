"""Tests for turn assembly."""

from datetime import datetime, timezone

from turnlog.assembler import assemble_turns
from turnlog.context import parse_context_log
from turnlog.models import ParsedMessage, Role

T0 = datetime(2026, 1, 28, 9, 0, 23, tzinfo=timezone.utc)


def user(text):
    return ParsedMessage(Role.USER, text)


def bot(text):
    return ParsedMessage(Role.ASSISTANT, text)


def test_farm_example_two_turns():
    line = (
        "context [{'role': 'system', 'content': '...'}, "
        "{'role': 'user', 'content': 'Tell me about your company.'}, "
        "{'role': 'assistant', 'content': 'Farm Vaidya is a team of agriculture experts...'}, "
        "{'role': 'user', 'content': 'Who is the CEO?'}]"
    )
    turns = assemble_turns(parse_context_log(line), T0)
    assert len(turns) == 2
    assert turns[0].turn_id == 1
    assert turns[0].user_message == "Tell me about your company."
    assert turns[0].assistant_message == "Farm Vaidya is a team of agriculture experts..."
    assert turns[1].turn_id == 2
    assert turns[1].user_message == "Who is the CEO?"
    assert turns[1].assistant_message is None
    assert all(t.timestamp == T0 for t in turns)


def test_numbering_ignores_system_and_orphan_assistant():
    messages = [
        ParsedMessage(Role.SYSTEM, "prompt"),
        bot("Welcome!"),
        bot("How can I help?"),
        user("Hi"),
        bot("Hello"),
        ParsedMessage(Role.SYSTEM, "reminder"),
        user("Price of DAP?"),
    ]
    turns = assemble_turns(messages, T0)
    assert [t.turn_id for t in turns] == [1, 2]
    assert turns[0].assistant_message == "Hello"
    assert turns[1].assistant_message is None


def test_empty_user_turn_dropped_without_consuming_id():
    messages = [
        user("   "),
        bot("Sorry, I didn't catch that."),
        user("Weather tomorrow?"),
        bot("Rain expected."),
    ]
    turns = assemble_turns(messages, T0)
    assert len(turns) == 1
    assert turns[0].turn_id == 1
    assert turns[0].user_message == "Weather tomorrow?"
    assert turns[0].assistant_message == "Rain expected."


def test_user_message_is_cleaned():
    kb = '[KNOWLEDGE BASE CONTEXT]\n```json\n{"x": 1}\n```\nWhat is the price of urea?'
    turns = assemble_turns([user(kb)], T0)
    assert turns[0].user_message == "What is the price of urea?"


def test_consecutive_users_each_open_a_turn():
    turns = assemble_turns([user("a"), user("b"), bot("reply")], T0)
    assert [(t.turn_id, t.user_message, t.assistant_message) for t in turns] == [
        (1, "a", None),
        (2, "b", "reply"),
    ]


def test_default_timestamp_is_aware():
    turns = assemble_turns([user("hi")])
    assert turns[0].timestamp.tzinfo is not None


def test_empty_input():
    assert assemble_turns([], T0) == []
