"""Reply preview resolution."""

from conftest import row

from pairchat.log import MessageLog
from pairchat.models.message import Message
from pairchat.replies import resolve_replies, snippet


def test_unresolved_until_target_arrives():
    log = MessageLog()
    log.upsert(Message.from_row(row("43", "B", "hello", 5, replied_to_message_id="42")))
    assert resolve_replies(log) == 0

    reply = log.find_by_id("43").reply_to
    assert reply.id == "42"
    assert not reply.resolved
    assert reply.sender == ""
    assert reply.snippet == ""

    log.upsert(Message.from_row(row("42", "A", "hi", 1)))
    assert resolve_replies(log) == 1

    reply = log.find_by_id("43").reply_to
    assert reply.resolved
    assert reply.sender == "A"
    assert reply.snippet == "hi"


def test_resolution_is_stable():
    log = MessageLog()
    log.upsert(Message.from_row(row("1", "A", "hi", 0)))
    log.upsert(Message.from_row(row("2", "B", "yo", 1, replied_to_message_id="1")))
    resolve_replies(log)
    assert resolve_replies(log) == 0


def test_target_that_never_arrives_stays_blank():
    log = MessageLog()
    log.upsert(Message.from_row(row("2", "B", "yo", 1, replied_to_message_id="gone")))
    for _ in range(3):
        resolve_replies(log)
    assert not log.find_by_id("2").reply_to.resolved


def test_snippet_truncates_long_content():
    assert snippet("short", 10) == "short"
    assert snippet("a" * 20, 10) == "a" * 10 + "…"
