"""Tests for ConnectionSession event dispatch and lifecycle."""

import asyncio
import json

import pytest

from conftest import settle
from livechat.chat.errors import NotAuthenticated, NotConnected, TransportFailure
from livechat.chat.models import (
    ConnectionState,
    DonationMessage,
    Identity,
    SendKind,
    StandardMessage,
    SystemMessage,
    SystemStyle,
)
from livechat.chat.session import CHAT_CLEARED_TEXT, ConnectionSession


class _Recorder:
    """Collects every signal a session emits, in order."""

    def __init__(self, session: ConnectionSession):
        self.events: list[tuple[str, object]] = []
        session.message_appended.connect(lambda m: self.events.append(("message", m)))
        session.log_cleared.connect(lambda: self.events.append(("cleared", None)))
        session.self_affected.connect(lambda e: self.events.append(("self", e)))
        session.state_changed.connect(lambda s: self.events.append(("state", s)))
        session.error.connect(lambda text: self.events.append(("error", text)))

    def of(self, kind: str) -> list:
        return [value for name, value in self.events if name == kind]


@pytest.fixture
def session(qt_app, transports):
    return ConnectionSession(transports)


def test_open_sets_connecting_then_connected(session, transports, viewer):
    rec = _Recorder(session)

    async def run():
        session.open("chan1", viewer)
        assert session.state == ConnectionState.CONNECTING
        transports.last.feed("connecting")
        transports.last.feed("connected")
        await settle()
        await session.close()

    asyncio.run(run())
    # Repeated connecting does not re-emit
    assert rec.of("state") == [
        ConnectionState.CONNECTING,
        ConnectionState.CONNECTED,
        ConnectionState.DISCONNECTED,
    ]
    assert transports.last.channel_id == "chan1"
    assert transports.last.identity == viewer


def test_chat_message_appended(session, transports, viewer):
    rec = _Recorder(session)

    async def run():
        session.open("chan1", viewer)
        transports.last.feed(
            "chat-message",
            {
                "id": "m1",
                "author": {"id": "u2", "username": "bob", "displayName": "Bob", "color": "#f00"},
                "text": "hi <emote:e1>",
                "emotes": [{"id": "e1", "code": ":smile:"}],
                "badges": [{"id": "mod", "name": "Moderator"}],
                "timestamp": "2025-01-01T00:00:00Z",
            },
        )
        await settle()
        await session.close()

    asyncio.run(run())
    [msg] = rec.of("message")
    assert isinstance(msg, StandardMessage)
    assert msg.id == "m1"
    assert msg.author.label == "Bob"
    assert msg.author.color == "#f00"
    assert msg.emotes[0].code == ":smile:"
    assert msg.badges[0].name == "Moderator"


def test_string_author(session, transports, viewer):
    rec = _Recorder(session)

    async def run():
        session.open("chan1", viewer)
        transports.last.feed("chat-message", {"id": "m1", "author": "carol", "text": "yo"})
        await settle()

    asyncio.run(run())
    assert rec.of("message")[0].author.username == "carol"


def test_donation_id_is_namespaced(session, transports, viewer):
    rec = _Recorder(session)

    async def run():
        session.open("chan1", viewer)
        transports.last.feed(
            "donation",
            {"id": "42", "author": "bob", "amount": 100, "text": "gg", "effects": {"confetti": 1}},
        )
        await settle()

    asyncio.run(run())
    [msg] = rec.of("message")
    assert isinstance(msg, DonationMessage)
    assert msg.id == "donation_42"
    assert msg.amount == 100
    assert msg.effects == {"confetti": 1}


def test_system_message_severity(session, transports, viewer):
    rec = _Recorder(session)

    async def run():
        session.open("chan1", viewer)
        transports.last.feed("system-message", {"content": "Slow mode on", "severity": "warning"})
        transports.last.feed("system-message", {"content": "Odd", "severity": "purple"})
        await settle()

    asyncio.run(run())
    first, second = rec.of("message")
    assert first.content == "Slow mode on"
    assert first.style == SystemStyle.WARNING
    assert second.style == SystemStyle.INFO


def test_timeout_of_other_user(session, transports, viewer):
    rec = _Recorder(session)

    async def run():
        session.open("chan1", viewer)
        transports.last.feed(
            "user-timeout",
            {"userId": "u9", "username": "troll", "durationSeconds": 600, "reason": "spam"},
        )
        transports.last.feed("user-timeout", {"userId": "u9", "username": "troll", "duration": 60})
        await settle()

    asyncio.run(run())
    first, second = rec.of("message")
    assert first.content == "troll has been timed out for 600 seconds: spam."
    assert first.style == SystemStyle.WARNING
    assert second.content == "troll has been timed out for 60 seconds."
    assert rec.of("self") == []


def test_self_targeted_ban(session, transports, viewer):
    rec = _Recorder(session)

    async def run():
        session.open("chan1", viewer)
        transports.last.feed("user-ban", {"userId": "u1", "username": "viewer", "reason": "rude"})
        await settle()

    asyncio.run(run())
    [msg] = rec.of("message")
    assert isinstance(msg, SystemMessage)
    assert msg.content == "viewer has been banned: rude."
    assert msg.style == SystemStyle.ERROR
    [event] = rec.of("self")
    assert event.type == "ban"
    assert event.reason == "rude"
    # The log entry comes before the notification
    assert [name for name, _ in rec.events if name in ("message", "self")] == ["message", "self"]


def test_self_targeted_timeout(session, transports, viewer):
    rec = _Recorder(session)

    async def run():
        session.open("chan1", viewer)
        transports.last.feed("user-timeout", {"userId": "u1", "username": "viewer", "duration": 30})
        await settle()

    asyncio.run(run())
    [event] = rec.of("self")
    assert event.type == "timeout"
    assert event.duration == 30


def test_anonymous_viewer_is_never_self_affected(qt_app, transports):
    session = ConnectionSession(transports)
    rec = _Recorder(session)

    async def run():
        session.open("chan1", Identity())
        transports.last.feed("user-ban", {"userId": "", "username": "ghost"})
        await settle()

    asyncio.run(run())
    assert len(rec.of("message")) == 1
    assert rec.of("self") == []


def test_moderator_variants(session, transports, viewer):
    rec = _Recorder(session)

    async def run():
        session.open("chan1", viewer)
        transports.last.feed(
            "mod-timeout",
            {"targetUserId": "u9", "username": "troll", "duration": 10, "moderator": "mod1"},
        )
        transports.last.feed("mod-ban", {"targetUserId": "u1", "username": "viewer"})
        transports.last.feed("mod-clear")
        await settle()

    asyncio.run(run())
    messages = rec.of("message")
    assert messages[0].content == "troll has been timed out by mod1 for 10 seconds."
    assert messages[1].content == "viewer has been banned."
    assert messages[2].content == CHAT_CLEARED_TEXT
    assert len(rec.of("self")) == 1
    assert len(rec.of("cleared")) == 1


def test_chat_cleared_clears_then_appends(session, transports, viewer):
    rec = _Recorder(session)

    async def run():
        session.open("chan1", viewer)
        transports.last.feed("chat-cleared")
        await settle()

    asyncio.run(run())
    kinds = [name for name, _ in rec.events if name in ("cleared", "message")]
    assert kinds == ["cleared", "message"]
    [msg] = rec.of("message")
    assert msg.content == CHAT_CLEARED_TEXT
    assert msg.style == SystemStyle.INFO


def test_malformed_and_unknown_events_are_dropped(session, transports, viewer):
    rec = _Recorder(session)

    async def run():
        session.open("chan1", viewer)
        transports.last.feed("system-message", {"severity": "info"})
        transports.last.feed("donation", {"id": "1", "author": "bob", "amount": "lots"})
        transports.last.feed("poll-started", {"question": "?"})
        transports.last.feed("chat-message", {"id": "m2", "author": "bob", "text": "still here"})
        await settle()

    asyncio.run(run())
    [msg] = rec.of("message")
    assert msg.text == "still here"


def test_overflowing_numbers_do_not_stop_dispatch(session, transports, viewer):
    rec = _Recorder(session)
    huge = json.loads('{"id": "1", "author": "bob", "amount": 1e400}')

    async def run():
        session.open("chan1", viewer)
        transports.last.feed("connected")
        transports.last.feed("donation", huge)
        transports.last.feed("user-timeout", {"username": "amy", "durationSeconds": huge["amount"]})
        transports.last.feed("chat-message", {"id": "m2", "author": "bob", "text": "still here"})
        await settle()

    asyncio.run(run())
    assert [m.id for m in rec.of("message")] == ["m2"]
    assert session.state == ConnectionState.CONNECTED
    assert rec.of("error") == []


def test_error_event_disconnects(session, transports, viewer):
    rec = _Recorder(session)

    async def run():
        session.open("chan1", viewer)
        transports.last.feed("connected")
        transports.last.feed("error", {"message": "socket reset"})
        await settle()

    asyncio.run(run())
    assert rec.of("error") == ["socket reset"]
    assert session.state == ConnectionState.DISCONNECTED


def test_reopen_drops_old_transport_events(session, transports, viewer):
    rec = _Recorder(session)

    async def run():
        session.open("chanA", viewer)
        old = transports.last
        old.feed("chat-message", {"id": "a1", "author": "x", "text": "queued before switch"})
        session.open("chanB", viewer)
        appended_at_switch = len(rec.of("message"))
        old.feed("chat-message", {"id": "a2", "author": "x", "text": "late"})
        transports.last.feed("chat-message", {"id": "b1", "author": "y", "text": "from B"})
        await settle()
        return old, appended_at_switch

    old, appended_at_switch = asyncio.run(run())
    assert appended_at_switch == 0
    assert [m.id for m in rec.of("message")] == ["b1"]
    assert old.closed
    assert len(transports.created) == 2
    assert session.channel_id == "chanB"


def test_send_requires_connection(session, transports, viewer):
    async def run():
        with pytest.raises(NotConnected):
            await session.send(SendKind.CHAT_MESSAGE, {"text": "hi"})
        session.open("chan1", viewer)
        with pytest.raises(NotConnected):
            await session.send(SendKind.CHAT_MESSAGE, {"text": "hi"})

    asyncio.run(run())


def test_send_requires_authentication(qt_app, transports):
    session = ConnectionSession(transports)

    async def run():
        session.open("chan1", Identity(username="lurker"))
        transports.last.feed("connected")
        await settle()
        with pytest.raises(NotAuthenticated):
            await session.send("chat-message", {"text": "hi"})

    asyncio.run(run())
    assert transports.last.sent == []


def test_send_emits_on_transport(session, transports, viewer):
    async def run():
        session.open("chan1", viewer)
        transports.last.feed("connected")
        await settle()
        await session.send(SendKind.MOD_BAN, {"targetUserId": "u9"})

    asyncio.run(run())
    assert transports.last.sent == [("mod-ban", {"targetUserId": "u9"})]


def test_send_transport_failure_propagates(session, transports, viewer):
    async def run():
        session.open("chan1", viewer)
        transports.last.feed("connected")
        await settle()
        transports.last.fail_emit = True
        with pytest.raises(TransportFailure):
            await session.send(SendKind.CHAT_MESSAGE, {"text": "hi"})
        # Session keeps working
        transports.last.feed("chat-message", {"id": "m1", "author": "bob", "text": "ok"})
        await settle()

    rec = _Recorder(session)
    asyncio.run(run())
    assert len(rec.of("message")) == 1
    assert session.state == ConnectionState.CONNECTED


def test_close_is_idempotent(session, transports, viewer):
    async def run():
        session.open("chan1", viewer)
        await session.close()
        await session.close()

    asyncio.run(run())
    assert transports.last.closed
    assert session.state == ConnectionState.DISCONNECTED


def test_failing_factory_reports_error(qt_app, viewer):
    def factory(channel_id, identity):
        raise OSError("no route")

    session = ConnectionSession(factory)
    rec = _Recorder(session)

    async def run():
        session.open("chan1", viewer)

    asyncio.run(run())
    assert session.state == ConnectionState.DISCONNECTED
    assert rec.of("error") == ["Failed to connect to chat: no route"]


def test_reopen_without_event_loop_reports_error(session, transports, viewer):
    rec = _Recorder(session)

    async def run():
        session.open("chan1", viewer)

    asyncio.run(run())
    session.open("chan2", viewer)

    assert session.state == ConnectionState.DISCONNECTED
    [error] = rec.of("error")
    assert error.startswith("Failed to connect to chat:")
    assert session.channel_id == "chan2"
