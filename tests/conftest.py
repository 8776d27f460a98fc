"""Shared test fixtures for livechat tests."""

import asyncio

import pytest
from PySide6.QtCore import QCoreApplication

from livechat.chat.connections.base import BaseTransport
from livechat.chat.emotes.catalog import EmoteCatalog
from livechat.chat.emotes.provider import BaseEmoteProvider
from livechat.chat.emotes.recent import RecencyTracker
from livechat.chat.errors import RemoteFetchFailure, TransportFailure
from livechat.chat.models import Emote, EmoteTier, Identity, TransportEvent


class FakeEmoteProvider(BaseEmoteProvider):
    """In-memory provider that records every call."""

    def __init__(self, global_emotes=None, channel_emotes=None, tier_emotes=None, search=None):
        self.global_emotes = list(global_emotes or [])
        self.channel_emotes = dict(channel_emotes or {})
        self.tier_emotes = dict(tier_emotes or {})
        self.search_result = search
        self.fail = False
        self.calls: list[tuple[str, str]] = []

    def _check(self, name: str, arg: str = "") -> None:
        self.calls.append((name, arg))
        if self.fail:
            raise RemoteFetchFailure(f"{name} unavailable", 503)

    async def get_global_emotes(self):
        self._check("global")
        return list(self.global_emotes)

    async def get_channel_emotes(self, channel_id):
        self._check("channel", channel_id)
        return list(self.channel_emotes.get(channel_id, []))

    async def get_tier_emotes(self, tier):
        self._check("tier", tier)
        return list(self.tier_emotes.get(tier, []))

    async def search_emotes(self, query):
        self._check("search", query)
        if self.search_result is None:
            raise RemoteFetchFailure("search unavailable", 500)
        return list(self.search_result)


class FakeTransport(BaseTransport):
    """Transport whose inbound events are fed by the test."""

    def __init__(self, channel_id, identity):
        super().__init__(channel_id, identity)
        self.sent: list[tuple[str, dict]] = []
        self.fail_emit = False
        self.closed = False

    async def run(self):
        pass

    async def emit(self, event, payload):
        if self.fail_emit:
            raise TransportFailure("write failed")
        self.sent.append((event, payload))

    async def _cleanup(self):
        self.closed = True

    def feed(self, name, data=None):
        self.events.put_nowait(TransportEvent(name=name, data=data or {}))


class FakeTransportFactory:
    """Callable transport factory that keeps every transport it built."""

    def __init__(self):
        self.created: list[FakeTransport] = []

    def __call__(self, channel_id, identity):
        transport = FakeTransport(channel_id, identity)
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


async def settle(rounds: int = 5) -> None:
    """Let pending tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture(scope="session")
def qt_app():
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    return app


@pytest.fixture
def smile():
    return Emote(id="e1", code=":smile:", name="Smile", url="https://cdn.example.com/e1.png")


@pytest.fixture
def wave():
    return Emote(
        id="e2",
        code=":wave:",
        name="Wave",
        url="https://cdn.example.com/e2.gif",
        is_animated=True,
        source_tier=EmoteTier.CHANNEL,
    )


@pytest.fixture
def provider(smile, wave):
    return FakeEmoteProvider(
        global_emotes=[smile],
        channel_emotes={"chan1": [wave]},
        tier_emotes={
            "pro": [Emote(id="p1", code=":hype:", name="Hype", source_tier=EmoteTier.TIER)],
        },
    )


@pytest.fixture
def catalog(provider):
    return EmoteCatalog(provider)


@pytest.fixture
def recent_path(tmp_path):
    return tmp_path / "recent_emotes.json"


@pytest.fixture
def recent(recent_path):
    return RecencyTracker(path=recent_path)


@pytest.fixture
def transports():
    return FakeTransportFactory()


@pytest.fixture
def viewer():
    return Identity(user_id="u1", username="viewer", token="tok", tier="free")
