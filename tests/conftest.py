"""Pytest configuration and shared fixtures."""

from types import SimpleNamespace

import pytest

from nanorelay.bus.events import InboundMessage
from nanorelay.bus.queue import MessageBus
from nanorelay.channels.base import BaseChannel
from nanorelay.channels.manager import ChannelManager
from nanorelay.config.schema import Config


class FakeChannel(BaseChannel):
    """In-memory channel that records sends and hands out sequential message ids."""

    def __init__(self, name: str, self_id: str, bus: MessageBus | None = None):
        super().__init__(SimpleNamespace(allow_from=[]), bus or MessageBus())
        self.name = name
        self.self_id = self_id
        self._running = True
        self.sent: list[tuple[str, str, str | None]] = []
        self.members: dict[str, str] = {}
        self.guilds: dict[str, str] = {}
        self.member_requests: list[str] = []
        self.fail_on: set[str] = set()
        self.ids_per_send = 1
        self._counter = 0

    async def start(self) -> None:
        self._running = True

    async def stop(self) -> None:
        self._running = False

    async def send(self, chat_id: str, content: str, guild_id: str | None = None) -> list[str]:
        if chat_id in self.fail_on:
            raise RuntimeError(f"send to {chat_id} failed")
        self.sent.append((chat_id, content, guild_id))
        ids = []
        for _ in range(self.ids_per_send):
            self._counter += 1
            ids.append(f"{self.name}-{self._counter}")
        return ids

    async def get_guild_member_map(self, guild_id: str) -> dict[str, str]:
        self.member_requests.append(guild_id)
        return dict(self.members)

    async def resolve_guild_id(self, channel_id: str) -> str | None:
        return self.guilds.get(channel_id)


class FakeClock:
    """Manually advanced monotonic clock, in seconds."""

    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000


def make_message(**overrides) -> InboundMessage:
    """Group message from Alice in onebot:100, received by bot B0."""
    fields = dict(
        channel="onebot",
        sender_id="u1",
        chat_id="100",
        content="hi",
        self_id="B0",
        sender_name="Alice",
        guild_id="100",
        message_id="m1",
    )
    fields.update(overrides)
    return InboundMessage(**fields)


@pytest.fixture
def bus():
    return MessageBus()


@pytest.fixture
def onebot(bus):
    return FakeChannel("onebot", "B0", bus)


@pytest.fixture
def discord(bus):
    return FakeChannel("discord", "B1", bus)


@pytest.fixture
def channels(bus, onebot, discord):
    manager = ChannelManager(Config(), bus)
    manager.register(onebot)
    manager.register(discord)
    return manager


@pytest.fixture
def clock():
    return FakeClock()
