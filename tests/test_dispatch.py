"""Tests for the relay dispatch pipeline."""

import pytest

from conftest import make_message
from nanorelay.forward.dispatch import RelayDispatcher
from nanorelay.forward.models import ForwardTarget, RelayEntry
from nanorelay.forward.relay_store import RelayStore

TARGET = ForwardTarget("discord", "200", "B1")


@pytest.fixture
def relays(clock):
    return RelayStore(ttl_ms=60_000, clock=clock)


@pytest.fixture
def dispatcher(channels, relays):
    return RelayDispatcher(channels, relays)


class TestRelay:
    @pytest.mark.asyncio
    async def test_prefixes_author(self, dispatcher, discord):
        await dispatcher.relay(make_message(content="  hi  "), TARGET)
        assert discord.sent == [("200", "Alice: hi", None)]

    @pytest.mark.asyncio
    async def test_author_falls_back_to_sender_id(self, dispatcher, discord):
        await dispatcher.relay(make_message(sender_name=""), TARGET)
        assert discord.sent[0][1] == "u1: hi"

    @pytest.mark.asyncio
    async def test_passes_guild_id(self, dispatcher, discord):
        await dispatcher.relay(make_message(), ForwardTarget("discord", "200", "B1", "G1"))
        assert discord.sent == [("200", "Alice: hi", "G1")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["", "   ", "\n\t"])
    async def test_empty_content_is_noop(self, dispatcher, discord, relays, content):
        await dispatcher.relay(make_message(content=content), TARGET)
        assert discord.sent == []
        assert len(relays) == 0

    @pytest.mark.asyncio
    async def test_missing_bot_is_skipped(self, dispatcher, discord):
        await dispatcher.relay(make_message(), ForwardTarget("discord", "200", "someone-else"))
        await dispatcher.relay(make_message(), ForwardTarget("telegram", "300", "T1"))
        assert discord.sent == []

    @pytest.mark.asyncio
    async def test_send_failure_is_swallowed(self, dispatcher, discord, relays):
        discord.fail_on.add("200")
        await dispatcher.relay(make_message(), TARGET)
        assert len(relays) == 0


class TestCorrelation:
    @pytest.mark.asyncio
    async def test_registers_origin_for_sent_id(self, dispatcher, relays):
        await dispatcher.relay(make_message(), TARGET)
        assert relays.get("discord:discord-1") == RelayEntry("onebot", "100", "B0", "100")

    @pytest.mark.asyncio
    async def test_registers_every_split_message(self, dispatcher, discord, relays):
        discord.ids_per_send = 3
        await dispatcher.relay(make_message(), TARGET)
        assert len(relays) == 3
        for message_id in ("discord:discord-1", "discord:discord-2", "discord:discord-3"):
            assert relays.get(message_id).channel_id == "100"

    @pytest.mark.asyncio
    async def test_origin_channel_is_normalized(self, dispatcher, relays):
        msg = make_message()
        msg.chat_id = {"id": 100}
        await dispatcher.relay(msg, TARGET)
        assert relays.get("discord:discord-1").channel_id == "100"

    @pytest.mark.asyncio
    async def test_key_includes_destination_platform(self, dispatcher, relays):
        await dispatcher.relay(make_message(), TARGET)
        assert relays.get("discord-1") is None
        assert relays.get("telegram:discord-1") is None

    @pytest.mark.asyncio
    async def test_uses_configured_ttl(self, channels, relays, clock):
        dispatcher = RelayDispatcher(channels, relays, ttl_ms=1000)
        await dispatcher.relay(make_message(), TARGET)
        clock.advance_ms(1000)
        assert relays.get("discord:discord-1") is None


class TestMentions:
    @pytest.mark.asyncio
    async def test_rewritten_with_source_members(self, dispatcher, onebot, discord):
        onebot.members = {"42": "Bob"}
        await dispatcher.relay(make_message(content='<at id="42"/> look'), TARGET)
        assert onebot.member_requests == ["100"]
        assert discord.sent[0][1] == "Alice: @Bob look"

    @pytest.mark.asyncio
    async def test_unresolved_mention_is_kept(self, dispatcher, onebot, discord):
        onebot.members = {"42": "Bob"}
        await dispatcher.relay(make_message(content='<at id="7"/> look'), TARGET)
        assert discord.sent[0][1] == 'Alice: <at id="7"/> look'

    @pytest.mark.asyncio
    async def test_markers_kept_outside_guild(self, dispatcher, onebot, discord):
        onebot.members = {"42": "Bob"}
        await dispatcher.relay(make_message(content='<at id="42" name="Bob"/>', guild_id=None), TARGET)
        assert onebot.member_requests == []
        assert discord.sent[0][1] == 'Alice: <at id="42" name="Bob"/>'

    @pytest.mark.asyncio
    async def test_no_directory_lookup_without_mentions(self, dispatcher, onebot):
        await dispatcher.relay(make_message(content="plain"), TARGET)
        assert onebot.member_requests == []

    @pytest.mark.asyncio
    async def test_directory_failure_still_sends(self, dispatcher, onebot, discord):
        async def broken(guild_id):
            raise RuntimeError("member list unavailable")

        onebot.get_guild_member_map = broken
        await dispatcher.relay(make_message(content='<at id="42"/> hi'), TARGET)
        assert discord.sent[0][1] == 'Alice: <at id="42"/> hi'
