"""Tests for forward target resolution and mutation."""

import json

import pytest

from conftest import make_message
from nanorelay.config.schema import ForwardConfig, ForwardRule
from nanorelay.forward.errors import ForwardError, StoreError
from nanorelay.forward.models import ForwardTarget
from nanorelay.forward.targets import TargetResolver
from nanorelay.store.channels import ChannelStore


@pytest.fixture
def store(tmp_path):
    return ChannelStore(tmp_path / "channels.json")


@pytest.fixture
def resolver(store, channels):
    return TargetResolver(ForwardConfig(mode="database"), store, channels)


def static_resolver(channels, *rules):
    return TargetResolver(ForwardConfig(mode="config", rules=list(rules)), None, channels)


# =============================================================================
# Static (config) mode
# =============================================================================

class TestStaticMode:
    @pytest.mark.asyncio
    async def test_rule_matches_source(self, channels):
        resolver = static_resolver(
            channels,
            ForwardRule(source="onebot:100", target="discord:200", self_id="B1"),
            ForwardRule(source="onebot:101", target="discord:201", self_id="B1"),
        )
        targets = await resolver.resolve(make_message())
        assert targets == [ForwardTarget("discord", "200", "B1", None)]

    @pytest.mark.asyncio
    async def test_keeps_rule_guild_id(self, channels):
        resolver = static_resolver(
            channels,
            ForwardRule(source="onebot:100", target="discord:200", self_id="B1", guild_id="G1"),
        )
        targets = await resolver.resolve(make_message())
        assert targets[0].guild_id == "G1"

    @pytest.mark.asyncio
    async def test_unparsable_target_is_dropped(self, channels):
        resolver = static_resolver(
            channels,
            ForwardRule(source="onebot:100", target="garbage", self_id="B1"),
            ForwardRule(source="onebot:100", target="discord:200", self_id="B1"),
        )
        targets = await resolver.resolve(make_message())
        assert [t.channel_id for t in targets] == ["200"]

    @pytest.mark.asyncio
    async def test_structured_channel_id_is_normalized(self, channels):
        resolver = static_resolver(
            channels,
            ForwardRule(source="onebot:100", target="discord:200", self_id="B1"),
        )
        assert len(await resolver.targets_for("onebot", {"id": 100})) == 1

    @pytest.mark.asyncio
    async def test_mutations_are_rejected(self, channels):
        resolver = static_resolver(channels)
        with pytest.raises(ForwardError):
            await resolver.add_target("onebot", "100", "discord:200")
        with pytest.raises(ForwardError):
            await resolver.remove_target("onebot", "100", "discord:200")
        with pytest.raises(ForwardError):
            await resolver.clear_targets("onebot", "100")


# =============================================================================
# Persistent (database) mode
# =============================================================================

class TestDatabaseMode:
    @pytest.mark.asyncio
    async def test_empty_channel(self, resolver):
        assert await resolver.resolve(make_message()) == []

    @pytest.mark.asyncio
    async def test_add_then_add_again(self, resolver, store):
        status, target = await resolver.add_target("onebot", "100", "discord:200")
        assert status == "updated"
        assert target == ForwardTarget("discord", "200", "B1")

        row = await store.get("onebot", "100")
        assert row["forward"] == [{"platform": "discord", "channelId": "200", "selfId": "B1"}]

        status, target = await resolver.add_target("onebot", "100", "discord:200")
        assert status == "unchanged"
        assert target == ForwardTarget("discord", "200", "B1")
        assert len((await store.get("onebot", "100"))["forward"]) == 1

    @pytest.mark.asyncio
    async def test_add_resolves_guild_once(self, resolver, store, discord):
        discord.guilds["200"] = "G9"
        status, target = await resolver.add_target("onebot", "100", "discord:200")
        assert status == "updated"
        assert target.guild_id == "G9"

        row = await store.get("onebot", "100")
        assert row["forward"][0]["guildId"] == "G9"

        discord.guilds["200"] = "changed"
        targets = await resolver.resolve(make_message())
        assert targets[0].guild_id == "G9"

    @pytest.mark.asyncio
    async def test_add_without_bot(self, resolver, store):
        status, target = await resolver.add_target("onebot", "100", "telegram:300")
        assert (status, target) == ("no-bot", None)
        assert await store.get("onebot", "100") is None

    @pytest.mark.asyncio
    async def test_add_with_offline_bot(self, resolver, discord):
        discord._running = False
        status, _ = await resolver.add_target("onebot", "100", "discord:200")
        assert status == "no-bot"

    @pytest.mark.asyncio
    async def test_add_malformed_address(self, resolver):
        status, _ = await resolver.add_target("onebot", "100", "nocolon")
        assert status == "no-bot"

    @pytest.mark.asyncio
    async def test_add_with_explicit_bot(self, resolver):
        status, target = await resolver.add_target("onebot", "100", "telegram:300", self_id="T1", guild_id="G")
        assert status == "updated"
        assert target == ForwardTarget("telegram", "300", "T1", "G")

    @pytest.mark.asyncio
    async def test_channel_id_with_colon(self, resolver, store):
        status, target = await resolver.add_target("discord", "200", "onebot:private:42")
        assert status == "updated"
        assert target.channel_id == "private:42"

    @pytest.mark.asyncio
    async def test_remove(self, resolver):
        await resolver.add_target("onebot", "100", "discord:200")
        await resolver.add_target("onebot", "100", "discord:201")

        assert await resolver.remove_target("onebot", "100", "discord:200") == "updated"
        assert await resolver.remove_target("onebot", "100", "discord:200") == "unchanged"
        assert await resolver.remove_target("onebot", "100", "nocolon") == "unchanged"

        targets = await resolver.resolve(make_message())
        assert [t.channel_id for t in targets] == ["201"]

    @pytest.mark.asyncio
    async def test_clear(self, resolver, store):
        await resolver.add_target("onebot", "100", "discord:200")
        await resolver.clear_targets("onebot", "100")
        assert await resolver.resolve(make_message()) == []
        assert (await store.get("onebot", "100"))["forward"] == []

    @pytest.mark.asyncio
    async def test_read_failure_degrades_to_empty(self, resolver, store):
        store.path.write_text("{broken")
        assert await resolver.resolve(make_message()) == []

    @pytest.mark.asyncio
    async def test_read_failure_fails_mutation(self, resolver, store):
        store.path.write_text("{broken")
        with pytest.raises(StoreError):
            await resolver.add_target("onebot", "100", "discord:200")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", [
        {"channels": [{"platform": "onebot", "id": "100", "forward": 5}]},
        {"channels": ["garbage-row"]},
    ])
    async def test_malformed_store_degrades_to_empty(self, resolver, store, content):
        store.path.write_text(json.dumps(content))
        assert await resolver.resolve(make_message()) == []
        with pytest.raises(StoreError):
            await resolver.add_target("onebot", "100", "discord:200")

    @pytest.mark.asyncio
    async def test_malformed_entries_are_skipped(self, resolver, store):
        store.path.write_text(json.dumps({"channels": [{
            "platform": "onebot",
            "id": "100",
            "forward": [{"platform": "discord"}, {"platform": "discord", "channelId": "200", "selfId": "B1"}],
        }]}))
        targets = await resolver.resolve(make_message())
        assert targets == [ForwardTarget("discord", "200", "B1")]


class TestFindBot:
    def test_first_online_bot_of_platform(self, resolver):
        assert resolver.find_bot("discord") == "B1"
        assert resolver.find_bot("onebot") == "B0"

    def test_unknown_platform(self, resolver):
        assert resolver.find_bot("telegram") is None

    def test_bot_without_self_id_is_offline(self, resolver, discord):
        discord.self_id = ""
        assert resolver.find_bot("discord") is None
