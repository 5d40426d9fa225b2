"""
转发目标解析 - 给定来源频道，得到它的转发目标列表。

两种互斥的模式，启动时由 forward.mode 决定：

- config（静态模式）：目标来自配置文件中的 rules，按来源地址过滤后逐条解析目标地址，
  解析失败的规则直接丢弃；不支持运行时修改
- database（持久化模式）：目标保存在频道存储的 forward 字段中，由 /forward 命令维护；
  读取失败时记录警告并退化为空列表，不影响消息的正常处理
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

from loguru import logger

from nanorelay.config.schema import ForwardConfig
from nanorelay.forward.address import format_address, parse_address
from nanorelay.forward.errors import ForwardError, StoreError
from nanorelay.forward.models import ForwardTarget
from nanorelay.store.channels import ChannelStore
from nanorelay.utils.helpers import normalize_channel_id

if TYPE_CHECKING:
    from nanorelay.bus.events import InboundMessage
    from nanorelay.channels.manager import ChannelManager

AddStatus = Literal["no-bot", "unchanged", "updated"]
RemoveStatus = Literal["unchanged", "updated"]

FORWARD_FIELD = "forward"


class TargetResolver:
    """
    转发目标解析器，同时负责持久化模式下目标列表的增删。

    属性:
        config: 转发配置
        store: 频道存储（静态模式下可以为 None）
        channels: 渠道管理器，提供在线机器人列表
    """

    def __init__(self, config: ForwardConfig, store: ChannelStore | None, channels: ChannelManager):
        self.config = config
        self.store = store
        self.channels = channels

    @property
    def database_mode(self) -> bool:
        return self.config.mode == "database"

    def parse(self, address: str) -> tuple[str, str] | None:
        """按当前在线的平台名解析频道地址。"""
        return parse_address(address, self.channels.platforms)

    def find_bot(self, platform: str) -> str | None:
        """返回第一个在线的该平台机器人账号，没有时返回 None。"""
        for bot in self.channels.bots:
            if bot.name == platform:
                return bot.self_id
        return None

    async def resolve(self, msg: InboundMessage) -> list[ForwardTarget]:
        """解析入站消息所在频道的转发目标。"""
        return await self.targets_for(msg.channel, msg.chat_id)

    async def targets_for(self, platform: str, channel_id: str) -> list[ForwardTarget]:
        """
        查询来源频道的转发目标。

        参数:
            platform: 来源平台名
            channel_id: 来源频道 ID

        返回:
            转发目标列表；持久化存储读取失败时返回空列表
        """
        channel_id = normalize_channel_id(channel_id)
        if channel_id is None:
            return []

        if not self.database_mode:
            return self._static_targets(format_address(platform, channel_id))

        try:
            return await self._load(platform, channel_id)
        except StoreError as e:
            logger.warning(f"Failed to fetch forward targets for {platform}:{channel_id}: {e}")
            return []

    def _static_targets(self, cid: str) -> list[ForwardTarget]:
        targets = []
        for rule in self.config.rules:
            if rule.source != cid:
                continue
            parsed = self.parse(rule.target)
            if parsed is None:
                logger.warning(f"Ignoring forward rule with invalid target: {rule.target}")
                continue
            platform, channel_id = parsed
            targets.append(ForwardTarget(platform, channel_id, rule.self_id, rule.guild_id))
        return targets

    async def _load(self, platform: str, channel_id: str) -> list[ForwardTarget]:
        """读取持久化的目标列表。存储错误向上抛出，由调用方决定是否降级。"""
        if self.store is None:
            raise StoreError("Channel store not configured")
        row = await self.store.get(platform, channel_id, [FORWARD_FIELD])
        items = (row or {}).get(FORWARD_FIELD) or []
        if not isinstance(items, list):
            raise StoreError(f"Malformed forward field in {platform}:{channel_id}")
        targets = []
        for item in items:
            try:
                targets.append(ForwardTarget.from_dict(item))
            except (KeyError, TypeError, AttributeError):
                logger.warning(f"Skipping malformed forward target in {platform}:{channel_id}: {item}")
        return targets

    async def _save(self, platform: str, channel_id: str, targets: list[ForwardTarget]) -> None:
        await self.store.upsert(
            [{"platform": platform, "id": channel_id, FORWARD_FIELD: [t.to_dict() for t in targets]}],
            ("platform", "id"),
        )

    def _require_database(self) -> None:
        if not self.database_mode:
            raise ForwardError("Forward targets are read-only in config mode")
        if self.store is None:
            raise ForwardError("Channel store not configured")

    async def add_target(
        self,
        platform: str,
        channel_id: str,
        address: str,
        self_id: str | None = None,
        guild_id: str | None = None,
    ) -> tuple[AddStatus, ForwardTarget | None]:
        """
        为来源频道添加一个转发目标。

        未指定 self_id 时自动选用目标平台上第一个在线的机器人；
        未指定 guild_id 时由该机器人查询一次目标频道所属群组并一起保存，
        之后转发不会再重新查询。

        参数:
            platform: 来源平台名
            channel_id: 来源频道 ID
            address: 目标频道地址 "platform:channelId"

        返回:
            (状态, 目标)：地址无法解析或没有可用机器人时为 ("no-bot", None)；
            目标已存在时为 ("unchanged", 已有目标)

        异常:
            ForwardError: 静态模式下调用
            StoreError: 存储读写失败
        """
        self._require_database()
        channel_id = normalize_channel_id(channel_id)
        parsed = self.parse(address)
        if parsed is None or channel_id is None:
            return "no-bot", None
        target_platform, target_channel = parsed

        self_id = self_id or self.find_bot(target_platform)
        if not self_id:
            return "no-bot", None

        targets = await self._load(platform, channel_id)
        for target in targets:
            if target.same_channel(target_platform, target_channel):
                return "unchanged", target

        if guild_id is None:
            guild_id = await self._resolve_guild_id(target_platform, target_channel, self_id)

        target = ForwardTarget(target_platform, target_channel, self_id, guild_id)
        targets.append(target)
        await self._save(platform, channel_id, targets)
        logger.info(f"Forward target added: {platform}:{channel_id} -> {format_address(target_platform, target_channel)}")
        return "updated", target

    async def remove_target(self, platform: str, channel_id: str, address: str) -> RemoveStatus:
        """
        删除一个转发目标。地址无法解析或目标不存在时返回 "unchanged"。

        异常:
            ForwardError: 静态模式下调用
            StoreError: 存储读写失败
        """
        self._require_database()
        channel_id = normalize_channel_id(channel_id)
        parsed = self.parse(address)
        if parsed is None or channel_id is None:
            return "unchanged"

        targets = await self._load(platform, channel_id)
        remaining = [t for t in targets if not t.same_channel(*parsed)]
        if len(remaining) == len(targets):
            return "unchanged"

        await self._save(platform, channel_id, remaining)
        logger.info(f"Forward target removed: {platform}:{channel_id} -> {address}")
        return "updated"

    async def clear_targets(self, platform: str, channel_id: str) -> None:
        """
        清空来源频道的所有转发目标。

        异常:
            ForwardError: 静态模式下调用
            StoreError: 存储写入失败
        """
        self._require_database()
        channel_id = normalize_channel_id(channel_id)
        if channel_id is None:
            return
        await self._save(platform, channel_id, [])
        logger.info(f"Forward targets cleared: {platform}:{channel_id}")

    async def _resolve_guild_id(self, platform: str, channel_id: str, self_id: str) -> str | None:
        bot = self.channels.bot_for(platform, self_id)
        if bot is None:
            return None
        try:
            return await bot.resolve_guild_id(channel_id)
        except Exception as e:
            logger.warning(f"Failed to resolve guild of {platform}:{channel_id}: {e}")
            return None
