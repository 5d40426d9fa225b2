"""
转发管线 - 把一条入站消息发送到一个目标频道。

每个目标独立调用一次 relay()：

1. 内容去除首尾空白后为空 → 什么也不做
2. 查找负责目标频道的在线机器人，找不到则记录警告并跳过
3. 内容含提及标记且来自群组时，用来源群组的成员表把标记改写为 "@昵称"
4. 加上作者前缀 "昵称: 内容"
5. 由目标机器人发送
6. 为每个发送成功的消息 ID 登记一条回复关联，指回来源频道；
   关联以 "目标平台:消息 ID" 为键，不同平台或不同聊天里相同的数字 ID 互不干扰

第 2~6 步中的任何异常都只影响当前目标：记录日志后返回，不会抛给调用方。
"""

from loguru import logger

from nanorelay.bus.events import InboundMessage
from nanorelay.channels.manager import ChannelManager
from nanorelay.forward.address import format_address
from nanorelay.forward.mentions import has_mentions, rewrite_mentions
from nanorelay.forward.models import ForwardTarget, RelayEntry
from nanorelay.forward.relay_store import RelayStore
from nanorelay.utils.helpers import normalize_channel_id


class RelayDispatcher:
    """
    转发管线。独占回复关联表的写入。

    属性:
        channels: 渠道管理器（机器人注册表）
        relays: 回复关联表
        ttl_ms: 登记关联记录时使用的过期时间，为 None 时使用关联表的默认值
    """

    def __init__(self, channels: ChannelManager, relays: RelayStore, ttl_ms: int | None = None):
        self.channels = channels
        self.relays = relays
        self.ttl_ms = ttl_ms

    async def relay(self, msg: InboundMessage, destination: ForwardTarget | RelayEntry) -> None:
        """
        把消息转发到一个目标。永远不会抛出异常。

        参数:
            msg: 入站消息
            destination: 转发目标，或回复关联记录中保存的来源频道
        """
        content = msg.stripped
        if not content:
            return

        address = format_address(destination.platform, destination.channel_id)
        try:
            bot = self.channels.bot_for(destination.platform, destination.self_id)
            if bot is None:
                logger.warning(f"Bot not found: {destination.platform}:{destination.self_id}")
                return

            if msg.guild_id and has_mentions(content):
                content = rewrite_mentions(content, await self._member_map(msg))

            content = f"{msg.author}: {content}"
            ids = await bot.send(destination.channel_id, content, destination.guild_id)

            origin = RelayEntry(
                platform=msg.channel,
                channel_id=normalize_channel_id(msg.chat_id),
                self_id=msg.self_id,
                guild_id=msg.guild_id,
            )
            for message_id in ids:
                self.relays.put(format_address(destination.platform, str(message_id)), origin, self.ttl_ms)
            logger.debug(f"Relayed {msg.cid} -> {address} ({len(ids)} message(s))")
        except Exception as e:
            logger.warning(f"Failed to relay {msg.cid} -> {address}: {e}")

    async def _member_map(self, msg: InboundMessage) -> dict[str, str]:
        """查询来源群组的成员表。查询失败时返回空表，提及标记会尽量使用自带的昵称。"""
        source = self.channels.bot_for(msg.channel, msg.self_id) or self.channels.get_channel(msg.channel)
        if source is None:
            return {}
        try:
            return await source.get_guild_member_map(msg.guild_id)
        except Exception as e:
            logger.warning(f"Failed to fetch member list of {msg.channel}:{msg.guild_id}: {e}")
            return {}
