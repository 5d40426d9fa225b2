"""
/forward 聊天命令 - 在频道内维护本频道的转发目标。

    /forward add <platform:channelId>     添加转发目标
    /forward remove <platform:channelId>  删除转发目标（别名 rm）
    /forward clear                        清空转发目标
    /forward list                         列出转发目标（别名 ls）

/fwd 是 /forward 的别名。只有持久化模式（forward.mode = "database"）支持修改，
静态模式下任何子命令都只会得到只读提示。
"""

from loguru import logger

from nanorelay.bus.events import InboundMessage, OutboundMessage
from nanorelay.forward.address import format_target
from nanorelay.forward.errors import ForwardError
from nanorelay.forward.targets import TargetResolver

COMMAND_NAMES = ("/forward", "/fwd")

TEXTS = {
    "no-bot": "No bot is available for {0}.",
    "updated": "Forward targets updated: {0}",
    "cleared": "Forward targets cleared.",
    "unchanged": "Forward targets unchanged: {0}",
    "empty": "No forward targets in this channel.",
    "header": "Forward targets of this channel:",
    "failed": "Failed to update forward targets.",
    "usage": "Usage: /forward add|remove|clear|list [platform:channelId]",
    "denied": "You are not allowed to manage forward targets.",
    "readonly": "Forward targets are defined in the config file and cannot be changed here.",
}


class ForwardCommands:
    """
    /forward 命令处理器。作为转发中间件的主处理函数，与转发任务并发执行。

    属性:
        resolver: 转发目标解析器
        admins: 允许使用命令的用户 ID，为空时不限制
    """

    def __init__(self, resolver: TargetResolver, admins: list[str] | None = None):
        self.resolver = resolver
        self.admins = admins or []

    @staticmethod
    def parse(content: str) -> tuple[str, list[str]] | None:
        """
        拆分命令文本。

        返回:
            (子命令, 参数列表)；不是 /forward 命令时返回 None
        """
        parts = content.strip().split()
        if not parts or parts[0].lower() not in COMMAND_NAMES:
            return None
        if len(parts) == 1:
            return "", []
        return parts[1].lower(), parts[2:]

    def is_admin(self, sender_id: str) -> bool:
        """与渠道白名单相同的规则：支持 "数字ID|用户名" 形式的复合 ID。"""
        if not self.admins:
            return True
        return any(part and part in self.admins for part in [sender_id, *sender_id.split("|")])

    async def process(self, msg: InboundMessage) -> OutboundMessage | None:
        """
        处理一条消息。不是 /forward 命令时返回 None。

        返回:
            发回命令所在频道的回复
        """
        parsed = self.parse(msg.content)
        if parsed is None:
            return None
        sub, args = parsed

        logger.info(f"Forward command from {msg.cid}:{msg.sender_id}: {sub} {' '.join(args)}".rstrip())

        if not self.is_admin(msg.sender_id):
            return self._reply(msg, TEXTS["denied"])
        if not self.resolver.database_mode:
            if sub in ("list", "ls"):
                return self._reply(msg, await self._list(msg))
            return self._reply(msg, TEXTS["readonly"])

        try:
            if sub == "add" and len(args) == 1:
                status, target = await self.resolver.add_target(msg.channel, msg.chat_id, args[0])
                text = TEXTS[status].format(format_target(target) if target else args[0])
            elif sub in ("remove", "rm") and len(args) == 1:
                status = await self.resolver.remove_target(msg.channel, msg.chat_id, args[0])
                text = TEXTS[status].format(args[0])
            elif sub == "clear" and not args:
                await self.resolver.clear_targets(msg.channel, msg.chat_id)
                text = TEXTS["cleared"]
            elif sub in ("list", "ls") and not args:
                text = await self._list(msg)
            else:
                text = TEXTS["usage"]
        except ForwardError as e:
            logger.error(f"Forward command failed in {msg.cid}: {e}")
            text = TEXTS["failed"]

        return self._reply(msg, text)

    async def _list(self, msg: InboundMessage) -> str:
        targets = await self.resolver.resolve(msg)
        if not targets:
            return TEXTS["empty"]
        return "\n".join([TEXTS["header"], *(format_target(t) for t in targets)])

    @staticmethod
    def _reply(msg: InboundMessage, content: str) -> OutboundMessage:
        return OutboundMessage(
            channel=msg.channel,
            chat_id=msg.chat_id,
            content=content,
            self_id=msg.self_id,
            guild_id=msg.guild_id,
            reply_to=msg.message_id,
        )
