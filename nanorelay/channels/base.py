"""
渠道基类模块 - 定义所有平台渠道的统一接口。

本模块提供了 BaseChannel 抽象基类，所有具体渠道（Discord、Telegram、OneBot）
都必须继承此基类并实现其抽象方法。转发核心只依赖这里声明的能力，
不关心具体平台的协议细节。

【核心抽象方法】
- start(): 启动渠道，开始监听消息（长期运行的异步任务）
- stop(): 停止渠道，释放资源
- send(): 向频道发送文本，返回平台生成的消息 ID 列表

【可选能力】
- get_guild_member_map(): 群组成员表 {成员 ID: 显示名}，用于改写提及
- resolve_guild_id(): 根据频道 ID 查询所属群组，用于注册转发目标

【公共能力】
- is_allowed(): 基于白名单的权限控制
- _handle_message(): 入站消息预处理（权限检查 → 归一化 → 发布到总线）

【Java 开发者类比】
- BaseChannel 相当于 Java 的 abstract class + interface
- _handle_message() 相当于 Template Method 模式中的模板方法
"""

from abc import ABC, abstractmethod
from typing import Any

from loguru import logger

from nanorelay.bus.events import InboundMessage, OutboundMessage
from nanorelay.bus.queue import MessageBus
from nanorelay.utils.helpers import normalize_channel_id


class BaseChannel(ABC):
    """
    平台渠道抽象基类。

    属性:
        name: 平台标识名（如 "discord"、"onebot"），同时也是频道地址中的平台部分
        self_id: 机器人在该平台上的账号 ID，连接成功后才确定
        config: 渠道特定的配置对象
        bus: 消息总线实例
        _running: 渠道运行状态标志
    """

    name: str = "base"  # 子类必须覆盖此属性为具体平台名

    def __init__(self, config: Any, bus: MessageBus):
        """
        参数:
            config: 渠道特定的配置对象（如 DiscordConfig、OneBotConfig 等）
            bus: 消息总线实例，所有渠道共享同一个总线
        """
        self.config = config
        self.bus = bus
        self.self_id: str = ""
        self._running = False

    @abstractmethod
    async def start(self) -> None:
        """
        启动渠道并开始监听消息。

        这应该是一个长期运行的异步任务，负责连接平台、持续监听消息，
        收到消息后调用 _handle_message()。连接成功后必须设置 self_id。
        """
        pass

    @abstractmethod
    async def stop(self) -> None:
        """停止渠道，断开连接并释放资源。"""
        pass

    @abstractmethod
    async def send(self, chat_id: str, content: str, guild_id: str | None = None) -> list[str]:
        """
        向频道发送文本消息。

        超长内容可能被拆分成多条消息发送，因此返回值是列表。

        参数:
            chat_id: 目标频道 ID
            content: 消息文本
            guild_id: 目标群组 ID（部分平台发送接口需要）

        返回:
            发送成功的消息 ID 列表

        异常:
            发送失败时直接抛出，由调用方决定如何处理
        """
        pass

    async def reply(self, msg: OutboundMessage) -> None:
        """发送命令回复。默认实现直接调用 send()。"""
        await self.send(msg.chat_id, msg.content, msg.guild_id)

    async def get_guild_member_map(self, guild_id: str) -> dict[str, str]:
        """
        获取群组成员表 {成员 ID: 显示名}。

        平台不支持时返回空字典，此时提及标记会原样保留。
        """
        return {}

    async def resolve_guild_id(self, channel_id: str) -> str | None:
        """查询频道所属的群组 ID。平台不需要或不支持时返回 None。"""
        return None

    def is_allowed(self, sender_id: str) -> bool:
        """
        检查发送者是否在白名单中。

        - 白名单为空 → 允许所有人（开放模式）
        - 白名单非空 → 只允许名单中的用户

        支持 "|" 分隔的复合 sender_id（如 Telegram 的 "数字ID|用户名"），
        会逐段检查是否在白名单中。
        """
        allow_list = getattr(self.config, "allow_from", [])

        if not allow_list:
            return True

        sender_str = str(sender_id)
        if sender_str in allow_list:
            return True
        if "|" in sender_str:
            for part in sender_str.split("|"):
                if part and part in allow_list:
                    return True
        return False

    async def _handle_message(
        self,
        sender_id: str,
        chat_id: Any,
        content: str,
        *,
        sender_name: str = "",
        guild_id: str | None = None,
        is_direct: bool = False,
        message_id: str | None = None,
        reply_to: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """
        处理来自平台的入站消息（模板方法）。

        1. 权限检查：验证发送者是否在白名单中
        2. 频道标识归一化：结构化的频道对象统一转为字符串 ID
        3. 构造 InboundMessage 并发布到总线

        参数:
            sender_id: 发送者标识符
            chat_id: 频道标识（标量或带 id 的结构化对象）
            content: 消息文本，提及已转换为 <at id="..."/> 标记
            sender_name: 发送者显示名
            guild_id: 群组 ID，私聊为 None
            is_direct: 是否为私聊
            message_id: 本条消息 ID
            reply_to: 被引用的消息 ID
            metadata: 渠道特定元数据
        """
        if not self.is_allowed(sender_id):
            logger.warning(
                f"Access denied for sender {sender_id} on channel {self.name}. "
                f"Add them to allowFrom list in config to grant access."
            )
            return

        normalized = normalize_channel_id(chat_id)
        if normalized is None:
            logger.warning(f"Dropping {self.name} message without channel id from {sender_id}")
            return

        msg = InboundMessage(
            channel=self.name,
            sender_id=str(sender_id),
            chat_id=normalized,
            content=content,
            self_id=self.self_id,
            sender_name=sender_name,
            guild_id=str(guild_id) if guild_id else None,
            is_direct=is_direct,
            message_id=str(message_id) if message_id is not None else None,
            reply_to=str(reply_to) if reply_to else None,
            metadata=metadata or {},
        )

        await self.bus.publish_inbound(msg)

    @property
    def is_running(self) -> bool:
        """渠道是否已启动。"""
        return self._running

    @property
    def is_online(self) -> bool:
        """渠道已启动且已知道自己的账号 ID，即可以代表机器人发言。"""
        return self._running and bool(self.self_id)
