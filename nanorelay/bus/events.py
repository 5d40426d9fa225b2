"""
消息事件类型定义模块 - 定义消息总线中传输的数据结构。

本模块定义了两个核心数据类：
- InboundMessage：入站消息（从平台渠道到转发服务）
- OutboundMessage：出站消息（命令回复，从转发服务到平台渠道）

转发服务关心的所有平台差异（群组 ID、是否私聊、被引用的消息 ID、
发送者昵称等）都在渠道适配器中归一化到 InboundMessage 的字段上，
核心逻辑不再读取平台原生结构。

【Java 开发者类比】
- 使用 Python 的 @dataclass 装饰器，等价于 Java 的 record 类或 Lombok 的 @Data
- field(default_factory=...) 等价于 Java 中在构造器里 new ArrayList<>()
- @property 等价于 Java 的 getter 方法
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class InboundMessage:
    """
    入站消息 - 从聊天平台接收到的用户消息。

    属性:
        channel: 来源平台标识（如 'discord', 'telegram', 'onebot'）
        sender_id: 发送者唯一标识（平台内的用户 ID）
        chat_id: 频道/聊天唯一标识（已经过 normalize_channel_id 归一化）
        content: 消息文本内容，提及已转换为 <at id="..."/> 标记
        self_id: 接收到该消息的机器人账号
        sender_name: 发送者显示名，转发时作为前缀
        guild_id: 群组/服务器 ID，私聊时为 None
        is_direct: 是否为一对一私聊
        message_id: 平台消息 ID
        reply_to: 被引用（回复）的消息 ID
        timestamp: 消息时间戳，默认为当前时间
        metadata: 渠道特有的附加数据
    """

    channel: str            # 来源平台
    sender_id: str          # 发送者 ID
    chat_id: str            # 频道 ID
    content: str            # 消息正文
    self_id: str = ""       # 接收消息的机器人账号
    sender_name: str = ""   # 发送者显示名
    guild_id: str | None = None     # 群组 ID（私聊为 None）
    is_direct: bool = False         # 是否私聊
    message_id: str | None = None   # 本条消息 ID
    reply_to: str | None = None     # 引用的消息 ID
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def cid(self) -> str:
        """
        频道的复合地址，格式为 "platform:chat_id"，例如 "onebot:100"。

        配置文件模式下的转发规则使用该值匹配来源频道。
        """
        return f"{self.channel}:{self.chat_id}"

    @property
    def stripped(self) -> str:
        """去除首尾空白后的消息正文。为空时表示没有可转发的内容。"""
        return self.content.strip()

    @property
    def author(self) -> str:
        """转发前缀中使用的作者名，没有昵称时退回到用户 ID。"""
        return self.sender_name or self.sender_id


@dataclass
class OutboundMessage:
    """
    出站消息 - 命令处理结果，发回到发出命令的频道。

    属性:
        channel: 目标平台标识
        chat_id: 目标频道 ID
        content: 回复文本内容
        self_id: 负责回复的机器人账号（为空时由平台渠道自行决定）
        guild_id: 目标群组 ID（部分平台发送接口需要）
        reply_to: 可选的引用消息 ID
        metadata: 渠道特有的附加数据
    """

    channel: str
    chat_id: str
    content: str
    self_id: str = ""
    guild_id: str | None = None
    reply_to: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
