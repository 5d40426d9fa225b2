"""
配置数据模型定义 (config/schema.py)
=================================
本模块使用 Pydantic 定义 nanorelay 的完整配置结构。
所有配置项都有默认值，用户只需在 config.json 中覆盖需要修改的部分。

整体配置结构（树形）：
Config (根配置)
├── channels      - 平台渠道配置（Discord / Telegram / OneBot）
├── forward       - 转发配置（规则存储方式、静态规则、回复超时等）
└── store         - 持久化存储配置（频道存储文件路径）

对于 Java 开发者：
- Pydantic 的 BaseModel 类似于 Java 的 POJO/Record，但自带字段验证和默认值
- BaseSettings 类似于 Spring 的 @ConfigurationProperties，额外支持从环境变量读取配置
- Field(default_factory=...) 类似于 Java 中用工厂方法创建可变默认值，避免共享引用问题
"""

from typing import Literal

from pydantic import BaseModel, Field, ConfigDict
from pydantic_settings import BaseSettings


# ==============================================================================
# 渠道配置模型（各消息平台的连接参数）
# 每个渠道都有 enabled 开关和 allow_from 白名单
# ==============================================================================


class DiscordConfig(BaseModel):
    """Discord 渠道配置。使用 Gateway WebSocket 接收消息，REST API 发送消息。"""
    enabled: bool = False
    token: str = ""  # 从 Discord Developer Portal 获取的 Bot Token
    allow_from: list[str] = Field(default_factory=list)  # 允许的用户 ID 白名单
    gateway_url: str = "wss://gateway.discord.gg/?v=10&encoding=json"  # Discord Gateway 地址
    intents: int = 37379  # GUILDS + GUILD_MEMBERS + GUILD_MESSAGES + DIRECT_MESSAGES + MESSAGE_CONTENT


class TelegramConfig(BaseModel):
    """Telegram 渠道配置。使用 Bot API 长轮询方式接收消息。"""
    enabled: bool = False
    token: str = ""  # 从 @BotFather 获取的 Bot Token
    allow_from: list[str] = Field(default_factory=list)  # 允许的用户 ID 或用户名白名单
    proxy: str | None = None  # HTTP/SOCKS5 代理地址，如 "http://127.0.0.1:7890"


class OneBotConfig(BaseModel):
    """OneBot v11 渠道配置。以正向 WebSocket 连接到 OneBot 实现（如 NapCat、LLOneBot）。"""
    enabled: bool = False
    ws_url: str = "ws://127.0.0.1:3001"  # OneBot 正向 WebSocket 地址
    access_token: str = ""  # 鉴权令牌，通过 Authorization: Bearer 头发送
    self_id: str = ""  # 机器人 QQ 号；为空时从连接后的生命周期事件中获取
    allow_from: list[str] = Field(default_factory=list)  # 允许的 QQ 号白名单
    action_timeout: float = 10.0  # 调用 API 等待响应的超时（秒）


class ChannelsConfig(BaseModel):
    """所有平台渠道的聚合配置。每个渠道都是可选的，默认全部关闭。"""
    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    onebot: OneBotConfig = Field(default_factory=OneBotConfig)


# ==============================================================================
# 转发配置
# ==============================================================================


class ForwardRule(BaseModel):
    """
    静态转发规则（仅 mode="config" 时生效）。

    示例: {"source": "onebot:100", "target": "discord:200", "selfId": "B1"}
    """
    source: str  # 来源频道地址 platform:channelId
    target: str  # 目标频道地址 platform:channelId
    self_id: str  # 负责推送的机器人账号
    guild_id: str | None = None  # 目标频道的群组编号（部分平台发送时需要）


class ForwardConfig(BaseModel):
    """
    转发行为配置。

    - mode: 转发规则的存储方式。"config" 使用下方 rules 静态规则；
      "database" 使用持久化存储，由 /forward 聊天命令维护
    - reply_timeout: 转发消息不再响应回复的时间（毫秒），默认 1 小时
    - ignore_direct_quotes: 私聊中的引用消息不做回复转发，按普通消息处理
    """
    mode: Literal["database", "config"] = "config"
    rules: list[ForwardRule] = Field(default_factory=list)
    reply_timeout: int = Field(default=3_600_000, gt=0)  # 毫秒
    ignore_direct_quotes: bool = False
    admins: list[str] = Field(default_factory=list)  # 允许使用 /forward 命令的用户 ID（为空时不限制）


class StoreConfig(BaseModel):
    """持久化存储配置。频道转发目标保存在一个 JSON 文件中。"""
    path: str = "~/.nanorelay/channels.json"


# ==============================================================================
# 根配置类：整个 nanorelay 的配置入口
# ==============================================================================


class Config(BaseSettings):
    """
    nanorelay 根配置类。

    继承自 Pydantic 的 BaseSettings，除了支持从 JSON 文件加载外，
    还支持从环境变量读取配置：
    - 环境变量前缀: NANORELAY_
    - 嵌套分隔符: __ (双下划线)
    - 示例: NANORELAY_FORWARD__MODE=database 可覆盖 forward.mode
    """
    channels: ChannelsConfig = Field(default_factory=ChannelsConfig)  # 平台渠道配置
    forward: ForwardConfig = Field(default_factory=ForwardConfig)  # 转发配置
    store: StoreConfig = Field(default_factory=StoreConfig)  # 持久化存储配置

    # Pydantic Settings 配置：支持 NANORELAY_ 前缀的环境变量，嵌套用 __ 分隔
    model_config = ConfigDict(
        env_prefix="NANORELAY_",  # 环境变量前缀
        env_nested_delimiter="__"  # 嵌套配置的分隔符
    )
