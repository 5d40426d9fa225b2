"""
转发核心数据结构。

- ForwardTarget：一个已配置的转发目标频道，按来源频道持久化
- RelayEntry：回复关联记录，以本进程发出的消息 ID 为键，只存在于内存

两者字段相同，但生命周期和所有者不同，所以分成两个类型。
存储中使用 camelCase 键名（与配置文件保持一致）。
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class ForwardTarget:
    """
    转发目标。

    platform + channel_id 唯一确定目标频道；self_id 是负责在该频道发言的机器人；
    guild_id 是部分平台发送接口需要的群组上下文。
    """

    platform: str
    channel_id: str
    self_id: str
    guild_id: str | None = None

    def same_channel(self, platform: str, channel_id: str) -> bool:
        """判断是否指向同一个频道（忽略机器人账号和群组）。"""
        return self.platform == platform and self.channel_id == channel_id

    def to_dict(self) -> dict[str, Any]:
        """序列化为存储格式，guildId 为空时省略。"""
        data: dict[str, Any] = {
            "platform": self.platform,
            "channelId": self.channel_id,
            "selfId": self.self_id,
        }
        if self.guild_id:
            data["guildId"] = self.guild_id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ForwardTarget":
        """从存储格式反序列化。"""
        guild_id = data.get("guildId")
        return cls(
            platform=str(data["platform"]),
            channel_id=str(data["channelId"]),
            self_id=str(data.get("selfId", "")),
            guild_id=str(guild_id) if guild_id else None,
        )


@dataclass(frozen=True)
class RelayEntry:
    """回复关联记录：如果有人回复了以该记录为值的那条消息，就把回复转发到这里。"""

    platform: str
    channel_id: str
    self_id: str
    guild_id: str | None = None
