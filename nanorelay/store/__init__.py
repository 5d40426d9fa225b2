"""
持久化存储模块 - 保存每个频道的转发目标列表。

转发目标在 mode="database" 时从这里读取，并由 /forward 命令修改。
存储以 (platform, id) 为键，写入采用"插入或更新"语义。
"""

from nanorelay.store.channels import ChannelStore

__all__ = ["ChannelStore"]
