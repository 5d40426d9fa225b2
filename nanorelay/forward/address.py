"""
频道地址编解码。

地址格式为 "platform:channelId"。平台名和频道 ID 本身都可能含有冒号，
直接按第一个冒号切分会产生歧义，因此解析时优先匹配当前在线的平台名：
按长度从长到短逐个尝试前缀匹配，最长的匹配胜出。
"""

from typing import Iterable

from nanorelay.forward.models import ForwardTarget


def parse_address(address: str, platforms: Iterable[str] = ()) -> tuple[str, str] | None:
    """
    解析频道地址。

    参数:
        address: "platform:channelId" 格式的地址
        platforms: 当前已知（在线机器人所在）的平台名

    返回:
        (platform, channel_id) 元组；地址不合法时返回 None
    """
    if not address:
        return None

    # 去重后按长度降序，保证较长的平台名先被尝试
    for platform in sorted({p for p in platforms if p}, key=len, reverse=True):
        prefix = platform + ":"
        if address.startswith(prefix):
            channel_id = address[len(prefix):]
            return (platform, channel_id) if channel_id else None

    # 没有已知平台匹配时退回到第一个冒号
    platform, sep, channel_id = address.partition(":")
    if not sep or not platform or not channel_id:
        return None
    return platform, channel_id


def format_address(platform: str, channel_id: str) -> str:
    """parse_address 的逆操作。"""
    return f"{platform}:{channel_id}"


def format_target(target: ForwardTarget) -> str:
    """把转发目标格式化为地址字符串。"""
    return format_address(target.platform, target.channel_id)
