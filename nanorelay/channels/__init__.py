"""
平台渠道模块 - 实现多平台即时通讯渠道的接入与管理。

本模块采用插件式架构，通过统一的 BaseChannel 抽象基类定义渠道接口，
各平台渠道（Discord、Telegram、OneBot）分别实现该接口，由 ChannelManager 统一管理。

消息流向：
  用户消息 → 渠道 → MessageBus → 转发服务 → 目标渠道.send() → 其他频道

【Java 开发者类比】
- BaseChannel 相当于 Java 接口（Interface），定义了 start/stop/send 方法契约
- ChannelManager 相当于 Spring 的 ApplicationContext，管理所有渠道 Bean 的生命周期
"""

from nanorelay.channels.base import BaseChannel
from nanorelay.channels.manager import ChannelManager

__all__ = ["BaseChannel", "ChannelManager"]
