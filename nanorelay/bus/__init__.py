"""
消息总线模块 - 实现平台渠道与转发服务之间的解耦通信。

消息流向：
  用户消息 → 渠道(Channel) → InboundMessage → 消息总线 → 转发服务
  命令回复 → OutboundMessage → 消息总线 → 渠道(Channel) → 用户

转发到其他频道的消息不经过出站队列：转发服务需要拿到发送后产生的
消息 ID 来建立回复关联，因此直接调用目标渠道的 send()。

【Java 开发者类比】
- MessageBus 类似于 Spring 的 ApplicationEventPublisher + @EventListener
- InboundMessage / OutboundMessage 类似于入站/出站 DTO
"""

from nanorelay.bus.events import InboundMessage, OutboundMessage
from nanorelay.bus.queue import MessageBus

__all__ = ["MessageBus", "InboundMessage", "OutboundMessage"]
