"""
异步消息队列模块 - 消息总线的核心实现。

基于 asyncio.Queue 的生产者-消费者模式：

入站流程（用户 → 转发服务）：
  渠道适配器 → publish_inbound() → inbound 队列 → consume_inbound() → ForwardService

出站流程（命令回复 → 用户）：
  ForwardService → publish_outbound() → outbound 队列 → consume_outbound() → ChannelManager

【Java 开发者类比】
- asyncio.Queue 类似于 Java 的 LinkedBlockingQueue
- publish/consume 模式类似于 BlockingQueue.put()/take()
"""

import asyncio

from nanorelay.bus.events import InboundMessage, OutboundMessage


class MessageBus:
    """
    异步消息总线 - 解耦平台渠道与转发服务的通信中枢。

    属性:
        inbound: 入站消息异步队列（渠道 → 转发服务）
        outbound: 出站消息异步队列（转发服务 → 渠道）
    """

    def __init__(self):
        self.inbound: asyncio.Queue[InboundMessage] = asyncio.Queue()
        self.outbound: asyncio.Queue[OutboundMessage] = asyncio.Queue()

    async def publish_inbound(self, msg: InboundMessage) -> None:
        """发布入站消息（渠道 → 转发服务）。"""
        await self.inbound.put(msg)

    async def consume_inbound(self) -> InboundMessage:
        """
        消费下一条入站消息（阻塞等待）。

        转发服务主循环调用此方法获取待处理的消息，
        队列为空时异步挂起，直到有新消息到达。
        """
        return await self.inbound.get()

    async def publish_outbound(self, msg: OutboundMessage) -> None:
        """发布出站消息（命令回复 → 渠道）。"""
        await self.outbound.put(msg)

    async def consume_outbound(self) -> OutboundMessage:
        """消费下一条出站消息，由 ChannelManager 的分发循环调用。"""
        return await self.outbound.get()

    @property
    def inbound_size(self) -> int:
        """待处理的入站消息数量。"""
        return self.inbound.qsize()

    @property
    def outbound_size(self) -> int:
        """待分发的出站消息数量。"""
        return self.outbound.qsize()
