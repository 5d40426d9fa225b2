"""
转发服务 - 消费入站消息，决定每条消息的转发方式。

对每条入站消息：

- 如果它引用了一条仍在有效期内的、由本进程转发出去的消息，
  就只把它转发回那条消息的来源频道（双向转发），不再查询转发目标
- 否则查询所在频道的转发目标，逐个转发

主处理函数（/forward 命令）与所有转发任务并发执行，
等待全部完成后返回主处理函数的结果。转发任务自身从不抛出异常，
因此只有主处理函数的异常会向上传播。
"""

import asyncio
from typing import Awaitable, Callable, TypeVar

from loguru import logger

from nanorelay.bus.events import InboundMessage, OutboundMessage
from nanorelay.bus.queue import MessageBus
from nanorelay.config.schema import ForwardConfig
from nanorelay.forward.address import format_address
from nanorelay.forward.commands import ForwardCommands
from nanorelay.forward.dispatch import RelayDispatcher
from nanorelay.forward.models import RelayEntry
from nanorelay.forward.relay_store import RelayStore
from nanorelay.forward.targets import TargetResolver
from nanorelay.utils.helpers import truncate_string

T = TypeVar("T")


class ForwardService:
    """
    转发服务。

    属性:
        config: 转发配置
        bus: 消息总线
        resolver: 转发目标解析器
        dispatcher: 转发管线
        relays: 回复关联表（只读，写入由 dispatcher 负责）
        commands: /forward 命令处理器，为 None 时不处理命令
    """

    def __init__(
        self,
        config: ForwardConfig,
        bus: MessageBus,
        resolver: TargetResolver,
        dispatcher: RelayDispatcher,
        relays: RelayStore,
        commands: ForwardCommands | None = None,
    ):
        self.config = config
        self.bus = bus
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.relays = relays
        self.commands = commands
        self._running = False
        self._tasks: set[asyncio.Task] = set()

    def intercept(self, msg: InboundMessage) -> RelayEntry | None:
        """
        判断消息是否是对转发消息的回复。

        返回:
            命中时返回应当转发回去的来源频道，否则返回 None
        """
        if not msg.reply_to:
            return None
        if msg.is_direct and self.config.ignore_direct_quotes:
            return None
        return self.relays.get(format_address(msg.channel, msg.reply_to))

    async def handle(self, msg: InboundMessage, next_: Callable[[], Awaitable[T]]) -> T:
        """
        转发中间件。

        参数:
            msg: 入站消息
            next_: 主处理函数，无论转发结果如何都会执行

        返回:
            主处理函数的返回值
        """
        entry = self.intercept(msg)
        if entry is not None:
            logger.debug(f"Reply relay: {msg.cid} -> {entry.platform}:{entry.channel_id}")
            relays = [self.dispatcher.relay(msg, entry)]
        else:
            try:
                targets = await self.resolver.resolve(msg)
            except Exception as e:
                logger.error(f"Failed to resolve forward targets for {msg.cid}: {e}")
                targets = []
            logger.debug(f"Forward: cid={msg.cid} targets={len(targets)} content={truncate_string(msg.stripped, 50)!r}")
            relays = [self.dispatcher.relay(msg, target) for target in targets]

        result, *_ = await asyncio.gather(next_(), *relays)
        return result

    async def run(self) -> None:
        """
        服务主循环：持续消费入站消息，每条消息在独立任务中处理，
        互不阻塞（一条消息的慢速发送不会拖住后续消息）。
        """
        self._running = True
        logger.info("Forward service started")

        while self._running:
            try:
                msg = await asyncio.wait_for(self.bus.consume_inbound(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            task = asyncio.create_task(self._process(msg))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    def stop(self) -> None:
        """停止主循环。正在处理中的消息会继续完成。"""
        self._running = False
        logger.info("Forward service stopping")

    async def _process(self, msg: InboundMessage) -> None:
        try:
            await self.handle(msg, lambda: self._run_command(msg))
        except Exception as e:
            logger.error(f"Error processing message from {msg.cid}: {e}")

    async def _run_command(self, msg: InboundMessage) -> OutboundMessage | None:
        if self.commands is None:
            return None
        response = await self.commands.process(msg)
        if response is not None:
            await self.bus.publish_outbound(response)
        return response
