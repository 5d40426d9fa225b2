"""
回复关联表 - 从"本进程发出的消息 ID"映射到"回复应当转发回去的来源频道"。

每次 put() 都会安排一个一次性定时器，在 TTL 到期后删除该记录；
get() 另外按记录自带的截止时间判断过期，因此即使定时器还没来得及触发，
TTL 语义也是精确的：注册后 < TTL 可取到，≥ TTL 取不到。

关联表只存在于内存，进程重启即清空。asyncio 单线程模型下，
定时器回调与查询不会交错执行，不存在"半条记录"的中间状态。
"""

import asyncio
import time
from typing import Callable

from loguru import logger

from nanorelay.forward.models import RelayEntry


class RelayStore:
    """
    带过期时间的回复关联表。

    只暴露 put / get，不向调用方暴露内部字典。

    属性:
        ttl_ms: 默认过期时间（毫秒）
    """

    def __init__(self, ttl_ms: int = 3_600_000, clock: Callable[[], float] = time.monotonic):
        """
        参数:
            ttl_ms: 默认过期时间（毫秒），对应配置项 forward.replyTimeout
            clock: 单调时钟（秒），测试中可替换为可控时钟
        """
        if ttl_ms <= 0:
            raise ValueError(f"ttl_ms must be positive, got {ttl_ms}")
        self.ttl_ms = ttl_ms
        self._clock = clock
        self._entries: dict[str, tuple[RelayEntry, float]] = {}  # message_id → (记录, 截止时间)
        self._timers: dict[str, asyncio.TimerHandle] = {}

    def put(self, message_id: str, entry: RelayEntry, ttl_ms: int | None = None) -> None:
        """
        注册一条关联记录。同一 ID 重复注册时覆盖旧记录并重新计时。

        参数:
            message_id: 本进程发送成功后得到的消息 ID，形如 "platform:id"
            entry: 回复应当转发回去的来源频道
            ttl_ms: 本条记录的过期时间，为 None 时使用默认值
        """
        ttl = self.ttl_ms if ttl_ms is None else ttl_ms
        if ttl <= 0:
            raise ValueError(f"ttl_ms must be positive, got {ttl}")
        delay = ttl / 1000
        deadline = self._clock() + delay

        self._cancel_timer(message_id)
        self._entries[message_id] = (entry, deadline)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # 没有运行中的事件循环（如同步调用），只依赖 get() 的惰性过期
            return
        self._timers[message_id] = loop.call_later(delay, self._expire, message_id, deadline)

    def get(self, message_id: str) -> RelayEntry | None:
        """
        查询关联记录。

        返回:
            未过期的记录；从未注册或已过期时返回 None（两种情况不做区分）
        """
        item = self._entries.get(message_id)
        if item is None:
            return None
        entry, deadline = item
        if self._clock() >= deadline:
            self._discard(message_id)
            return None
        return entry

    def clear(self) -> None:
        """清空所有记录并取消所有定时器。"""
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _expire(self, message_id: str, deadline: float) -> None:
        """定时器回调。只删除当初安排它的那条记录，被覆盖过的新记录不受影响。"""
        self._timers.pop(message_id, None)
        item = self._entries.get(message_id)
        if item is not None and item[1] == deadline:
            del self._entries[message_id]
            logger.debug(f"Relay entry expired: {message_id}")

    def _discard(self, message_id: str) -> None:
        self._cancel_timer(message_id)
        self._entries.pop(message_id, None)

    def _cancel_timer(self, message_id: str) -> None:
        handle = self._timers.pop(message_id, None)
        if handle is not None:
            handle.cancel()
