"""
渠道管理器模块 - 管理所有平台渠道的生命周期，并充当"机器人注册表"。

本模块负责：
1. 根据配置初始化所有已启用的渠道
2. 统一启动/停止所有渠道
3. 运行出站消息分发器，把命令回复路由到正确的渠道
4. 向转发核心提供机器人查询：bot_for(platform, self_id)、在线机器人列表、在线平台名

【Java 开发者类比】
- ChannelManager 相当于 Spring 的 ApplicationContext + MessageRouter
- _init_channels() 相当于容器启动时的 Bean 初始化过程
- 延迟导入（lazy import）相当于 Spring 的懒加载（@Lazy）
"""

from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger

from nanorelay.bus.queue import MessageBus
from nanorelay.channels.base import BaseChannel
from nanorelay.config.schema import Config


class ChannelManager:
    """
    渠道管理器。

    属性:
        config: 全局配置对象
        bus: 消息总线实例
        channels: 已初始化的渠道字典 {平台名: 渠道实例}
        _dispatch_task: 出站消息分发器的异步任务句柄
    """

    def __init__(self, config: Config, bus: MessageBus):
        self.config = config
        self.bus = bus
        self.channels: dict[str, BaseChannel] = {}
        self._dispatch_task: asyncio.Task | None = None

        self._init_channels()

    def _init_channels(self) -> None:
        """
        根据配置初始化所有已启用的渠道。

        采用"延迟导入"模式：只有当某个渠道在配置中启用时才导入对应模块，
        未启用的渠道不需要安装其依赖包，ImportError 也不会影响其他渠道。
        """

        # ===== Discord 渠道 =====
        if self.config.channels.discord.enabled:
            try:
                from nanorelay.channels.discord import DiscordChannel
                self.register(DiscordChannel(self.config.channels.discord, self.bus))
                logger.info("Discord channel enabled")
            except ImportError as e:
                logger.warning(f"Discord channel not available: {e}")

        # ===== Telegram 渠道 =====
        if self.config.channels.telegram.enabled:
            try:
                from nanorelay.channels.telegram import TelegramChannel
                self.register(TelegramChannel(self.config.channels.telegram, self.bus))
                logger.info("Telegram channel enabled")
            except ImportError as e:
                logger.warning(f"Telegram channel not available: {e}")

        # ===== OneBot 渠道 =====
        if self.config.channels.onebot.enabled:
            try:
                from nanorelay.channels.onebot import OneBotChannel
                self.register(OneBotChannel(self.config.channels.onebot, self.bus))
                logger.info("OneBot channel enabled")
            except ImportError as e:
                logger.warning(f"OneBot channel not available: {e}")

    def register(self, channel: BaseChannel) -> None:
        """注册一个渠道实例。同名渠道会被替换。"""
        self.channels[channel.name] = channel

    async def _start_channel(self, name: str, channel: BaseChannel) -> None:
        """启动单个渠道，失败只记录日志，不影响其他渠道。"""
        try:
            await channel.start()
        except Exception as e:
            logger.error(f"Failed to start channel {name}: {e}")

    async def start_all(self) -> None:
        """
        启动所有渠道和出站消息分发器。

        渠道的 start() 通常是长期运行的任务，
        所以用 create_task 将每个渠道放入独立的异步任务中并行运行。
        """
        if not self.channels:
            logger.warning("No channels enabled")
            return

        self._dispatch_task = asyncio.create_task(self._dispatch_outbound())

        tasks = []
        for name, channel in self.channels.items():
            logger.info(f"Starting {name} channel...")
            tasks.append(asyncio.create_task(self._start_channel(name, channel)))

        await asyncio.gather(*tasks, return_exceptions=True)

    async def stop_all(self) -> None:
        """停止分发器，然后逐个停止所有渠道。"""
        logger.info("Stopping all channels...")

        if self._dispatch_task:
            self._dispatch_task.cancel()
            try:
                await self._dispatch_task
            except asyncio.CancelledError:
                pass

        for name, channel in self.channels.items():
            try:
                await channel.stop()
                logger.info(f"Stopped {name} channel")
            except Exception as e:
                logger.error(f"Error stopping {name}: {e}")

    async def _dispatch_outbound(self) -> None:
        """
        出站消息分发器 - 把命令回复发送到对应渠道。

        从消息总线消费 OutboundMessage（带1秒超时），
        按 msg.channel 找到渠道实例后调用 reply()。
        """
        logger.info("Outbound dispatcher started")

        while True:
            try:
                msg = await asyncio.wait_for(
                    self.bus.consume_outbound(),
                    timeout=1.0
                )

                channel = self.channels.get(msg.channel)
                if channel:
                    try:
                        await channel.reply(msg)
                    except Exception as e:
                        logger.error(f"Error sending to {msg.channel}: {e}")
                else:
                    logger.warning(f"Unknown channel: {msg.channel}")

            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

    def get_channel(self, name: str) -> BaseChannel | None:
        """根据平台名获取渠道实例，不存在时返回 None。"""
        return self.channels.get(name)

    def bot_for(self, platform: str, self_id: str) -> BaseChannel | None:
        """
        查找可以代表 (platform, self_id) 发言的在线机器人。

        参数:
            platform: 平台名
            self_id: 机器人账号

        返回:
            在线且账号匹配的渠道实例；不存在或未连接时返回 None
        """
        channel = self.channels.get(platform)
        if channel and channel.is_online and channel.self_id == self_id:
            return channel
        return None

    @property
    def bots(self) -> list[BaseChannel]:
        """当前在线的机器人（按注册顺序）。"""
        return [channel for channel in self.channels.values() if channel.is_online]

    @property
    def platforms(self) -> list[str]:
        """当前在线机器人所在的平台名。"""
        return [channel.name for channel in self.bots]

    def get_status(self) -> dict[str, Any]:
        """
        获取所有渠道的运行状态。

        返回:
            {平台名: {"enabled": bool, "running": bool, "self_id": str}}
        """
        return {
            name: {
                "enabled": True,
                "running": channel.is_running,
                "self_id": channel.self_id,
            }
            for name, channel in self.channels.items()
        }

    @property
    def enabled_channels(self) -> list[str]:
        """所有已启用的平台名列表。"""
        return list(self.channels.keys())
