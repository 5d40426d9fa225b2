"""
Telegram 渠道实现模块 - 基于 python-telegram-bot 库的长轮询模式。

采用长轮询（Long Polling）模式，无需公网 IP 或 Webhook，部署非常简单。

【核心功能】
1. 接收群组和私聊中的文本消息（媒体消息以 "[photo]" 等占位文本转发）
2. 把 text_mention 实体转换为统一的 <at id="..."/> 提及标记
3. 识别"回复"关系，用于双向转发
4. 发送纯文本消息，超长内容按 4096 字符拆分

【消息处理流程】
1. Telegram 服务器 → python-telegram-bot 库接收消息
2. _on_message() 解析消息内容与引用关系
3. _handle_message()（继承自 BaseChannel）发布到消息总线
"""

from __future__ import annotations

import asyncio

from loguru import logger
from telegram import Message, MessageEntity, Update
from telegram.ext import Application, ContextTypes, MessageHandler, filters
from telegram.request import HTTPXRequest

from nanorelay.bus.queue import MessageBus
from nanorelay.channels.base import BaseChannel
from nanorelay.config.schema import TelegramConfig
from nanorelay.forward.mentions import make_mention
from nanorelay.utils.helpers import split_message

# Telegram 单条消息最大长度
MAX_MESSAGE_LEN = 4096


def convert_entities(message: Message) -> str:
    """
    把消息中的 text_mention 实体替换为统一的提及标记。

    text_mention 是没有用户名的成员被 @ 时的形式，实体里直接带有 User 对象；
    普通的 "@username" 本身就是可读文本，保持不变。
    """
    text = message.text or message.caption or ""
    entities = message.entities if message.text else message.caption_entities
    mentions = [e for e in entities or () if e.type == MessageEntity.TEXT_MENTION and e.user]
    if not mentions:
        return text

    # 实体的 offset/length 以 UTF-16 码元计
    encoded = text.encode("utf-16-le")
    parts = []
    cursor = 0
    for entity in sorted(mentions, key=lambda e: e.offset):
        start = entity.offset * 2
        parts.append(encoded[cursor:start].decode("utf-16-le"))
        parts.append(make_mention(str(entity.user.id), entity.user.full_name))
        cursor = (entity.offset + entity.length) * 2
    parts.append(encoded[cursor:].decode("utf-16-le"))
    return "".join(parts)


class TelegramChannel(BaseChannel):
    """
    Telegram 渠道实现 - 基于长轮询（Long Polling）模式。

    群组消息的 guild_id 取群组 chat_id 本身；私聊消息 guild_id 为 None。

    属性:
        config: Telegram 渠道配置（token、代理等）
        _app: python-telegram-bot 的 Application 实例
        _username: 机器人用户名，用于去掉群组命令里的 "@机器人" 后缀
    """

    name = "telegram"

    def __init__(self, config: TelegramConfig, bus: MessageBus):
        super().__init__(config, bus)
        self.config: TelegramConfig = config
        self._app: Application | None = None
        self._username: str = ""

    async def start(self) -> None:
        """
        启动 Telegram 机器人（长轮询模式）。

        1. 构建 Application 实例并配置连接池
        2. 注册消息处理器（命令消息同样交给转发服务处理）
        3. 初始化并开始轮询，记录机器人账号 ID
        4. 进入主循环等待消息
        """
        if not self.config.token:
            logger.error("Telegram bot token not configured")
            return

        self._running = True

        # 较大的连接池避免长时间运行时的池超时
        req = HTTPXRequest(connection_pool_size=16, pool_timeout=5.0, connect_timeout=30.0, read_timeout=30.0)
        builder = Application.builder().token(self.config.token).request(req).get_updates_request(req)
        if self.config.proxy:
            builder = builder.proxy(self.config.proxy).get_updates_proxy(self.config.proxy)
        self._app = builder.build()
        self._app.add_error_handler(self._on_error)

        self._app.add_handler(
            MessageHandler(
                filters.TEXT | filters.PHOTO | filters.VIDEO | filters.VOICE
                | filters.AUDIO | filters.Sticker.ALL | filters.Document.ALL,
                self._on_message,
            )
        )

        logger.info("Starting Telegram bot (polling mode)...")

        await self._app.initialize()
        await self._app.start()

        bot_info = await self._app.bot.get_me()
        self.self_id = str(bot_info.id)
        self._username = bot_info.username or ""
        logger.info(f"Telegram bot @{self._username} connected ({self.self_id})")

        await self._app.updater.start_polling(
            allowed_updates=["message"],
            drop_pending_updates=True  # 启动时忽略积压的旧消息，避免重复转发
        )

        while self._running:
            await asyncio.sleep(1)

    async def stop(self) -> None:
        """停止 Telegram 机器人：停止轮询 → 停止应用 → 释放资源。"""
        self._running = False

        if self._app:
            logger.info("Stopping Telegram bot...")
            await self._app.updater.stop()
            await self._app.stop()
            await self._app.shutdown()
            self._app = None

    async def send(self, chat_id: str, content: str, guild_id: str | None = None) -> list[str]:
        """
        发送纯文本消息。

        参数:
            chat_id: Telegram chat_id（整数形式的字符串）
            content: 消息文本

        返回:
            发送成功的消息 ID 列表
        """
        if not self._app:
            raise RuntimeError("Telegram bot not running")

        ids: list[str] = []
        for chunk in split_message(content, MAX_MESSAGE_LEN):
            sent = await self._app.bot.send_message(chat_id=int(chat_id), text=chunk)
            ids.append(str(sent.message_id))
        return ids

    async def _on_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """
        处理所有消息（包括 /forward 命令）。

        参数:
            update: Telegram 更新对象
            context: 回调上下文
        """
        if not update.message or not update.effective_user:
            return

        message = update.message
        user = update.effective_user
        if user.is_bot:
            return

        # 使用数字 ID 作为主标识，同时附带用户名（用于白名单兼容）
        sender_id = str(user.id)
        if user.username:
            sender_id = f"{sender_id}|{user.username}"

        content = self._strip_bot_suffix(convert_entities(message))
        if message.photo:
            content = f"[photo] {content}".strip()
        elif message.sticker:
            content = f"[sticker {message.sticker.emoji or ''}]".strip()
        elif message.document:
            content = f"[file: {message.document.file_name or 'document'}] {content}".strip()

        is_direct = message.chat.type == "private"
        reply_to = message.reply_to_message.message_id if message.reply_to_message else None

        logger.debug(f"Telegram message from {sender_id}: {content[:50]}")

        await self._handle_message(
            sender_id=sender_id,
            chat_id=message.chat_id,
            content=content,
            sender_name=user.full_name,
            guild_id=None if is_direct else str(message.chat_id),
            is_direct=is_direct,
            message_id=str(message.message_id),
            reply_to=str(reply_to) if reply_to else None,
            metadata={"username": user.username},
        )

    def _strip_bot_suffix(self, content: str) -> str:
        """群组中的命令形如 "/forward@MyBot add ..."，去掉 "@MyBot" 后缀。"""
        if not self._username or not content.startswith("/"):
            return content
        head, sep, rest = content.partition(" ")
        suffix = f"@{self._username}"
        if head.lower().endswith(suffix.lower()):
            head = head[: -len(suffix)]
        return head + sep + rest

    async def _on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        """全局错误处理器 - 记录轮询/处理器中的异常。"""
        logger.error(f"Telegram error: {context.error}")
