"""
Discord 渠道实现模块 - 基于 Discord Gateway WebSocket 协议。

直接使用 Discord Gateway WebSocket API 接收事件、REST API 发送消息，
而非高级 SDK（如 discord.py），保持了极简的依赖。

【核心功能】
1. 通过 WebSocket 连接 Discord Gateway 接收实时消息
2. 自动心跳保活（HEARTBEAT）与断线重连（5秒延迟）
3. 通过 REST API 发送消息（超长内容按 2000 字符拆分，支持速率限制重试）
4. 查询服务器成员表，用于把提及改写为昵称

【Discord Gateway 协议简述】
- op=10 (HELLO): 服务器下发心跳间隔，客户端开始心跳 + 身份验证
- op=2 (IDENTIFY): 客户端发送 token 进行身份验证
- op=0 (DISPATCH): 服务器推送事件（如 READY、MESSAGE_CREATE）
- op=1 (HEARTBEAT): 心跳包
- op=7 (RECONNECT): 服务器要求重连
- op=9 (INVALID SESSION): 会话无效，需要重新连接
"""

import asyncio
import json
import re
from typing import Any

import httpx
import websockets
from loguru import logger

from nanorelay.bus.queue import MessageBus
from nanorelay.channels.base import BaseChannel
from nanorelay.config.schema import DiscordConfig
from nanorelay.forward.mentions import make_mention
from nanorelay.utils.helpers import split_message


# Discord REST API 基础 URL（v10 版本）
DISCORD_API_BASE = "https://discord.com/api/v10"
# 单条消息最大长度
MAX_MESSAGE_LEN = 2000
# 用户提及语法：<@123> 或 <@!123>
_USER_MENTION = re.compile(r"<@!?(\d+)>")


def convert_mentions(content: str, mentions: list[dict[str, Any]] | None = None) -> str:
    """
    把 Discord 原生提及转换为统一的 <at id="..."/> 标记。

    参数:
        content: Discord 原始消息文本
        mentions: MESSAGE_CREATE 事件中的 mentions 列表，用于附带昵称

    返回:
        转换后的文本
    """
    names: dict[str, str] = {}
    for user in mentions or []:
        user_id = str(user.get("id", ""))
        name = (user.get("member") or {}).get("nick") or user.get("global_name") or user.get("username")
        if user_id and name:
            names[user_id] = name
    content = _USER_MENTION.sub(lambda m: make_mention(m.group(1), names.get(m.group(1))), content)
    return content.replace("@everyone", '<at type="all"/>')


def _display_name(user: dict[str, Any], member: dict[str, Any] | None = None) -> str:
    """按 服务器昵称 → 全局显示名 → 用户名 的顺序选取显示名。"""
    return (member or {}).get("nick") or user.get("global_name") or user.get("username") or str(user.get("id", ""))


class DiscordChannel(BaseChannel):
    """
    Discord 渠道实现。

    属性:
        config: Discord 渠道配置（token、gateway URL、intents 等）
        _ws: WebSocket 连接实例
        _seq: 最新的事件序列号（用于心跳）
        _heartbeat_task: 心跳定时任务
        _http: HTTP 异步客户端（用于 REST API 调用）
    """

    name = "discord"

    def __init__(self, config: DiscordConfig, bus: MessageBus):
        super().__init__(config, bus)
        self.config: DiscordConfig = config
        self._ws: websockets.WebSocketClientProtocol | None = None
        self._seq: int | None = None
        self._heartbeat_task: asyncio.Task | None = None
        self._http: httpx.AsyncClient | None = None

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bot {self.config.token}"}

    async def start(self) -> None:
        """
        启动 Discord Gateway 连接。

        采用外层无限循环实现断线自动重连：
        连接断开后等待5秒重新连接，直到 _running 被设为 False。
        """
        if not self.config.token:
            logger.error("Discord bot token not configured")
            return

        self._running = True
        self._http = httpx.AsyncClient(timeout=30.0)

        while self._running:
            try:
                logger.info("Connecting to Discord gateway...")
                async with websockets.connect(self.config.gateway_url) as ws:
                    self._ws = ws
                    await self._gateway_loop()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning(f"Discord gateway error: {e}")
                if self._running:
                    logger.info("Reconnecting to Discord gateway in 5 seconds...")
                    await asyncio.sleep(5)

    async def stop(self) -> None:
        """停止 Discord 渠道：心跳任务 → WebSocket → HTTP 客户端。"""
        self._running = False
        if self._heartbeat_task:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None
        if self._ws:
            await self._ws.close()
            self._ws = None
        if self._http:
            await self._http.aclose()
            self._http = None

    async def send(self, chat_id: str, content: str, guild_id: str | None = None) -> list[str]:
        """
        通过 Discord REST API 发送消息。

        超过 2000 字符的内容拆分为多条依次发送。Discord 的频道 ID 全局唯一，
        不需要 guild_id。

        参数:
            chat_id: Discord 频道 ID
            content: 消息文本

        返回:
            新建消息的 ID 列表
        """
        if not self._http:
            raise RuntimeError("Discord HTTP client not initialized")

        url = f"{DISCORD_API_BASE}/channels/{chat_id}/messages"
        ids: list[str] = []
        for chunk in split_message(content, MAX_MESSAGE_LEN):
            data = await self._post_with_retry(url, {"content": chunk, "allowed_mentions": {"parse": []}})
            if data.get("id"):
                ids.append(str(data["id"]))
        return ids

    async def _post_with_retry(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        """
        POST 请求，最多尝试3次。

        429 按服务器给出的 retry_after 等待；其他错误等待1秒后重试，
        第3次仍失败时抛出最后一次的异常。
        """
        for attempt in range(3):
            try:
                response = await self._http.post(url, headers=self._headers, json=payload)
                if response.status_code == 429:
                    data = response.json()
                    retry_after = float(data.get("retry_after", 1.0))
                    logger.warning(f"Discord rate limited, retrying in {retry_after}s")
                    await asyncio.sleep(retry_after)
                    continue
                response.raise_for_status()
                return response.json()
            except httpx.HTTPError as e:
                if attempt == 2:
                    raise
                logger.debug(f"Discord request failed ({e}), retrying")
                await asyncio.sleep(1)
        raise RuntimeError(f"Discord request to {url} kept being rate limited")

    async def get_guild_member_map(self, guild_id: str) -> dict[str, str]:
        """
        获取服务器成员表（需要 GUILD_MEMBERS 特权意图）。

        返回:
            {用户 ID: 显示名}
        """
        if not self._http:
            return {}
        response = await self._http.get(
            f"{DISCORD_API_BASE}/guilds/{guild_id}/members",
            headers=self._headers,
            params={"limit": 1000},
        )
        response.raise_for_status()
        members: dict[str, str] = {}
        for member in response.json():
            user = member.get("user") or {}
            if user.get("id"):
                members[str(user["id"])] = _display_name(user, member)
        return members

    async def resolve_guild_id(self, channel_id: str) -> str | None:
        """通过 GET /channels/{id} 查询频道所属服务器，私聊频道返回 None。"""
        if not self._http:
            return None
        response = await self._http.get(f"{DISCORD_API_BASE}/channels/{channel_id}", headers=self._headers)
        response.raise_for_status()
        guild_id = response.json().get("guild_id")
        return str(guild_id) if guild_id else None

    async def _gateway_loop(self) -> None:
        """Gateway 主消息循环，按操作码（opcode）分发处理。"""
        if not self._ws:
            return

        async for raw in self._ws:
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON from Discord gateway: {raw[:100]}")
                continue

            op = data.get("op")
            event_type = data.get("t")
            seq = data.get("s")
            payload = data.get("d")

            if seq is not None:
                self._seq = seq

            if op == 10:
                interval_ms = payload.get("heartbeat_interval", 45000)
                await self._start_heartbeat(interval_ms / 1000)
                await self._identify()
            elif op == 0 and event_type == "READY":
                user = payload.get("user") or {}
                self.self_id = str(user.get("id", ""))
                logger.info(f"Discord gateway READY as {user.get('username')} ({self.self_id})")
            elif op == 0 and event_type == "MESSAGE_CREATE":
                await self._handle_message_create(payload)
            elif op == 7:
                logger.info("Discord gateway requested reconnect")
                break
            elif op == 9:
                logger.warning("Discord gateway invalid session")
                break

    async def _identify(self) -> None:
        """发送 IDENTIFY 消息进行身份验证。"""
        if not self._ws:
            return

        identify = {
            "op": 2,
            "d": {
                "token": self.config.token,
                "intents": self.config.intents,
                "properties": {
                    "os": "nanorelay",
                    "browser": "nanorelay",
                    "device": "nanorelay",
                },
            },
        }
        await self._ws.send(json.dumps(identify))

    async def _start_heartbeat(self, interval_s: float) -> None:
        """启动或重启心跳循环。"""
        if self._heartbeat_task:
            self._heartbeat_task.cancel()

        async def heartbeat_loop() -> None:
            while self._running and self._ws:
                payload = {"op": 1, "d": self._seq}
                try:
                    await self._ws.send(json.dumps(payload))
                except Exception as e:
                    logger.warning(f"Discord heartbeat failed: {e}")
                    break
                await asyncio.sleep(interval_s)

        self._heartbeat_task = asyncio.create_task(heartbeat_loop())

    async def _handle_message_create(self, payload: dict[str, Any]) -> None:
        """
        处理 MESSAGE_CREATE 事件。

        1. 过滤机器人消息（包括自己发出的转发消息，防止循环转发）
        2. 把原生提及转换为统一标记
        3. 附件以 "[attachment: 文件名]" 文本形式保留
        4. 转发到消息总线
        """
        author = payload.get("author") or {}
        if author.get("bot"):
            return

        sender_id = str(author.get("id", ""))
        channel_id = payload.get("channel_id")
        if not sender_id or not channel_id:
            return

        content_parts = []
        if payload.get("content"):
            content_parts.append(convert_mentions(payload["content"], payload.get("mentions")))
        for attachment in payload.get("attachments") or []:
            content_parts.append(f"[attachment: {attachment.get('filename') or 'file'}]")

        guild_id = payload.get("guild_id")
        reply_to = (payload.get("message_reference") or {}).get("message_id") \
            or (payload.get("referenced_message") or {}).get("id")

        await self._handle_message(
            sender_id=sender_id,
            chat_id=channel_id,
            content="\n".join(content_parts),
            sender_name=_display_name(author, payload.get("member")),
            guild_id=guild_id,
            is_direct=guild_id is None,
            message_id=payload.get("id"),
            reply_to=reply_to,
        )
