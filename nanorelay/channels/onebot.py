"""
OneBot v11 渠道实现模块 - 基于正向 WebSocket 连接。

OneBot 是 QQ 机器人生态的通用协议（NapCat、LLOneBot、go-cqhttp 等实现均支持）。
nanorelay 作为客户端连接到 OneBot 实现暴露的 WebSocket 端口，
同一条连接上既接收事件推送，也发送 API 调用。

【消息协议】
- 事件：{"post_type": "message", "message_type": "group", "group_id": ..., "message": [...]}
- 调用：{"action": "send_group_msg", "params": {...}, "echo": "<唯一标识>"}
- 响应：{"status": "ok", "retcode": 0, "data": {...}, "echo": "<同一标识>"}

调用与响应通过 echo 字段配对：发送前登记一个 Future，读循环收到带相同 echo 的响应后完成它。

【频道标识】
- 群聊：chat_id = 群号，guild_id = 群号
- 私聊：chat_id = "private:<QQ号>"，guild_id = None
  （私聊地址形如 "onebot:private:123"，频道 ID 本身含冒号）
"""

import asyncio
import json
import re
import uuid
from typing import Any

import websockets
from loguru import logger

from nanorelay.bus.queue import MessageBus
from nanorelay.channels.base import BaseChannel
from nanorelay.config.schema import OneBotConfig
from nanorelay.forward.mentions import make_mention

PRIVATE_PREFIX = "private:"

# CQ 码：[CQ:type,key=value,...]
_CQ_PATTERN = re.compile(r"\[CQ:(\w+)((?:,[^\]]*)?)\]")


class OneBotError(Exception):
    """OneBot API 调用失败（retcode 非 0 或超时）。"""


def _unescape_cq(text: str) -> str:
    return text.replace("&#91;", "[").replace("&#93;", "]").replace("&#44;", ",").replace("&amp;", "&")


def parse_cq(message: str) -> list[dict[str, Any]]:
    """
    把 CQ 码字符串解析为消息段数组。

    示例: "hi[CQ:at,qq=10]" → [{"type": "text", "data": {"text": "hi"}}, {"type": "at", "data": {"qq": "10"}}]
    """
    segments: list[dict[str, Any]] = []
    cursor = 0
    for match in _CQ_PATTERN.finditer(message):
        if match.start() > cursor:
            segments.append({"type": "text", "data": {"text": _unescape_cq(message[cursor:match.start()])}})
        data: dict[str, str] = {}
        for pair in match.group(2).split(","):
            key, sep, value = pair.partition("=")
            if sep:
                data[key] = _unescape_cq(value)
        segments.append({"type": match.group(1), "data": data})
        cursor = match.end()
    if cursor < len(message):
        segments.append({"type": "text", "data": {"text": _unescape_cq(message[cursor:])}})
    return segments


def segments_to_content(segments: list[dict[str, Any]]) -> tuple[str, str | None]:
    """
    把消息段数组转换为文本内容。

    参数:
        segments: OneBot 消息段数组

    返回:
        (内容, 被引用的消息 ID)；提及转换为 <at id="..."/> 标记，
        图片等非文本段以 "[image]" 形式占位
    """
    parts: list[str] = []
    reply_to: str | None = None
    for segment in segments:
        kind = segment.get("type")
        data = segment.get("data") or {}
        if kind == "text":
            parts.append(str(data.get("text", "")))
        elif kind == "at":
            qq = str(data.get("qq", ""))
            parts.append('<at type="all"/>' if qq == "all" else make_mention(qq, data.get("name")))
        elif kind == "reply":
            reply_to = str(data.get("id")) if data.get("id") is not None else None
        else:
            parts.append(f"[{kind}]")
    return "".join(parts), reply_to


class OneBotChannel(BaseChannel):
    """
    OneBot v11 渠道实现。

    属性:
        config: OneBot 配置（WebSocket 地址、令牌、超时等）
        _ws: WebSocket 连接实例
        _pending: echo → 等待响应的 Future
    """

    name = "onebot"

    def __init__(self, config: OneBotConfig, bus: MessageBus):
        super().__init__(config, bus)
        self.config: OneBotConfig = config
        self.self_id = config.self_id
        self._ws = None
        self._pending: dict[str, asyncio.Future] = {}

    async def start(self) -> None:
        """
        连接 OneBot 实现并进入事件循环，断线后5秒重连。
        """
        headers = {}
        if self.config.access_token:
            headers["Authorization"] = f"Bearer {self.config.access_token}"

        self._running = True
        while self._running:
            try:
                logger.info(f"Connecting to OneBot at {self.config.ws_url}...")
                async with websockets.connect(self.config.ws_url, additional_headers=headers) as ws:
                    self._ws = ws
                    logger.info("Connected to OneBot")
                    async for raw in ws:
                        await self._on_raw(raw)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning(f"OneBot connection error: {e}")
                if self._running:
                    logger.info("Reconnecting to OneBot in 5 seconds...")
                    await asyncio.sleep(5)
            finally:
                self._ws = None
                self._fail_pending(OneBotError("OneBot connection closed"))

    async def stop(self) -> None:
        """关闭连接并让所有未完成的调用失败。"""
        self._running = False
        if self._ws:
            await self._ws.close()
            self._ws = None
        self._fail_pending(OneBotError("OneBot channel stopped"))

    async def call_action(self, action: str, params: dict[str, Any]) -> Any:
        """
        调用 OneBot API 并等待响应。

        参数:
            action: API 名称，如 "send_group_msg"
            params: API 参数

        返回:
            响应中的 data 字段

        异常:
            OneBotError: 未连接、超时或 retcode 非 0
        """
        if not self._ws:
            raise OneBotError("OneBot not connected")

        echo = uuid.uuid4().hex
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[echo] = future
        try:
            await self._ws.send(json.dumps({"action": action, "params": params, "echo": echo}))
            response = await asyncio.wait_for(future, timeout=self.config.action_timeout)
        except asyncio.TimeoutError as e:
            raise OneBotError(f"OneBot action {action} timed out") from e
        finally:
            self._pending.pop(echo, None)

        if response.get("status") == "failed" or response.get("retcode", 0) != 0:
            raise OneBotError(f"OneBot action {action} failed: {response.get('wording') or response.get('msg') or response.get('retcode')}")
        return response.get("data")

    async def send(self, chat_id: str, content: str, guild_id: str | None = None) -> list[str]:
        """
        发送消息。内容作为单个 text 消息段发送，不做 CQ 码解析。

        返回:
            [message_id]
        """
        message = [{"type": "text", "data": {"text": content}}]
        if chat_id.startswith(PRIVATE_PREFIX):
            data = await self.call_action("send_private_msg", {
                "user_id": int(chat_id[len(PRIVATE_PREFIX):]),
                "message": message,
            })
        else:
            data = await self.call_action("send_group_msg", {
                "group_id": int(chat_id),
                "message": message,
            })
        message_id = (data or {}).get("message_id")
        return [str(message_id)] if message_id is not None else []

    async def get_guild_member_map(self, guild_id: str) -> dict[str, str]:
        """获取群成员表 {QQ号: 群名片或昵称}。"""
        members = await self.call_action("get_group_member_list", {"group_id": int(guild_id)})
        return {
            str(member["user_id"]): member.get("card") or member.get("nickname") or str(member["user_id"])
            for member in members or []
            if member.get("user_id") is not None
        }

    async def resolve_guild_id(self, channel_id: str) -> str | None:
        """群聊的群组 ID 就是群号本身，私聊没有群组。"""
        return None if channel_id.startswith(PRIVATE_PREFIX) else channel_id

    async def _on_raw(self, raw: str) -> None:
        """处理一帧 WebSocket 数据：API 响应交给等待者，事件交给事件处理。"""
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Invalid JSON from OneBot: {raw[:100]}")
            return

        echo = data.get("echo")
        if echo is not None and "post_type" not in data:
            future = self._pending.get(str(echo))
            if future and not future.done():
                future.set_result(data)
            return

        if data.get("self_id") is not None:
            self.self_id = str(data["self_id"])

        post_type = data.get("post_type")
        if post_type == "meta_event":
            if data.get("meta_event_type") == "lifecycle":
                logger.info(f"OneBot lifecycle {data.get('sub_type')} ({self.self_id})")
        elif post_type == "message":
            try:
                await self._handle_message_event(data)
            except Exception as e:
                logger.error(f"Error handling OneBot message: {e}")

    async def _handle_message_event(self, event: dict[str, Any]) -> None:
        """
        处理消息事件：解析消息段、区分群聊/私聊后发布到总线。
        """
        message = event.get("message")
        if isinstance(message, str):
            segments = parse_cq(message)
        else:
            segments = message or []
        content, reply_to = segments_to_content(segments)

        sender = event.get("sender") or {}
        user_id = str(event.get("user_id", ""))
        is_direct = event.get("message_type") == "private"
        if is_direct:
            chat_id = f"{PRIVATE_PREFIX}{user_id}"
            guild_id = None
        else:
            chat_id = str(event.get("group_id", ""))
            guild_id = chat_id

        await self._handle_message(
            sender_id=user_id,
            chat_id=chat_id,
            content=content,
            sender_name=sender.get("card") or sender.get("nickname") or user_id,
            guild_id=guild_id,
            is_direct=is_direct,
            message_id=event.get("message_id"),
            reply_to=reply_to,
        )

    def _fail_pending(self, error: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()
