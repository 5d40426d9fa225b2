"""
频道存储模块 - 以 JSON 文件持久化每个频道的附加字段（目前只有 forward 转发目标）。

【存储格式】
{
  "channels": [
    {"platform": "onebot", "id": "100", "forward": [{"platform": "discord", "channelId": "200", "selfId": "B1"}]}
  ]
}

每一行以 (platform, id) 作为唯一键，upsert 为"存在则更新字段，不存在则插入"。
写入时先写临时文件再原子替换，避免进程中途退出留下半个文件。

【Java 开发者类比】
- ChannelStore 类似于一个极简的 Spring Data Repository
- upsert 类似于 JPA 的 merge()，或 SQL 的 INSERT ... ON CONFLICT DO UPDATE
"""

import json
import os
from pathlib import Path
from typing import Any, Iterable, Sequence

from loguru import logger

from nanorelay.forward.errors import StoreError


class ChannelStore:
    """
    基于 JSON 文件的频道存储。

    读写方法声明为 async，与转发核心的调用约定保持一致；
    单次 upsert 内部的"读-改-写"之间没有 await，在 asyncio 单线程模型下是原子的。

    属性:
        path: 存储文件路径
    """

    def __init__(self, path: Path):
        self.path = path

    async def get(
        self,
        platform: str,
        channel_id: str,
        fields: Iterable[str] | None = None,
    ) -> dict[str, Any] | None:
        """
        读取一个频道的记录。

        参数:
            platform: 平台名
            channel_id: 频道 ID（已归一化）
            fields: 需要的字段列表，为 None 时返回整行

        返回:
            记录字典；频道不存在时返回 None

        异常:
            StoreError: 文件读取或解析失败
        """
        for row in self._read():
            if row.get("platform") == platform and row.get("id") == channel_id:
                if fields is None:
                    return dict(row)
                return {name: row.get(name) for name in fields}
        return None

    async def upsert(self, rows: Sequence[dict[str, Any]], keys: Sequence[str] = ("platform", "id")) -> None:
        """
        插入或更新记录（幂等）。

        参数:
            rows: 待写入的记录，必须包含 keys 中的所有字段
            keys: 唯一键字段

        异常:
            StoreError: 文件读写失败
        """
        data = self._read()
        for row in rows:
            missing = [k for k in keys if k not in row]
            if missing:
                raise StoreError(f"Row is missing key fields: {missing}")
            for existing in data:
                if all(existing.get(k) == row[k] for k in keys):
                    existing.update(row)
                    break
            else:
                data.append(dict(row))
        self._write(data)

    def _read(self) -> list[dict[str, Any]]:
        """读取全部记录。文件不存在视为空存储。"""
        if not self.path.exists():
            return []
        try:
            with open(self.path, encoding="utf-8") as f:
                content = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Failed to read channel store {self.path}: {e}") from e
        channels = content.get("channels") if isinstance(content, dict) else None
        if not isinstance(channels, list) or not all(isinstance(row, dict) for row in channels):
            raise StoreError(f"Malformed channel store {self.path}")
        return channels

    def _write(self, rows: list[dict[str, Any]]) -> None:
        """写入全部记录：先写临时文件，再原子替换。"""
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump({"channels": rows}, f, indent=2, ensure_ascii=False)
            os.replace(tmp, self.path)
        except OSError as e:
            raise StoreError(f"Failed to write channel store {self.path}: {e}") from e
        logger.debug(f"Channel store saved ({len(rows)} rows)")
