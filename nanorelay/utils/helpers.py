"""
工具函数集合 - nanorelay 项目全局通用的辅助函数。

函数分类：
- 路径管理：ensure_dir, get_data_path, get_store_path
- 标识归一化：normalize_channel_id
- 字符串工具：truncate_string, split_message
"""

from pathlib import Path
from typing import Any


def ensure_dir(path: Path) -> Path:
    """
    确保目录存在，不存在则递归创建。

    参数:
        path: 目标目录路径

    返回:
        创建后的目录路径（原样返回）
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """获取 nanorelay 数据目录（~/.nanorelay）。自动创建不存在的目录。"""
    return ensure_dir(Path.home() / ".nanorelay")


def get_store_path(path: str | None = None) -> Path:
    """
    获取频道存储文件路径。

    参数:
        path: 自定义路径（支持 ~）。为 None 时使用 ~/.nanorelay/channels.json

    返回:
        展开后的文件路径，父目录保证存在
    """
    if path:
        target = Path(path).expanduser()
    else:
        target = get_data_path() / "channels.json"
    ensure_dir(target.parent)
    return target


def normalize_channel_id(value: Any) -> str | None:
    """
    将频道标识归一化为字符串。

    部分平台把频道表示为结构化对象（如 {"id": "123", "type": 0}），
    也有平台直接给出整数 ID。所有作为存储键、字典键使用的频道标识
    都必须先经过此函数。

    参数:
        value: 标量 ID、带 id 键的字典或带 id 属性的对象

    返回:
        字符串形式的频道 ID；无法识别时返回 None
    """
    if value is None:
        return None
    if isinstance(value, dict):
        nested = value.get("id")
        return str(nested) if nested not in (None, "") else None
    if isinstance(value, (str, int)):
        text = str(value)
        return text or None
    nested = getattr(value, "id", None)
    if nested not in (None, ""):
        return str(nested)
    return None


def truncate_string(s: str, max_len: int = 100, suffix: str = "...") -> str:
    """
    截断字符串到指定最大长度，超出时添加后缀。

    参数:
        s: 原始字符串
        max_len: 最大长度（包含后缀），默认 100
        suffix: 截断后缀，默认 "..."

    返回:
        截断后的字符串
    """
    if len(s) <= max_len:
        return s
    return s[: max_len - len(suffix)] + suffix


def split_message(content: str, max_len: int) -> list[str]:
    """
    按平台单条消息长度上限拆分文本。

    优先在换行处断开，其次在空格处断开，都找不到时硬切。

    参数:
        content: 原始文本
        max_len: 单条消息最大字符数

    返回:
        拆分后的文本片段列表（原文为空时返回空列表）
    """
    if not content:
        return []
    chunks: list[str] = []
    rest = content
    while len(rest) > max_len:
        cut = rest.rfind("\n", 0, max_len)
        if cut <= 0:
            cut = rest.rfind(" ", 0, max_len)
        if cut <= 0:
            cut = max_len
        chunks.append(rest[:cut])
        rest = rest[cut:].lstrip("\n ")
    if rest:
        chunks.append(rest)
    return chunks
