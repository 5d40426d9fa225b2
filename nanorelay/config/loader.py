"""
配置加载工具模块 (config/loader.py)
=================================
本模块负责 nanorelay 配置文件的加载、保存和格式转换：
- 配置文件默认路径: ~/.nanorelay/config.json
- 配置文件使用 camelCase（驼峰命名），Python 内部使用 snake_case（下划线命名）
- 加载时自动将 camelCase → snake_case，保存时自动将 snake_case → camelCase
- 支持旧版配置格式的自动迁移

对于 Java 开发者：
- 类似于 Spring Boot 的 application.yml 加载机制
- camelCase ↔ snake_case 转换类似于 Jackson 的 @JsonNaming 注解功能
"""

import json
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from nanorelay.config.schema import Config


def get_config_path() -> Path:
    """获取默认配置文件路径: ~/.nanorelay/config.json"""
    return Path.home() / ".nanorelay" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    从 JSON 文件加载配置，若文件不存在则返回默认配置。

    加载流程：
    1. 确定配置文件路径（传入的路径 或 默认路径 ~/.nanorelay/config.json）
    2. 读取 JSON 文件内容
    3. 执行旧版配置格式迁移（_migrate_config）
    4. 将 camelCase 键名转换为 snake_case（convert_keys）
    5. 使用 Pydantic 的 model_validate 进行类型验证和反序列化

    参数:
        config_path: 可选的配置文件路径。为 None 时使用默认路径。

    返回:
        Config 配置对象实例
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            with open(path) as f:
                data = json.load(f)
            data = _migrate_config(data)
            return Config.model_validate(convert_keys(data))
        except (json.JSONDecodeError, ValidationError, ValueError) as e:
            # 配置文件损坏时降级使用默认配置，而非直接报错退出
            logger.warning(f"Failed to load config from {path}: {e}")
            logger.warning("Using default configuration.")

    return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """
    将配置对象保存为 JSON 文件（camelCase 键名，带缩进）。

    参数:
        config: 要保存的配置对象
        config_path: 可选的保存路径。为 None 时使用默认路径。
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump()
    data = convert_to_camel(data)

    with open(path, "w") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def _migrate_config(data: dict) -> dict:
    """
    旧版配置格式迁移。

    早期版本把转发配置平铺在根级（mode / rules / replyTimeout），
    现在统一收拢到 forward 节点下。新位置已有值时不覆盖。

    参数:
        data: 原始配置字典

    返回:
        迁移后的配置字典
    """
    forward = data.setdefault("forward", {})
    for key in ("mode", "rules", "replyTimeout"):
        if key in data and key not in forward:
            forward[key] = data.pop(key)
    return data


def convert_keys(data: Any) -> Any:
    """
    递归地将字典中所有 camelCase 键名转换为 snake_case。

    示例: {"replyTimeout": 1000} → {"reply_timeout": 1000}
    """
    if isinstance(data, dict):
        return {camel_to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """
    递归地将字典中所有 snake_case 键名转换为 camelCase。

    示例: {"reply_timeout": 1000} → {"replyTimeout": 1000}
    """
    if isinstance(data, dict):
        return {snake_to_camel(k): convert_to_camel(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """
    将 camelCase 字符串转换为 snake_case。
    例: "selfId" → "self_id", "replyTimeout" → "reply_timeout"
    """
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)


def snake_to_camel(name: str) -> str:
    """
    将 snake_case 字符串转换为 camelCase。
    例: "self_id" → "selfId", "guild_id" → "guildId"
    """
    components = name.split("_")
    return components[0] + "".join(x.title() for x in components[1:])
