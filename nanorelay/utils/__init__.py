"""
工具函数模块 - 提供 nanorelay 项目全局通用的辅助函数。

本模块包含：
- ensure_dir：确保目录存在
- get_data_path：获取数据存储路径
- normalize_channel_id：频道标识归一化
"""

from nanorelay.utils.helpers import ensure_dir, get_data_path, normalize_channel_id

__all__ = ["ensure_dir", "get_data_path", "normalize_channel_id"]
