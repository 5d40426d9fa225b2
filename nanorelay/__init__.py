"""
nanorelay - 轻量级跨平台消息转发机器人

模块概述：
    本文件是 nanorelay 包的入口文件（__init__.py），定义了包的元信息。
    nanorelay 将一个聊天频道中的消息转发到其他（可能位于不同平台的）频道，
    并在一段时间内把对转发消息的回复转发回原频道（"双向转发"）。

    整个框架的核心功能包括：
    - 多平台消息接入（Discord、Telegram、OneBot）
    - 转发目标管理（配置文件规则 或 持久化存储 + 聊天命令）
    - 回复关联表：限时把回复路由回消息来源
    - 并发扇出发送，单个目标失败不影响其他目标
"""

# 版本号，遵循语义化版本规范（主版本.次版本.修订号）
__version__ = "0.1.0"

# 项目 logo 表情符号，用于 CLI 输出等场景的品牌标识
__logo__ = "🔁"
