"""
提及（@）标记处理。

各平台渠道在入站时把原生提及语法转换为统一的标记：

    <at id="123"/>            提及某个成员
    <at id="123" name="Tom"/> 附带平台给出的昵称
    <at type="all"/>          提及全体成员

转发时，由于被提及的成员在目标平台并不存在，需要把标记改写为纯文本
"@昵称"。昵称从来源群组的成员表中查询；查不到的 ID 保留原始标记。
"""

import html
import re

# 匹配 <at .../> 自闭合标记
_AT_PATTERN = re.compile(r"<at\b([^>]*?)/>")
# 匹配 key="value" 属性
_ATTR_PATTERN = re.compile(r'(\w+)="([^"]*)"')


def make_mention(user_id: str, name: str | None = None) -> str:
    """生成统一的提及标记。"""
    attrs = f'id="{html.escape(str(user_id), quote=True)}"'
    if name:
        attrs += f' name="{html.escape(name, quote=True)}"'
    return f"<at {attrs}/>"


def parse_attrs(raw: str) -> dict[str, str]:
    """解析标记中的属性。"""
    return {key: html.unescape(value) for key, value in _ATTR_PATTERN.findall(raw)}


def has_mentions(content: str) -> bool:
    """内容中是否含有提及标记。"""
    return _AT_PATTERN.search(content) is not None


def rewrite_mentions(content: str, members: dict[str, str]) -> str:
    """
    把提及标记改写为 "@昵称"。

    参数:
        content: 含提及标记的文本
        members: 来源群组的成员表 {成员 ID: 显示名}

    返回:
        改写后的文本；没有 ID 或查不到昵称的标记原样保留
    """

    def replace(match: re.Match) -> str:
        attrs = parse_attrs(match.group(1))
        user_id = attrs.get("id")
        if not user_id:
            return match.group(0)
        # 成员表优先，其次使用渠道在标记中附带的昵称
        name = members.get(user_id) or attrs.get("name")
        if not name:
            return match.group(0)
        return f"@{name}"

    return _AT_PATTERN.sub(replace, content)
