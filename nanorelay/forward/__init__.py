"""转发核心：地址解析、目标解析、回复关联、转发管线与 /forward 命令。"""

from nanorelay.forward.errors import ForwardError, StoreError
from nanorelay.forward.models import ForwardTarget, RelayEntry

__all__ = ["ForwardError", "StoreError", "ForwardTarget", "RelayEntry"]
