"""转发模块的异常类型。"""


class ForwardError(Exception):
    """转发相关错误的基类。"""


class StoreError(ForwardError):
    """持久化存储读写失败（文件 I/O 错误、内容损坏等）。"""
