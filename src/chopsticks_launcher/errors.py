"""chopsticks-launcher 异常类。

所有异常都继承自 ChopsticksError，入口点统一捕获后输出错误信息并退出。
"""

from __future__ import annotations

from pathlib import Path

__all__ = [
    "ChopsticksError",
    "ConfigIOError",
    "BuilderDisposedError",
    "ProcessStartError",
    "RunnerStateError",
]


class ChopsticksError(Exception):
    """chopsticks-launcher 基础异常。"""
    pass


class ConfigIOError(ChopsticksError):
    """配置文件读写错误（基础配置无法读取/解析，临时文件无法写入）。

    Attributes:
        path: 出错的文件路径
        message: 错误消息
    """

    def __init__(self, path: str | Path, message: str) -> None:
        self.path = str(path)
        self.message = message
        super().__init__(f"{self.path}: {message}")


class BuilderDisposedError(ChopsticksError):
    """Builder 已释放（临时文件已删除）后仍调用 get_manager()。"""
    pass


class ProcessStartError(ChopsticksError):
    """操作系统无法创建子进程。

    Attributes:
        argv: 启动时使用的命令行
    """

    def __init__(self, argv: list[str], message: str) -> None:
        self.argv = list(argv)
        super().__init__(f"Console process couldn't be started ({argv[0] if argv else '?'}): {message}")


class RunnerStateError(ChopsticksError):
    """ToolRunner 状态不允许该操作（例如重复 run()）。"""
    pass
