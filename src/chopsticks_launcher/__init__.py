"""chopsticks-launcher - 管理 Acala chopsticks 分叉链子进程。

环境变量:
    CHOPSTICKS_VERSION: chopsticks npm 版本 (默认 latest)
    CHOPSTICKS_LAUNCHER: 启动命令 (默认 npx)
    CHOPSTICKS_TERM_TIMEOUT: 优雅停止等待时间 (默认 3.0s)

用法:
    chopsticks-launcher -c acala
"""

__version__ = "0.1.0"

from .builders import ConfigBuilder, DefaultConfigBuilder, DirectConfigBuilder, FileBuilder
from .chopsticks import ChopsticksRunner, build_command_line
from .config_data import ConfigData
from .errors import (
    BuilderDisposedError,
    ChopsticksError,
    ConfigIOError,
    ProcessStartError,
    RunnerStateError,
)
from .managers import ConfigManager, DefaultConfig, FileConfig
from .runtime import RunnerState, ShellSpec, ToolRunner
from .app import main

__all__ = [
    "__version__",
    "main",
    "BuilderDisposedError",
    "ChopsticksError",
    "ChopsticksRunner",
    "ConfigBuilder",
    "ConfigData",
    "ConfigIOError",
    "ConfigManager",
    "DefaultConfig",
    "DefaultConfigBuilder",
    "DirectConfigBuilder",
    "FileBuilder",
    "FileConfig",
    "ProcessStartError",
    "RunnerState",
    "RunnerStateError",
    "ShellSpec",
    "ToolRunner",
    "build_command_line",
]
