"""chopsticks-launcher 环境变量配置管理。

环境变量:
    CHOPSTICKS_VERSION: chopsticks 的 npm 版本标签
        - 默认 "latest"
        - WSL 上可能需要固定版本，例: "0.12.4"

    CHOPSTICKS_LAUNCHER: 启动 npm 包的命令
        - 默认 "npx"
        - 例: "npx --yes" 或 "bunx"

    CHOPSTICKS_TERM_TIMEOUT: 优雅停止的等待时间（秒）
        - 默认 3.0 秒
        - 超时后强制 kill，限制在 0.1-60 秒范围

    CHOPSTICKS_KILL_TIMEOUT: 强制 kill 后的等待时间（秒）
        - 默认 1.0 秒，限制在 0.1-30 秒范围

    CHOPSTICKS_ECHO: 是否将 chopsticks 的输出转发到标准输出
        - true/1/yes = 转发 (默认)
        - false/0/no = 不转发（输出只写入 debug 日志）

    CHOPSTICKS_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_VERSION = "latest"
DEFAULT_LAUNCHER = "npx"
DEFAULT_TERM_TIMEOUT = 3.0
DEFAULT_KILL_TIMEOUT = 1.0


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_str(value: str | None, default: str) -> str:
    """解析字符串环境变量，空值使用默认值。"""
    if value is None or not value.strip():
        return default
    return value.strip()


def _parse_timeout(value: str | None, default: float, upper: float) -> float:
    """解析超时时间环境变量。

    Args:
        value: 环境变量值
        default: 未设置或无效时的默认值
        upper: 上限（秒）

    Returns:
        限制在 0.1-upper 范围内的秒数
    """
    if not value:
        return default
    try:
        timeout = float(value)
        return max(0.1, min(timeout, upper))
    except ValueError:
        return default


@dataclass
class Config:
    """chopsticks-launcher 配置。

    Attributes:
        chopsticks_version: chopsticks npm 版本标签
        launcher: 启动命令（npx 等）
        term_timeout: 优雅停止等待时间（秒）
        kill_timeout: 强制 kill 后等待时间（秒）
        echo_output: 是否转发子进程输出
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
    """

    chopsticks_version: str = DEFAULT_VERSION
    launcher: str = DEFAULT_LAUNCHER
    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    echo_output: bool = True
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(chopsticks_version={self.chopsticks_version}, "
            f"launcher={self.launcher}, "
            f"term_timeout={self.term_timeout}, "
            f"kill_timeout={self.kill_timeout}, "
            f"echo_output={self.echo_output}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    # 使用系统临时目录下的 chopsticks-launcher 子目录
    log_dir = Path(tempfile.gettempdir()) / "chopsticks-launcher"
    log_dir.mkdir(parents=True, exist_ok=True)

    # 生成带时间戳的文件名
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"chopsticks_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("CHOPSTICKS_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        chopsticks_version=_parse_str(os.environ.get("CHOPSTICKS_VERSION"), DEFAULT_VERSION),
        launcher=_parse_str(os.environ.get("CHOPSTICKS_LAUNCHER"), DEFAULT_LAUNCHER),
        term_timeout=_parse_timeout(
            os.environ.get("CHOPSTICKS_TERM_TIMEOUT"), DEFAULT_TERM_TIMEOUT, 60.0
        ),
        kill_timeout=_parse_timeout(
            os.environ.get("CHOPSTICKS_KILL_TIMEOUT"), DEFAULT_KILL_TIMEOUT, 30.0
        ),
        echo_output=_parse_bool(os.environ.get("CHOPSTICKS_ECHO"), default=True),
        log_debug=log_debug,
        log_file=log_file,
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
