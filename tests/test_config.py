"""Config 模块测试。

测试 CHOPSTICKS_* 环境变量解析和配置管理。
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest import mock

import pytest

from chopsticks_launcher.config import Config, get_config, load_config, reload_config

_ENV_KEYS = (
    "CHOPSTICKS_VERSION",
    "CHOPSTICKS_LAUNCHER",
    "CHOPSTICKS_TERM_TIMEOUT",
    "CHOPSTICKS_KILL_TIMEOUT",
    "CHOPSTICKS_ECHO",
    "CHOPSTICKS_LOG_DEBUG",
)


def _clean_env() -> dict[str, str]:
    return {k: v for k, v in os.environ.items() if k not in _ENV_KEYS}


class TestDefaults:
    """测试默认值。"""

    def test_defaults(self):
        """未设置任何变量时使用默认值。"""
        with mock.patch.dict(os.environ, _clean_env(), clear=True):
            config = load_config()
            assert config.chopsticks_version == "latest"
            assert config.launcher == "npx"
            assert config.term_timeout == 3.0
            assert config.kill_timeout == 1.0
            assert config.echo_output is True
            assert config.log_debug is False
            assert config.log_file is None

    def test_dataclass_defaults_match(self):
        """Config() 与空环境结果一致。"""
        with mock.patch.dict(os.environ, _clean_env(), clear=True):
            assert load_config() == Config()


class TestParseStr:
    """测试字符串解析。"""

    def test_version(self):
        """固定版本。"""
        with mock.patch.dict(os.environ, {"CHOPSTICKS_VERSION": "0.12.4"}, clear=False):
            assert load_config().chopsticks_version == "0.12.4"

    def test_launcher_with_arguments(self):
        """启动命令可以带参数。"""
        with mock.patch.dict(os.environ, {"CHOPSTICKS_LAUNCHER": "npx --yes"}, clear=False):
            assert load_config().launcher == "npx --yes"

    def test_whitespace_stripped(self):
        """处理空格。"""
        with mock.patch.dict(os.environ, {"CHOPSTICKS_VERSION": "  0.9.0 "}, clear=False):
            assert load_config().chopsticks_version == "0.9.0"

    @pytest.mark.parametrize("value", ["", "   "])
    def test_blank_uses_default(self, value: str):
        """空值使用默认值。"""
        with mock.patch.dict(os.environ, {"CHOPSTICKS_LAUNCHER": value}, clear=False):
            assert load_config().launcher == "npx"


class TestParseBool:
    """测试布尔值解析。"""

    @pytest.mark.parametrize("value", ["true", "True", "TRUE", "1", "yes", "Yes", "on"])
    def test_truthy_values(self, value: str):
        """真值。"""
        with mock.patch.dict(os.environ, {"CHOPSTICKS_ECHO": value}, clear=False):
            assert load_config().echo_output is True

    @pytest.mark.parametrize("value", ["false", "False", "FALSE", "0", "no", "No", "off", ""])
    def test_falsy_values(self, value: str):
        """假值（空字符串视为已设置的假值）。"""
        with mock.patch.dict(os.environ, {"CHOPSTICKS_ECHO": value}, clear=False):
            assert load_config().echo_output is False


class TestParseTimeout:
    """测试超时时间解析。"""

    def test_custom_value(self):
        """自定义值。"""
        with mock.patch.dict(os.environ, {"CHOPSTICKS_TERM_TIMEOUT": "5.5"}, clear=False):
            assert load_config().term_timeout == 5.5

    def test_lower_bound(self):
        """低于 0.1 秒时被限制。"""
        with mock.patch.dict(os.environ, {"CHOPSTICKS_TERM_TIMEOUT": "0"}, clear=False):
            assert load_config().term_timeout == 0.1

    def test_term_upper_bound(self):
        """优雅停止最多 60 秒。"""
        with mock.patch.dict(os.environ, {"CHOPSTICKS_TERM_TIMEOUT": "600"}, clear=False):
            assert load_config().term_timeout == 60.0

    def test_kill_upper_bound(self):
        """kill 后等待最多 30 秒。"""
        with mock.patch.dict(os.environ, {"CHOPSTICKS_KILL_TIMEOUT": "100"}, clear=False):
            assert load_config().kill_timeout == 30.0

    def test_invalid_uses_default(self):
        """无效值使用默认值。"""
        with mock.patch.dict(
            os.environ,
            {"CHOPSTICKS_TERM_TIMEOUT": "soon", "CHOPSTICKS_KILL_TIMEOUT": "later"},
            clear=False,
        ):
            config = load_config()
            assert config.term_timeout == 3.0
            assert config.kill_timeout == 1.0


class TestLogDebug:
    """测试日志调试模式。"""

    def test_log_file_generated(self):
        """开启时生成临时目录下的日志文件路径。"""
        with mock.patch.dict(os.environ, {"CHOPSTICKS_LOG_DEBUG": "1"}, clear=False):
            config = load_config()
            assert config.log_debug is True
            assert config.log_file is not None
            log_file = Path(config.log_file)
            assert log_file.is_absolute()
            assert log_file.parent.name == "chopsticks-launcher"
            assert log_file.name.startswith("chopsticks_debug_")

    def test_no_log_file_when_disabled(self):
        """关闭时不生成日志文件路径。"""
        with mock.patch.dict(os.environ, {"CHOPSTICKS_LOG_DEBUG": "false"}, clear=False):
            assert load_config().log_file is None


class TestGlobalConfig:
    """测试全局配置实例。"""

    def test_get_config_is_cached(self):
        """get_config() 返回同一实例。"""
        reload_config()
        assert get_config() is get_config()

    def test_reload_config(self):
        """reload_config() 重新读取环境变量。"""
        try:
            with mock.patch.dict(os.environ, {"CHOPSTICKS_VERSION": "0.1.0"}, clear=False):
                reload_config()
                assert get_config().chopsticks_version == "0.1.0"
            with mock.patch.dict(os.environ, {"CHOPSTICKS_VERSION": "0.2.0"}, clear=False):
                assert get_config().chopsticks_version == "0.1.0"
                assert reload_config().chopsticks_version == "0.2.0"
        finally:
            reload_config()

    def test_repr(self):
        """repr 包含字段。"""
        assert "launcher=npx" in repr(Config())
