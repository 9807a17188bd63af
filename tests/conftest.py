"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import json
import sys
import threading
from pathlib import Path

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

# 假工具脚本
FAKE_TOOL = Path(__file__).parent / "fixtures" / "fake_tool.py"


class OutputRecorder:
    """记录子进程 stdout 行，并可等待特定状态事件。"""

    def __init__(self) -> None:
        self.lines: list[str] = []
        self._lock = threading.RLock()
        self._changed = threading.Condition(self._lock)

    def __call__(self, line: str) -> None:
        with self._changed:
            self.lines.append(line)
            self._changed.notify_all()

    def events(self) -> list[dict]:
        """解析为 JSON 的行（非 JSON 行被忽略）。"""
        with self._lock:
            lines = list(self.lines)
        parsed = []
        for line in lines:
            try:
                parsed.append(json.loads(line))
            except ValueError:
                continue
        return parsed

    def wait_for_status(self, status: str, timeout: float = 10.0) -> dict | None:
        """等待 fake_tool 输出指定 status 的事件。"""
        def find() -> dict | None:
            for event in self.events():
                if isinstance(event, dict) and event.get("status") == status:
                    return event
            return None

        with self._changed:
            self._changed.wait_for(lambda: find() is not None, timeout=timeout)
        return find()


@pytest.fixture
def fake_tool() -> Path:
    """fake_tool.py 路径。"""
    return FAKE_TOOL


@pytest.fixture
def fake_tool_argv(fake_tool: Path) -> list[str]:
    """直接运行 fake_tool 的命令行前缀。"""
    return [sys.executable, str(fake_tool)]


@pytest.fixture
def recorder() -> OutputRecorder:
    """stdout 行记录器。"""
    return OutputRecorder()


@pytest.fixture
def in_tmp_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """切换当前工作目录到临时目录。"""
    monkeypatch.chdir(tmp_path)
    return tmp_path
