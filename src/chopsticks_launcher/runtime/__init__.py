"""Runtime module for external tool process management.

This module provides single-use process supervision with graceful-then-forceful
termination for long-running console tools.
"""

from __future__ import annotations

from .tool_runner import (
    IssueCommand,
    RunnerState,
    ShellSpec,
    ToolRunner,
    default_shell,
    write_command,
)

__all__ = [
    "IssueCommand",
    "RunnerState",
    "ShellSpec",
    "ToolRunner",
    "default_shell",
    "write_command",
]
