"""Config managers: ready-to-use chopsticks argument fragments."""

from __future__ import annotations

import shlex
import subprocess
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass

__all__ = [
    "ConfigManager",
    "DefaultConfig",
    "FileConfig",
]

IS_WINDOWS = sys.platform == "win32"


def _quote(value: str) -> str:
    """Quote a value only when the platform shell would split it."""
    if IS_WINDOWS:
        return subprocess.list2cmdline([value])
    return shlex.quote(value)


class ConfigManager(ABC):
    """Provides the config needed to start chopsticks."""

    @property
    @abstractmethod
    def arguments(self) -> str:
        """Command-line fragment appended to the chopsticks invocation."""


@dataclass(frozen=True)
class DefaultConfig(ConfigManager):
    """Config sourced from a default chain config of the chopsticks repo.

    Attributes:
        chain: Chain name matching a .yaml file in AcalaNetwork/chopsticks/configs
    """

    chain: str

    @property
    def arguments(self) -> str:
        return f"-c {_quote(self.chain)}"


@dataclass(frozen=True)
class FileConfig(ConfigManager):
    """Config sourced from a local config file.

    Attributes:
        config_file: Path to a config file
    """

    config_file: str

    @property
    def arguments(self) -> str:
        return f"--config={_quote(self.config_file)}"
