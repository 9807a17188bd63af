"""Chopsticks process runner.

Starts ``@acala-network/chopsticks`` through npx inside a shell managed by
ToolRunner. Chopsticks is stopped on dispose(), when leaving a ``with`` block,
or by the atexit reaper.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from .builders import ConfigBuilder
from .config import get_config
from .managers import ConfigManager
from .runtime.tool_runner import IS_WINDOWS, RunnerState, ShellSpec, ToolRunner, write_command

__all__ = [
    "CHOPSTICKS_PACKAGE",
    "ChopsticksRunner",
    "build_command_line",
]

logger = logging.getLogger(__name__)

CHOPSTICKS_PACKAGE = "@acala-network/chopsticks"


def build_command_line(
    manager: ConfigManager,
    *,
    launcher: str = "npx",
    version: str = "latest",
) -> str:
    """Build the chopsticks invocation line.

    Args:
        manager: Provides the config arguments
        launcher: Command launching the npm package
        version: npm version tag of chopsticks

    Returns:
        ``<launcher> @acala-network/chopsticks@<version> <arguments>``
    """
    return f"{launcher} {CHOPSTICKS_PACKAGE}@{version} {manager.arguments}"


class ChopsticksRunner(ToolRunner):
    """Given the configuration, starts and manages chopsticks.

    Example:
        manager = DefaultConfigBuilder("moonbeam").get_manager()
        with ChopsticksRunner(manager) as chopsticks:
            chopsticks.run()
            chopsticks.wait()
    """

    def __init__(
        self,
        manager: ConfigManager,
        *,
        version: str | None = None,
        launcher: str | None = None,
        term_timeout: float | None = None,
        kill_timeout: float | None = None,
        on_output: Callable[[str], None] | None = None,
        shell: ShellSpec | None = None,
    ) -> None:
        """Create the runner; chopsticks starts on run().

        Args:
            manager: Config manager providing the chopsticks arguments
            version: chopsticks version tag (default from CHOPSTICKS_VERSION)
            launcher: Launch command (default from CHOPSTICKS_LAUNCHER)
            term_timeout: Graceful stop window (default from CHOPSTICKS_TERM_TIMEOUT)
            kill_timeout: Wait after kill (default from CHOPSTICKS_KILL_TIMEOUT)
            on_output: Optional callback for each chopsticks stdout line
            shell: Shell to issue the command to (default: platform interpreter)
        """
        config = get_config()
        self.manager = manager
        self.version = version if version is not None else config.chopsticks_version
        self.launcher = launcher if launcher is not None else config.launcher
        self._owned_builder: ConfigBuilder | None = None

        super().__init__(
            self._issue,
            shell=shell,
            term_timeout=term_timeout if term_timeout is not None else config.term_timeout,
            kill_timeout=kill_timeout if kill_timeout is not None else config.kill_timeout,
            on_output=on_output,
            name="chopsticks",
        )

    @classmethod
    def from_builder(cls, builder: ConfigBuilder, **kwargs: Any) -> "ChopsticksRunner":
        """Create a runner that owns the builder.

        The builder (and its temp config file) is disposed once chopsticks is
        confirmed stopped, whether by dispose() or by exiting on its own.

        Raises:
            ConfigIOError: If the builder cannot produce its manager
        """
        runner = cls(builder.get_manager(), **kwargs)
        runner._owned_builder = builder
        return runner

    @property
    def command_line(self) -> str:
        """The invocation line issued to the shell."""
        return build_command_line(self.manager, launcher=self.launcher, version=self.version)

    def _issue(self, process: Any) -> None:
        line = self.command_line
        logger.info(f"Starting chopsticks: {line}")
        if not IS_WINDOWS:
            # the launcher replaces the shell and gets the stop signal directly
            line = f"exec {line}"
        write_command(process, line)

    def dispose(self) -> None:
        """Stop chopsticks, then release the owned builder.

        An owning runner disposed before run() is moved to STOPPED, since its
        config file is deleted and it can no longer be started.
        """
        with self._lock:
            if self._state is RunnerState.NOT_STARTED and self._owned_builder is not None:
                self._state = RunnerState.STOPPED
                self._stopped.set()
                self._release()
                return
        super().dispose()

    def _release(self) -> None:
        super()._release()
        with self._lock:
            builder, self._owned_builder = self._owned_builder, None
        if builder is not None:
            builder.dispose()
