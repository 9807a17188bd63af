"""Console tool runner with background supervision and reliable termination.

chopsticks-launcher runtime module v0.1.0

This module provides:
- Single-use lifecycle for one external process (NOT_STARTED -> RUNNING -> STOPPED)
- Caller-supplied "issue command" step writing the tool invocation to the shell
- Background supervisor thread waiting for natural exit
- Graceful termination (SIGTERM -> timeout -> SIGKILL) from any thread
- Atexit reaper for runners that were never disposed

Key design points:
- POSIX: start_new_session=True, so signals reach the whole process group
- Windows: CREATE_NEW_PROCESS_GROUP, so CTRL_BREAK_EVENT is deliverable
- One RLock guards every state transition; dispose() racing a natural exit
  signals the process at most once and never raises
"""

from __future__ import annotations

import atexit
import logging
import os
import signal
import subprocess
import sys
import threading
import weakref
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar

import anyio

from ..errors import ProcessStartError, RunnerStateError

__all__ = [
    "IssueCommand",
    "RunnerState",
    "ShellSpec",
    "ToolRunner",
    "default_shell",
    "write_command",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Default timeouts
DEFAULT_TERM_TIMEOUT = 3.0  # seconds to wait after the graceful stop signal
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL

IssueCommand = Callable[[subprocess.Popen], None]


class RunnerState(Enum):
    """Lifecycle state of a ToolRunner."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass(frozen=True)
class ShellSpec:
    """Specification of the shell process the tool command is issued to.

    Attributes:
        argv: Command line arguments (first element is the executable)
        cwd: Working directory for the process (None = inherit)
        env: Environment variables (None = inherit parent)
    """

    argv: list[str]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None


def default_shell() -> ShellSpec:
    """Return the platform command interpreter reading commands from stdin."""
    if IS_WINDOWS:
        return ShellSpec(argv=["cmd.exe"])
    return ShellSpec(argv=["/bin/sh"])


def write_command(
    process: subprocess.Popen[str],
    line: str,
    *,
    close_stdin: bool = True,
) -> None:
    """Write one command line to the process stdin.

    Args:
        process: The started shell process
        line: Command to issue (newline is appended)
        close_stdin: Close stdin afterwards so the shell exits with the command
    """
    if process.stdin is None:
        raise RuntimeError("process was started without a stdin pipe")
    process.stdin.write(line + "\n")
    process.stdin.flush()
    if close_stdin:
        process.stdin.close()


class ToolRunner:
    """Manager of one running outside tool.

    Mostly used for processes that run until terminated. The shell is started
    by run(); the issue_command callback then writes the actual tool invocation
    to it from the supervisor thread.

    Example:
        runner = ToolRunner(
            lambda process: write_command(process, "npx @acala-network/chopsticks@latest -c acala"),
        )
        with runner:
            runner.run()
            runner.wait(timeout=60)
        # leaving the block disposes: SIGTERM, then SIGKILL after term_timeout
    """

    # Live runners, disposed by the atexit hook
    _instances: ClassVar[weakref.WeakSet[ToolRunner]] = weakref.WeakSet()
    _atexit_registered: ClassVar[bool] = False

    def __init__(
        self,
        issue_command: IssueCommand,
        *,
        shell: ShellSpec | None = None,
        term_timeout: float = DEFAULT_TERM_TIMEOUT,
        kill_timeout: float = DEFAULT_KILL_TIMEOUT,
        on_output: Callable[[str], None] | None = None,
        name: str = "tool",
    ) -> None:
        """Create a runner; nothing is started until run().

        Args:
            issue_command: Called once with the started process to issue the tool command
            shell: Shell to start (default: platform command interpreter)
            term_timeout: Seconds to wait for a graceful exit before killing
            kill_timeout: Seconds to wait for exit after the kill
            on_output: Optional callback for each stdout line (newline stripped)
            name: Name used in thread names and log messages
        """
        self._issue_command = issue_command
        self.shell = shell or default_shell()
        self.term_timeout = term_timeout
        self.kill_timeout = kill_timeout
        self._on_output = on_output
        self.name = name

        self._process: subprocess.Popen[str] | None = None
        self._state = RunnerState.NOT_STARTED
        self._error: BaseException | None = None
        self._lock = threading.RLock()
        self._stopped = threading.Event()

        self._supervisor_thread: threading.Thread | None = None
        self._output_thread: threading.Thread | None = None

    @classmethod
    def _register_atexit(cls) -> None:
        """Register the global atexit cleanup once."""
        if not cls._atexit_registered:
            atexit.register(cls._cleanup_all)
            cls._atexit_registered = True

    @classmethod
    def _cleanup_all(cls) -> None:
        """Dispose every runner still alive (atexit callback)."""
        for instance in list(cls._instances):
            try:
                instance.dispose()
            except Exception as e:
                logger.debug(f"Cleanup error: {e}")

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> RunnerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self.state is RunnerState.RUNNING

    @property
    def process(self) -> subprocess.Popen[str] | None:
        return self._process

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def returncode(self) -> int | None:
        return self._process.returncode if self._process is not None else None

    @property
    def error(self) -> BaseException | None:
        """Exception raised by issue_command, if any."""
        return self._error

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Start the shell and hand it to the supervisor thread.

        Returns immediately; the tool keeps running until it exits on its own
        or dispose() is called.

        Raises:
            RunnerStateError: If the runner was already started
            ProcessStartError: If the OS cannot create the process
        """
        with self._lock:
            if self._state is not RunnerState.NOT_STARTED:
                raise RunnerStateError(f"{self.name} runner is single-use (state={self._state.value})")

            try:
                self._process = self._start_process()
            except OSError as e:
                self._state = RunnerState.STOPPED
                self._stopped.set()
                self._release()
                raise ProcessStartError(self.shell.argv, str(e)) from e

            self._state = RunnerState.RUNNING
            logger.debug(
                f"Started {self.name} shell pid={self._process.pid} "
                f"argv={self.shell.argv[0]} cwd={self.shell.cwd}"
            )

            self._register_atexit()
            ToolRunner._instances.add(self)

            self._output_thread = threading.Thread(
                target=self._pump_output,
                args=(self._process,),
                daemon=True,
                name=f"{self.name}_output",
            )
            self._supervisor_thread = threading.Thread(
                target=self._supervise,
                args=(self._process,),
                daemon=True,
                name=f"{self.name}_supervisor",
            )
            self._output_thread.start()
            self._supervisor_thread.start()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the runner is stopped.

        Args:
            timeout: Maximum seconds to wait (None = forever)

        Returns:
            True if the runner stopped, False on timeout or if never started
        """
        if self.state is RunnerState.NOT_STARTED:
            return False
        return self._stopped.wait(timeout)

    def dispose(self) -> None:
        """Stop the tool: graceful signal, then kill after term_timeout.

        No-op if the runner was never started or is already stopped. Safe to
        call from any thread and more than once.
        """
        with self._lock:
            if self._state is not RunnerState.RUNNING:
                return
            process = self._process
            assert process is not None
            self._terminate_process(process)
            self._mark_stopped()

        self._release()

    def _start_process(self) -> subprocess.Popen[str]:
        """Start the empty shell; the tool command is issued separately."""
        return subprocess.Popen(
            self.shell.argv,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            cwd=self.shell.cwd,
            text=True,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
            **self._build_subprocess_kwargs(),
        )

    def _build_subprocess_kwargs(self) -> dict[str, Any]:
        """Build platform-specific subprocess kwargs.

        Returns:
            Dict of kwargs for subprocess.Popen
        """
        kwargs: dict[str, Any] = {}

        # Environment
        if self.shell.env is not None:
            kwargs["env"] = dict(self.shell.env)

        # Platform-specific isolation
        if IS_WINDOWS:
            # Windows: CREATE_NEW_PROCESS_GROUP
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            # POSIX: start_new_session (equivalent to setsid)
            kwargs["start_new_session"] = True

        return kwargs

    def _supervise(self, process: subprocess.Popen[str]) -> None:
        """Issue the tool command, then wait for the natural exit."""
        try:
            self._issue_command(process)
        except Exception as e:
            with self._lock:
                stopped = self._state is RunnerState.STOPPED
            if stopped:
                # disposed before the command was written
                logger.debug(f"{self.name} stopped before its command was issued: {e}")
                return
            logger.exception(f"Issuing {self.name} command failed pid={process.pid}: {e}")
            self._error = e
            self.dispose()
            return

        process.wait()
        logger.debug(f"{self.name} exited pid={process.pid} returncode={process.returncode}")

        with self._lock:
            if self._state is RunnerState.RUNNING:
                self._mark_stopped()
        self._release()

    def _pump_output(self, process: subprocess.Popen[str]) -> None:
        """Drain stdout so the tool never blocks on a full pipe."""
        stdout = process.stdout
        if stdout is None:
            return
        try:
            for line in stdout:
                line = line.rstrip("\r\n")
                if self._on_output:
                    try:
                        self._on_output(line)
                    except Exception as e:
                        logger.debug(f"Output callback error: {e}")
                else:
                    logger.debug(f"[{self.name}] {line}")
        except (OSError, ValueError) as e:
            # stdout closed underneath us
            logger.debug(f"Output pump stopped pid={process.pid}: {e}")
        finally:
            try:
                stdout.close()
            except OSError:
                pass

    def _release(self) -> None:
        """Drop the runner from the atexit registry once stopped.

        Runs on every path into STOPPED; subclasses extend it to free
        resources the child needed. May run more than once.
        """
        ToolRunner._instances.discard(self)

    def _mark_stopped(self) -> None:
        """Transition to STOPPED. Caller holds the lock."""
        self._state = RunnerState.STOPPED
        process = self._process
        if process is not None and process.stdin is not None and not process.stdin.closed:
            try:
                process.stdin.close()
            except OSError:
                # broken pipe on flush of a dead process
                pass
        self._stopped.set()

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------

    def _terminate_process(self, process: subprocess.Popen[str]) -> None:
        """Terminate the process gracefully, then forcefully if needed.

        Termination strategy:
        1. Send SIGTERM to the group (or CTRL_BREAK_EVENT on Windows)
        2. Wait up to term_timeout for graceful exit
        3. If still running, send SIGKILL to the group (or kill() on Windows)
        4. Wait up to kill_timeout for forced exit
        5. POSIX: sweep the group so no grandchild outlives the shell

        Args:
            process: The process to terminate
        """
        pid = process.pid

        if process.poll() is not None:
            logger.debug(f"{self.name} already exited pid={pid}")
            self._sweep_group(process)
            return

        logger.debug(f"Terminating {self.name} pid={pid}")

        try:
            # Step 1: Graceful termination
            if IS_WINDOWS:
                self._windows_terminate(process)
            else:
                self._posix_signal(process, signal.SIGTERM)

            # Step 2: Wait for graceful exit
            try:
                process.wait(timeout=self.term_timeout)
                logger.debug(
                    f"{self.name} terminated gracefully pid={pid} "
                    f"returncode={process.returncode}"
                )
                return
            except subprocess.TimeoutExpired:
                pass

            # Step 3: Force kill
            logger.debug(f"Force killing {self.name} pid={pid} after {self.term_timeout}s")
            if IS_WINDOWS:
                self._windows_kill(process)
            else:
                self._posix_signal(process, signal.SIGKILL)

            # Step 4: Wait for forced exit
            try:
                process.wait(timeout=self.kill_timeout)
                logger.debug(
                    f"{self.name} killed pid={pid} "
                    f"returncode={process.returncode}"
                )
            except subprocess.TimeoutExpired:
                logger.warning(f"{self.name} did not exit after kill pid={pid}")

        except ProcessLookupError:
            # Process already exited
            logger.debug(f"{self.name} already exited pid={pid}")
        except Exception as e:
            logger.warning(f"Error terminating {self.name} pid={pid}: {e}")
        finally:
            # Step 5: Stragglers
            self._sweep_group(process)

    def _posix_signal(self, process: subprocess.Popen[str], sig: signal.Signals) -> None:
        """Send a signal to the process group on POSIX systems.

        Args:
            process: The subprocess
            sig: SIGTERM or SIGKILL
        """
        try:
            # Process group ID equals pid due to start_new_session
            os.killpg(process.pid, sig)
            logger.debug(f"Sent {sig.name} to process group pgid={process.pid}")
        except ProcessLookupError:
            pass
        except OSError as e:
            # Fallback to signalling just the process
            logger.debug(f"killpg failed, falling back to send_signal: {e}")
            process.send_signal(sig)

    def _sweep_group(self, process: subprocess.Popen[str]) -> None:
        """SIGKILL whatever is left in the process group after the leader exited."""
        if IS_WINDOWS:
            return
        try:
            os.killpg(process.pid, signal.SIGKILL)
            logger.debug(f"Swept process group pgid={process.pid}")
        except (ProcessLookupError, PermissionError):
            pass
        except OSError as e:
            logger.debug(f"Process group sweep failed pgid={process.pid}: {e}")

    def _windows_terminate(self, process: subprocess.Popen[str]) -> None:
        """Send CTRL_BREAK_EVENT on Windows.

        Args:
            process: The subprocess
        """
        try:
            # Works because of CREATE_NEW_PROCESS_GROUP
            os.kill(process.pid, signal.CTRL_BREAK_EVENT)
            logger.debug(f"Sent CTRL_BREAK_EVENT to pid={process.pid}")
        except (ProcessLookupError, OSError) as e:
            logger.debug(f"CTRL_BREAK_EVENT failed, falling back: {e}")
            process.terminate()

    def _windows_kill(self, process: subprocess.Popen[str]) -> None:
        """Force kill on Windows.

        Args:
            process: The subprocess
        """
        try:
            process.kill()
            logger.debug(f"Called kill() on pid={process.pid}")
        except ProcessLookupError:
            pass

    # ------------------------------------------------------------------
    # Scoped use
    # ------------------------------------------------------------------

    def __enter__(self) -> ToolRunner:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()

    async def wait_async(self, timeout: float | None = None) -> bool:
        """Async variant of wait(), run on a worker thread."""
        return await anyio.to_thread.run_sync(self.wait, timeout, abandon_on_cancel=True)

    async def aclose(self) -> None:
        """Async variant of dispose(); the blocking wait runs on a worker thread."""
        await anyio.to_thread.run_sync(self.dispose)

    async def __aenter__(self) -> ToolRunner:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"ToolRunner(name={self.name}, state={self.state.value}, pid={self.pid})"
