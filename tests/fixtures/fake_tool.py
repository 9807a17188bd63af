#!/usr/bin/env python3
"""Fake long-running tool for integration testing.

This script stands in for a server like chopsticks: it runs until its duration
elapses or it receives SIGTERM/SIGINT, printing JSONL status lines.

Usage:
    python fake_tool.py [--duration SECONDS] [--interval SECONDS] [--ignore-term]
                        [--exit-code CODE] [args ...]

Arguments:
    --duration: Total duration to run (default: 30 seconds)
    --interval: Interval between tick events (default: 0.1 seconds)
    --ignore-term: Ignore SIGTERM so only SIGKILL stops the process
    --exit-code: Exit code after a natural finish (default: 0)
    args: Extra positional arguments, echoed in the ready event

Events:
    {"status": "ready", "pid": ..., "args": [...]}
    {"status": "tick", "count": ...}
    {"status": "stopping", "signal": "SIGTERM"}
    {"status": "finished"}
"""

from __future__ import annotations

import argparse
import json
import os
import signal
import sys
import time
from typing import NoReturn

# Flag to indicate if we should stop
_should_stop = False
_exit_code = 0


def signal_handler(signum: int, frame) -> None:
    """Handle SIGINT/SIGTERM signals."""
    global _should_stop, _exit_code
    emit_event({"status": "stopping", "signal": signal.Signals(signum).name})
    _should_stop = True
    # 143 for SIGTERM (128 + 15), 130 for SIGINT
    _exit_code = 128 + signum


def emit_event(data: dict) -> None:
    """Emit a JSONL event to stdout."""
    print(json.dumps(data, ensure_ascii=False), flush=True)


def main() -> NoReturn:
    """Main entry point."""
    global _exit_code

    parser = argparse.ArgumentParser(description="Fake tool for testing")
    parser.add_argument("--duration", type=float, default=30.0, help="Duration in seconds")
    parser.add_argument("--interval", type=float, default=0.1, help="Interval between ticks")
    parser.add_argument("--ignore-term", action="store_true", help="Ignore SIGTERM")
    parser.add_argument("--exit-code", type=int, default=0, help="Exit code on natural finish")
    # Accept any positional arguments (chopsticks package spec, -c <chain>, ...)
    parser.add_argument("args", nargs=argparse.REMAINDER, help="Additional arguments")

    args = parser.parse_args()

    # Set up signal handlers before announcing readiness
    if args.ignore_term:
        signal.signal(signal.SIGTERM, signal.SIG_IGN)
    else:
        signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    emit_event({"status": "ready", "pid": os.getpid(), "args": args.args})

    start_time = time.time()
    count = 0
    while not _should_stop:
        if time.time() - start_time >= args.duration:
            emit_event({"status": "finished"})
            _exit_code = args.exit_code
            break
        count += 1
        emit_event({"status": "tick", "count": count})
        time.sleep(args.interval)

    sys.exit(_exit_code)


if __name__ == "__main__":
    main()
