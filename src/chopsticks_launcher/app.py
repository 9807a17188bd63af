"""chopsticks-launcher 命令行入口。

包含参数解析、日志配置和 chopsticks 生命周期管理。

用法:
    chopsticks-launcher -c acala
    chopsticks-launcher --config configs/acala.yml
    chopsticks-launcher --endpoint wss://acala-rpc.aca-api.network --port 8000 --mock-signature-host
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from collections.abc import Sequence

from . import __version__
from .builders import ConfigBuilder, DefaultConfigBuilder, DirectConfigBuilder, FileBuilder
from .chopsticks import ChopsticksRunner
from .config import Config, get_config
from .errors import ChopsticksError

__all__ = ["build_parser", "create_builder", "run_chopsticks", "main"]

logger = logging.getLogger(__name__)

# (参数名, DirectConfigBuilder setter)
_DIRECT_OPTIONS: tuple[tuple[str, str], ...] = (
    ("genesis", "set_genesis"),
    ("timestamp", "set_timestamp"),
    ("endpoint", "set_endpoint"),
    ("block", "set_block"),
    ("wasm_override", "set_wasm_override"),
    ("db", "set_db"),
    ("config_url", "set_config"),
    ("port", "set_port"),
    ("build_block_mode", "set_build_block_mode"),
    ("import_storage", "set_import_storage"),
    ("allow_unresolved_imports", "set_allow_unresolved_imports"),
    ("html", "set_html"),
)

# 中断后的退出码：128 + SIGINT(2)
EXIT_INTERRUPTED = 130
# 致命错误或子进程未能终止
EXIT_FAILURE = 1


def build_parser() -> argparse.ArgumentParser:
    """构建命令行参数解析器。"""
    parser = argparse.ArgumentParser(
        prog="chopsticks-launcher",
        description="Launch and manage an Acala chopsticks fork as a child process.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    source = parser.add_argument_group("config source (pick one)")
    source.add_argument("-c", "--chain", help="default chain config from the chopsticks repo")
    source.add_argument("--config", dest="config_file", help="path to a chopsticks config file")
    source.add_argument(
        "--base-config",
        help="YAML file (underscore_case keys) the direct options are applied on top of",
    )

    direct = parser.add_argument_group("direct config options")
    direct.add_argument("--genesis", help="raw genesis file to build the fork from")
    direct.add_argument("--timestamp", help="timestamp of the block to fork from")
    direct.add_argument("--endpoint", help="endpoint of the parachain to fork")
    direct.add_argument("--block", help="block hash or number to replay the fork at")
    direct.add_argument("--wasm-override", help="WASM to use as the parachain runtime")
    direct.add_argument("--db", help="file storing the parachain's database")
    direct.add_argument("--config-url", help="path or URL of a nested config file")
    direct.add_argument("--port", help="port to expose an endpoint on")
    direct.add_argument("--build-block-mode", choices=("batch", "manual", "instant"))
    direct.add_argument("--import-storage", help="storage file to override in the parachain")
    direct.add_argument("--allow-unresolved-imports", help="allow unresolved WASM imports")
    direct.add_argument("--html", help="generate storage diff preview between blocks")
    direct.add_argument(
        "--mock-signature-host",
        action="store_true",
        default=None,
        help="accept any signature starting with 0xdeadbeef",
    )

    runtime = parser.add_argument_group("runtime")
    runtime.add_argument("--chopsticks-version", help="npm version tag (env: CHOPSTICKS_VERSION)")
    runtime.add_argument("--launcher", help="command launching the npm package (env: CHOPSTICKS_LAUNCHER)")
    return parser


def _has_direct_options(args: argparse.Namespace) -> bool:
    if args.base_config is not None or args.mock_signature_host is not None:
        return True
    return any(getattr(args, name) is not None for name, _ in _DIRECT_OPTIONS)


def create_builder(args: argparse.Namespace, parser: argparse.ArgumentParser) -> ConfigBuilder:
    """根据参数选择 builder。

    -c/--chain、--config 与 direct 选项三者互斥，必须且只能选择一种。
    """
    direct = _has_direct_options(args)
    chosen = sum((args.chain is not None, args.config_file is not None, direct))
    if chosen != 1:
        parser.error("specify exactly one of -c/--chain, --config, or direct config options")

    if args.chain is not None:
        return DefaultConfigBuilder(args.chain)
    if args.config_file is not None:
        return FileBuilder(args.config_file)

    builder = DirectConfigBuilder(args.base_config)
    for name, setter in _DIRECT_OPTIONS:
        value = getattr(args, name)
        if value is not None:
            getattr(builder, setter)(value)
    if args.mock_signature_host is not None:
        builder.set_mock_signature_host(args.mock_signature_host)
    return builder


def run_chopsticks(
    builder: ConfigBuilder,
    config: Config,
    *,
    version: str | None = None,
    launcher: str | None = None,
) -> int:
    """运行 chopsticks 直到子进程退出、Ctrl+C 或 SIGTERM。

    Returns:
        退出码：子进程退出码，中断时为 130，子进程未能终止时为 1
    """
    stop_requested = threading.Event()

    def on_sigterm(signum: int, frame: object) -> None:
        logger.info("SIGTERM received, stopping chopsticks")
        stop_requested.set()

    on_output = (lambda line: print(line, flush=True)) if config.echo_output else None

    # runner 持有 builder，终止后才删除临时配置文件
    try:
        runner = ChopsticksRunner.from_builder(
            builder,
            version=version,
            launcher=launcher,
            on_output=on_output,
        )
    except ChopsticksError:
        builder.dispose()
        raise

    previous_handler = None
    if threading.current_thread() is threading.main_thread():
        previous_handler = signal.signal(signal.SIGTERM, on_sigterm)

    interrupted = False
    try:
        runner.run()
        logger.info(f"chopsticks running (pid={runner.pid})")
        while not runner.wait(timeout=0.5):
            if stop_requested.is_set():
                interrupted = True
                break
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping chopsticks")
        interrupted = True
    finally:
        runner.dispose()
        if previous_handler is not None:
            signal.signal(signal.SIGTERM, previous_handler)

    if runner.error is not None:
        raise ChopsticksError(f"failed to issue chopsticks command: {runner.error}")
    if interrupted:
        return EXIT_INTERRUPTED
    returncode = runner.returncode
    if returncode is None:
        # kill 超时后子进程仍未退出
        logger.warning(f"chopsticks did not exit after kill (pid={runner.pid})")
        return EXIT_FAILURE
    # 被信号终止时 returncode 为负数
    return 128 - returncode if returncode < 0 else returncode


def _configure_logging(config: Config) -> None:
    """配置日志输出。"""
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        # LOG_DEBUG 模式：输出到临时文件
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        # 默认模式：输出到 stderr
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # 配置 root logger（第三方库）为 WARNING，减少噪音
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    # 只对 chopsticks_launcher 命名空间启用详细日志
    logging.getLogger("chopsticks_launcher").setLevel(log_level)


def main(argv: Sequence[str] | None = None) -> int:
    """主入口点。"""
    config = get_config()
    _configure_logging(config)

    parser = build_parser()
    args = parser.parse_args(argv)
    logger.debug(f"Loaded {config}")

    try:
        builder = create_builder(args, parser)
        return run_chopsticks(
            builder,
            config,
            version=args.chopsticks_version,
            launcher=args.launcher,
        )
    except ChopsticksError as e:
        logger.debug("Fatal error", exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
