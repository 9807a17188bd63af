"""Builders for chopsticks config managers.

Three strategies produce a ConfigManager:

- DefaultConfigBuilder: a named chain from the chopsticks repo (``-c <chain>``)
- FileBuilder: an existing local config file (``--config=<path>``)
- DirectConfigBuilder: field-by-field assembly, written to a temp YAML file

DirectConfigBuilder owns its temp file. Keep it open until the chopsticks
process has read the file, i.e. for the whole child lifetime, or hand it to
``ChopsticksRunner.from_builder`` which disposes it after termination.

Example:
    with DirectConfigBuilder("base.yml") as builder:
        manager = (
            builder.set_endpoint("wss://acala-rpc.aca-api.network")
            .set_port("8000")
            .set_mock_signature_host(True)
            .get_manager()
        )
        with ChopsticksRunner(manager) as runner:
            runner.run()
            runner.wait()
"""

from __future__ import annotations

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .config_data import ConfigData
from .errors import BuilderDisposedError, ConfigIOError
from .managers import ConfigManager, DefaultConfig, FileConfig

__all__ = [
    "ConfigBuilder",
    "DefaultConfigBuilder",
    "FileBuilder",
    "DirectConfigBuilder",
]

logger = logging.getLogger(__name__)

TEMP_PREFIX = "chopsticks_"
TEMP_SUFFIX = ".yaml"


class ConfigBuilder(ABC):
    """Builder for a ConfigManager. Use get_manager() to obtain it."""

    @abstractmethod
    def get_manager(self) -> ConfigManager:
        """Provide the manager for the chopsticks config.

        Raises:
            ConfigIOError: If reading or writing a config file fails
        """

    def dispose(self) -> None:
        """Release resources held by the builder."""


@dataclass(frozen=True)
class DefaultConfigBuilder(ConfigBuilder):
    """Take the default chain config from the chopsticks repo.

    Attributes:
        chain: Chain name corresponding to a .yaml file in AcalaNetwork/chopsticks/configs
    """

    chain: str

    def get_manager(self) -> ConfigManager:
        return DefaultConfig(self.chain)


@dataclass(frozen=True)
class FileBuilder(ConfigBuilder):
    """Config sourced from a local file path.

    The path is not checked; chopsticks reports a missing file itself.

    Attributes:
        config_file: Path to a config file
    """

    config_file: str

    def get_manager(self) -> ConfigManager:
        return FileConfig(str(self.config_file))


class DirectConfigBuilder(ConfigBuilder):
    """Assemble a chopsticks config field by field.

    Setter calls always take precedence over values from the base file. The
    base file is read lazily in get_manager(), so read errors surface there.
    """

    def __init__(
        self,
        base_config_file: str | Path | None = None,
        *,
        directory: str | Path | None = None,
    ) -> None:
        """Allocate the temp file for the generated config.

        Args:
            base_config_file: Optional YAML file (underscore_case keys) to start from
            directory: Where to create the temp file (default: current working directory)
        """
        self._base_config_file = Path(base_config_file) if base_config_file is not None else None
        self._data = ConfigData()

        target_dir = Path(directory) if directory is not None else Path.cwd()
        try:
            fd, name = tempfile.mkstemp(suffix=TEMP_SUFFIX, prefix=TEMP_PREFIX, dir=target_dir)
        except OSError as e:
            raise ConfigIOError(target_dir, f"cannot create temp config file: {e}") from e
        os.close(fd)
        self._path = Path(name)
        self._closed = False
        logger.debug(f"Allocated temp config file {self._path}")

    @property
    def path(self) -> Path:
        """Path of the generated config file."""
        return self._path

    @property
    def base_config_file(self) -> Path | None:
        return self._base_config_file

    @property
    def closed(self) -> bool:
        return self._closed

    def get_manager(self) -> ConfigManager:
        """Write the assembled config and return a manager pointing at it.

        Returns:
            FileConfig for the generated temp file

        Raises:
            BuilderDisposedError: If the builder was already disposed
            ConfigIOError: If the base file cannot be read or the temp file written
        """
        if self._closed:
            raise BuilderDisposedError(f"builder for {self._path} was already disposed")

        data = self._merged_data()
        try:
            self._path.write_text(data.to_yaml(), encoding="utf-8")
        except OSError as e:
            raise ConfigIOError(self._path, f"cannot write config: {e}") from e

        logger.debug(f"Wrote chopsticks config to {self._path}")
        return FileConfig(str(self._path))

    def _merged_data(self) -> ConfigData:
        if self._base_config_file is None:
            return self._data.model_copy()

        base = ConfigData.load(self._base_config_file)
        overrides = {name: getattr(self._data, name) for name in self._data.model_fields_set}
        return base.model_copy(update=overrides)

    def _set(self, name: str, value: Any) -> "DirectConfigBuilder":
        setattr(self._data, name, value)
        return self

    def set_genesis(self, value: str) -> "DirectConfigBuilder":
        """The link to a parachain's raw genesis file to build the fork from, instead of an endpoint."""
        return self._set("genesis", value)

    def set_timestamp(self, value: str) -> "DirectConfigBuilder":
        """Timestamp of the block to fork from."""
        return self._set("timestamp", value)

    def set_endpoint(self, value: str) -> "DirectConfigBuilder":
        """The endpoint of the parachain to fork."""
        return self._set("endpoint", value)

    def set_block(self, value: str) -> "DirectConfigBuilder":
        """Block hash or number at which to replay the fork."""
        return self._set("block", value)

    def set_wasm_override(self, value: str) -> "DirectConfigBuilder":
        """Path of the WASM to use as the parachain runtime, instead of an endpoint's runtime."""
        return self._set("wasm_override", value)

    def set_db(self, value: str) -> "DirectConfigBuilder":
        """Path of the file that stores or will store the parachain's database."""
        return self._set("db", value)

    def set_config(self, value: str) -> "DirectConfigBuilder":
        """Path or URL of the config file."""
        return self._set("config", value)

    def set_port(self, value: str) -> "DirectConfigBuilder":
        """The port to expose an endpoint on."""
        return self._set("port", value)

    def set_build_block_mode(self, value: str) -> "DirectConfigBuilder":
        """How blocks should be built in the fork: batch, manual, instant."""
        return self._set("build_block_mode", value)

    def set_import_storage(self, value: str) -> "DirectConfigBuilder":
        """A pre-defined JSON/YAML storage file path to override in the parachain's storage."""
        return self._set("import_storage", value)

    def set_allow_unresolved_imports(self, value: str) -> "DirectConfigBuilder":
        """Whether to allow WASM unresolved imports when using a WASM to build the parachain."""
        return self._set("allow_unresolved_imports", value)

    def set_html(self, value: str) -> "DirectConfigBuilder":
        """Include to generate storage diff preview between blocks."""
        return self._set("html", value)

    def set_mock_signature_host(self, value: bool) -> "DirectConfigBuilder":
        """Treat any signature starting with 0xdeadbeef and filled by 0xcd as valid."""
        return self._set("mock_signature_host", value)

    def dispose(self) -> None:
        """Delete the temp config file. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        try:
            self._path.unlink(missing_ok=True)
            logger.debug(f"Deleted temp config file {self._path}")
        except OSError as e:
            logger.warning(f"Failed to delete temp config file {self._path}: {e}")

    def __enter__(self) -> "DirectConfigBuilder":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()

    def __repr__(self) -> str:
        return (
            f"DirectConfigBuilder(path={self._path}, "
            f"base_config_file={self._base_config_file}, "
            f"closed={self._closed})"
        )
