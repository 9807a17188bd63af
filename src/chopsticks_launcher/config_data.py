"""Chopsticks launch configuration record.

ConfigData holds every launch flag the fluent builder can set. It is written to
the generated YAML file with camelCase keys (``wasmOverride``) and read from a
base file with underscore keys (``wasm_override``). Both conventions are pinned
by tests; keep them separate.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import AliasGenerator, BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .errors import ConfigIOError

__all__ = ["ConfigData"]

logger = logging.getLogger(__name__)

_TEXT_FIELDS = (
    "genesis",
    "timestamp",
    "endpoint",
    "block",
    "wasm_override",
    "db",
    "config",
    "port",
    "build_block_mode",
    "import_storage",
    "allow_unresolved_imports",
    "html",
)

# Canonical decimal integers and booleans are emitted unquoted; "007" or
# "+5" would read back as a different value, so they stay quoted.
_PLAIN_SCALAR = re.compile(r"^(?:0|-?[1-9][0-9]*|true|false)$")


class _ConfigDumper(yaml.SafeDumper):
    pass


def _represent_text(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    if _PLAIN_SCALAR.match(data):
        tag = dumper.resolve(yaml.ScalarNode, data, (True, False))
        return dumper.represent_scalar(tag, data)
    return dumper.represent_str(data)


_ConfigDumper.add_representer(str, _represent_text)


class ConfigData(BaseModel):
    """Chain fork configuration serialized into a chopsticks config file.

    Attributes:
        genesis: Link to a parachain's raw genesis file to build the fork from
        timestamp: Timestamp of the block to fork from
        endpoint: Endpoint of the parachain to fork
        block: Block hash or number to replay the fork at
        wasm_override: Path of the WASM to use as the parachain runtime
        db: Path of the file that stores the parachain's database
        config: Path or URL of a nested config file
        port: Port to expose an endpoint on
        build_block_mode: How blocks are built in the fork (batch, manual, instant)
        import_storage: JSON/YAML storage file to override in the parachain's storage
        allow_unresolved_imports: Whether to allow unresolved WASM imports
        html: Generate a storage diff preview between blocks
        mock_signature_host: Accept any signature starting with 0xdeadbeef
    """

    model_config = ConfigDict(
        extra="ignore",
        validate_assignment=True,
        alias_generator=AliasGenerator(serialization_alias=to_camel),
    )

    genesis: str | None = None
    timestamp: str | None = None
    endpoint: str | None = None
    block: str | None = None
    wasm_override: str | None = None
    db: str | None = None
    config: str | None = None
    port: str | None = None
    build_block_mode: str | None = None
    import_storage: str | None = None
    allow_unresolved_imports: str | None = None
    html: str | None = None
    mock_signature_host: bool | None = None

    @field_validator(*_TEXT_FIELDS, mode="before")
    @classmethod
    def _scalar_to_text(cls, value: Any) -> Any:
        # YAML scalars like `port: 8000` or `html: true` arrive typed
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return str(value)
        return value

    @classmethod
    def load(cls, path: str | Path) -> "ConfigData":
        """Read a base config file using underscore_case keys.

        Args:
            path: Path to a YAML file

        Returns:
            The parsed record; an empty file gives an empty record

        Raises:
            ConfigIOError: If the file is unreadable, malformed or not a mapping
        """
        path = Path(path)
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise ConfigIOError(path, f"cannot read base config: {e}") from e

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigIOError(path, "base config must contain a mapping at top level")

        ignored = sorted(str(key) for key in raw if key not in cls.model_fields)
        if ignored:
            logger.debug(f"Ignoring unknown base config keys in {path}: {ignored}")

        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            raise ConfigIOError(path, f"invalid base config: {e}") from e

    def to_yaml(self) -> str:
        """Serialize set fields to YAML using camelCase keys."""
        payload = self.model_dump(by_alias=True, exclude_none=True)
        return yaml.dump(
            payload,
            Dumper=_ConfigDumper,
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
        )
