"""Exporter configuration and settings.

This module provides the settings models and TOML I/O for the exporter.
Settings are read from ``~/.config/cephfs-exporter/exporter.toml`` (or
an explicit path); command-line options and environment variables
override individual values.

Example file:

    listen_address = ":9128"
    paths_file = "/etc/cephfs-exporter/paths.json"
    refresh_mode = "periodic"
    refresh_interval = 300

    [walker]
    min_size_to_expand = 100000000000
    max_depth = 8

    [walker.attributes]
    mode = "discover"
    prefix = "ceph.dir."
"""

import os
import tomllib
from enum import Enum
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Annotated, Any, Literal

import tomli_w
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from cephfs_exporter.core.paths import get_settings_path

SIZE_ATTRIBUTE = "ceph.dir.rbytes"
DEFAULT_ATTRIBUTES: tuple[str, ...] = ("ceph.dir.rentries", "ceph.dir.rfiles")

# 100 GB
DEFAULT_MIN_SIZE_TO_EXPAND = 100_000_000_000


class RefreshMode(str, Enum):
    """When a collection cycle runs.

    Attributes:
        ON_DEMAND: Walk synchronously on every scrape.
        PERIODIC: Walk on a timer in the background and serve the last
            completed snapshot.
    """

    ON_DEMAND = "on-demand"
    PERIODIC = "periodic"


class SourceKind(str, Enum):
    """How the filesystem is accessed.

    Attributes:
        CEPHFS: Through libcephfs (python3-cephfs binding).
        LOCAL: Through an existing kernel or FUSE mount.
    """

    CEPHFS = "cephfs"
    LOCAL = "local"


class FixedAttributes(BaseModel):
    """Sample a fixed list of attributes on every directory."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    mode: Literal["fixed"] = "fixed"
    names: Annotated[
        tuple[str, ...],
        Field(description="Attribute names sampled besides the size attribute"),
    ] = DEFAULT_ATTRIBUTES


class DiscoverAttributes(BaseModel):
    """Sample every attribute of a namespace found on each directory."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    mode: Literal["discover"] = "discover"
    prefix: Annotated[str, Field(min_length=1, description="Attribute name prefix")] = "ceph.dir."


AttributeSelection = Annotated[FixedAttributes | DiscoverAttributes, Field(discriminator="mode")]


class WalkerSettings(BaseModel):
    """Traversal and pruning settings.

    Attributes:
        size_attribute: Recursive byte count attribute, read first on
            every directory.
        attributes: Which other attributes to sample.
        min_size_to_expand: Directories below this many bytes are not
            expanded, and are skipped entirely unless they are roots.
        max_depth: Directories at this depth are sampled but not expanded.
        max_frontier: Maximum number of pending directories per root.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    size_attribute: Annotated[str, Field(min_length=1)] = SIZE_ATTRIBUTE
    attributes: AttributeSelection = Field(default_factory=FixedAttributes)
    min_size_to_expand: Annotated[int, Field(ge=0)] = DEFAULT_MIN_SIZE_TO_EXPAND
    max_depth: Annotated[int, Field(ge=0)] = 64
    max_frontier: Annotated[int, Field(ge=1)] = 10_000


class ExporterSettings(BaseModel):
    """Complete exporter configuration.

    Attributes:
        listen_address: ``host:port`` for the metrics endpoint.
        metrics_path: URL path serving the metrics.
        ceph_config: Path to ceph.conf (cephfs source).
        ceph_user: Ceph client id (cephfs source).
        filesystem_name: Filesystem to mount (cephfs source, optional).
        source: Filesystem access method.
        mount_root: Local mount point (local source).
        paths_file: JSON file with the root set.
        refresh_mode: On-demand or periodic collection.
        refresh_interval: Seconds between periodic walks.
        expire_stale: Remove series not refreshed by the latest complete walk.
        walker: Traversal settings.
    """

    model_config = ConfigDict(extra="forbid")

    listen_address: str = ":9128"
    metrics_path: str = "/metrics"
    ceph_config: Path = Path("/etc/ceph/ceph.conf")
    ceph_user: str = "admin"
    filesystem_name: str | None = None
    source: SourceKind = SourceKind.CEPHFS
    mount_root: Path | None = None
    paths_file: Path = Path("paths.json")
    refresh_mode: RefreshMode = RefreshMode.ON_DEMAND
    refresh_interval: Annotated[
        int,
        Field(ge=5, le=86400, description="Seconds between walks (5-86400)"),
    ] = 300
    expire_stale: bool = False
    walker: WalkerSettings = Field(default_factory=WalkerSettings)

    @field_validator("listen_address")
    @classmethod
    def validate_listen_address(cls, v: str) -> str:
        parse_listen_address(v)
        return v

    @field_validator("metrics_path")
    @classmethod
    def validate_metrics_path(cls, v: str) -> str:
        if not v.startswith("/"):
            msg = f"metrics_path must start with '/', got '{v}'"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def validate_source(self) -> "ExporterSettings":
        """Require a mount root for the local source."""
        if self.source == SourceKind.LOCAL and self.mount_root is None:
            msg = "mount_root is required when source is 'local'"
            raise ValueError(msg)
        return self

    @property
    def bind(self) -> tuple[str, int]:
        """Return the (host, port) pair to listen on."""
        return parse_listen_address(self.listen_address)


class ConfigError(Exception):
    """Base exception for exporter configuration errors."""


class ConfigNotFoundError(ConfigError):
    """Raised when the settings file is not found."""


class ConfigParseError(ConfigError):
    """Raised when the settings file cannot be parsed."""


def parse_listen_address(address: str) -> tuple[str, int]:
    """Split a ``host:port`` address.

    An empty host (``":9128"``) means all interfaces.

    Raises:
        ValueError: If the address has no valid port.
    """
    host, sep, port_str = address.rpartition(":")
    if not sep:
        msg = f"Listen address must be host:port, got '{address}'"
        raise ValueError(msg)
    try:
        port = int(port_str)
    except ValueError:
        msg = f"Invalid port in listen address '{address}'"
        raise ValueError(msg) from None
    if not 0 < port < 65536:
        msg = f"Port out of range in listen address '{address}'"
        raise ValueError(msg)
    return host.strip("[]") or "0.0.0.0", port  # nosec: B104


def load_settings(path: Path | None = None) -> ExporterSettings:
    """Load exporter settings from a TOML file.

    Args:
        path: Path to the settings file. If None, uses the default path.

    Returns:
        Validated ExporterSettings object.

    Raises:
        ConfigNotFoundError: If the file doesn't exist.
        ConfigParseError: If the TOML syntax is invalid.
        ConfigError: If the content doesn't match the schema.
    """
    settings_path = path or get_settings_path()

    if not settings_path.exists():
        raise ConfigNotFoundError(f"Settings file not found: {settings_path}")

    try:
        with open(settings_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigParseError(f"Invalid TOML syntax: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read settings: {e}") from e

    try:
        return ExporterSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings content: {e}") from e


def save_settings(settings: ExporterSettings, path: Path | None = None) -> Path:
    """Save exporter settings to a TOML file.

    The file is written to a temporary file first and then moved into
    place with os.replace().

    Returns:
        Path where the settings were saved.

    Raises:
        ConfigError: If the file cannot be written.
    """
    settings_path = path or get_settings_path()
    settings_path.parent.mkdir(parents=True, exist_ok=True)

    data = settings.model_dump(mode="json", exclude_none=True)

    tmp_path: Path | None = None
    try:
        with NamedTemporaryFile(
            mode="wb",
            dir=settings_path.parent,
            delete=False,
            suffix=".tmp",
        ) as f:
            tmp_path = Path(f.name)
            tomli_w.dump(data, f)
        os.replace(str(tmp_path), str(settings_path))
    except OSError as e:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
        raise ConfigError(f"Failed to write settings: {e}") from e

    return settings_path


def apply_overrides(settings: ExporterSettings, **overrides: Any) -> ExporterSettings:
    """Return a copy of settings with non-None overrides applied.

    Top-level keys replace settings fields; keys of ``walker`` are merged
    into the walker section. The result is validated again.

    Raises:
        ConfigError: If the merged settings are invalid.
    """
    data = settings.model_dump()
    walker_overrides = overrides.pop("walker", None) or {}
    data.update({k: v for k, v in overrides.items() if v is not None})
    data["walker"].update({k: v for k, v in walker_overrides.items() if v is not None})
    try:
        return ExporterSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings: {e}") from e
