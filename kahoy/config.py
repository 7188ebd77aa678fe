"""Application configuration for kahoy.

The configuration is read from a YAML file (`kahoy.yml` by default) and lets
users tune the groups discovered in the manifests tree:

```yaml
version: v1
fs:
  exclude: [".*/secrets/.*"]
groups:
  - id: crds
    priority: 100
    wait:
      duration: 15s
  - id: apps/api
    hooks:
      pre:
        cmd: ["./scripts/check.sh", "api"]
        timeout: 1m30s
```
"""

from dataclasses import dataclass, field
from datetime import timedelta
import logging
from pathlib import Path
import re
import shlex
from typing import Any

import aiofiles
import yaml
from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
from mashumaro.exceptions import InvalidFieldValue, MissingField

from .exceptions import ConfigException

__all__ = [
    "AppConfig",
    "FsConfig",
    "GroupConfig",
    "HooksConfig",
    "HookConfig",
    "WaitConfig",
    "parse_duration",
    "load_config",
    "read_config",
]

_LOGGER = logging.getLogger(__name__)

CONFIG_VERSION = "v1"
DEFAULT_CONFIG_FILE = "kahoy.yml"

_DURATION_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: Any) -> timedelta:
    """Parse a duration in the `1h2m3.5s` style, a missing value is zero."""
    if value is None:
        return timedelta(0)
    if isinstance(value, timedelta):
        return value
    text = str(value).strip()
    sign = 1.0
    if text[:1] in ("-", "+"):
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]
    if text == "0":
        return timedelta(0)
    if not text:
        raise ValueError(f"invalid duration {value!r}")
    seconds = 0.0
    pos = 0
    for match in _DURATION_RE.finditer(text):
        if match.start() != pos:
            break
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text):
        raise ValueError(f"invalid duration {value!r}")
    return timedelta(seconds=sign * seconds)


def _parse_cmd(value: Any) -> list[str]:
    if isinstance(value, str):
        return shlex.split(value)
    if not isinstance(value, list):
        raise ValueError(f"hook command must be a list of arguments: {value!r}")
    return [str(arg) for arg in value]


@dataclass
class HookConfig(DataClassDictMixin):
    """Command run before or after applying a group."""

    cmd: list[str] = field(metadata=field_options(deserialize=_parse_cmd))
    """Command line arguments, the first one is the binary."""

    timeout: timedelta = field(
        default=timedelta(0), metadata=field_options(deserialize=parse_duration)
    )
    """Maximum time the hook may run, zero disables the limit."""


@dataclass
class HooksConfig(DataClassDictMixin):
    pre: HookConfig | None = None
    post: HookConfig | None = None


@dataclass
class WaitConfig(DataClassDictMixin):
    duration: timedelta = field(
        default=timedelta(0), metadata=field_options(deserialize=parse_duration)
    )
    """Time to sleep after the group has been applied."""


@dataclass
class GroupConfig(DataClassDictMixin):
    """Settings of a single group identified by its id."""

    id: str
    priority: int | None = None
    wait: WaitConfig | None = None
    hooks: HooksConfig | None = None

    class Config(BaseConfig):
        omit_none = True


@dataclass
class FsConfig(DataClassDictMixin):
    exclude: list[str] = field(default_factory=list)
    include: list[str] = field(default_factory=list)


@dataclass
class AppConfig(DataClassDictMixin):
    """Kahoy application configuration."""

    version: str = CONFIG_VERSION
    fs: FsConfig = field(default_factory=FsConfig)
    groups: list[GroupConfig] = field(default_factory=list)

    class Config(BaseConfig):
        omit_none = True

    def group(self, group_id: str) -> GroupConfig | None:
        """Return the configuration of the group if present."""
        for group in self.groups:
            if group.id == group_id:
                return group
        return None

    def validate(self) -> None:
        """Check the invariants the schema can't express."""
        if self.version != CONFIG_VERSION:
            raise ConfigException(
                f"not valid YAML configuration, required configuration version is {CONFIG_VERSION}"
            )
        seen: set[str] = set()
        for group in self.groups:
            if not group.id:
                raise ConfigException("not valid YAML v1 configuration: group id empty")
            if group.id in seen:
                raise ConfigException(
                    f"not valid YAML v1 configuration: group {group.id!r} is repeated"
                )
            seen.add(group.id)
            if group.priority is not None and group.priority < 0:
                raise ConfigException(
                    f"could not parse group {group.id!r}: priority can't be negative"
                )
            hooks = group.hooks or HooksConfig()
            for hook_type, hook in (("pre", hooks.pre), ("post", hooks.post)):
                if hook is not None and not hook.cmd:
                    raise ConfigException(
                        f"could not parse group {group.id!r}: invalid {hook_type} hook: hook command is required"
                    )


def load_config(content: str) -> AppConfig:
    """Load the application configuration from a YAML document."""
    try:
        doc = yaml.safe_load(content)
    except yaml.YAMLError as err:
        raise ConfigException(f"could not unmarshal YAML configuration: {err}") from err
    if doc is None:
        doc = {}
    if not isinstance(doc, dict):
        raise ConfigException("not valid YAML configuration, expected a mapping")
    if doc.get("version") != CONFIG_VERSION:
        raise ConfigException(
            f"not valid YAML configuration, required configuration version is {CONFIG_VERSION}"
        )
    try:
        config = AppConfig.from_dict(doc)
    except (MissingField, InvalidFieldValue, ValueError, TypeError) as err:
        raise ConfigException(f"not valid YAML v1 configuration: {err}") from err
    config.validate()
    return config


async def read_config(path: Path, required: bool = False) -> AppConfig:
    """Read the application configuration file.

    A missing file is only an error when the file was explicitly requested,
    otherwise the default configuration is returned.
    """
    try:
        async with aiofiles.open(str(path)) as config_file:
            content = await config_file.read()
    except FileNotFoundError as err:
        if required:
            raise ConfigException(f"could not load {str(path)!r} config file: {err}") from err
        _LOGGER.debug("Configuration file %s not found, using defaults", path)
        return AppConfig()
    except OSError as err:
        raise ConfigException(f"could not load {str(path)!r} config file: {err}") from err
    config = load_config(content)
    _LOGGER.info("App configuration loaded from %s", path)
    return config
