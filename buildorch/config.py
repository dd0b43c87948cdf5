"""
Configuration management for buildorch.

Loads and validates the build configuration file (build.yaml) and defines
the option bundles threaded through a build:

- BuildOpts: options that come from the configuration file
- BuildOptsCLI: options that come from the command line invocation
- Config: the validated configuration file as a whole
"""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


DEFAULT_CONFIG_NAME = "build.yaml"

KNOWN_KEYS = {"allow-locals", "modify-code-page", "backend", "build", "logging"}
KNOWN_BUILD_KEYS = {"split-objs", "prefetch"}
KNOWN_LOGGING_KEYS = {"level", "format", "file"}
LOG_FORMATS = ("pretty", "structured")


class ConfigError(Exception):
    """Configuration validation error."""
    pass


@dataclass(frozen=True)
class BuildOpts:
    """
    Build options from the configuration file.

    Attributes:
        split_objs: Experimental object splitting
        pre_fetch: Fetch all plan dependencies before executing
    """
    split_objs: bool = False
    pre_fetch: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BuildOpts":
        _reject_unknown("build", data, KNOWN_BUILD_KEYS)
        return cls(
            split_objs=_bool(data, "split-objs", False),
            pre_fetch=_bool(data, "prefetch", False),
        )


@dataclass(frozen=True)
class BuildOptsCLI:
    """
    Build options from the command line.

    Attributes:
        targets: Target strings as typed by the user (empty = project default)
        dry_run: Print the plan instead of executing it
        watch_all: Watch every local package's files, not only targeted ones
        initial_build_steps: Only perform the initial build steps
    """
    targets: tuple[str, ...] = ()
    dry_run: bool = False
    watch_all: bool = False
    initial_build_steps: bool = False


@dataclass(frozen=True)
class LoggingConfig:
    """Logging section of the configuration file."""
    level: str = "INFO"
    format: str = "pretty"
    file: Optional[Path] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoggingConfig":
        _reject_unknown("logging", data, KNOWN_LOGGING_KEYS)
        log_format = data.get("format", "pretty")
        if log_format not in LOG_FORMATS:
            raise ConfigError(
                f"logging.format must be one of {', '.join(LOG_FORMATS)}, got {log_format!r}"
            )
        log_file = data.get("file")
        return cls(
            level=str(data.get("level", "INFO")).upper(),
            format=log_format,
            file=Path(log_file).expanduser() if log_file else None,
        )


@dataclass(frozen=True)
class Config:
    """
    The validated build configuration.

    Attributes:
        config_path: Path of the configuration file (watched in file-watch mode)
        allow_locals: Whether plans may build local packages
        modify_code_page: Whether to switch the console to UTF-8 for old compilers
        backend: "module:attribute" of the backend factory used by the CLI
        build_opts: Build options
        logging: Logging options
    """
    config_path: Path
    allow_locals: bool = True
    modify_code_page: bool = True
    backend: Optional[str] = None
    build_opts: BuildOpts = field(default_factory=BuildOpts)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, config_path: Path, data: Dict[str, Any]) -> "Config":
        """
        Build a Config from parsed YAML.

        Raises:
            ConfigError: If a key is unknown or a value has the wrong type
        """
        _reject_unknown("top level", data, KNOWN_KEYS)
        backend = data.get("backend")
        if backend is not None and (not isinstance(backend, str) or ":" not in backend):
            raise ConfigError(f"backend must be 'module:attribute', got {backend!r}")
        return cls(
            config_path=config_path,
            allow_locals=_bool(data, "allow-locals", True),
            modify_code_page=_bool(data, "modify-code-page", True),
            backend=backend,
            build_opts=BuildOpts.from_dict(_section(data, "build")),
            logging=LoggingConfig.from_dict(_section(data, "logging")),
        )

    def with_build_opts(self, **changes: Any) -> "Config":
        """Return a copy with some build options overridden."""
        return replace(self, build_opts=replace(self.build_opts, **changes))


def _reject_unknown(where: str, data: Dict[str, Any], known: set[str]) -> None:
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown key(s) in {where}: {', '.join(unknown)}")


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a mapping")
    return value


def _bool(data: Dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"'{key}' must be true or false, got {value!r}")
    return value


def _load_yaml(config_path: Path) -> Dict[str, Any]:
    """Load and parse a YAML configuration file."""
    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}")

    if not config:
        raise ConfigError("Configuration file is empty")
    if not isinstance(config, dict):
        raise ConfigError("Configuration file must contain a mapping")
    return config


def find_config(start: Optional[Path] = None) -> Optional[Path]:
    """Search `start` and its parents for build.yaml."""
    directory = (start or Path.cwd()).resolve()
    for candidate in (directory, *directory.parents):
        path = candidate / DEFAULT_CONFIG_NAME
        if path.exists():
            return path
    return None


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load the build configuration from a YAML file.

    Args:
        config_path: Path to config file. Defaults to the nearest build.yaml
            in the current directory or its parents

    Returns:
        Config instance

    Raises:
        ConfigError: If config is invalid or missing
    """
    if config_path is None:
        config_path = find_config()
        if config_path is None:
            raise ConfigError(f"No {DEFAULT_CONFIG_NAME} found in current directory or its parents")

    config_path = Path(config_path).resolve()
    return Config.from_dict(config_path, _load_yaml(config_path))
