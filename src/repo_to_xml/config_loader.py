"""
Configuration file loader for repo-to-xml.

Supports loading configuration from:
- repo-to-xml.toml / .repo-to-xml.toml / r2x.toml / .r2x.toml
- r2x.yml / .r2x.yml / r2x.yaml / .r2x.yaml

CLI flags override config file values, which override the built-in defaults.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .config import (
    DEFAULT_EXCLUDES,
    DEFAULT_FILE_SIZE_LIMIT,
    ConfigError,
    OutputFormat,
    normalize_excludes,
    parse_size_limit,
)

# Config file search order (first found wins)
CONFIG_FILE_NAMES = [
    "repo-to-xml.toml",
    ".repo-to-xml.toml",
    "r2x.toml",
    ".r2x.toml",
    "r2x.yml",
    ".r2x.yml",
    "r2x.yaml",
    ".r2x.yaml",
]

# Nested sections accepted in addition to a flat layout
_SECTION_NAMES = ("repo-to-xml", "r2x")


@dataclass
class ProjectConfig:
    """
    Project-level configuration loaded from config files.

    All fields are optional - CLI flags will override any values set here.
    """

    excludes: tuple[str, ...] | None = None
    file_size_limit: int | None = None
    output_format: OutputFormat | None = None
    output_dir: Path | None = None
    respect_gitignore: bool | None = None

    # Source file path (for debugging)
    _config_file: Path | None = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary with sorted keys.

        Returns:
            A dict representation of the values that are set.
        """
        result: dict[str, Any] = {}

        if self.excludes is not None:
            result["excludes"] = list(self.excludes)
        if self.file_size_limit is not None:
            result["file_size_limit"] = self.file_size_limit
        if self.output_format is not None:
            result["format"] = self.output_format.value
        if self.output_dir is not None:
            result["output_dir"] = str(self.output_dir)
        if self.respect_gitignore is not None:
            result["respect_gitignore"] = self.respect_gitignore

        if self._config_file is not None:
            result["_loaded_from"] = str(self._config_file)

        return dict(sorted(result.items()))


def find_config_file(repo_root: Path) -> Path | None:
    """
    Find a configuration file in the repository root.

    Args:
        repo_root: Root directory of the repository

    Returns:
        Path to the config file, or None if not found
    """
    for name in CONFIG_FILE_NAMES:
        config_path = repo_root / name
        if config_path.is_file():
            return config_path
    return None


def _select_section(data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        return {}
    for section in _SECTION_NAMES:
        if isinstance(data.get(section), dict):
            return dict(data[section])
    return dict(data)


def _parse_toml(path: Path) -> dict[str, Any]:
    """Parse a TOML config file into a dict, flat or under a `[repo-to-xml]` section."""
    with open(path, "rb") as f:
        return _select_section(tomllib.load(f))


def _parse_yaml(path: Path) -> dict[str, Any]:
    """Parse a YAML config file into a dict, flat or under a `repo-to-xml:` section."""
    with open(path, encoding="utf-8") as f:
        return _select_section(yaml.safe_load(f))


def _parse_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "yes", "on", "1"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "no", "off", "0"):
        return False
    raise ConfigError(f"Invalid value for {key}: {value!r} (expected true/false)")


def load_config(repo_root: Path, config_path: Path | None = None) -> ProjectConfig:
    """
    Load configuration from a config file.

    Args:
        repo_root: Root directory of the repository
        config_path: Explicit path to config file (optional)

    Returns:
        ProjectConfig with loaded values (unset values remain None).

    Raises:
        ConfigError: If an explicit config file is missing, or a config file cannot
            be parsed or holds invalid values.
    """
    if config_path is None:
        config_path = find_config_file(repo_root)
        if config_path is None:
            return ProjectConfig()
    elif not config_path.is_file():
        raise ConfigError(f"Config file does not exist: {config_path}")

    # Parse based on extension
    suffix = config_path.suffix.lower()
    try:
        if suffix == ".toml":
            data = _parse_toml(config_path)
        elif suffix in (".yml", ".yaml"):
            data = _parse_yaml(config_path)
        else:
            raise ConfigError(f"Unsupported config file type: {config_path}")
    except (tomllib.TOMLDecodeError, yaml.YAMLError, OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Failed to parse config file {config_path}: {e}") from e

    config = ProjectConfig(_config_file=config_path)

    excludes = data.get("excludes", data.get("exclude"))
    if excludes is not None:
        if not isinstance(excludes, (str, list, tuple)):
            raise ConfigError(f"Invalid value for excludes: {excludes!r}")
        config.excludes = normalize_excludes(excludes)

    size_limit = data.get("file_size_limit", data.get("max_file_bytes"))
    if size_limit is not None:
        config.file_size_limit = parse_size_limit(size_limit)

    fmt = data.get("format")
    if fmt is not None:
        try:
            config.output_format = OutputFormat(str(fmt).lower())
        except ValueError as e:
            raise ConfigError(f"Unknown output format in {config_path}: {fmt!r}") from e

    if "output_dir" in data:
        config.output_dir = Path(str(data["output_dir"])).expanduser()

    if "respect_gitignore" in data:
        config.respect_gitignore = _parse_bool("respect_gitignore", data["respect_gitignore"])

    return config


def merge_cli_with_config(
    config: ProjectConfig,
    *,
    # CLI arguments (None means not specified on CLI)
    excludes: list[str] | None = None,
    no_default_excludes: bool = False,
    file_size_limit: int | None = None,
    output_format: OutputFormat | None = None,
    output_dir: Path | None = None,
    gitignore: bool | None = None,
) -> dict[str, Any]:
    """Merge CLI arguments with config file values (CLI wins).

    CLI exclusion tokens are added to the config file's (or default) tokens;
    `no_default_excludes` starts from an empty set instead.

    Args:
        config: Config loaded from file (may have unset values).
        excludes: Extra exclusion tokens from the CLI (optional).
        no_default_excludes: Drop config/default tokens and only use CLI ones.
        file_size_limit: CLI override for the size limit (optional).
        output_format: CLI output format override (optional).
        output_dir: CLI override for output directory (optional).
        gitignore: CLI override for `.gitignore` handling (optional).

    Returns:
        Dictionary of merged configuration values used by the export pipeline.
    """
    result: dict[str, Any] = {}

    # Exclusion tokens: CLI tokens extend the base set
    if no_default_excludes:
        base: tuple[str, ...] = ()
    elif config.excludes is not None:
        base = config.excludes
    else:
        base = DEFAULT_EXCLUDES
    result["excludes"] = normalize_excludes([*base, *(excludes or [])])

    # File size limit
    if file_size_limit is not None:
        result["file_size_limit"] = file_size_limit
    elif config.file_size_limit is not None:
        result["file_size_limit"] = config.file_size_limit
    else:
        result["file_size_limit"] = DEFAULT_FILE_SIZE_LIMIT

    # Output format
    if output_format is not None:
        result["output_format"] = output_format
    elif config.output_format is not None:
        result["output_format"] = config.output_format
    else:
        result["output_format"] = OutputFormat.XML

    # Output dir
    if output_dir is not None:
        result["output_dir"] = output_dir
    elif config.output_dir is not None:
        result["output_dir"] = config.output_dir
    else:
        result["output_dir"] = Path(".")

    # Respect gitignore
    if gitignore is not None:
        result["respect_gitignore"] = gitignore
    elif config.respect_gitignore is not None:
        result["respect_gitignore"] = config.respect_gitignore
    else:
        result["respect_gitignore"] = False

    return result
