"""
Configuration models and defaults for repo-to-xml.

Holds the named defaults, the export configuration struct, the immutable tree
node types produced by the walker and the statistics collected while walking.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Union

# Default exclusion tokens (plain substrings, not globs)
DEFAULT_EXCLUDES: tuple[str, ...] = ("node_modules", ".git", ".DS_Store")

# Files above this many bytes are omitted
DEFAULT_FILE_SIZE_LIMIT = 1_048_576  # 1 MB


class RepoToXmlError(Exception):
    """Base class for errors that abort an export run."""

    pass


class ConfigError(RepoToXmlError):
    """Invalid configuration (size limit, source path, config file)."""

    pass


class OutputFormat(str, Enum):
    """Serialization format for the flattened repository."""

    XML = "xml"
    TXT = "txt"

    @property
    def default_filename(self) -> str:
        """Return the default output file name for this format."""
        return f"repo.{self.value}"


@dataclass(frozen=True)
class FileNode:
    """A regular file that passed exclusion and content filtering.

    Attributes:
        name: Entry name as listed by the filesystem.
        path: Path relative to the traversal root (platform separator).
        content: Full file content decoded as UTF-8.
    """

    name: str
    path: str
    content: str


@dataclass(frozen=True)
class DirectoryNode:
    """A directory and its included children, in listing order.

    Attributes:
        name: Entry name as listed by the filesystem.
        path: Path relative to the traversal root (platform separator).
        children: Included child nodes (possibly empty).
    """

    name: str
    path: str
    children: tuple[Node, ...] = ()


Node = Union[DirectoryNode, FileNode]


def iter_files(nodes: Iterable[Node]) -> Iterable[FileNode]:
    """Yield every file node of a tree in depth-first pre-order."""
    for node in nodes:
        if isinstance(node, DirectoryNode):
            yield from iter_files(node.children)
        else:
            yield node


def normalize_excludes(excludes: Iterable[str] | str | None) -> tuple[str, ...]:
    """Normalize exclusion tokens into an ordered tuple without blanks or duplicates.

    Comma-separated strings are split so that CLI and config values can be passed
    through unchanged. Empty tokens are dropped because an empty substring would
    match every path.

    Args:
        excludes: Tokens as a comma-separated string, an iterable of strings, or None.

    Returns:
        Tuple of unique, stripped tokens in first-seen order.
    """
    if excludes is None:
        return ()
    if isinstance(excludes, str):
        excludes = [excludes]

    result: list[str] = []
    for value in excludes:
        for token in str(value).split(","):
            token = token.strip()
            if token and token not in result:
                result.append(token)
    return tuple(result)


def parse_size_limit(value: Any) -> int:
    """Parse a user-supplied file size limit.

    Args:
        value: Integer or numeric string (bytes).

    Returns:
        The limit as a positive integer.

    Raises:
        ConfigError: If the value is not a number or is not positive.
    """
    if isinstance(value, bool):
        raise ConfigError(f"Invalid file size limit: {value!r}")
    if isinstance(value, int):
        limit = value
    else:
        text = str(value).strip().replace("_", "")
        try:
            number = float(text)
        except ValueError as e:
            raise ConfigError(f"Invalid file size limit: {value!r} (enter a positive number)") from e
        if not math.isfinite(number):
            raise ConfigError(f"Invalid file size limit: {value!r} (enter a positive number)")
        limit = int(number)
    if limit <= 0:
        raise ConfigError(f"Invalid file size limit: {value!r} (enter a positive number)")
    return limit


@dataclass
class ExportConfig:
    """Everything the core needs for one export run.

    The interactive prompts and the CLI flags are adapters that populate this
    struct; the walker and serializers never prompt.

    Attributes:
        source_dir: Directory to flatten (already on local disk).
        excludes: Exclusion tokens; any relative path containing one is omitted.
        file_size_limit: Files strictly larger than this many bytes are omitted.
        output_format: Serialization format.
        root: Traversal root for relative node paths. Defaults to `source_dir`.
        respect_gitignore: Whether `.gitignore` rules are applied on top of the tokens.
    """

    source_dir: Path
    excludes: tuple[str, ...] = DEFAULT_EXCLUDES
    file_size_limit: int = DEFAULT_FILE_SIZE_LIMIT
    output_format: OutputFormat = OutputFormat.XML
    root: Path | None = None
    respect_gitignore: bool = False

    def __post_init__(self) -> None:
        """Validate and normalize configuration after initialization.

        Raises:
            ConfigError: If the size limit is not a positive integer or the source
                directory does not exist / is not a directory.
        """
        self.file_size_limit = parse_size_limit(self.file_size_limit)

        self.source_dir = Path(self.source_dir).resolve()
        if not self.source_dir.exists():
            raise ConfigError(f"Path does not exist: {self.source_dir}")
        if not self.source_dir.is_dir():
            raise ConfigError(f"Path is not a directory: {self.source_dir}")

        self.root = Path(self.root).resolve() if self.root is not None else self.source_dir
        self.excludes = normalize_excludes(self.excludes)

        try:
            self.output_format = OutputFormat(self.output_format)
        except ValueError as e:
            raise ConfigError(f"Unknown output format: {self.output_format}") from e


@dataclass
class WalkStats:
    """Statistics from walking a directory tree.

    Attributes:
        entries_seen: Directory entries listed during traversal.
        directories_included: Directory nodes produced.
        files_included: File nodes produced.
        skipped_excluded: Entries omitted by an exclusion token.
        skipped_gitignore: Entries omitted by `.gitignore` rules.
        skipped_size: Files omitted for exceeding the size limit.
        skipped_binary: Files omitted as binary.
        skipped_special: Entries that are neither directories nor regular files.
        skipped_cycles: Directory symlinks pointing back at an ancestor.
        errors: Listing, stat, binary-check and read failures.
        total_bytes_included: Sum of sizes of included files.
    """

    entries_seen: int = 0
    directories_included: int = 0
    files_included: int = 0
    skipped_excluded: int = 0
    skipped_gitignore: int = 0
    skipped_size: int = 0
    skipped_binary: int = 0
    skipped_special: int = 0
    skipped_cycles: int = 0
    errors: int = 0
    total_bytes_included: int = 0
    excluded_by_token: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Return the counters as a nested dict, e.g. for a verbose log line.

        Keys are sorted and the per-token counts are ordered by frequency, so two
        walks of the same tree produce equal dicts.
        """
        return {
            "directories_included": self.directories_included,
            "entries_seen": self.entries_seen,
            "errors": self.errors,
            "excluded_by_token": dict(
                sorted(self.excluded_by_token.items(), key=lambda x: (-x[1], x[0]))
            ),
            "files_included": self.files_included,
            "skipped": {
                "binary": self.skipped_binary,
                "cycles": self.skipped_cycles,
                "excluded": self.skipped_excluded,
                "gitignore": self.skipped_gitignore,
                "size": self.skipped_size,
                "special": self.skipped_special,
            },
            "total_bytes_included": self.total_bytes_included,
        }
