"""
Export pipeline for repo-to-xml.

Runs one export (walk + render) for an `ExportConfig` and persists the result.
Fetching the source directory is the caller's job (see `fetcher.RepoContext`).
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from .config import ExportConfig, Node, RepoToXmlError, WalkStats, iter_files
from .renderer import render
from .walker import walk_directory

logger = logging.getLogger(__name__)


class OutputError(RepoToXmlError):
    """Error while writing the serialized document."""

    pass


@dataclass(frozen=True)
class ExportResult:
    """Outcome of a single export run.

    Attributes:
        output: The serialized document.
        nodes: The walked tree the document was rendered from.
        stats: Walk statistics (skips, errors, bytes).
    """

    output: str
    nodes: tuple[Node, ...]
    stats: WalkStats


def run_export(config: ExportConfig) -> ExportResult:
    """Walk the configured source directory and serialize it.

    Per-entry failures are absorbed by the walker; nothing is written to disk.

    Args:
        config: Validated export configuration.

    Returns:
        The rendered document together with the tree and statistics.
    """
    logger.info("Walking directory and building file list...")
    nodes, stats = walk_directory(
        config.source_dir,
        excludes=config.excludes,
        file_size_limit=config.file_size_limit,
        root=config.root,
        respect_gitignore=config.respect_gitignore,
    )

    logger.info("Walk statistics: %s", stats.to_dict())
    logger.info(
        "Building %s output from %d files...",
        config.output_format.value.upper(),
        sum(1 for _ in iter_files(nodes)),
    )
    output = render(nodes, config.output_format)
    return ExportResult(output=output, nodes=nodes, stats=stats)


def default_output_dir() -> Path:
    """Return the user's Desktop directory, the interactive default destination."""
    return Path.home() / "Desktop"


def write_output(path: Path, data: str) -> Path:
    """Write a serialized document as UTF-8, creating parent directories.

    The document goes to a temporary sibling first and is moved into place, so a
    failed write never leaves a truncated destination behind.

    Args:
        path: Destination file.
        data: Document text.

    Returns:
        The absolute path written.

    Raises:
        OutputError: If the file cannot be written or the text cannot be encoded.
    """
    path = Path(path).expanduser()
    tmp: Path | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
        tmp = Path(tmp_name)
        with open(fd, "w", encoding="utf-8", newline="") as f:
            f.write(data)
        # mkstemp creates the file owner-only
        tmp.chmod(0o644)
        os.replace(tmp, path)
    except (OSError, UnicodeError) as e:
        if tmp is not None:
            tmp.unlink(missing_ok=True)
        raise OutputError(f"Failed to write output: {e}") from e
    return path.resolve()
