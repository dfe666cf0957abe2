"""
Directory walker for repo-to-xml.

Builds an immutable, ordered tree of directory and file nodes from a directory
on disk, omitting excluded paths, oversized files and binary files.
"""

from __future__ import annotations

import logging
import os
import stat
from pathlib import Path
from typing import Callable, Iterable, Optional

import pathspec

from .config import (
    DEFAULT_EXCLUDES,
    DEFAULT_FILE_SIZE_LIMIT,
    DirectoryNode,
    FileNode,
    Node,
    WalkStats,
    normalize_excludes,
    parse_size_limit,
)
from .utils import detect_encoding, display_name, is_binary_file, read_text_strict

logger = logging.getLogger(__name__)

BinaryDetector = Callable[[Path], bool]


def matching_exclude(relative_path: str, excludes: Iterable[str]) -> Optional[str]:
    """
    Return the first exclusion token contained in a path, if any.

    Matching is plain, case-sensitive substring containment anywhere in the
    path string; tokens are not anchored to path segments.
    """
    for token in excludes:
        if token in relative_path:
            return token
    return None


def is_excluded(relative_path: str, excludes: Iterable[str]) -> bool:
    """
    Check whether a relative path should be skipped.

    Args:
        relative_path: Path relative to the traversal root
        excludes: Exclusion tokens (plain substrings)

    Returns:
        True if any token appears anywhere in the path
    """
    return matching_exclude(relative_path, excludes) is not None


class GitIgnoreParser:
    """
    Parser for .gitignore files.

    Supports nested .gitignore files in subdirectories.
    """

    def __init__(self, root_path: Path):
        """
        Initialize the parser.

        Args:
            root_path: Root directory of the repository
        """
        self.root_path = Path(os.path.abspath(root_path))
        self._specs: dict[Path, pathspec.PathSpec] = {}
        self._load_gitignores()

    def _load_gitignores(self) -> None:
        """Load all .gitignore files in the repository."""
        root_gitignore = self.root_path / ".gitignore"
        if root_gitignore.is_file():
            self._load_gitignore_file(root_gitignore, self.root_path)

        for gitignore_path in self.root_path.rglob(".gitignore"):
            if gitignore_path != root_gitignore and gitignore_path.is_file():
                self._load_gitignore_file(gitignore_path, gitignore_path.parent)

    def _load_gitignore_file(self, gitignore_path: Path, base_path: Path) -> None:
        """Load a single .gitignore file."""
        try:
            with open(gitignore_path, "r", encoding="utf-8", errors="replace") as f:
                patterns = f.read().splitlines()
        except OSError as e:
            logger.warning("Failed to read %s (%s)", gitignore_path, e)
            return

        patterns = [
            p.strip() for p in patterns
            if p.strip() and not p.strip().startswith("#")
        ]

        if patterns:
            self._specs[base_path] = pathspec.PathSpec.from_lines(
                "gitwildmatch",
                patterns
            )

    def is_ignored(self, path: Path, is_dir: bool = False) -> bool:
        """
        Check if a path is ignored by .gitignore.

        Args:
            path: Absolute path to the file or directory
            is_dir: Whether the path is a directory

        Returns:
            True if the path should be ignored
        """
        path = Path(os.path.abspath(path))

        # Check each .gitignore from most specific to least
        for base_path, spec in sorted(
            self._specs.items(),
            key=lambda x: len(x[0].parts),
            reverse=True
        ):
            try:
                rel_path = path.relative_to(base_path).as_posix()
            except ValueError:
                continue  # Path is not under this base path
            if spec.match_file(rel_path):
                return True
            if is_dir and spec.match_file(rel_path + "/"):
                return True

        return False


class ContentFilter:
    """
    Decides whether a regular file's content is included, and loads it.

    Rules are applied in order and the first failing rule skips the file:
    size limit, binary detection, strict UTF-8 read. Every failure is logged
    and reported as None; nothing is raised.
    """

    def __init__(
        self,
        file_size_limit: int = DEFAULT_FILE_SIZE_LIMIT,
        is_binary: BinaryDetector = is_binary_file,
        stats: Optional[WalkStats] = None,
    ):
        """
        Initialize the filter.

        Args:
            file_size_limit: Files strictly larger than this are skipped
            is_binary: Binary detector; may raise OSError
            stats: Statistics to update (a private instance if omitted)
        """
        self.file_size_limit = parse_size_limit(file_size_limit)
        self.is_binary = is_binary
        self.stats = stats if stats is not None else WalkStats()

    def load(self, path: Path, rel_path: str, size: int) -> Optional[str]:
        """
        Return the file content, or None if the file is skipped.

        Args:
            path: Absolute path to the file
            rel_path: Path relative to the traversal root (used in log lines)
            size: File size in bytes from stat
        """
        if size > self.file_size_limit:
            logger.warning("Skipped (too large): %s (%d bytes)", rel_path, size)
            self.stats.skipped_size += 1
            return None

        try:
            binary = self.is_binary(path)
        except OSError as e:
            logger.error("Binary check failed: %s (%s)", rel_path, e)
            self.stats.errors += 1
            return None

        if binary:
            logger.warning("Skipped (binary): %s", rel_path)
            self.stats.skipped_binary += 1
            return None

        try:
            return read_text_strict(path)
        except UnicodeDecodeError as e:
            guess = detect_encoding(path)
            hint = f", looks like {guess}" if guess else ""
            logger.error("Failed to read: %s (not valid UTF-8%s: %s)", rel_path, hint, e.reason)
        except OSError as e:
            logger.error("Failed to read: %s (%s)", rel_path, e)
        self.stats.errors += 1
        return None


class TreeWalker:
    """
    Walks a directory into an ordered tree of nodes.

    Traversal is depth-first and pre-order, children in filesystem listing
    order. Per-entry failures are logged and the entry is omitted; they never
    abort the walk.
    """

    def __init__(
        self,
        directory: Path,
        excludes: Iterable[str] | None = DEFAULT_EXCLUDES,
        file_size_limit: int = DEFAULT_FILE_SIZE_LIMIT,
        root: Optional[Path] = None,
        respect_gitignore: bool = False,
        is_binary: BinaryDetector = is_binary_file,
    ):
        """
        Initialize the walker.

        Args:
            directory: Directory to walk
            excludes: Exclusion tokens (plain substrings)
            file_size_limit: Maximum file size in bytes
            root: Traversal root for relative paths (defaults to `directory`)
            respect_gitignore: Whether to also apply .gitignore files
            is_binary: Binary detector used by the content filter
        """
        self.directory = Path(os.path.abspath(directory))
        self.root = Path(os.path.abspath(root)) if root is not None else self.directory
        self.excludes = normalize_excludes(excludes)
        self.stats = WalkStats()
        self.content_filter = ContentFilter(file_size_limit, is_binary, self.stats)

        self._gitignore: Optional[GitIgnoreParser] = None
        if respect_gitignore:
            self._gitignore = GitIgnoreParser(self.directory)

    def walk(self) -> tuple[Node, ...]:
        """
        Walk the directory.

        Returns:
            The included nodes directly under the walked directory
        """
        try:
            top = os.stat(self.directory)
        except OSError as e:
            logger.error("Failed to stat: %s (%s)", self.directory, e)
            self.stats.errors += 1
            return ()
        return self._walk_dir(self.directory, frozenset({(top.st_dev, top.st_ino)}))

    def _walk_dir(self, current_dir: Path, ancestors: frozenset[tuple[int, int]]) -> tuple[Node, ...]:
        """Build the nodes for one directory; `ancestors` holds the (dev, inode) of the descent path."""
        try:
            entries = os.listdir(current_dir)
        except OSError as e:
            logger.error("Failed to read directory: %s (%s)", display_name(str(current_dir)), e)
            self.stats.errors += 1
            return ()

        nodes: list[Node] = []
        for name in entries:
            self.stats.entries_seen += 1
            full_path = current_dir / name
            rel_path = display_name(os.path.relpath(full_path, self.root))

            token = matching_exclude(rel_path, self.excludes)
            if token is not None:
                logger.info("Excluded: %s", rel_path)
                self.stats.skipped_excluded += 1
                self.stats.excluded_by_token[token] = self.stats.excluded_by_token.get(token, 0) + 1
                continue

            try:
                st = os.stat(full_path)
            except OSError as e:
                logger.error("Failed to stat: %s (%s)", rel_path, e)
                self.stats.errors += 1
                continue

            is_dir = stat.S_ISDIR(st.st_mode)
            if self._gitignore is not None and self._gitignore.is_ignored(full_path, is_dir):
                logger.info("Ignored by .gitignore: %s", rel_path)
                self.stats.skipped_gitignore += 1
                continue

            if is_dir:
                key = (st.st_dev, st.st_ino)
                if key in ancestors:
                    logger.warning("Skipped (symlink cycle): %s", rel_path)
                    self.stats.skipped_cycles += 1
                    continue
                children = self._walk_dir(full_path, ancestors | {key})
                nodes.append(DirectoryNode(name=display_name(name), path=rel_path, children=children))
                self.stats.directories_included += 1

            elif stat.S_ISREG(st.st_mode):
                content = self.content_filter.load(full_path, rel_path, st.st_size)
                if content is None:
                    continue
                nodes.append(FileNode(name=display_name(name), path=rel_path, content=content))
                self.stats.files_included += 1
                self.stats.total_bytes_included += st.st_size

            else:
                logger.info("Skipped (not a regular file): %s", rel_path)
                self.stats.skipped_special += 1

        return tuple(nodes)


def walk_directory(
    directory: Path,
    excludes: Iterable[str] | None = DEFAULT_EXCLUDES,
    file_size_limit: int = DEFAULT_FILE_SIZE_LIMIT,
    root: Optional[Path] = None,
    respect_gitignore: bool = False,
    is_binary: BinaryDetector = is_binary_file,
) -> tuple[tuple[Node, ...], WalkStats]:
    """
    Convenience function to walk a directory.

    Returns:
        Tuple of (included nodes, WalkStats)
    """
    walker = TreeWalker(
        directory=directory,
        excludes=excludes,
        file_size_limit=file_size_limit,
        root=root,
        respect_gitignore=respect_gitignore,
        is_binary=is_binary,
    )

    nodes = walker.walk()
    return nodes, walker.stats
