"""Tests for the walker module."""

import logging
import os
import tempfile
from pathlib import Path

import pytest

from repo_to_xml.config import DirectoryNode, FileNode, iter_files
from repo_to_xml.renderer import parse_xml, render_xml
from repo_to_xml.walker import (
    ContentFilter,
    GitIgnoreParser,
    TreeWalker,
    is_excluded,
    matching_exclude,
    walk_directory,
)

LIMIT = 1_048_576


def all_paths(nodes):
    """Collect the relative path of every node in a tree."""
    paths = []
    for node in nodes:
        paths.append(node.path)
        if isinstance(node, DirectoryNode):
            paths.extend(all_paths(node.children))
    return paths


@pytest.fixture
def scenario_repo():
    """Create the src/a.txt + src/big.bin + .git/config tree."""
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)

        (root / "src").mkdir()
        (root / ".git").mkdir()
        (root / "src" / "a.txt").write_text("hello")
        (root / "src" / "big.bin").write_bytes(b"\x00\x01\x02\xff" * (512 * 1024))  # 2 MB
        (root / ".git" / "config").write_text("[core]\n\tbare = false\n")

        yield root


class TestExclusionMatcher:
    """Tests for substring exclusion matching."""

    def test_substring_anywhere(self):
        """Test that a token matches anywhere in the path."""
        assert is_excluded(".git", ["git"])
        assert is_excluded(os.path.join("tools", "gitignore-helper"), ["git"])
        assert is_excluded(os.path.join("a", "node_modules", "x.js"), ["node_modules"])

    def test_case_sensitive(self):
        """Test that matching is case-sensitive."""
        assert not is_excluded("README.md", ["readme"])
        assert is_excluded("README.md", ["README"])

    def test_no_tokens(self):
        """Test that an empty token set excludes nothing."""
        assert not is_excluded("anything", [])

    def test_matching_exclude_returns_token(self):
        """Test that the first matching token is reported."""
        assert matching_exclude("src/.DS_Store", [".git", ".DS_Store"]) == ".DS_Store"
        assert matching_exclude("src/main.py", [".git"]) is None


class TestContentFilter:
    """Tests for ContentFilter."""

    def test_size_limit_is_inclusive(self, tmp_path):
        """Test that a file exactly at the limit is kept and one byte more is not."""
        exact = tmp_path / "exact.txt"
        exact.write_text("x" * 10)
        content_filter = ContentFilter(file_size_limit=10)

        assert content_filter.load(exact, "exact.txt", 10) == "x" * 10
        assert content_filter.load(exact, "exact.txt", 11) is None
        assert content_filter.stats.skipped_size == 1

    def test_size_checked_before_binary(self, tmp_path):
        """Test that oversized files are rejected without sniffing their content."""
        calls = []

        def detector(path):
            calls.append(path)
            return False

        big = tmp_path / "big.txt"
        big.write_text("x" * 100)
        content_filter = ContentFilter(file_size_limit=50, is_binary=detector)

        assert content_filter.load(big, "big.txt", 100) is None
        assert calls == []

    def test_binary_check_failure_skips_file(self, tmp_path, caplog):
        """Test that a failing binary detector only skips that file."""
        caplog.set_level(logging.INFO, logger="repo_to_xml")

        def detector(path):
            raise PermissionError("denied")

        f = tmp_path / "f.txt"
        f.write_text("hi")
        content_filter = ContentFilter(is_binary=detector)

        assert content_filter.load(f, "f.txt", 2) is None
        assert content_filter.stats.errors == 1
        assert "Binary check failed: f.txt" in caplog.text

    def test_invalid_utf8_is_skipped(self, tmp_path, caplog):
        """Test that content that is not UTF-8 is reported and skipped."""
        caplog.set_level(logging.INFO, logger="repo_to_xml")
        latin = tmp_path / "latin.txt"
        latin.write_bytes("café au lait, crème brûlée\n".encode("latin-1"))
        content_filter = ContentFilter(is_binary=lambda p: False)

        assert content_filter.load(latin, "latin.txt", latin.stat().st_size) is None
        assert content_filter.stats.errors == 1
        assert "Failed to read: latin.txt" in caplog.text

    def test_preserves_line_endings(self, tmp_path):
        """Test that CRLF content is read byte-exact."""
        f = tmp_path / "win.txt"
        f.write_bytes(b"one\r\ntwo\r\n")
        content_filter = ContentFilter()

        assert content_filter.load(f, "win.txt", 10) == "one\r\ntwo\r\n"

    def test_rejects_invalid_limit(self):
        """Test that a non-positive limit is a configuration error."""
        from repo_to_xml.config import ConfigError

        with pytest.raises(ConfigError):
            ContentFilter(file_size_limit=0)


class TestTreeWalker:
    """Tests for TreeWalker and walk_directory."""

    def test_scenario(self, scenario_repo):
        """Test the exclusion + size-limit scenario end to end."""
        nodes, stats = walk_directory(scenario_repo, excludes={".git"}, file_size_limit=LIMIT)

        assert nodes == (
            DirectoryNode(
                name="src",
                path="src",
                children=(FileNode(name="a.txt", path=os.path.join("src", "a.txt"), content="hello"),),
            ),
        )
        assert stats.files_included == 1
        assert stats.skipped_excluded == 1
        assert stats.skipped_size == 1

    def test_binary_skipped_regardless_of_size(self, tmp_path):
        """Test that small binary files are omitted."""
        (tmp_path / "tiny.bin").write_bytes(b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR")
        (tmp_path / "notes.md").write_text("# notes\n")

        nodes, stats = walk_directory(tmp_path, excludes=[], file_size_limit=LIMIT)

        assert [n.name for n in nodes] == ["notes.md"]
        assert stats.skipped_binary == 1

    def test_empty_directory(self, tmp_path):
        """Test that an empty directory yields no nodes."""
        nodes, stats = walk_directory(tmp_path)

        assert nodes == ()
        assert stats.entries_seen == 0

    def test_empty_subdirectory_kept(self, tmp_path):
        """Test that an empty subdirectory still produces a directory node."""
        (tmp_path / "empty").mkdir()

        nodes, _ = walk_directory(tmp_path)

        assert nodes == (DirectoryNode(name="empty", path="empty", children=()),)

    def test_no_path_contains_exclusion_token(self, tmp_path):
        """Test that excluded tokens never appear in any produced path."""
        for rel in ["a/keep.txt", "a/tmp_cache/x.txt", "b/c/tmp.log", "tmpdir/y.txt", "z.txt"]:
            target = tmp_path / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(rel)

        nodes, _ = walk_directory(tmp_path, excludes=["tmp"])

        paths = all_paths(nodes)
        assert paths
        assert not any("tmp" in p for p in paths)
        assert {f.name for f in iter_files(nodes)} == {"keep.txt", "z.txt"}

    def test_excluded_directory_not_descended(self, tmp_path, monkeypatch):
        """Test that the walker never lists an excluded directory."""
        (tmp_path / "node_modules" / "pkg").mkdir(parents=True)
        (tmp_path / "node_modules" / "pkg" / "index.js").write_text("//")
        (tmp_path / "app.js").write_text("//")

        listed = []
        real_listdir = os.listdir

        def recording_listdir(path):
            listed.append(Path(path))
            return real_listdir(path)

        monkeypatch.setattr(os, "listdir", recording_listdir)
        nodes, _ = walk_directory(tmp_path, excludes=["node_modules"])

        assert [n.name for n in nodes] == ["app.js"]
        assert all("node_modules" not in str(p) for p in listed)

    def test_listing_order_preserved(self, tmp_path, monkeypatch):
        """Test that children follow the filesystem listing order, not sorted order."""
        for name in ["b.txt", "a.txt", "c.txt"]:
            (tmp_path / name).write_text(name)

        real_listdir = os.listdir
        order = ["c.txt", "a.txt", "b.txt"]

        def controlled_listdir(path):
            names = real_listdir(path)
            return sorted(names, key=order.index)

        monkeypatch.setattr(os, "listdir", controlled_listdir)
        nodes, _ = walk_directory(tmp_path, excludes=[])

        assert [n.name for n in nodes] == order

    def test_unreadable_directory_is_empty(self, tmp_path, monkeypatch, caplog):
        """Test that a listing failure omits only that directory's children."""
        caplog.set_level(logging.INFO, logger="repo_to_xml")
        (tmp_path / "locked").mkdir()
        (tmp_path / "locked" / "secret.txt").write_text("s")
        (tmp_path / "open.txt").write_text("o")

        real_listdir = os.listdir

        def failing_listdir(path):
            if Path(path).name == "locked":
                raise PermissionError(13, "Permission denied")
            return real_listdir(path)

        monkeypatch.setattr(os, "listdir", failing_listdir)
        nodes, stats = walk_directory(tmp_path, excludes=[])

        by_name = {n.name: n for n in nodes}
        assert by_name["locked"] == DirectoryNode(name="locked", path="locked", children=())
        assert by_name["open.txt"].content == "o"
        assert stats.errors == 1
        assert "Failed to read directory" in caplog.text

    def test_broken_symlink_skipped(self, tmp_path):
        """Test that a failed stat skips the entry and the walk continues."""
        (tmp_path / "dangling").symlink_to(tmp_path / "missing")
        (tmp_path / "ok.txt").write_text("ok")

        nodes, stats = walk_directory(tmp_path, excludes=[])

        assert [n.name for n in nodes] == ["ok.txt"]
        assert stats.errors == 1

    def test_symlink_cycle_skipped(self, tmp_path):
        """Test that a directory symlink back to an ancestor is not followed."""
        (tmp_path / "a").mkdir()
        (tmp_path / "a" / "file.txt").write_text("x")
        (tmp_path / "a" / "loop").symlink_to(tmp_path / "a", target_is_directory=True)

        nodes, stats = walk_directory(tmp_path, excludes=[])

        assert [c.name for c in nodes[0].children] == ["file.txt"]
        assert stats.skipped_cycles == 1

    @pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="requires os.mkfifo")
    def test_special_files_skipped(self, tmp_path):
        """Test that FIFOs are neither read nor included."""
        os.mkfifo(tmp_path / "pipe")
        (tmp_path / "real.txt").write_text("r")

        nodes, stats = walk_directory(tmp_path, excludes=[])

        assert [n.name for n in nodes] == ["real.txt"]
        assert stats.skipped_special == 1

    def test_undecodable_name_replaced(self, tmp_path, write_latin1_named_file):
        """Test that a non-UTF-8 file name is read and named with U+FFFD."""
        write_latin1_named_file(tmp_path)
        (tmp_path / "ok.txt").write_text("ok")

        nodes, stats = walk_directory(tmp_path, excludes=[])

        by_name = {n.name: n for n in nodes}
        assert set(by_name) == {"caf\ufffd.txt", "ok.txt"}
        assert by_name["caf\ufffd.txt"].path == "caf\ufffd.txt"
        assert by_name["caf\ufffd.txt"].content == "café au lait\n"
        assert stats.errors == 0
        assert parse_xml(render_xml(nodes)) == nodes

    def test_idempotent(self, scenario_repo):
        """Test that walking an unchanged tree twice gives equal trees."""
        first, _ = walk_directory(scenario_repo, excludes={".git"})
        second, _ = walk_directory(scenario_repo, excludes={".git"})

        assert first == second

    def test_custom_root(self, scenario_repo):
        """Test that paths are computed relative to a pinned traversal root."""
        nodes, _ = walk_directory(scenario_repo, excludes={".git"}, root=scenario_repo.parent)

        prefix = scenario_repo.name
        assert nodes[0].path == os.path.join(prefix, "src")
        assert nodes[0].children[0].path == os.path.join(prefix, "src", "a.txt")

    def test_exclusions_use_relative_path(self, tmp_path):
        """Test that tokens are matched against the root-relative path only."""
        project = tmp_path / "vendor-project"
        project.mkdir()
        (project / "main.py").write_text("print()")

        nodes, _ = walk_directory(project, excludes=["vendor"])

        assert [n.name for n in nodes] == ["main.py"]

    def test_logs_exclusions(self, scenario_repo, caplog):
        """Test that exclusions and size skips are logged."""
        caplog.set_level(logging.INFO, logger="repo_to_xml")

        walk_directory(scenario_repo, excludes={".git"})

        assert "Excluded: .git" in caplog.text
        assert "Skipped (too large)" in caplog.text

    def test_walker_statistics(self, scenario_repo):
        """Test that statistics are collected on the walker."""
        walker = TreeWalker(scenario_repo, excludes=[".git"])
        walker.walk()

        stats = walker.stats.to_dict()
        assert stats["files_included"] == 1
        assert stats["directories_included"] == 1
        assert stats["excluded_by_token"] == {".git": 1}
        assert stats["total_bytes_included"] == 5


class TestGitIgnore:
    """Tests for optional .gitignore handling."""

    def test_gitignore_applied_when_enabled(self, tmp_path):
        """Test that .gitignore patterns remove files and directories."""
        (tmp_path / ".gitignore").write_text("*.log\nbuild/\n")
        (tmp_path / "build").mkdir()
        (tmp_path / "build" / "out.txt").write_text("o")
        (tmp_path / "app.log").write_text("l")
        (tmp_path / "main.py").write_text("m")

        nodes, stats = walk_directory(tmp_path, excludes=[], respect_gitignore=True)

        assert {n.name for n in nodes} == {".gitignore", "main.py"}
        assert stats.skipped_gitignore == 2

    def test_gitignore_ignored_by_default(self, tmp_path):
        """Test that .gitignore has no effect unless enabled."""
        (tmp_path / ".gitignore").write_text("*.log\n")
        (tmp_path / "app.log").write_text("l")

        nodes, _ = walk_directory(tmp_path, excludes=[])

        assert {n.name for n in nodes} == {".gitignore", "app.log"}

    def test_nested_gitignore(self, tmp_path):
        """Test that nested .gitignore files apply to their own subtree."""
        (tmp_path / "pkg").mkdir()
        (tmp_path / "pkg" / ".gitignore").write_text("generated.py\n")
        (tmp_path / "pkg" / "generated.py").write_text("g")
        (tmp_path / "generated.py").write_text("top")

        parser = GitIgnoreParser(tmp_path)

        assert parser.is_ignored(tmp_path / "pkg" / "generated.py")
        assert not parser.is_ignored(tmp_path / "generated.py")
