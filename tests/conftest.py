"""Shared fixtures."""

import os
import sys

import pytest


@pytest.fixture
def write_latin1_named_file():
    """Return a function creating `caf\\xe9.txt` (a Latin-1 name) in a directory.

    Skips where the filesystem refuses names that are not valid UTF-8.
    """
    if sys.platform in ("darwin", "win32") or sys.getfilesystemencoding().lower() not in ("utf-8", "utf8"):
        pytest.skip("requires a byte-oriented filesystem with UTF-8 names")

    def write(directory, content="café au lait\n"):
        target = os.path.join(os.fsencode(directory), b"caf\xe9.txt")
        try:
            with open(target, "wb") as f:
                f.write(content.encode("utf-8"))
        except OSError as e:
            pytest.skip(f"filesystem rejects non-UTF-8 names ({e})")

    return write
