"""
Utility functions for repo-to-xml.

Includes binary-content sniffing, encoding detection for diagnostics and strict
UTF-8 file reading.
"""

from __future__ import annotations

import codecs
from pathlib import Path

import chardet

# Number of leading bytes inspected when sniffing content
SAMPLE_SIZE = 8192

# A byte-order mark marks the content as text even when it contains NUL bytes (UTF-16/32)
TEXT_BOMS = (
    codecs.BOM_UTF8,
    codecs.BOM_UTF32_LE,
    codecs.BOM_UTF32_BE,
    codecs.BOM_UTF16_LE,
    codecs.BOM_UTF16_BE,
)


def is_binary_bytes(sample: bytes) -> bool:
    """Heuristically decide whether a byte sample comes from a binary file.

    Checks, in order: byte-order marks (text), NUL bytes (binary), clean UTF-8
    (text), the ratio of printable ASCII bytes, and finally whether `chardet`
    recognizes any encoding at all.

    Args:
        sample: Leading bytes of a file.

    Returns:
        True if the sample is likely binary, otherwise False.
    """
    if not sample:
        return False

    if sample.startswith(TEXT_BOMS):
        return False

    # Check for null bytes (strong indicator of binary)
    if b"\x00" in sample:
        return True

    try:
        sample.decode("utf-8")
        return False
    except UnicodeDecodeError as e:
        # A multibyte character cut off by the sample boundary is still text
        if e.reason == "unexpected end of data" and e.end == len(sample):
            return False

    # Text files typically have >70% printable ASCII
    printable_count = sum(
        1
        for b in sample
        if 32 <= b <= 126 or b in (9, 10, 12, 13)  # printable + tab, newline, FF, CR
    )
    if printable_count / len(sample) < 0.70:
        return True

    result = chardet.detect(sample)
    return not result.get("encoding")


def is_binary_file(file_path: Path, sample_size: int = SAMPLE_SIZE) -> bool:
    """Determine whether a file is likely binary by sniffing its first bytes.

    Args:
        file_path: Path to the file to test.
        sample_size: Number of bytes to sample from the file start.

    Returns:
        True if the file is likely binary, otherwise False.

    Raises:
        OSError: If the file cannot be opened or read.
    """
    with open(file_path, "rb") as f:
        sample = f.read(sample_size)
    return is_binary_bytes(sample)


def detect_encoding(file_path: Path, sample_size: int = SAMPLE_SIZE) -> str | None:
    """Guess the text encoding of a file.

    Only used to make "not UTF-8" read failures actionable; content is always
    decoded as UTF-8.

    Args:
        file_path: Path to the file to inspect.
        sample_size: Number of bytes to sample from the start of the file.

    Returns:
        A lowercased encoding label (e.g., `"windows-1252"`), or None if unknown
        or the file cannot be read.
    """
    try:
        with open(file_path, "rb") as f:
            sample = f.read(sample_size)
    except OSError:
        return None

    if not sample:
        return None

    encoding = chardet.detect(sample).get("encoding")
    if not isinstance(encoding, str) or not encoding:
        return None
    return encoding.lower()


def read_text_strict(file_path: Path) -> str:
    """Read a whole file as strict UTF-8, preserving line endings.

    Args:
        file_path: Path to the file to read.

    Returns:
        The decoded file content, byte-for-byte equivalent to the file.

    Raises:
        UnicodeDecodeError: If the content is not valid UTF-8.
        OSError: If the file cannot be read.
    """
    # newline="" disables universal-newline translation so CRLF survives
    with open(file_path, encoding="utf-8", errors="strict", newline="") as f:
        return f.read()


def format_bytes(size: int) -> str:
    """Format a byte count for humans (e.g., `1.5 MB`).

    Args:
        size: Size in bytes.

    Returns:
        Human-readable size string.
    """
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{int(value)} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


def display_name(value: str) -> str:
    """Make a filesystem name safe to serialize.

    Undecodable bytes in names arrive from `os.listdir` as lone surrogates
    (`surrogateescape`); they are replaced with U+FFFD. Use the raw name for
    I/O and this form for node names, paths and log lines.

    Args:
        value: Name or path as returned by the `os` module.

    Returns:
        The same text with every undecodable byte replaced by U+FFFD.
    """
    return value.encode("utf-8", "surrogateescape").decode("utf-8", "replace")
