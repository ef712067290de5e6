# utils.py
"""
Shared constants and line helpers for the Adblock Plus rule unifier.

This module provides:
- Artifact names and the freshness window shared by every stage
- Adblock Plus header/comment detection used by the normalizer
- Line splitting that keeps terminators (only "\\n" ends a line)
- Statistics key namespaces and summary formatting for stage output

Example Usage:
    from rule_unifier.utils import is_comment_line, split_keepends

    split_keepends("a\\nb\\n")         # Returns: ["a\\n", "b\\n"]
    is_comment_line("! Title: x\\n")  # Returns: True
    is_comment_line("a!b\\n")         # Returns: False
"""

from __future__ import annotations

from types import SimpleNamespace
from typing import Sequence


# -------------------------
# Constants
# -------------------------

RAW_CACHE_NAME = "temp.dat"
NORMALIZED_CACHE_NAME = "temp2.dat"

FRESHNESS_WINDOW = 60 * 60 * 12  # seconds
PART_COUNT = 3

FORMAT_HEADER = "[Adblock Plus 2.0]"
HEADER_MARKER = "[Adblock"
COMMENT_MARKER = "!"
MIN_RULE_LENGTH = 2

IO_BUFFER_SIZE = 131072  # 128KB buffer for file I/O
ENCODING = "utf-8"
ENCODING_ERRORS = "surrogateescape"

NORMALIZE_STATS_KEYS = SimpleNamespace(
    LINES_IN="lines_in",
    LINES_OUT="lines_out",
    DROPPED_SHORT="dropped_short",
    DROPPED_DUPLICATE="dropped_duplicate",
    DROPPED_HEADER="dropped_header",
    DROPPED_COMMENT="dropped_comment",
)

NORMALIZE_SUMMARY_ORDER = (
    NORMALIZE_STATS_KEYS.LINES_IN,
    NORMALIZE_STATS_KEYS.LINES_OUT,
    NORMALIZE_STATS_KEYS.DROPPED_SHORT,
    NORMALIZE_STATS_KEYS.DROPPED_DUPLICATE,
    NORMALIZE_STATS_KEYS.DROPPED_HEADER,
    NORMALIZE_STATS_KEYS.DROPPED_COMMENT,
)


# -------------------------
# Line helpers
# -------------------------


def is_too_short(line: str) -> bool:
    """True for empty lines and lines shorter than two characters."""
    return len(line) < MIN_RULE_LENGTH


def is_header_line(line: str) -> bool:
    """True if the line carries an Adblock header marker anywhere."""
    return HEADER_MARKER in line


def is_comment_line(line: str) -> bool:
    """True only when '!' is the very first character (no lstrip)."""
    return line.startswith(COMMENT_MARKER)


def split_keepends(text: str) -> list[str]:
    """
    Split `text` into lines on "\\n" only, keeping the terminator.

    A trailing fragment without newline is kept as the last line; an empty
    string yields an empty list. "\\r" is left inside the line untouched.
    """
    if not text:
        return []
    pieces = text.split("\n")
    lines = [piece + "\n" for piece in pieces[:-1]]
    if pieces[-1]:
        lines.append(pieces[-1])
    return lines


def part_name(base_name: str, index: int) -> str:
    """Return the output artifact name for zero-based part `index`."""
    return f"{base_name}_{index + 1}.txt"


# -------------------------
# Summaries
# -------------------------


def format_summary(label: str, stats: dict[str, int], keys: Sequence[str]) -> str:
    """Return a space-joined `label: key=value ...` summary string."""
    parts = [f"{label}:"]
    parts.extend(f"{key}={stats.get(key, 0)}" for key in keys)
    return " ".join(parts)


__all__ = [
    # Functions
    "is_too_short",
    "is_header_line",
    "is_comment_line",
    "split_keepends",
    "part_name",
    "format_summary",
    # Constants
    "RAW_CACHE_NAME",
    "NORMALIZED_CACHE_NAME",
    "FRESHNESS_WINDOW",
    "PART_COUNT",
    "FORMAT_HEADER",
    "HEADER_MARKER",
    "COMMENT_MARKER",
    "MIN_RULE_LENGTH",
    "IO_BUFFER_SIZE",
    "ENCODING",
    "ENCODING_ERRORS",
    "NORMALIZE_STATS_KEYS",
    "NORMALIZE_SUMMARY_ORDER",
]
