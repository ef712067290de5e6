#!/usr/bin/env python3
"""
cache_utils.py

Named-artifact storage and time-based freshness checks.

Responsibilities:
 - Map artifact names (temp.dat, adblock_1.txt, ...) to files under a directory.
 - Read artifacts as lines, keeping terminators and undecodable bytes intact.
 - Overwrite artifacts through a temporary file that replaces the target.
 - Decide whether an artifact was written within the freshness window.

This module does not perform any network fetching logic.
"""

from __future__ import annotations

import tempfile
import time
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO

from rule_unifier import utils


IO_BUFFER_SIZE = utils.IO_BUFFER_SIZE


class ArtifactUnavailable(Exception):
    """Raised when an artifact is missing or cannot be read."""


# ----------------------------------------
# Artifact store
# ----------------------------------------
class FileArtifactStore:
    """Byte-oriented artifacts stored as files in a single directory."""

    def __init__(self, base_dir: str | Path) -> None:
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, name: str) -> Path:
        return self.base_dir / name

    def exists(self, name: str) -> bool:
        return self.path_for(name).is_file()

    def last_modified(self, name: str) -> float | None:
        """Return the artifact's mtime, or None when it does not exist."""
        try:
            return self.path_for(name).stat().st_mtime
        except OSError:
            return None

    def read_lines(self, name: str) -> list[str]:
        """
        Return every line of `name` with its trailing newline.

        Raises ArtifactUnavailable if the artifact is missing or unreadable.
        """
        path = self.path_for(name)
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise ArtifactUnavailable(f"{name}: {exc.strerror or exc}") from exc
        return utils.split_keepends(
            data.decode(utils.ENCODING, errors=utils.ENCODING_ERRORS)
        )

    @contextmanager
    def open_write(self, name: str) -> Iterator[BinaryIO]:
        """
        Yield a binary handle whose content replaces `name` on clean exit.

        On error the temporary file is removed and the previous artifact,
        if any, is left untouched.
        """
        target = self.path_for(name)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp_path: Path | None = None
        try:
            with tempfile.NamedTemporaryFile(
                "wb",
                delete=False,
                dir=target.parent,
                prefix=".tmp_artifact_",
                buffering=IO_BUFFER_SIZE,
            ) as tmp_file:
                tmp_path = Path(tmp_file.name)
                yield tmp_file
                tmp_file.flush()
            tmp_path.replace(target)
            tmp_path = None
        finally:
            if tmp_path and tmp_path.exists():
                tmp_path.unlink(missing_ok=True)

    def write_lines(self, name: str, lines: Iterable[str]) -> None:
        """Overwrite `name` with `lines` written verbatim."""
        with self.open_write(name) as fh:
            for line in lines:
                fh.write(encode_line(line))


def encode_line(line: str) -> bytes:
    return line.encode(utils.ENCODING, errors=utils.ENCODING_ERRORS)


# ----------------------------------------
# Freshness
# ----------------------------------------
class FreshnessChecker:
    """Answer whether an artifact was written within the last `window` seconds."""

    def __init__(
        self,
        store: FileArtifactStore,
        clock: Callable[[], float] = time.time,
        window: float = utils.FRESHNESS_WINDOW,
    ) -> None:
        self.store = store
        self.clock = clock
        self.window = window

    def is_fresh(self, name: str) -> bool:
        mtime = self.store.last_modified(name)
        if mtime is None:
            return False
        # strictly newer than now - window: exactly window seconds old is stale
        return (self.clock() - self.window) < mtime
