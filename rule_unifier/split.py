#!/usr/bin/env python3
"""
split.py

Split the normalized cache into three Adblock Plus lists.

Some browser builds of Adblock Plus reject very large subscriptions, so the
merged ruleset is published as <base>_1.txt .. <base>_3.txt. Each part
carries its own header and the attribution block of every source.

The three parts are only rebuilt (as a complete set) when at least one of
them is stale or missing.
"""

from __future__ import annotations

import enum
import logging
import math
from collections.abc import Callable, Sequence
from contextlib import ExitStack
from datetime import date

from rule_unifier import utils
from rule_unifier.cache_utils import (
    ArtifactUnavailable,
    FileArtifactStore,
    FreshnessChecker,
    encode_line,
)
from rule_unifier.normalize import Normalizer
from rule_unifier.status import RunContext

logger = logging.getLogger(__name__)


class OutputState(enum.Enum):
    FRESH = "fresh"  # all parts up to date, nothing to do
    READY = "ready"  # normalized cache ready, parts must be rewritten
    FAILED = "failed"


# ----------------------------------------
# Helpers
# ----------------------------------------
def chunk_lines(lines: Sequence[str], parts: int = utils.PART_COUNT) -> list[list[str]]:
    """
    Partition `lines` into exactly `parts` consecutive chunks of ceil(n / parts).

    Trailing chunks are empty when there are too few lines to fill them.
    """
    size = math.ceil(len(lines) / parts) if lines else 0
    chunks = [list(lines[i : i + size]) for i in range(0, len(lines), size or 1)]
    chunks.extend([] for _ in range(parts - len(chunks)))
    return chunks


def render_header(
    index: int, attribution: str, today: date, parts: int = utils.PART_COUNT
) -> str:
    """Return the header block for zero-based part `index`."""
    return (
        f"{utils.FORMAT_HEADER}\n"
        f"! Version: {today.day}.{today.month}.{today.year}\n"
        f"! Title: AdBlockPlus Part {index + 1}/{parts}\n"
        "!\n"
        f"{attribution}"
        "!\n"
    )


# ----------------------------------------
# Output freshness gate
# ----------------------------------------
class OutputFreshnessGate:
    """Decide whether the split parts need rebuilding and prepare the input."""

    def __init__(
        self,
        checker: FreshnessChecker,
        normalizer: Normalizer,
        context: RunContext,
        parts: int = utils.PART_COUNT,
    ) -> None:
        self.checker = checker
        self.normalizer = normalizer
        self.context = context
        self.parts = parts

    def check(self, base_name: str) -> OutputState:
        if not base_name:
            self.context.log("Internal error.")
            return OutputState.FAILED

        fresh = 0
        for idx in range(self.parts):
            name = utils.part_name(base_name, idx)
            if self.checker.is_fresh(name):
                self.context.log(f"File: /{name} is up to date.")
                fresh += 1

        if fresh == self.parts:
            return OutputState.FRESH

        if self.normalizer.normalize():
            self.context.log("Cache successfully updated.")
            return OutputState.READY

        self.context.log("Error: cache normalization failed.")
        return OutputState.FAILED

    def ensure_outputs(self, base_name: str) -> bool:
        """True when the parts are usable as-is or can be rebuilt."""
        return self.check(base_name) is not OutputState.FAILED


# ----------------------------------------
# Splitter
# ----------------------------------------
class Splitter:
    """Write the normalized cache out as a set of labeled parts."""

    def __init__(
        self,
        cache_store: FileArtifactStore,
        output_store: FileArtifactStore,
        gate: OutputFreshnessGate,
        context: RunContext,
        *,
        today: Callable[[], date] = date.today,
        normalized_name: str = utils.NORMALIZED_CACHE_NAME,
    ) -> None:
        self.cache_store = cache_store
        self.output_store = output_store
        self.gate = gate
        self.context = context
        self.today = today
        self.normalized_name = normalized_name

    def split(self, base_name: str) -> bool:
        state = self.gate.check(base_name)
        if state is OutputState.FAILED:
            return False
        if state is OutputState.FRESH:
            return True

        try:
            lines = self.cache_store.read_lines(self.normalized_name)
        except ArtifactUnavailable as exc:
            logger.warning("Normalized cache unavailable: %s", exc)
            return False
        if not lines:
            return False

        parts = self.gate.parts
        chunks = chunk_lines(lines, parts)
        today = self.today()
        attribution = self.context.attribution_block

        names = [utils.part_name(base_name, idx) for idx in range(len(chunks))]
        try:
            # every part is staged before any target is replaced
            with ExitStack() as stack:
                for idx, (name, chunk) in enumerate(zip(names, chunks)):
                    fh = stack.enter_context(self.output_store.open_write(name))
                    fh.write(encode_line(render_header(idx, attribution, today, parts)))
                    for rule in chunk:
                        fh.write(encode_line(rule))
        except OSError as exc:
            logger.error("Failed to write parts of %s: %s", base_name, exc)
            self.context.log(f"Error: could not write files for: {base_name}")
            return False

        for name, chunk in zip(names, chunks):
            logger.info("Wrote %s (%d rules)", name, len(chunk))
            self.context.log(f"Created file: {name}")

        return True
