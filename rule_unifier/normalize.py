#!/usr/bin/env python3
"""
normalize.py

Sort, deduplicate and filter the raw rule cache into the normalized cache.

Lines are dropped when they are:
 - empty or shorter than two characters,
 - identical to the line just before them in sorted order,
 - Adblock headers (contain "[Adblock"),
 - comments ('!' as the first character).

Usage:
    python -m rule_unifier.normalize CACHE_DIR
"""

from __future__ import annotations

import logging
import sys

from rule_unifier import utils
from rule_unifier.cache_utils import (
    ArtifactUnavailable,
    FileArtifactStore,
    FreshnessChecker,
    encode_line,
)
from rule_unifier.status import RunContext

logger = logging.getLogger(__name__)
NM_KEYS = utils.NORMALIZE_STATS_KEYS


def classify_line(line: str, previous: str) -> str | None:
    """
    Return the stats key a line is dropped under, or None to keep it.

    Checks run in a fixed order; the first match wins.
    """
    if utils.is_too_short(line):
        return NM_KEYS.DROPPED_SHORT
    if line == previous:
        return NM_KEYS.DROPPED_DUPLICATE
    if utils.is_header_line(line):
        return NM_KEYS.DROPPED_HEADER
    if utils.is_comment_line(line):
        return NM_KEYS.DROPPED_COMMENT
    return None


class Normalizer:
    """Build the normalized cache from a full re-read of the raw cache."""

    def __init__(
        self,
        store: FileArtifactStore,
        checker: FreshnessChecker,
        context: RunContext,
        *,
        raw_name: str = utils.RAW_CACHE_NAME,
        normalized_name: str = utils.NORMALIZED_CACHE_NAME,
    ) -> None:
        self.store = store
        self.checker = checker
        self.context = context
        self.raw_name = raw_name
        self.normalized_name = normalized_name
        self.stats: dict[str, int] = {}

    def normalize(self) -> bool:
        """Return True once the normalized cache is ready, False with no usable input."""
        if self.checker.is_fresh(self.normalized_name):
            return True

        try:
            lines = self.store.read_lines(self.raw_name)
        except ArtifactUnavailable as exc:
            logger.warning("Raw cache unavailable: %s", exc)
            lines = []

        if not lines:
            return False

        lines.sort()
        stats = {key: 0 for key in utils.NORMALIZE_SUMMARY_ORDER}
        stats[NM_KEYS.LINES_IN] = len(lines)
        previous = ""

        try:
            with self.store.open_write(self.normalized_name) as fh:
                for line in lines:
                    dropped = classify_line(line, previous)
                    previous = line
                    if dropped:
                        stats[dropped] += 1
                        continue
                    fh.write(encode_line(line))
                    stats[NM_KEYS.LINES_OUT] += 1
        except OSError as exc:
            logger.error("Failed to write %s: %s", self.normalized_name, exc)
            return False

        self.stats = stats
        logger.info(
            utils.format_summary("normalize", stats, utils.NORMALIZE_SUMMARY_ORDER)
        )
        self.context.log("Cache file 2 updated.")
        return True


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(name)s:%(message)s")
    if len(sys.argv) < 2:
        logger.error("Usage: python -m rule_unifier.normalize CACHE_DIR")
        sys.exit(2)

    cache_store = FileArtifactStore(sys.argv[1])
    ctx = RunContext()
    ok = Normalizer(cache_store, FreshnessChecker(cache_store), ctx).normalize()
    sys.stdout.write(ctx.status.render())
    sys.exit(0 if ok else 1)
