#!/usr/bin/env python3
"""
pipeline.py

Full Adblock Plus list build: fetch → normalize → split.

Pipeline stages:
  1. fetch_sources - Merge all sources into the raw cache (temp.dat).
  2. normalize     - Sort, dedupe and strip comments/headers (temp2.dat).
  3. split         - Write <base>_1.txt .. <base>_3.txt with headers.

Every stage is skipped while its artifact is younger than twelve hours.

Usage:
    python -m rule_unifier.pipeline [-s sources.txt] [-c .cache] [-o .] [-b adblock]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from collections.abc import Callable, Sequence
from datetime import date
from pathlib import Path
from typing import Any

from rule_unifier import utils
from rule_unifier.cache_utils import FileArtifactStore, FreshnessChecker
from rule_unifier.fetch_sources import (
    DEFAULT_DELAY,
    DEFAULT_TIMEOUT,
    Fetch,
    Sleep,
    SourceAggregator,
    load_sources,
)
from rule_unifier.normalize import Normalizer
from rule_unifier.split import OutputFreshnessGate, Splitter
from rule_unifier.status import RunContext

log = logging.getLogger("pipeline")


# ----------------------------------------
# Helpers
# ----------------------------------------
def _configure_logging(verbose: bool = False) -> logging.Logger:
    """Return configured pipeline logger with a clean, single-line format."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        force=True,
        stream=sys.stdout,
    )
    return log


def run_stage(label: str, func: Callable[..., Any], *args: Any) -> Any:
    """Run a single stage with consistent console output."""
    log.info("")
    log.info(f"=== {label} ===")
    start = time.perf_counter()
    result = func(*args)
    elapsed = time.perf_counter() - start
    log.info(f"Finished {label} in {elapsed:.2f}s")
    return result


# ----------------------------------------
# Pipeline core
# ----------------------------------------
class RuleUnifier:
    """
    Merge several Adblock Plus lists and publish them as three parts.

    Creating the object refreshes the raw cache when it is stale; call
    split_rules_file() afterwards and read message() for the run log.
    The constructor runs its own event loop for fetching, so it must not be
    called from inside a running loop (use SourceAggregator.aaggregate there).
    """

    def __init__(
        self,
        urls: Sequence[str],
        cache_dir: str | Path,
        output_dir: str | Path | None = None,
        *,
        context: RunContext | None = None,
        fetch: Fetch | None = None,
        delay: float = DEFAULT_DELAY,
        timeout: float = DEFAULT_TIMEOUT,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.time,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.context = context or RunContext()
        self.cache_store = FileArtifactStore(cache_dir)
        self.output_store = (
            FileArtifactStore(output_dir) if output_dir is not None else self.cache_store
        )
        cache_checker = FreshnessChecker(self.cache_store, clock)
        output_checker = FreshnessChecker(self.output_store, clock)

        self.aggregator = SourceAggregator(
            self.cache_store,
            self.context,
            cache_checker,
            fetch=fetch,
            delay=delay,
            timeout=timeout,
            sleep=sleep,
        )
        self.normalizer = Normalizer(self.cache_store, cache_checker, self.context)
        self.gate = OutputFreshnessGate(output_checker, self.normalizer, self.context)
        self.splitter = Splitter(
            self.cache_store, self.output_store, self.gate, self.context, today=today
        )

        self.fetch_summary = run_stage(
            "Fetching sources", self.aggregator.aggregate, list(urls)
        )

    def split_rules_file(self, base_name: str) -> bool:
        return run_stage("Normalizing and splitting", self.splitter.split, base_name)

    def message(self, html: bool = False) -> str:
        return self.context.status.render(as_html=html)


# ----------------------------------------
# CLI
# ----------------------------------------
def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint for the full build."""
    parser = argparse.ArgumentParser(
        description="Merge Adblock Plus lists and split them into three parts"
    )
    parser.add_argument(
        "-s", "--sources", default="sources.txt", help="File with source URLs"
    )
    parser.add_argument("-c", "--cache", default=".cache", help="Cache directory")
    parser.add_argument("-o", "--outdir", default=".", help="Output directory")
    parser.add_argument(
        "-b", "--base-name", default="adblock", help="Base name of the output parts"
    )
    parser.add_argument(
        "--timeout", type=float, default=DEFAULT_TIMEOUT, help="Request timeout (seconds)"
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=DEFAULT_DELAY,
        help="Pause between sources (seconds)",
    )
    parser.add_argument(
        "--html", action="store_true", help="Render the status report as HTML"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    src = Path(args.sources)
    if not src.exists():
        raise SystemExit(f"Sources file not found: {src}")
    urls = load_sources(src)

    run_start = time.perf_counter()
    log.info(f"Starting build for {len(urls)} sources")
    unifier = RuleUnifier(
        urls, args.cache, args.outdir, delay=args.delay, timeout=args.timeout
    )
    ok = unifier.split_rules_file(args.base_name)
    total_elapsed = time.perf_counter() - run_start

    failed_urls = unifier.fetch_summary.get("failed_urls", [])
    if failed_urls:
        log.info("")
        log.info("Failed URLs:")
        for url, reason in failed_urls:
            log.info(f"  - {url}")
            log.info(f"    Reason: {reason}")

    log.info("")
    sys.stdout.write(unifier.message(html=args.html))
    log.info(
        f"{'Done' if ok else 'Failed'}: {args.base_name}_1..{utils.PART_COUNT}.txt "
        f"(total {total_elapsed:.2f}s)"
    )
    return 0 if ok else 1


def run() -> None:
    """Console-script entrypoint: exit with main()'s status, one line on fatal errors."""
    try:
        sys.exit(main())
    except SystemExit:
        raise
    except Exception as exc:
        print(f"[FATAL] {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    run()
