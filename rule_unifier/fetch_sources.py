#!/usr/bin/env python3
"""
fetch_sources.py

Sequential downloader that fills the raw rule cache from configured sources.

Behavior:
 - Uses a single aiohttp session; sources are fetched one after another.
 - Skips the network entirely while the raw cache is still fresh.
 - Treats timeouts, connection/SSL errors and non-200 responses as "no content".
 - Pauses between sources as a courtesy to the list hosts.
 - Records an attribution line for every configured source.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from functools import partial
from pathlib import Path
from typing import Any

import aiohttp

from rule_unifier import utils
from rule_unifier.cache_utils import FileArtifactStore, FreshnessChecker
from rule_unifier.status import RunContext

logger = logging.getLogger(__name__)


# ----------------------------------------
# Constants
# ----------------------------------------
DEFAULT_TIMEOUT = 30
DEFAULT_CONNECT_TIMEOUT = 10
DEFAULT_DELAY = 1.0  # seconds between sources
USER_AGENT = "Mozilla/5.0 (compatible; RuleUnifier/1.0)"

Fetch = Callable[[str], Awaitable[bytes]]
Sleep = Callable[[float], Awaitable[Any]]


class FetchError(Exception):
    """Raised when a single source cannot be retrieved."""


# ----------------------------------------
# Fetch single URL
# ----------------------------------------
async def fetch_one(
    session: aiohttp.ClientSession, url: str, timeout: float = DEFAULT_TIMEOUT
) -> bytes:
    """
    Return the body of `url`.

    Raises FetchError on timeout, connection or SSL failure, invalid URL or
    host name, and any status other than 200. No retries are attempted.
    """
    timeout_obj = aiohttp.ClientTimeout(
        total=timeout,
        connect=min(DEFAULT_CONNECT_TIMEOUT, timeout),
        sock_read=timeout,
    )
    try:
        async with session.get(
            url,
            headers={"User-Agent": USER_AGENT},
            timeout=timeout_obj,
            allow_redirects=True,
            max_redirects=10,
        ) as resp:
            if resp.status != 200:
                raise FetchError(f"HTTP {resp.status}")
            return await resp.read()
    except FetchError:
        raise
    except asyncio.TimeoutError as exc:
        raise FetchError("Timeout - server did not respond in time") from exc
    except aiohttp.ClientSSLError as exc:
        raise FetchError(f"SSL certificate error - {exc}") from exc
    except aiohttp.ClientError as exc:
        raise FetchError(f"Connection error - {type(exc).__name__}") from exc
    except Exception as exc:
        # e.g. UnicodeError from the IDNA codec on an over-long host label
        raise FetchError(f"{type(exc).__name__}: {exc}") from exc


# ----------------------------------------
# Aggregation
# ----------------------------------------
class SourceAggregator:
    """
    Fill the raw cache artifact from an ordered list of sources.

    aggregate() starts its own event loop and cannot be called while one is
    running; use aaggregate() from async code.
    """

    def __init__(
        self,
        store: FileArtifactStore,
        context: RunContext,
        checker: FreshnessChecker,
        *,
        fetch: Fetch | None = None,
        delay: float = DEFAULT_DELAY,
        timeout: float = DEFAULT_TIMEOUT,
        sleep: Sleep = asyncio.sleep,
        cache_name: str = utils.RAW_CACHE_NAME,
    ) -> None:
        self.store = store
        self.context = context
        self.checker = checker
        self.fetch = fetch
        self.delay = delay
        self.timeout = timeout
        self.sleep = sleep
        self.cache_name = cache_name

    def aggregate(self, sources: Sequence[str]) -> dict[str, Any]:
        """
        Attribute every source and, if the raw cache is stale, rebuild it.

        Returns a summary {"processed", "ok", "failed", "failed_urls"}; all
        counts stay zero when no fetching took place.
        """
        return asyncio.run(self.aaggregate(sources))

    async def aaggregate(self, sources: Sequence[str]) -> dict[str, Any]:
        """Coroutine form of aggregate() for callers already inside a loop."""
        results: dict[str, Any] = {
            "processed": 0,
            "ok": 0,
            "failed": 0,
            "failed_urls": [],
        }
        if not sources:
            return results

        if self.checker.is_fresh(self.cache_name):
            for url in sources:
                self.context.attribute(url)
            return results

        return await self._refresh(list(sources), results)

    async def _refresh(
        self, sources: list[str], results: dict[str, Any]
    ) -> dict[str, Any]:
        if self.fetch is not None:
            await self._collect(sources, self.fetch, results)
            return results

        connector = aiohttp.TCPConnector(limit=1, ttl_dns_cache=300)
        async with aiohttp.ClientSession(connector=connector) as session:
            await self._collect(
                sources, partial(fetch_one, session, timeout=self.timeout), results
            )
        return results

    async def _collect(
        self, sources: list[str], fetch: Fetch, results: dict[str, Any]
    ) -> None:
        with self.store.open_write(self.cache_name) as fh:
            for idx, url in enumerate(sources):
                if idx:
                    await self.sleep(self.delay)
                results["processed"] += 1
                try:
                    body = await fetch(url)
                except FetchError as exc:
                    logger.warning("Skipping %s: %s", url, exc)
                    results["failed"] += 1
                    results["failed_urls"].append((url, str(exc)))
                else:
                    fh.write(body)
                    fh.write(b"\n")
                    results["ok"] += 1
                self.context.attribute(url)
                self.context.log(f"Source: {url}")

        self.context.log("Cache file 1 updated.")


# ----------------------------------------
# Configuration
# ----------------------------------------
def load_sources(path: str | Path) -> list[str]:
    """Read source URLs from `path`, ignoring blank lines and '#' comments."""
    src = Path(path)
    with src.open("r", encoding="utf-8") as fh:
        return [
            line.strip() for line in fh if line.strip() and not line.startswith("#")
        ]
