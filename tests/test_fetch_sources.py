"""Tests for source aggregation and the aiohttp fetch primitive."""

import asyncio

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from rule_unifier.fetch_sources import (
    FetchError,
    SourceAggregator,
    fetch_one,
    load_sources,
)

from conftest import make_fetch, make_sleep, set_age

URL_A = "https://lists.example/a.txt"
URL_B = "https://lists.example/b.txt"
URL_DOWN = "https://down.example/list.txt"
LONG_LABEL_URL = "http://" + "a" * 70 + ".com/list.txt"


def _aggregator(store, context, checker, fetch, sleep=None, delay=0):
    return SourceAggregator(
        store, context, checker, fetch=fetch, delay=delay, sleep=sleep or make_sleep()
    )


def test_empty_sources_do_nothing(store, context, checker):
    fetch = make_fetch({})
    summary = _aggregator(store, context, checker, fetch).aggregate([])
    assert fetch.calls == []
    assert not store.exists("temp.dat")
    assert context.attribution_block == ""
    assert len(context.status) == 0
    assert summary["processed"] == 0


def test_stale_cache_is_rebuilt_in_source_order(store, context, checker):
    fetch = make_fetch({URL_A: b"||a.example^\n||shared^", URL_B: b"||b.example^\n"})
    summary = _aggregator(store, context, checker, fetch).aggregate([URL_A, URL_B])

    assert fetch.calls == [URL_A, URL_B]
    assert store.path_for("temp.dat").read_bytes() == (
        b"||a.example^\n||shared^\n||b.example^\n\n"
    )
    assert context.attribution_block == f"! {URL_A}\n! {URL_B}\n"
    assert context.status.lines == [
        f"Source: {URL_A}",
        f"Source: {URL_B}",
        "Cache file 1 updated.",
    ]
    assert summary["ok"] == 2
    assert summary["failed"] == 0


def test_failed_source_is_attributed_but_adds_no_content(store, context, checker):
    fetch = make_fetch({URL_A: b"||a.example^"})
    summary = _aggregator(store, context, checker, fetch).aggregate([URL_DOWN, URL_A])

    assert store.path_for("temp.dat").read_bytes() == b"||a.example^\n"
    assert context.attribution_block == f"! {URL_DOWN}\n! {URL_A}\n"
    assert f"Source: {URL_DOWN}" in context.status.lines
    assert summary["failed"] == 1
    assert summary["failed_urls"] == [(URL_DOWN, "HTTP 404")]


def test_fresh_cache_skips_fetching_but_attributes(store, context, checker):
    store.write_lines("temp.dat", ["||old^\n"])
    fetch = make_fetch({URL_A: b"||new^"})
    _aggregator(store, context, checker, fetch).aggregate([URL_A, URL_DOWN])

    assert fetch.calls == []
    assert store.read_lines("temp.dat") == ["||old^\n"]
    assert context.attribution_block == f"! {URL_A}\n! {URL_DOWN}\n"
    assert len(context.status) == 0


def test_stale_cache_is_overwritten(store, context, checker, stale_age):
    store.write_lines("temp.dat", ["||old^\n"])
    set_age(store.path_for("temp.dat"), stale_age)
    fetch = make_fetch({URL_A: b"||new^"})
    _aggregator(store, context, checker, fetch).aggregate([URL_A])

    assert store.read_lines("temp.dat") == ["||new^\n"]
    assert checker.is_fresh("temp.dat")


def test_courtesy_delay_between_sources(store, context, checker):
    sleep = make_sleep()
    fetch = make_fetch({URL_A: b"a", URL_B: b"b"})
    _aggregator(store, context, checker, fetch, sleep=sleep, delay=1.5).aggregate(
        [URL_A, URL_B, URL_DOWN]
    )
    assert sleep.delays == [1.5, 1.5]


def test_load_sources_skips_blank_and_comment_lines(tmp_path):
    src = tmp_path / "sources.txt"
    src.write_text(f"# lists\n{URL_A}\n\n  {URL_B}  \n", encoding="utf-8")
    assert load_sources(src) == [URL_A, URL_B]


# ----------------------------------------
# fetch_one against a local server
# ----------------------------------------
async def _fetch_from_app(path: str) -> bytes:
    async def ok(request):
        return web.Response(body=b"||ads.example^\n")

    async def missing(request):
        return web.Response(status=404)

    app = web.Application()
    app.router.add_get("/list.txt", ok)
    app.router.add_get("/missing.txt", missing)
    async with TestServer(app) as server:
        async with aiohttp.ClientSession() as session:
            return await fetch_one(session, str(server.make_url(path)), timeout=5)


def test_fetch_one_returns_body():
    assert asyncio.run(_fetch_from_app("/list.txt")) == b"||ads.example^\n"


def test_fetch_one_raises_on_http_error():
    with pytest.raises(FetchError, match="HTTP 404"):
        asyncio.run(_fetch_from_app("/missing.txt"))


def test_fetch_one_raises_on_invalid_url():
    async def run():
        async with aiohttp.ClientSession() as session:
            return await fetch_one(session, "not a url", timeout=5)

    with pytest.raises(FetchError):
        asyncio.run(run())


def test_fetch_one_raises_on_timeout():
    async def slow(request):
        await asyncio.sleep(1.0)
        return web.Response(body=b"||late.example^\n")

    async def run():
        app = web.Application()
        app.router.add_get("/slow.txt", slow)
        async with TestServer(app) as server:
            async with aiohttp.ClientSession() as session:
                return await fetch_one(session, str(server.make_url("/slow.txt")), timeout=0.2)

    with pytest.raises(FetchError, match="Timeout"):
        asyncio.run(run())


def test_fetch_one_wraps_overlong_host_label():
    async def run():
        async with aiohttp.ClientSession() as session:
            return await fetch_one(session, LONG_LABEL_URL, timeout=5)

    with pytest.raises(FetchError):
        asyncio.run(run())


# ----------------------------------------
# Aggregation with the real fetch path
# ----------------------------------------
def test_overlong_host_label_is_skipped_not_raised(store, context, checker):
    aggregator = SourceAggregator(store, context, checker, delay=0, sleep=make_sleep())
    summary = aggregator.aggregate([LONG_LABEL_URL])

    assert summary["failed"] == 1
    assert store.path_for("temp.dat").read_bytes() == b""
    assert context.attribution_block == f"! {LONG_LABEL_URL}\n"
    assert context.status.lines == [f"Source: {LONG_LABEL_URL}", "Cache file 1 updated."]


def test_failed_sources_do_not_stop_later_ones(store, context, checker):
    async def ok(request):
        return web.Response(body=b"||ads.example^\n")

    async def slow(request):
        await asyncio.sleep(1.0)
        return web.Response(body=b"||late.example^\n")

    async def run():
        app = web.Application()
        app.router.add_get("/list.txt", ok)
        app.router.add_get("/slow.txt", slow)
        async with TestServer(app) as server:
            slow_url = str(server.make_url("/slow.txt"))
            ok_url = str(server.make_url("/list.txt"))
            aggregator = SourceAggregator(
                store, context, checker, delay=0, timeout=0.2, sleep=make_sleep()
            )
            summary = await aggregator.aaggregate([LONG_LABEL_URL, slow_url, ok_url])
            return summary, slow_url, ok_url

    summary, slow_url, ok_url = asyncio.run(run())

    assert store.path_for("temp.dat").read_bytes() == b"||ads.example^\n\n"
    assert context.attribution_block == (
        f"! {LONG_LABEL_URL}\n! {slow_url}\n! {ok_url}\n"
    )
    assert summary["ok"] == 1
    assert summary["failed"] == 2
    assert [url for url, _ in summary["failed_urls"]] == [LONG_LABEL_URL, slow_url]
    assert "Timeout" in summary["failed_urls"][1][1]
