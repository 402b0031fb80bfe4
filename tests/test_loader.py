"""Tests for the Snapshot Loader: fetch errors, caching, local transport."""

import asyncio
import sys
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
from errors import FetchError, ParseError, SchemaEmpty
from instrumentation import EventLog
from schemas import ViewerConfig
from snapshot_loader import LocalDirectoryTransport, SnapshotLoader

BASE = "http://data.test/data/"


def run(coro):
    return asyncio.run(coro)


def _loader(transport, event_log=None):
    return SnapshotLoader(BASE, transport=transport, event_log=event_log)


# =====================================================================
# FETCH + ERRORS
# =====================================================================

class TestFetch:
    def test_latest_normalized(self, serve, latest_raw):
        async def go():
            async with _loader(serve({"latest.json": latest_raw})) as loader:
                return await loader.load_latest()
        snap = run(go())
        assert snap.scan_date == "2026-02-03"
        assert len(snap.opportunities) == 4

    def test_non_success_raises_fetch_error(self, serve):
        async def go():
            async with _loader(serve({"latest.json": 503})) as loader:
                await loader.load_latest()
        with pytest.raises(FetchError) as exc_info:
            run(go())
        assert exc_info.value.status == 503
        assert exc_info.value.status_text == "Service Unavailable"
        assert str(exc_info.value) == "503 Service Unavailable"

    def test_missing_day_is_404(self, serve):
        async def go():
            async with _loader(serve({})) as loader:
                await loader.load_day("2026-01-01")
        with pytest.raises(FetchError, match="404"):
            run(go())

    def test_bad_json_raises_parse_error(self, serve):
        async def go():
            async with _loader(serve({"latest.json": b"{not json"})) as loader:
                await loader.load_latest()
        with pytest.raises(ParseError):
            run(go())

    def test_unrecognized_payload_raises_schema_empty(self, serve):
        async def go():
            async with _loader(serve({"latest.json": {"hello": 1}})) as loader:
                await loader.load_latest()
        with pytest.raises(SchemaEmpty):
            run(go())

    def test_unreachable_host_raises_fetch_error(self, serve):
        log = EventLog()

        async def go():
            async with _loader(serve({"latest.json": httpx.ConnectError}), log) as loader:
                await loader.load_latest()
        with pytest.raises(FetchError) as exc_info:
            run(go())
        assert exc_info.value.status == 0
        assert str(exc_info.value) == "ConnectError: connection refused"
        assert log.of_type("NET")[0].status == "FAIL"

    def test_read_timeout_day_not_cached(self, serve):
        transport = serve({"2026-02-01.json": httpx.ReadTimeout})

        async def go():
            async with _loader(transport) as loader:
                with pytest.raises(FetchError, match="ReadTimeout"):
                    await loader.load_day("2026-02-01")
                return loader.cache
        assert run(go()) == {}

    def test_index(self, serve):
        async def go():
            async with _loader(serve({"index.json": {"dates": ["b", "a"]}})) as loader:
                return await loader.load_index()
        assert run(go()).dates == ["b", "a"]


# =====================================================================
# CACHE
# =====================================================================

class TestCache:
    def test_load_day_twice_is_one_request(self, serve, legacy_raw):
        transport = serve({"2026-02-01.json": legacy_raw})

        async def go():
            async with _loader(transport) as loader:
                a = await loader.load_day("2026-02-01")
                b = await loader.load_day("2026-02-01")
                return a, b
        a, b = run(go())
        assert a is b
        assert transport.calls == ["2026-02-01.json"]

    def test_latest_never_cached(self, serve, latest_raw):
        transport = serve({"latest.json": latest_raw})

        async def go():
            async with _loader(transport) as loader:
                await loader.load_latest()
                await loader.load_latest()
        run(go())
        assert transport.calls == ["latest.json", "latest.json"]

    def test_failed_day_not_cached(self, serve):
        transport = serve({"2026-02-01.json": 500})

        async def go():
            async with _loader(transport) as loader:
                for _ in range(2):
                    with pytest.raises(FetchError):
                        await loader.load_day("2026-02-01")
                return loader.cache
        assert run(go()) == {}
        assert len(transport.calls) == 2

    def test_cache_hit_traced(self, serve, legacy_raw):
        log = EventLog()

        async def go():
            async with _loader(serve({"2026-02-01.json": legacy_raw}), log) as loader:
                await loader.load_day("2026-02-01")
                await loader.load_day("2026-02-01")
        run(go())
        assert len(log.of_type("NET")) == 1
        assert len(log.of_type("CACHE", target="2026-02-01")) == 1

    def test_deep_dive_cache_busted(self, deep_dive_raw):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.params.get("_cb"))
            return httpx.Response(200, json=deep_dive_raw)

        async def go():
            async with _loader(httpx.MockTransport(handler)) as loader:
                return await loader.load_deep_dive()
        dd = run(go())
        assert len(dd.all_picks()) == 2
        assert seen[0] is not None and seen[0].isdigit()


# =====================================================================
# LOCAL DIRECTORY TRANSPORT
# =====================================================================

class TestLocalDirectory:
    def test_from_config_reads_disk(self, data_dir):
        cfg = ViewerConfig.model_validate({"data": {"data_dir": str(data_dir)}})

        async def go():
            async with SnapshotLoader.from_config(cfg) as loader:
                idx = await loader.load_index()
                day = await loader.load_day(idx.dates[-1])
                return idx, day
        idx, day = run(go())
        assert idx.dates == ["2026-02-03", "2026-02-02", "2026-02-01"]
        assert day.schema_generation == "legacy"

    def test_missing_file_is_404(self, data_dir):
        async def go():
            async with SnapshotLoader("http://local.data/",
                                      transport=LocalDirectoryTransport(data_dir)) as loader:
                await loader.load_day("1999-01-01")
        with pytest.raises(FetchError, match="404"):
            run(go())

    def test_path_escape_is_404(self, data_dir):
        async def go():
            async with SnapshotLoader("http://local.data/",
                                      transport=LocalDirectoryTransport(data_dir)) as loader:
                await loader.fetch_json("../../conftest.py")
        with pytest.raises(FetchError):
            run(go())
