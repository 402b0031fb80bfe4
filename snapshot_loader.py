#!/usr/bin/env python3
"""
Snapshot Loader for the Bull Scouter viewer.
=============================================
Fetches the scan feed over HTTP with httpx and hands each document to the
normalizer:

    latest.json     → Snapshot (always fetched fresh)
    index.json      → SnapshotIndex
    {date}.json     → Snapshot (session cache, keyed by date)
    deep-dive.json  → DeepDiveCollection (cache-busted)

The session cache is never invalidated: a past scan is a terminal,
historical document.  On a single event loop the check-then-set in
load_day cannot interleave with another check-then-set for the same key,
so the cache is the only dedup mechanism.

A host that cannot be reached at all (connection refused, DNS, timeout)
surfaces as FetchError with status 0, like any other failed fetch.

A data directory on disk can stand in for the HTTP host through
LocalDirectoryTransport; a missing file answers 404 like a web server.
"""

import json
import logging
import time
from pathlib import Path
from typing import Any, Optional

import httpx

from errors import FetchError, ParseError
from instrumentation import EventLog, trace_event, trace_net_call
from normalizer import normalize_deep_dive, normalize_index, normalize_snapshot
from schemas import DeepDiveCollection, Snapshot, SnapshotIndex, ViewerConfig

log = logging.getLogger("viewer.loader")

LATEST_PATH = "latest.json"
INDEX_PATH = "index.json"
DEEP_DIVE_PATH = "deep-dive.json"
_LOCAL_BASE = "http://local.data/"


class LocalDirectoryTransport(httpx.AsyncBaseTransport):
    """Serve JSON files from a directory as if it were the data host."""

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        rel = request.url.path.lstrip("/")
        path = (self.root / rel).resolve()
        if self.root not in path.parents or not path.is_file():
            return httpx.Response(404, request=request)
        return httpx.Response(200, content=path.read_bytes(), request=request,
                              headers={"content-type": "application/json"})


class SnapshotLoader:
    """Async loader with a per-session, date-keyed snapshot cache."""

    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 event_log: Optional[EventLog] = None):
        self.base_url = base_url
        self._client = client or httpx.AsyncClient(base_url=base_url, transport=transport)
        self.event_log = event_log
        self.cache: dict[str, Snapshot] = {}

    @classmethod
    def from_config(cls, cfg: ViewerConfig,
                    event_log: Optional[EventLog] = None) -> "SnapshotLoader":
        if cfg.data.data_dir:
            return cls(_LOCAL_BASE, transport=LocalDirectoryTransport(cfg.data.data_dir),
                       event_log=event_log)
        return cls(cfg.data.base_url, event_log=event_log)

    async def __aenter__(self) -> "SnapshotLoader":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ---------------------------------------------------------------------
    # Transport
    # ---------------------------------------------------------------------
    async def fetch_json(self, path: str, params: Optional[dict] = None) -> Any:
        """GET one document; non-2xx or unreachable host → FetchError,
        bad JSON → ParseError."""
        t0 = time.monotonic()
        try:
            resp = await self._client.get(path, params=params)
        except httpx.RequestError as exc:
            reason = f"{type(exc).__name__}: {exc}"
            trace_net_call(self.event_log, "GET", target=path,
                           duration_ms=(time.monotonic() - t0) * 1000, status="FAIL")
            log.warning(f"GET {path} failed: {reason}", extra={"status": "unreachable"})
            raise FetchError(0, reason, path) from exc
        elapsed = (time.monotonic() - t0) * 1000
        if not resp.is_success:
            trace_net_call(self.event_log, "GET", target=path,
                           status_code=resp.status_code, duration_ms=elapsed,
                           status="FAIL")
            log.warning(f"GET {path} -> {resp.status_code}",
                        extra={"status": resp.status_code})
            raise FetchError(resp.status_code, resp.reason_phrase, path)
        trace_net_call(self.event_log, "GET", target=path,
                       status_code=resp.status_code, nbytes=len(resp.content),
                       duration_ms=elapsed)
        try:
            with trace_event(self.event_log, "PARSE", "json", target=path):
                return json.loads(resp.content)
        except ValueError as exc:
            raise ParseError(path, str(exc)) from exc

    # ---------------------------------------------------------------------
    # Documents
    # ---------------------------------------------------------------------
    async def load_latest(self) -> Snapshot:
        """The in-progress scan; never served from cache."""
        raw = await self.fetch_json(LATEST_PATH)
        return normalize_snapshot(raw, LATEST_PATH)

    async def load_index(self) -> SnapshotIndex:
        raw = await self.fetch_json(INDEX_PATH)
        return normalize_index(raw)

    async def load_day(self, date: str) -> Snapshot:
        if date in self.cache:
            if self.event_log is not None:
                self.event_log.record("CACHE", "hit", target=date)
            return self.cache[date]
        path = f"{date}.json"
        raw = await self.fetch_json(path)
        snap = normalize_snapshot(raw, path)
        self.cache[date] = snap
        log.debug(f"Cached {date}", extra={"date": date, "count": len(snap.opportunities)})
        return snap

    async def load_deep_dive(self) -> DeepDiveCollection:
        raw = await self.fetch_json(DEEP_DIVE_PATH,
                                    params={"_cb": int(time.time() * 1000)})
        return normalize_deep_dive(raw, DEEP_DIVE_PATH)
