#!/usr/bin/env python3
"""
Session Context - logging and reproducibility for one viewer build.

Provides:
  - session_id generation (UUID4)
  - Structured JSON logging for every `viewer.*` logger
  - Config snapshot saving
  - Session metadata recording (timestamps, data source, versions, counts)

Usage:
    ctx = SessionContext(output_dir, cfg)   # session_id, log handlers
    ctx.save_config(cfg)                    # snapshot effective config
    ctx.log.info("message", extra={"date": "2026-02-01"})
    ctx.save_metadata({...})                # save final session metadata
"""

import json
import logging
import platform
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import yaml

from schemas import ViewerConfig

_EXTRA_KEYS = ("date", "ticker", "status", "count", "view", "session_id")


class _JSONFormatter(logging.Formatter):
    """Structured JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "func": record.funcName,
            "msg": record.getMessage(),
        }
        # Merge any extra fields (date, ticker, count, etc.)
        for key in _EXTRA_KEYS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        return json.dumps(entry, default=str)


class SessionContext:
    """Owns one build session's output directory, logging, and metadata."""

    def __init__(self, output_dir: str | Path, cfg: Optional[ViewerConfig] = None,
                 session_id: str | None = None):
        cfg = cfg or ViewerConfig()
        self.cfg = cfg
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.start_time = datetime.now()
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        # Parent of every module logger (viewer.loader, viewer.controller, ...)
        self.log = logging.getLogger("viewer")
        self.log.setLevel(logging.DEBUG)
        self.log.propagate = False

        # Remove existing handlers to avoid duplicates on re-init
        for h in list(self.log.handlers):
            h.close()
        self.log.handlers.clear()

        self.log_path = None
        if cfg.logging.json_log:
            self.log_path = self.output_dir / cfg.logging.json_log
            fh = logging.FileHandler(str(self.log_path), encoding="utf-8")
            fh.setFormatter(_JSONFormatter())
            self.log.addHandler(fh)

        # Console handler (human-readable)
        ch = logging.StreamHandler(sys.stdout)
        ch.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(message)s", datefmt="%H:%M:%S"))
        ch.setLevel(getattr(logging, cfg.logging.level))
        self.log.addHandler(ch)

        self.log.info("Session started", extra={"session_id": self.session_id})

    def save_config(self, cfg: ViewerConfig) -> Path:
        """Save a snapshot of the effective config for this session."""
        path = self.output_dir / "config.snapshot.yaml"
        with open(path, "w") as f:
            yaml.safe_dump(cfg.model_dump(), f, default_flow_style=False, sort_keys=False)
        self.log.info("Config snapshot saved", extra={"session_id": self.session_id})
        return path

    def save_metadata(self, extra: dict | None = None) -> Path:
        """Save session metadata (call at end of the build)."""
        end_time = datetime.now()
        meta = {
            "session_id": self.session_id,
            "start_time": self.start_time.isoformat(),
            "end_time": end_time.isoformat(),
            "elapsed_seconds": round((end_time - self.start_time).total_seconds(), 1),
            "data_source": self.cfg.data.data_dir or self.cfg.data.base_url,
            "history_window": self.cfg.data.history_days,
            "python_version": sys.version,
            "platform": platform.platform(),
            "packages": _get_package_versions(),
        }
        if extra:
            meta.update(extra)
        path = self.output_dir / "session.json"
        with open(path, "w") as f:
            json.dump(meta, f, indent=2, default=str)
        self.log.info("Session metadata saved", extra={"session_id": self.session_id})
        return path

    def close(self) -> None:
        for h in list(self.log.handlers):
            h.close()
            self.log.removeHandler(h)


def _get_package_versions() -> dict:
    """Get versions of key dependencies."""
    import importlib.metadata
    versions = {}
    for pkg in ["httpx", "pandas", "numpy", "pydantic", "pyyaml"]:
        try:
            versions[pkg] = importlib.metadata.version(pkg)
        except importlib.metadata.PackageNotFoundError:
            versions[pkg] = "unknown"
    return versions
