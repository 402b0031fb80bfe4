#!/usr/bin/env python3
"""
Instrumentation Layer for the Bull Scouter viewer
==================================================
Records every significant viewer operation (NET, CACHE, PARSE, RENDER,
CHART) to an in-memory trace, then flushes it to CSV/Markdown when the
dashboard build finishes.

Usage:
    from instrumentation import EventLog, trace_event

    trace = EventLog()
    with trace_event(trace, "RENDER", "today view"):
        html = render_today(state)

    trace.flush_all("site/trace/")
"""

import csv
import inspect
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

EVENT_TYPES = ("NET", "CACHE", "PARSE", "RENDER", "CHART")
_COLS = ["#", "Time", "Type", "Duration", "Operation", "Target", "Caller",
         "Status", "Details"]


@dataclass
class Event:
    """Single trace event."""
    seq: int
    wall_time: str
    event_type: str
    duration_ms: float
    operation: str
    target: str
    caller: str
    status: str
    details: str

    def to_dict(self) -> dict:
        return {
            "#": self.seq,
            "Time": self.wall_time,
            "Type": self.event_type,
            "Duration": f"{self.duration_ms:.0f} ms",
            "Operation": self.operation,
            "Target": self.target,
            "Caller": self.caller,
            "Status": self.status,
            "Details": self.details,
        }


class EventLog:
    """In-memory event trace that flushes to CSV/MD."""

    def __init__(self):
        self.events: list[Event] = []
        self._seq = 0

    def record(self, event_type: str, operation: str, duration_ms: float = 0.0,
               target: str = "", status: str = "OK", details: str = "",
               caller: Optional[str] = None) -> Event:
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type}")
        if caller is None:
            caller = _get_caller(skip=2)
        self._seq += 1
        evt = Event(
            seq=self._seq,
            wall_time=datetime.now().strftime("%H:%M:%S"),
            event_type=event_type,
            duration_ms=round(duration_ms, 1),
            operation=operation,
            target=target,
            caller=caller,
            status=status,
            details=details,
        )
        self.events.append(evt)
        return evt

    def of_type(self, event_type: str, target: Optional[str] = None) -> list[Event]:
        return [e for e in self.events
                if e.event_type == event_type and (target is None or e.target == target)]

    def failures(self) -> list[Event]:
        return [e for e in self.events if e.status != "OK"]

    def flush_csv(self, path: str | Path) -> str:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", newline="", encoding="utf-8") as f:
            w = csv.DictWriter(f, fieldnames=_COLS)
            w.writeheader()
            for evt in self.events:
                w.writerow(evt.to_dict())
        return str(path)

    def flush_md(self, path: str | Path) -> str:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write("# Viewer Trace\n\n")
            f.write(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n\n")

            type_counts = {}
            for e in self.events:
                type_counts[e.event_type] = type_counts.get(e.event_type, 0) + 1
            f.write("## Summary\n\n")
            f.write(f"- Total events: {len(self.events)}\n")
            f.write(f"- Event types: {', '.join(f'{k}={v}' for k, v in sorted(type_counts.items()))}\n")
            f.write(f"- Failures: {len(self.failures())}\n\n")

            f.write("## Events\n\n")
            f.write("| " + " | ".join(_COLS) + " |\n")
            f.write("| " + " | ".join("---" for _ in _COLS) + " |\n")
            for evt in self.events:
                d = evt.to_dict()
                row = " | ".join(str(d.get(c, "")).replace("|", "\\|") for c in _COLS)
                f.write(f"| {row} |\n")
        return str(path)

    def flush_all(self, report_dir: str | Path):
        d = Path(report_dir)
        d.mkdir(parents=True, exist_ok=True)
        self.flush_csv(d / "trace.csv")
        self.flush_md(d / "trace.md")


def _get_caller(skip: int = 2) -> str:
    """Get caller info as file:function:line."""
    try:
        frame = inspect.stack()[skip]
        return f"{Path(frame.filename).name}:{frame.function}:{frame.lineno}"
    except (IndexError, AttributeError):
        return "unknown"


@contextmanager
def trace_event(log: Optional[EventLog], event_type: str, operation: str,
                target: str = "", details: str = ""):
    """Context manager that records a timed event; a None log is a no-op."""
    if log is None:
        yield
        return
    caller = _get_caller(skip=3)
    t0 = time.monotonic()
    status = "OK"
    try:
        yield
    except Exception as exc:
        status = "FAIL"
        err = f"ERROR: {type(exc).__name__}: {exc}"
        details = f"{details}; {err}" if details else err
        raise
    finally:
        log.record(event_type, operation, (time.monotonic() - t0) * 1000,
                   target=target, status=status, details=details, caller=caller)


def trace_net_call(log: Optional[EventLog], operation: str, target: str = "",
                   status_code: int = 0, nbytes: int = 0,
                   duration_ms: float = 0, status: str = "OK"):
    """Record a network fetch."""
    if log is None:
        return
    parts = []
    if status_code:
        parts.append(f"status={status_code}")
    if nbytes:
        parts.append(f"bytes={nbytes}")
    log.record("NET", operation, duration_ms, target=target, status=status,
               details="; ".join(parts), caller=_get_caller(skip=2))
