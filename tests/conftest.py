"""Shared fixtures for Bull Scouter viewer tests."""

import json
import sys
from pathlib import Path

import httpx
import pytest
import yaml

# Ensure project root is importable
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

FIXTURES = Path(__file__).resolve().parent / "fixtures"
DATA_DIR = FIXTURES / "data"

from schemas import Opportunity, ViewerConfig  # noqa: E402


@pytest.fixture
def cfg():
    """Load and validate the production config.yaml."""
    with open(ROOT / "config.yaml") as f:
        return ViewerConfig.model_validate(yaml.safe_load(f))


@pytest.fixture
def data_dir():
    return DATA_DIR


@pytest.fixture
def latest_raw():
    """Current-generation main feed (4 valid entries + 1 malformed)."""
    with open(DATA_DIR / "latest.json") as f:
        return json.load(f)


@pytest.fixture
def legacy_raw():
    """Legacy-generation main feed ({date, summary, results})."""
    with open(DATA_DIR / "2026-02-01.json") as f:
        return json.load(f)


@pytest.fixture
def deep_dive_raw():
    """Two-path deep dive (1 value pick, 1 growth pick + 1 malformed)."""
    with open(DATA_DIR / "deep-dive.json") as f:
        return json.load(f)


@pytest.fixture
def make_opp():
    """Factory for canonical Opportunity records with sane defaults."""
    def _make(ticker="TEST", score=60, confidence=60, recommendation="BUY", **kw):
        return Opportunity.model_validate({
            "ticker": ticker, "score": score, "confidence": confidence,
            "recommendation": recommendation, **kw,
        })
    return _make


@pytest.fixture
def serve():
    """Build an httpx.MockTransport from a {path: payload} mapping.

    Payload may be a dict (served as JSON), bytes (served raw), an int
    (served as that status with an empty body), or an httpx.RequestError
    subclass (raised as if the host were unreachable).  Every request path is
    recorded on transport.calls.
    """
    def _serve(routes: dict):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            path = request.url.path.rsplit("/", 1)[-1]
            calls.append(path)
            body = routes.get(path, 404)
            if isinstance(body, type) and issubclass(body, httpx.RequestError):
                raise body("connection refused", request=request)
            if isinstance(body, int):
                return httpx.Response(body)
            if isinstance(body, bytes):
                return httpx.Response(200, content=body)
            return httpx.Response(200, json=body)

        transport = httpx.MockTransport(handler)
        transport.calls = calls
        return transport
    return _serve
