"""
Shared fixtures: a scripted transport, a controllable clock and JSON-stat builders.
"""
from __future__ import annotations

import json
from typing import Any
from urllib.parse import urlsplit

import pytest

from scb_query.client.transport import FetchResponse
from scb_query.core.config import Settings

BASE_URL = "https://api.test/v2"


# ── Fakes ───────────────────────────────────────────────


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTransport:
    """Answers requests from routes keyed by (method, path suffix).

    A route holds a list of responses; each call pops the first one and the
    last one repeats.  Exceptions in the list are raised instead.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], list[Any]] = {}
        self.calls: list[dict[str, Any]] = []

    def add(self, path: str, *responses: Any, method: str = "GET") -> "FakeTransport":
        self.routes[(method, path)] = list(responses)
        return self

    def fetch(self, url: str, headers: dict[str, str], method: str = "GET", json_body: Any | None = None) -> FetchResponse:
        parts = urlsplit(url)
        self.calls.append({"method": method, "url": url, "path": parts.path, "query": parts.query,
                           "headers": headers, "json": json_body})
        for (route_method, suffix), responses in self.routes.items():
            if route_method == method and parts.path.endswith(suffix):
                response = responses.pop(0) if len(responses) > 1 else responses[0]
                if isinstance(response, Exception):
                    raise response
                return response
        return FetchResponse(404, "text/plain", "not found")

    def paths(self) -> list[str]:
        return [c["path"] for c in self.calls]


def json_response(payload: Any, status: int = 200, headers: dict[str, str] | None = None) -> FetchResponse:
    return FetchResponse(status, "application/json; charset=utf-8", json.dumps(payload), headers or {})


def build_dataset(dimensions: list[tuple[str, str, list[str], dict[str, str]]],
                  values: list[Any] | None = None, label: str = "Test table") -> dict[str, Any]:
    """JSON-stat 2 document for ``[(code, label, value_codes, value_labels), ...]``."""
    return {
        "version": "2.0",
        "class": "dataset",
        "label": label,
        "source": "Statistics Sweden",
        "updated": "2025-02-21T08:00:00Z",
        "id": [d[0] for d in dimensions],
        "size": [len(d[2]) for d in dimensions],
        "dimension": {
            code: {
                "label": dim_label,
                "category": {
                    "index": {c: i for i, c in enumerate(codes)},
                    "label": labels,
                },
            }
            for code, dim_label, codes, labels in dimensions
        },
        "value": values,
    }


REGION = ("Region", "region", ["1484", "0180"], {"1484": "Lerum", "0180": "Stockholm"})
TID = ("Tid", "year", ["2023", "2024"], {"2023": "2023", "2024": "2024"})
KON = ("Kon", "sex", ["1", "2"], {"1": "men", "2": "women"})

CONFIG = {
    "apiVersion": "2.0.0",
    "languages": [{"id": "sv", "label": "Svenska"}, {"id": "en", "label": "English"}],
    "defaultLanguage": "sv",
    "maxDataCells": 150000,
    "maxCallsPerTimeWindow": 30,
    "timeWindow": 10,
    "license": "CC0",
}


# ── Fixtures ────────────────────────────────────────────


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def settings() -> Settings:
    return Settings(pxweb_base_url=BASE_URL, fallback_max_calls=30, fallback_time_window=10,
                    wait_on_quota=False, max_value_suggestions=3)


@pytest.fixture
def make_dataset():
    return build_dataset


@pytest.fixture
def make_response():
    return json_response


@pytest.fixture
def dims():
    return {"Region": REGION, "Tid": TID, "Kon": KON}


@pytest.fixture
def config_payload() -> dict[str, Any]:
    return dict(CONFIG)
