"""Shared pytest fixtures: fake provider services and a scripted HTTP client."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest

from placebot.config import GeocoderSettings


class FakeCompleter:
    def __init__(self) -> None:
        self.delegate = None
        self._query_fragment = ""
        self.fragments: list[str] = []

    @property
    def query_fragment(self) -> str:
        return self._query_fragment

    def set_query_fragment(self, text: str) -> None:
        self._query_fragment = text
        self.fragments.append(text)

    def deliver(self, results, for_query: str | None = None) -> None:
        fragment = self._query_fragment if for_query is None else for_query
        if fragment == self._query_fragment:
            self._query_fragment = ""
        self.delegate.on_suggestions_ready(results, fragment)


class FakeGeocoder:
    def __init__(self) -> None:
        self.requests: list[tuple[str, Any]] = []

    def geocode_address(self, text, callback) -> None:
        self.requests.append((text, callback))

    def resolve(self, placemark, error=None, *, index: int = -1) -> None:
        _, callback = self.requests[index]
        callback(placemark, error)


class ScriptedHttpClient:
    """Mimics ``httpx.AsyncClient.get`` with canned responses keyed by the ``q`` param."""

    def __init__(self, responses: dict[str, Any] | None = None, default: Any = None) -> None:
        self.responses = dict(responses or {})
        self.default = [] if default is None else default
        self.calls: list[dict[str, Any]] = []

    async def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        request = httpx.Request("GET", url, params=params)
        outcome = self.responses.get((params or {}).get("q"), self.default)
        if isinstance(outcome, list) and outcome and isinstance(outcome[0], (Exception, httpx.Response)):
            outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, httpx.Response):
            outcome.request = request
            return outcome
        return httpx.Response(200, json=outcome, request=request)


@pytest.fixture
def completer() -> FakeCompleter:
    return FakeCompleter()


@pytest.fixture
def geocoder() -> FakeGeocoder:
    return FakeGeocoder()


@pytest.fixture
def geocoder_settings() -> GeocoderSettings:
    return GeocoderSettings(
        user_agent="placebot-tests/1.0 (tests@example.com)",
        min_request_interval_seconds=0,
    )


@pytest.fixture
def http_client_factory():
    return ScriptedHttpClient


@pytest.fixture
def settle():
    async def _settle(rounds: int = 5) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _settle


@pytest.fixture
def no_retry_sleep(monkeypatch):
    delays: list[float] = []
    original_sleep = asyncio.sleep

    async def _fake_sleep(delay, *args, **kwargs):
        if delay:
            delays.append(delay)
        await original_sleep(0)

    monkeypatch.setattr("placebot.utils.retry.asyncio.sleep", _fake_sleep)
    return delays


TOKYO_TOWER_SEARCH = [
    {
        "place_id": 1,
        "name": "Tokyo Tower",
        "display_name": "Tokyo Tower, 4-2-8, Shibakoen, Minato, Tokyo, 105-0011, Japan",
        "lat": "35.6586",
        "lon": "139.7454",
        "category": "tourism",
        "type": "attraction",
    }
]

TOKYO_TOWER_GEOCODE = [
    {
        "place_id": 1,
        "name": "Tokyo Tower",
        "display_name": "Tokyo Tower, 4-2-8, Shibakoen, Minato, Tokyo, 105-0011, Japan",
        "lat": "35.6586",
        "lon": "139.7454",
        "address": {
            "tourism": "Tokyo Tower",
            "house_number": "4-2-8",
            "city": "Minato",
            "state": "Tokyo",
            "postcode": "105-0011",
            "country": "Japan",
            "country_code": "jp",
        },
    }
]


@pytest.fixture
def tokyo_tower_payloads() -> dict[str, Any]:
    return {"search": TOKYO_TOWER_SEARCH, "geocode": TOKYO_TOWER_GEOCODE}
