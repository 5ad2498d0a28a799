from __future__ import annotations

from placebot.config import SearchSettings
from placebot.services.location_search import LocationSearchController
from placebot.services.sessions import SearchSessionRegistry


def test_registry_creates_one_session_per_chat(http_client_factory, geocoder_settings):
    registry = SearchSessionRegistry(http_client_factory(), geocoder_settings)

    first = registry.get(1)
    again = registry.get(1)
    other = registry.get(2)

    assert first is again
    assert first is not other
    assert isinstance(first.controller, LocationSearchController)
    assert first.completer is not other.completer
    assert first.completer.delegate is first.controller
    assert len(registry) == 2
    assert 1 in registry


def test_sessions_share_geocoder(http_client_factory, geocoder_settings):
    registry = SearchSessionRegistry(http_client_factory(), geocoder_settings)

    first = registry.get(1)
    second = registry.get(2)

    assert first.controller._geocoder is registry.geocoder
    assert second.controller._geocoder is registry.geocoder


def test_least_recently_used_session_is_evicted(http_client_factory, geocoder_settings):
    registry = SearchSessionRegistry(
        http_client_factory(), geocoder_settings, SearchSettings(max_sessions=2)
    )
    closed = []
    first = registry.get(1)
    first.cleanups.append(lambda: closed.append(1))
    registry.get(2)
    registry.get(1)

    registry.get(3)

    assert 1 in registry
    assert 2 not in registry
    assert 3 in registry
    assert closed == []


def test_discard_runs_cleanups(http_client_factory, geocoder_settings):
    registry = SearchSessionRegistry(http_client_factory(), geocoder_settings)
    closed = []
    session = registry.get(5)
    session.cleanups.append(lambda: closed.append("view"))

    def _broken():
        raise RuntimeError("already gone")

    session.cleanups.append(_broken)

    assert registry.discard(5) is True
    assert registry.discard(5) is False
    assert closed == ["view"]
    assert 5 not in registry


def test_stale_response_setting_reaches_controller(http_client_factory, geocoder_settings):
    registry = SearchSessionRegistry(
        http_client_factory(), geocoder_settings, SearchSettings(drop_stale_responses=False)
    )

    session = registry.get(9, labels=("a", "b", "c", "d", "e", "f", "g", "h"))

    assert session.controller._drop_stale is False
    assert session.controller._labels == ("a", "b", "c", "d", "e", "f", "g", "h")


def test_clear_discards_everything(http_client_factory, geocoder_settings):
    registry = SearchSessionRegistry(http_client_factory(), geocoder_settings)
    registry.get(1)
    registry.get(2)

    registry.clear()

    assert len(registry) == 0
