"""In-memory registry of per-chat search sessions."""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

import httpx

from placebot.config import GeocoderSettings, SearchSettings
from placebot.logging import logger
from placebot.services.geocoding import (
    NominatimCompletionService,
    NominatimGeocodingService,
    RequestThrottle,
)
from placebot.services.location_search import DEFAULT_ADDRESS_LABELS, LocationSearchController


@dataclass(slots=True)
class SearchSession:
    chat_id: int
    controller: LocationSearchController
    completer: NominatimCompletionService
    view: Any = None
    cleanups: list[Callable[[], None]] = field(default_factory=list)

    def close(self) -> None:
        while self.cleanups:
            cleanup = self.cleanups.pop()
            try:
                cleanup()
            except Exception:
                logger.exception("search_session_cleanup_failed", chat_id=self.chat_id)


class SearchSessionRegistry:
    """One controller per chat, created lazily and evicted least recently used first.

    All sessions share a single geocoding service and a single request
    throttle so the provider sees one well-behaved client.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        geocoder_settings: GeocoderSettings | None = None,
        search_settings: SearchSettings | None = None,
    ) -> None:
        self._client = http_client
        self._geocoder_settings = geocoder_settings or GeocoderSettings()
        self._search_settings = search_settings or SearchSettings()
        self._throttle = RequestThrottle(self._geocoder_settings.min_request_interval_seconds)
        self.geocoder = NominatimGeocodingService(
            http_client, self._geocoder_settings, throttle=self._throttle
        )
        self._sessions: OrderedDict[int, SearchSession] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, chat_id: int) -> bool:
        return chat_id in self._sessions

    def get(self, chat_id: int, *, labels: Sequence[str] = DEFAULT_ADDRESS_LABELS) -> SearchSession:
        session = self._sessions.get(chat_id)
        if session is not None:
            self._sessions.move_to_end(chat_id)
            return session

        completer = NominatimCompletionService(
            self._client, self._geocoder_settings, throttle=self._throttle
        )
        controller = LocationSearchController(
            completer,
            self.geocoder,
            labels=labels,
            drop_stale_responses=self._search_settings.drop_stale_responses,
        )
        session = SearchSession(chat_id=chat_id, controller=controller, completer=completer)
        self._sessions[chat_id] = session
        logger.debug("search_session_created", chat_id=chat_id, active=len(self._sessions))
        self._evict_overflow()
        return session

    def discard(self, chat_id: int) -> bool:
        session = self._sessions.pop(chat_id, None)
        if session is None:
            return False
        session.close()
        return True

    def clear(self) -> None:
        for chat_id in list(self._sessions):
            self.discard(chat_id)

    def _evict_overflow(self) -> None:
        while len(self._sessions) > self._search_settings.max_sessions:
            chat_id, session = self._sessions.popitem(last=False)
            session.close()
            logger.info("search_session_evicted", chat_id=chat_id)


__all__ = ["SearchSession", "SearchSessionRegistry"]
