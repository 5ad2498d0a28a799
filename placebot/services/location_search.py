"""Per-chat search state and the controller that drives it.

The controller owns the query, the current suggestion list and the resolved
address detail. Completion and geocoding are delegated to external services
that report back through callbacks, possibly from another thread; every
state mutation is marshalled onto the controller's event loop before
observers are notified.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, Callable, Protocol, Sequence

from placebot.domain.models import Placemark, Suggestion
from placebot.logging import logger

DEFAULT_ADDRESS_LABELS = (
    "Country",
    "Postal code",
    "Administrative area",
    "Locality",
    "Thoroughfare",
    "Sub-thoroughfare",
    "Longitude",
    "Latitude",
)


class SearchStatus(str, Enum):
    IDLE = "idle"
    TYPING = "typing"
    SEARCHING = "searching"
    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class SearchState:
    query: str
    last_searched_query: str
    suggestions: tuple[Suggestion, ...]
    suggestions_query: str
    address_detail: str
    placemark: Placemark | None
    status: SearchStatus


Observer = Callable[[SearchState], None]


class CompletionService(Protocol):
    delegate: Any

    @property
    def query_fragment(self) -> str: ...

    def set_query_fragment(self, text: str) -> None: ...


class GeocodingService(Protocol):
    def geocode_address(
        self, text: str, callback: Callable[[Placemark | None, Exception | None], None]
    ) -> None: ...


def format_address_detail(
    placemark: Placemark, labels: Sequence[str] = DEFAULT_ADDRESS_LABELS
) -> str:
    """Render a placemark as eight ``label : value`` lines in fixed order."""

    if len(labels) != len(DEFAULT_ADDRESS_LABELS):
        raise ValueError(f"Expected {len(DEFAULT_ADDRESS_LABELS)} labels, got {len(labels)}.")
    values = (
        placemark.country,
        placemark.postal_code,
        placemark.administrative_area,
        placemark.locality,
        placemark.thoroughfare,
        placemark.sub_thoroughfare,
        placemark.longitude,
        placemark.latitude,
    )
    return "\n".join(
        f"{label} : {'' if value is None else value}" for label, value in zip(labels, values)
    )


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class LocationSearchController:
    def __init__(
        self,
        completer: CompletionService,
        geocoder: GeocodingService,
        *,
        labels: Sequence[str] = DEFAULT_ADDRESS_LABELS,
        drop_stale_responses: bool = True,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._completer = completer
        self._completer.delegate = self
        self._geocoder = geocoder
        self._labels = tuple(labels)
        self._drop_stale = drop_stale_responses
        self._loop = loop or _running_loop()
        self._observers: list[Observer] = []

        self.query = ""
        self.last_searched_query = ""
        self.suggestions: list[Suggestion] = []
        # Query the current suggestion list was completed for; "" when none.
        self.suggestions_query = ""
        self.address_detail = ""
        self.placemark: Placemark | None = None
        self.status = SearchStatus.IDLE

    @property
    def state(self) -> SearchState:
        return SearchState(
            query=self.query,
            last_searched_query=self.last_searched_query,
            suggestions=tuple(self.suggestions),
            suggestions_query=self.suggestions_query,
            address_detail=self.address_detail,
            placemark=self.placemark,
            status=self.status,
        )

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    # -------- UI entry points --------
    def on_query_changed(self, new_query: str) -> None:
        self._bind_loop()
        self.query = new_query
        if new_query == self.last_searched_query:
            # Same text as the search already on screen.
            self._clear_suggestions()
            self._notify()
            return

        self.last_searched_query = new_query
        if not new_query.strip():
            self._clear_suggestions()
            self.status = SearchStatus.IDLE
        else:
            self.status = SearchStatus.TYPING
            if self._completer.query_fragment != new_query:
                self._completer.set_query_fragment(new_query)
        self._notify()

    def on_suggestion_selected(self, suggestion: Suggestion) -> None:
        self.query = suggestion.title
        self.last_searched_query = self.query
        self._clear_suggestions()
        self.search()

    def search_for(self, text: str) -> None:
        """Explicit search trigger with a replacement query."""

        self.query = text
        self.last_searched_query = text
        self._clear_suggestions()
        self.search()

    def search(self) -> None:
        self._bind_loop()
        self._clear_suggestions()
        self.address_detail = ""
        self.placemark = None
        query = self.query
        if not query.strip():
            self.status = SearchStatus.IDLE
            self._notify()
            return

        self.status = SearchStatus.SEARCHING
        self._notify()
        logger.info("geocode_requested", query=query)
        self._geocoder.geocode_address(query, partial(self.on_geocode_ready, for_query=query))

    # -------- service callbacks (any thread) --------
    def on_suggestions_ready(self, results: Sequence[Suggestion], for_query: str) -> None:
        self._dispatch(self._apply_suggestions, list(results), for_query)

    def on_geocode_ready(
        self,
        result: Placemark | None,
        error: Exception | None = None,
        *,
        for_query: str | None = None,
    ) -> None:
        self._dispatch(self._apply_geocode, result, error, for_query)

    # -------- event loop only --------
    def _apply_suggestions(self, results: list[Suggestion], for_query: str) -> None:
        if not self.last_searched_query.strip():
            self._clear_suggestions()
            self._notify()
            return
        if self._drop_stale and (
            for_query != self.last_searched_query or self.status is not SearchStatus.TYPING
        ):
            logger.debug(
                "suggestions_stale_dropped",
                for_query=for_query,
                current=self.last_searched_query,
                status=self.status.value,
            )
            return
        self.suggestions = results
        self.suggestions_query = for_query
        self._notify()

    def _apply_geocode(
        self,
        result: Placemark | None,
        error: Exception | None,
        for_query: str | None,
    ) -> None:
        if self._drop_stale and for_query is not None and for_query != self.query:
            logger.debug("geocode_stale_dropped", for_query=for_query, current=self.query)
            return

        if result is None:
            self.placemark = None
            self.address_detail = ""
            self.status = SearchStatus.ERROR if error is not None else SearchStatus.NOT_FOUND
        else:
            self.placemark = result
            self.address_detail = format_address_detail(result, self._labels)
            self.status = SearchStatus.FOUND
        self._notify()

    def _clear_suggestions(self) -> None:
        self.suggestions = []
        self.suggestions_query = ""

    def _bind_loop(self) -> None:
        if self._loop is None:
            self._loop = _running_loop()

    def _dispatch(self, callback: Callable[..., None], *args: Any) -> None:
        self._bind_loop()
        if self._loop is None:
            raise RuntimeError("LocationSearchController is not bound to an event loop")
        self._loop.call_soon_threadsafe(callback, *args)

    def _notify(self) -> None:
        state = self.state
        for observer in list(self._observers):
            try:
                observer(state)
            except Exception:
                logger.exception("search_observer_failed", status=state.status.value)


__all__ = [
    "DEFAULT_ADDRESS_LABELS",
    "LocationSearchController",
    "SearchState",
    "SearchStatus",
    "format_address_detail",
]
