"""Nominatim-backed place completion and forward geocoding services."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Coroutine, Iterable, Protocol, Sequence

import httpx

from placebot.config import GeocoderSettings
from placebot.domain.models import Placemark, Suggestion
from placebot.logging import logger
from placebot.services.exceptions import GeocodingError
from placebot.utils.retry import retry_async

GeocodeCallback = Callable[[Placemark | None, Exception | None], None]

ADMINISTRATIVE_AREA_KEYS = ("state", "province", "region", "prefecture")
LOCALITY_KEYS = ("city", "town", "village", "municipality", "suburb", "city_district")
THOROUGHFARE_KEYS = ("road", "pedestrian", "neighbourhood", "quarter")


class CompletionDelegate(Protocol):
    def on_suggestions_ready(self, results: list[Suggestion], for_query: str) -> None: ...


class RequestThrottle:
    """Process-wide minimum spacing between provider requests."""

    def __init__(self, min_interval: float) -> None:
        self.min_interval = min_interval
        self._lock = asyncio.Lock()
        self._last_request_at: float | None = None

    async def wait(self) -> None:
        if self.min_interval <= 0:
            return
        async with self._lock:
            loop = asyncio.get_running_loop()
            if self._last_request_at is not None:
                delay = self._last_request_at + self.min_interval - loop.time()
                if delay > 0:
                    await asyncio.sleep(delay)
            self._last_request_at = loop.time()


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response is not None and exc.response.status_code >= 500
    return isinstance(exc, httpx.RequestError)


class _NominatimService:
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        settings: GeocoderSettings | None = None,
        *,
        throttle: RequestThrottle | None = None,
    ) -> None:
        self._client = http_client
        self._settings = settings or GeocoderSettings()
        self._throttle = throttle or RequestThrottle(self._settings.min_request_interval_seconds)
        self._tasks: set[asyncio.Task] = set()

    def _search_url(self) -> str:
        return f"{str(self._settings.base_url).rstrip('/')}/search"

    def _headers(self) -> dict[str, str]:
        return {
            "User-Agent": self._settings.user_agent,
            "Accept-Language": self._settings.accept_language,
        }

    def _base_params(self, query: str) -> dict[str, Any]:
        params: dict[str, Any] = {"q": query, "format": "jsonv2"}
        if self._settings.country_codes:
            params["countrycodes"] = self._settings.country_codes
        return params

    async def _search(self, params: dict[str, Any], operation_name: str) -> list[dict[str, Any]]:
        async def _request():
            await self._throttle.wait()
            response = await self._client.get(
                self._search_url(),
                params=params,
                headers=self._headers(),
                timeout=self._settings.request_timeout_seconds,
            )
            response.raise_for_status()
            return response

        try:
            response = await retry_async(
                _request,
                max_attempts=self._settings.max_attempts,
                base_delay=0.5,
                should_retry=_is_transient,
                logger=logger,
                operation_name=operation_name,
            )
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code if exc.response is not None else None
            detail = exc.response.text[:300] if exc.response is not None else str(exc)
            raise GeocodingError(
                f"Nominatim request failed ({status_code}): {detail}",
                status_code=status_code,
            ) from exc
        except httpx.RequestError as exc:
            raise GeocodingError(f"Failed to contact Nominatim: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise GeocodingError("Nominatim response is not valid JSON.") from exc
        if not isinstance(data, list):
            raise GeocodingError("Nominatim response format is invalid.")
        return data

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for every request scheduled so far to deliver its result."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class NominatimCompletionService(_NominatimService):
    """Incremental place completion.

    Mirrors a platform search completer: callers assign ``query_fragment``
    via :meth:`set_query_fragment` and the delegate is told about results for
    the most recent fragment only.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        settings: GeocoderSettings | None = None,
        *,
        throttle: RequestThrottle | None = None,
        delegate: CompletionDelegate | None = None,
    ) -> None:
        super().__init__(http_client, settings, throttle=throttle)
        self.delegate = delegate
        self._query_fragment = ""

    @property
    def query_fragment(self) -> str:
        """Fragment whose completion request is still in flight, ``""`` when idle."""

        return self._query_fragment

    def set_query_fragment(self, text: str) -> None:
        if not text.strip():
            self._query_fragment = ""
            return
        self._query_fragment = text
        self._spawn(self._complete(text))

    async def fetch_suggestions(self, fragment: str) -> list[Suggestion]:
        fragment = fragment.strip()
        if not fragment:
            return []
        params = self._base_params(fragment)
        params["limit"] = self._settings.suggestion_limit
        params["addressdetails"] = 0
        if self._settings.poi_only:
            params["layer"] = "poi"
        items = await self._search(params, "nominatim_completion")
        return parse_suggestions(items)

    async def _complete(self, fragment: str) -> None:
        try:
            results = await self.fetch_suggestions(fragment)
        except GeocodingError as exc:
            logger.warning(
                "completion_request_failed",
                fragment=fragment,
                status_code=exc.status_code,
                error=str(exc),
            )
            if fragment == self._query_fragment:
                self._query_fragment = ""
            return

        if fragment != self._query_fragment:
            logger.debug("completion_superseded", fragment=fragment, current=self._query_fragment)
            return
        self._query_fragment = ""
        if self.delegate is None:
            return
        self.delegate.on_suggestions_ready(results, fragment)


class NominatimGeocodingService(_NominatimService):
    """Forward geocoding: place name to a single placemark."""

    def geocode_address(self, text: str, callback: GeocodeCallback) -> None:
        self._spawn(self._geocode(text, callback))

    async def geocode(self, text: str) -> Placemark | None:
        query = text.strip()
        if not query:
            return None
        params = self._base_params(query)
        params["limit"] = 1
        params["addressdetails"] = 1
        items = await self._search(params, "nominatim_geocode")
        if not items:
            return None
        return parse_placemark(items[0])

    async def _geocode(self, text: str, callback: GeocodeCallback) -> None:
        try:
            placemark = await self.geocode(text)
        except GeocodingError as exc:
            logger.warning(
                "geocode_request_failed",
                query=text,
                status_code=exc.status_code,
                error=str(exc),
            )
            callback(None, exc)
            return
        logger.info("geocode_resolved", query=text, found=placemark is not None)
        callback(placemark, None)


def parse_suggestions(items: Sequence[dict[str, Any]]) -> list[Suggestion]:
    suggestions: list[Suggestion] = []
    seen: set[tuple[str, str]] = set()
    for item in items:
        if not isinstance(item, dict):
            continue
        display_name = str(item.get("display_name") or "").strip()
        parts = [part.strip() for part in display_name.split(",") if part.strip()]
        title = str(item.get("name") or "").strip() or (parts[0] if parts else "")
        if not title:
            continue
        if parts and parts[0] == title:
            parts = parts[1:]
        subtitle = ", ".join(parts)
        key = (title, subtitle)
        if key in seen:
            continue
        seen.add(key)
        suggestions.append(Suggestion(title=title, subtitle=subtitle))
    return suggestions


def parse_placemark(item: dict[str, Any]) -> Placemark:
    if not isinstance(item, dict):
        raise GeocodingError("Nominatim result is not an object.")
    address = item.get("address") or {}
    if not isinstance(address, dict):
        address = {}
    try:
        longitude = _to_float(item.get("lon"))
        latitude = _to_float(item.get("lat"))
    except (TypeError, ValueError) as exc:
        raise GeocodingError("Nominatim result has malformed coordinates.") from exc

    return Placemark(
        country=_first(address, ("country",)),
        postal_code=_first(address, ("postcode",)),
        administrative_area=_first(address, ADMINISTRATIVE_AREA_KEYS),
        locality=_first(address, LOCALITY_KEYS),
        thoroughfare=_first(address, THOROUGHFARE_KEYS),
        sub_thoroughfare=_first(address, ("house_number",)),
        longitude=longitude,
        latitude=latitude,
    )


def _first(address: dict[str, Any], keys: Iterable[str]) -> str | None:
    for key in keys:
        value = address.get(key)
        if value not in (None, ""):
            return str(value)
    return None


def _to_float(value: Any) -> float | None:
    if value in (None, ""):
        return None
    return float(value)


__all__ = [
    "CompletionDelegate",
    "GeocodeCallback",
    "NominatimCompletionService",
    "NominatimGeocodingService",
    "RequestThrottle",
    "parse_placemark",
    "parse_suggestions",
]
