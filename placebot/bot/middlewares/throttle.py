"""Simple per-user throttle so one chat cannot flood the geocoding provider."""

from __future__ import annotations

import time
from collections import defaultdict, deque
from typing import Any, Awaitable, Callable, Deque, Dict

from aiogram import BaseMiddleware
from aiogram.types import CallbackQuery, Message, TelegramObject

from placebot.config import RequestLimitSettings
from placebot.i18n import I18nService
from placebot.logging import logger

DEFAULT_LIMIT_TEXT = "Too many requests, please slow down."


class ThrottleMiddleware(BaseMiddleware):
    def __init__(self, settings: RequestLimitSettings | None = None) -> None:
        self.settings = settings or RequestLimitSettings()
        self.window_seconds = self.settings.interval_seconds
        self.max_requests = self.settings.max_requests
        self._events: Dict[int, Deque[float]] = defaultdict(deque)

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        user = self._extract_user(event)
        if user is None or self.max_requests <= 0:
            return await handler(event, data)

        now = time.monotonic()
        bucket = self._events[user.id]

        while bucket and now - bucket[0] > self.window_seconds:
            bucket.popleft()

        if len(bucket) >= self.max_requests:
            logger.info("request_throttled", user_id=user.id, window=self.window_seconds)
            await self._notify_limit(event, data.get("i18n"), getattr(user, "language_code", None))
            return None

        bucket.append(now)
        return await handler(event, data)

    @staticmethod
    def _extract_user(event: TelegramObject) -> Any | None:
        if isinstance(event, (Message, CallbackQuery)):
            return event.from_user
        return None

    @staticmethod
    async def _notify_limit(
        event: TelegramObject,
        i18n: I18nService | None,
        language_code: str | None,
    ) -> None:
        text = DEFAULT_LIMIT_TEXT
        if i18n is not None:
            text = i18n.gettext("throttle.limited", locale=i18n.resolve_locale(language_code))
        if isinstance(event, Message):
            await event.answer(text, parse_mode=None)
        elif isinstance(event, CallbackQuery):
            await event.answer(text)


__all__ = ["ThrottleMiddleware"]
