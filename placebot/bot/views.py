"""Render search state into a chat.

Each chat has one "screen" message at a time. Suggestions, the lookup
progress line and the final address detail are all written into it, editing
in place where Telegram allows and sending a fresh message otherwise.
"""

from __future__ import annotations

import asyncio
from typing import Any

from aiogram import Bot
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters.callback_data import CallbackData
from aiogram.types import InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from placebot.bot.utils.telegram import bot_edit_with_retry, bot_send_with_retry
from placebot.i18n import I18nService
from placebot.logging import logger
from placebot.services.location_search import SearchState, SearchStatus, format_address_detail
from placebot.services.sessions import SearchSession

BUTTON_TEXT_LIMIT = 60


class SearchAction(CallbackData, prefix="place"):
    action: str
    index: int = -1


def _button_text(title: str, subtitle: str) -> str:
    text = f"{title} — {subtitle}" if subtitle else title
    if len(text) > BUTTON_TEXT_LIMIT:
        text = f"{text[: BUTTON_TEXT_LIMIT - 1].rstrip()}…"
    return text


def _shows_suggestions(state: SearchState) -> bool:
    """A list is shown only while it belongs to the query the user last typed."""

    return (
        state.status is SearchStatus.TYPING
        and bool(state.suggestions_query)
        and state.suggestions_query == state.last_searched_query
    )


def build_suggestion_keyboard(state: SearchState, search_label: str) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    for index, suggestion in enumerate(state.suggestions):
        builder.button(
            text=_button_text(suggestion.title, suggestion.subtitle),
            callback_data=SearchAction(action="pick", index=index),
        )
    builder.button(text=search_label, callback_data=SearchAction(action="search"))
    builder.adjust(1)
    return builder.as_markup()


class SearchView:
    """Controller observer bound to one chat."""

    def __init__(self, bot: Bot, chat_id: int, i18n: I18nService, locale: str) -> None:
        self.bot = bot
        self.chat_id = chat_id
        self.i18n = i18n
        self.locale = locale
        self.screen_message_id: int | None = None
        self._has_keyboard = False
        self._fresh = True
        self._last_signature: tuple[Any, ...] | None = None
        self._lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()

    def __call__(self, state: SearchState) -> None:
        task = asyncio.get_running_loop().create_task(self.render(state))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def new_screen(self) -> None:
        """Start a fresh screen message on the next render."""

        self._fresh = True
        self._last_signature = None

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def render(self, state: SearchState) -> None:
        async with self._lock:
            try:
                await self._render(state)
            except Exception:
                logger.exception(
                    "search_view_render_failed",
                    chat_id=self.chat_id,
                    status=state.status.value,
                )

    async def _render(self, state: SearchState) -> None:
        signature = (
            state.status,
            state.suggestions,
            state.suggestions_query,
            state.address_detail,
            state.last_searched_query,
        )
        if signature == self._last_signature:
            return
        self._last_signature = signature

        if _shows_suggestions(state):
            key = "search.suggestions" if state.suggestions else "search.no_suggestions"
            text = self._text(key, query=state.suggestions_query)
            markup = build_suggestion_keyboard(
                state, self._text("search.button", query=state.suggestions_query)
            )
            await self._show(text, markup)
            return

        if state.status is SearchStatus.SEARCHING:
            await self._show(self._text("search.searching", query=state.query))
        elif state.status is SearchStatus.FOUND:
            await self._show(self._address_detail(state))
        elif state.status is SearchStatus.NOT_FOUND:
            await self._show(self._text("search.not_found", query=state.query))
        elif state.status is SearchStatus.ERROR:
            await self._show(self._text("search.error"))
        elif self._has_keyboard and self.screen_message_id is not None:
            await self._drop_keyboard()

    async def _show(self, text: str, markup: InlineKeyboardMarkup | None = None) -> None:
        if self.screen_message_id is not None and not self._fresh:
            try:
                await bot_edit_with_retry(
                    self.bot,
                    chat_id=self.chat_id,
                    message_id=self.screen_message_id,
                    text=text,
                    reply_markup=markup,
                    parse_mode=None,
                )
                self._has_keyboard = markup is not None
                return
            except TelegramBadRequest as exc:
                logger.info("search_view_edit_rejected", chat_id=self.chat_id, error=str(exc))
        elif self._has_keyboard and self.screen_message_id is not None:
            await self._drop_keyboard()

        sent = await bot_send_with_retry(
            self.bot, chat_id=self.chat_id, text=text, reply_markup=markup, parse_mode=None
        )
        self.screen_message_id = getattr(sent, "message_id", None)
        self._has_keyboard = markup is not None
        self._fresh = False

    async def _drop_keyboard(self) -> None:
        try:
            await self.bot.edit_message_reply_markup(
                chat_id=self.chat_id, message_id=self.screen_message_id, reply_markup=None
            )
        except TelegramBadRequest as exc:
            logger.info("search_view_keyboard_drop_rejected", chat_id=self.chat_id, error=str(exc))
        self._has_keyboard = False

    def _address_detail(self, state: SearchState) -> str:
        if state.placemark is None:
            return state.address_detail
        return format_address_detail(state.placemark, self.i18n.address_labels(self.locale))

    def _text(self, key: str, **kwargs: Any) -> str:
        return self.i18n.gettext(key, locale=self.locale, **kwargs)


def attach_view(session: SearchSession, bot: Bot, i18n: I18nService, locale: str) -> SearchView:
    """Return the session's view, creating and subscribing it on first use."""

    view = session.view
    if isinstance(view, SearchView):
        view.bot = bot
        view.locale = locale
        return view

    view = SearchView(bot, session.chat_id, i18n, locale)
    unsubscribe = session.controller.subscribe(view)
    session.view = view
    session.cleanups.append(unsubscribe)
    return view


__all__ = [
    "SearchAction",
    "SearchView",
    "attach_view",
    "build_suggestion_keyboard",
]
