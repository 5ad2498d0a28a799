"""Telegram handlers for place search."""

from __future__ import annotations

from aiogram import Bot, F, Router
from aiogram.filters import Command, CommandObject, CommandStart
from aiogram.types import CallbackQuery, Message

from placebot.bot.utils.telegram import answer_with_retry
from placebot.bot.views import SearchAction, SearchView, attach_view
from placebot.i18n import I18nService
from placebot.logging import logger
from placebot.services.sessions import SearchSession, SearchSessionRegistry

router = Router()


def _locale_for(i18n: I18nService, user) -> str:
    return i18n.resolve_locale(getattr(user, "language_code", None))


def _open_session(
    registry: SearchSessionRegistry,
    i18n: I18nService,
    bot: Bot,
    chat_id: int,
    locale: str,
) -> tuple[SearchSession, SearchView]:
    session = registry.get(chat_id)
    view = attach_view(session, bot, i18n, locale)
    return session, view


@router.message(CommandStart())
async def handle_start(message: Message, i18n: I18nService) -> None:
    locale = _locale_for(i18n, message.from_user)
    name = message.from_user.full_name if message.from_user else ""
    greeting = i18n.gettext("start.greeting", locale=locale, name=name)
    await answer_with_retry(message, greeting, parse_mode=None)


@router.message(Command("help"))
async def handle_help(message: Message, i18n: I18nService) -> None:
    locale = _locale_for(i18n, message.from_user)
    await answer_with_retry(message, i18n.gettext("help.text", locale=locale), parse_mode=None)


@router.message(Command("reset"))
async def handle_reset(
    message: Message,
    registry: SearchSessionRegistry,
    i18n: I18nService,
) -> None:
    locale = _locale_for(i18n, message.from_user)
    registry.discard(message.chat.id)
    await answer_with_retry(message, i18n.gettext("reset.done", locale=locale), parse_mode=None)


@router.message(Command("search"))
async def handle_search(
    message: Message,
    bot: Bot,
    registry: SearchSessionRegistry,
    i18n: I18nService,
    command: CommandObject | None = None,
) -> None:
    locale = _locale_for(i18n, message.from_user)
    argument = (command.args or "").strip() if command is not None else ""
    session, view = _open_session(registry, i18n, bot, message.chat.id, locale)
    controller = session.controller

    if not argument and not controller.query.strip():
        await answer_with_retry(message, i18n.gettext("search.no_query", locale=locale), parse_mode=None)
        return

    view.new_screen()
    if argument:
        controller.search_for(argument)
    else:
        controller.search()


@router.message(F.text & ~F.text.startswith("/"))
async def handle_query(
    message: Message,
    bot: Bot,
    registry: SearchSessionRegistry,
    i18n: I18nService,
) -> None:
    locale = _locale_for(i18n, message.from_user)
    session, view = _open_session(registry, i18n, bot, message.chat.id, locale)
    view.new_screen()
    session.controller.on_query_changed(message.text.strip())


@router.callback_query(SearchAction.filter())
async def handle_search_action(
    callback: CallbackQuery,
    callback_data: SearchAction,
    bot: Bot,
    registry: SearchSessionRegistry,
    i18n: I18nService,
) -> None:
    locale = _locale_for(i18n, callback.from_user)
    chat_id = callback.message.chat.id if callback.message is not None else callback.from_user.id
    session, view = _open_session(registry, i18n, bot, chat_id, locale)
    controller = session.controller

    on_current_screen = (
        callback.message is not None and callback.message.message_id == view.screen_message_id
    )
    if callback_data.action == "search" and on_current_screen:
        await callback.answer()
        controller.search()
        return

    suggestions = controller.suggestions
    if (
        callback_data.action != "pick"
        or not on_current_screen
        or controller.suggestions_query != controller.last_searched_query
        or not 0 <= callback_data.index < len(suggestions)
    ):
        logger.info(
            "search_action_expired",
            chat_id=chat_id,
            action=callback_data.action,
            index=callback_data.index,
        )
        await callback.answer(i18n.gettext("search.expired", locale=locale))
        return

    await callback.answer()
    controller.on_suggestion_selected(suggestions[callback_data.index])


__all__ = [
    "handle_help",
    "handle_query",
    "handle_reset",
    "handle_search",
    "handle_search_action",
    "handle_start",
    "router",
]
