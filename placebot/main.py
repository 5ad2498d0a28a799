"""Application entrypoint."""

from __future__ import annotations

import asyncio

import httpx
from aiogram import Bot, Dispatcher
from aiogram.client.session.aiohttp import AiohttpSession

from placebot.bot.middlewares import ThrottleMiddleware
from placebot.bot.routers import setup_routers
from placebot.config import BotSettings, get_settings
from placebot.i18n import I18nService
from placebot.logging import configure_logging, logger
from placebot.services.exceptions import ConfigurationError
from placebot.services.sessions import SearchSessionRegistry

PLACEHOLDER_USER_AGENT_MARKER = "set your email"


def check_geocoder_identity(settings: BotSettings) -> None:
    """Nominatim rejects anonymous clients; production must carry real contact details."""

    if PLACEHOLDER_USER_AGENT_MARKER not in settings.geocoder.user_agent.lower():
        return
    if settings.environment == "prod":
        raise ConfigurationError(
            "PLACEBOT_GEOCODER__USER_AGENT must identify the application and a contact address."
        )
    logger.warning("geocoder_user_agent_placeholder", user_agent=settings.geocoder.user_agent)


async def main() -> None:
    settings = get_settings()
    configure_logging(json_output=settings.environment != "dev")
    check_geocoder_identity(settings)

    session = (
        AiohttpSession(proxy=settings.telegram_proxy) if settings.telegram_proxy else None
    )
    bot = Bot(token=settings.telegram_token.get_secret_value(), session=session)
    dp = Dispatcher()
    dp.include_router(setup_routers())

    throttle_middleware = ThrottleMiddleware(settings.request_limit)
    dp.message.middleware(throttle_middleware)
    dp.callback_query.middleware(throttle_middleware)

    i18n = I18nService(default_locale=settings.default_language)

    async with httpx.AsyncClient() as http_client:
        registry = SearchSessionRegistry(http_client, settings.geocoder, settings.search)
        logger.info(
            "bot_starting",
            environment=settings.environment,
            geocoder=str(settings.geocoder.base_url),
            poi_only=settings.geocoder.poi_only,
        )
        try:
            await dp.start_polling(bot, registry=registry, i18n=i18n)
        finally:
            registry.clear()
            logger.info("bot_stopped", environment=settings.environment)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
