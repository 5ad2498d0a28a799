"""Telegram sending helpers with retry support."""

from __future__ import annotations

from typing import Any

from aiogram import Bot
from aiogram.exceptions import TelegramBadRequest
from aiogram.types import Message

from placebot.logging import logger
from placebot.utils.retry import retry_async

TELEGRAM_SEND_MAX_ATTEMPTS = 3
TELEGRAM_SEND_BASE_DELAY = 0.3


async def answer_with_retry(message: Message, text: str, **kwargs: Any) -> Any:
    """Send a reply with retry/backoff."""

    async def _send():
        return await message.answer(text, **kwargs)

    return await retry_async(
        _send,
        max_attempts=TELEGRAM_SEND_MAX_ATTEMPTS,
        base_delay=TELEGRAM_SEND_BASE_DELAY,
        logger=logger,
        operation_name="telegram_answer",
    )


async def bot_send_with_retry(bot: Bot, *, chat_id: int, text: str, **kwargs: Any) -> Any:
    """Send a message via Bot with retry/backoff."""

    async def _send():
        return await bot.send_message(chat_id=chat_id, text=text, **kwargs)

    return await retry_async(
        _send,
        max_attempts=TELEGRAM_SEND_MAX_ATTEMPTS,
        base_delay=TELEGRAM_SEND_BASE_DELAY,
        logger=logger,
        operation_name="telegram_send_message",
    )


def _retryable_edit_error(exc: Exception) -> bool:
    # Bad requests (message not modified, message deleted) never succeed on retry.
    return not isinstance(exc, TelegramBadRequest)


async def bot_edit_with_retry(
    bot: Bot, *, chat_id: int, message_id: int, text: str, **kwargs: Any
) -> Any:
    """Replace the text (and markup) of an existing message with retry/backoff."""

    async def _edit():
        return await bot.edit_message_text(
            text=text, chat_id=chat_id, message_id=message_id, **kwargs
        )

    return await retry_async(
        _edit,
        max_attempts=TELEGRAM_SEND_MAX_ATTEMPTS,
        base_delay=TELEGRAM_SEND_BASE_DELAY,
        logger=logger,
        should_retry=_retryable_edit_error,
        operation_name="telegram_edit_message",
    )


__all__ = ["answer_with_retry", "bot_edit_with_retry", "bot_send_with_retry"]
