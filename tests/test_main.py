"""Tests for logging configuration and async main bootstrap."""

from __future__ import annotations

from types import SimpleNamespace

import pytest
import structlog

from placebot import main as main_module
from placebot.config import GeocoderSettings, RequestLimitSettings, SearchSettings
from placebot.i18n import I18nService
from placebot.logging import configure_logging
from placebot.services.exceptions import ConfigurationError
from placebot.services.sessions import SearchSessionRegistry


def test_configure_logging_outputs_json(capsys):
    configure_logging()
    logger = structlog.get_logger()
    logger.info("unit-test", foo="bar")
    out = capsys.readouterr().out
    assert "unit-test" in out
    assert "foo" in out


def test_configure_logging_console_output(capsys):
    configure_logging(json_output=False)
    logger = structlog.get_logger()
    logger.info("console-test", foo="bar")
    out = capsys.readouterr().out
    assert "console-test" in out
    assert "foo=bar" in out
    assert not out.lstrip().startswith("{")
    configure_logging()


class DummyToken:
    def __init__(self, value: str) -> None:
        self.value = value

    def get_secret_value(self) -> str:
        return self.value


class DummyDispatcher:
    def __init__(self) -> None:
        self.included = []
        self.message_middlewares = []
        self.callback_middlewares = []
        self.started = False
        self.message = SimpleNamespace(middleware=self.message_middlewares.append)
        self.callback_query = SimpleNamespace(middleware=self.callback_middlewares.append)

    def include_router(self, router):
        self.included.append(router)

    async def start_polling(self, bot, **kwargs):
        self.started = True
        self.bot = bot
        self.start_kwargs = kwargs
        kwargs["registry"].get(1)


def _settings(**overrides):
    values = dict(
        telegram_proxy=None,
        telegram_token=DummyToken("token"),
        environment="dev",
        default_language="ja",
        geocoder=GeocoderSettings(),
        search=SearchSettings(),
        request_limit=RequestLimitSettings(max_requests=3, interval_seconds=5),
    )
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.mark.asyncio
async def test_main_bootstrap(monkeypatch):
    settings = _settings()
    bot_kwargs = {}

    def _bot(*args, **kwargs):
        bot_kwargs.update(kwargs)
        return SimpleNamespace()

    throttle_inits = []

    def _throttle(limit_settings):
        throttle_inits.append(limit_settings)
        return "throttle-instance"

    dummy_dispatcher = DummyDispatcher()
    logging_calls = []
    monkeypatch.setattr(
        main_module, "configure_logging", lambda **kwargs: logging_calls.append(kwargs)
    )
    monkeypatch.setattr(main_module, "get_settings", lambda: settings)
    monkeypatch.setattr(main_module, "Bot", _bot)
    monkeypatch.setattr(main_module, "Dispatcher", lambda: dummy_dispatcher)
    monkeypatch.setattr(main_module, "ThrottleMiddleware", _throttle)
    monkeypatch.setattr(main_module, "setup_routers", lambda: "router")

    await main_module.main()

    assert logging_calls == [{"json_output": False}]
    assert dummy_dispatcher.started is True
    assert dummy_dispatcher.included == ["router"]
    assert dummy_dispatcher.message_middlewares == ["throttle-instance"]
    assert dummy_dispatcher.callback_middlewares == ["throttle-instance"]
    assert throttle_inits == [settings.request_limit]
    assert bot_kwargs["token"] == "token"
    assert bot_kwargs["session"] is None
    registry = dummy_dispatcher.start_kwargs["registry"]
    assert isinstance(registry, SearchSessionRegistry)
    assert len(registry) == 0
    i18n = dummy_dispatcher.start_kwargs["i18n"]
    assert isinstance(i18n, I18nService)
    assert i18n.default_locale == "ja"


def test_placeholder_user_agent_rejected_in_production():
    settings = _settings(environment="prod")

    with pytest.raises(ConfigurationError):
        main_module.check_geocoder_identity(settings)


def test_placeholder_user_agent_tolerated_outside_production():
    main_module.check_geocoder_identity(_settings(environment="dev"))
    main_module.check_geocoder_identity(
        _settings(
            environment="prod",
            geocoder=GeocoderSettings(user_agent="placebot/1.0 (ops@example.com)"),
        )
    )
