from placebot.bot.middlewares.throttle import ThrottleMiddleware

__all__ = ["ThrottleMiddleware"]
