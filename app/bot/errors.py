# FILE: app/bot/errors.py
"""
Domain error taxonomy for the bot core.

These never reach users: the dispatcher maps each one to a friendly reply
and a labelled degraded-reply counter. External-call failures (TRANSIENT /
PERMANENT / CANCELED) live in app.llm.errors.
"""


class BotError(Exception):
    """Base class for bot-core errors."""


class MissingParameterError(BotError):
    """A required intent parameter was absent or empty."""

    def __init__(self, param: str):
        super().__init__(f"missing required parameter: {param}")
        self.param = param


class UnknownIntentError(BotError):
    """A module received an intent it does not implement."""

    def __init__(self, module: str, intent: str):
        super().__init__(f"unknown intent for {module}: {intent!r}")
        self.module = module
        self.intent = intent


class RateLimitedError(BotError):
    """Admission declined by a limiter."""

    def __init__(self, limiter: str, key: str = ""):
        super().__init__(f"rate limited by {limiter}")
        self.limiter = limiter
        self.key = key


class InternalError(BotError):
    """Handler-contract violation or schema drift."""
