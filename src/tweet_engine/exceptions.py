"""Custom exception hierarchy for tweet-engine."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tweet_engine.ratelimit import RateLimitResult


class TweetEngineError(Exception):
    """Base exception for all tweet-engine errors."""

    pass


class ConfigError(TweetEngineError):
    """Configuration file errors."""

    pass


class ConfigurationError(TweetEngineError):
    """No usable provider credential was found.

    Raised before any network call. The message carries setup guidance.
    """

    pass


class TransportError(TweetEngineError):
    """Provider returned a non-2xx response after retries, or the network failed."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        provider: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.provider = provider


class ParseError(TweetEngineError):
    """Provider answered 2xx but nothing usable could be extracted."""

    pass


class RateLimitError(TweetEngineError):
    """Local request quota exceeded. Never reaches the network."""

    def __init__(self, message: str, result: "RateLimitResult | None" = None):
        super().__init__(message)
        self.result = result


class ValidationError(TweetEngineError):
    """Generation request failed validation."""

    pass
