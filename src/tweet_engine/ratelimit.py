"""Client-side rate limiting, tracked per key and per request category.

`check()` never awaits, so under a single event loop each admission is an
atomic read-modify-write without locks.
"""

import logging
import math
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tweet_engine.config import RateLimitConfig

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class RateLimitRule:
    """Maximum `limit` requests per `window` seconds."""

    limit: int
    window: float


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of one admission check. Times are clock seconds."""

    allowed: bool
    remaining: int
    reset_at: float
    retry_after: float | None = None


class RateLimitPresets:
    """Default rules per endpoint."""

    TWEET_GENERATION = RateLimitRule(limit=10, window=60.0)
    VISION_ANALYSIS = RateLimitRule(limit=5, window=60.0)  # more expensive
    BATCH_GENERATION = RateLimitRule(limit=3, window=60.0)
    GENERAL = RateLimitRule(limit=20, window=60.0)


class _TimestampRateLimiter(ABC):
    """Shared bookkeeping: key -> ordered admission timestamps.

    Every variant prunes timestamps at or before `now - window`; they differ
    only in how `reset_at` is reported.
    """

    def __init__(self, rule: RateLimitRule, clock: Clock = time.monotonic):
        if rule.limit < 1 or rule.window <= 0:
            raise ValueError(f"Invalid rate limit rule: {rule}")
        self.rule = rule
        self._clock = clock
        self._requests: dict[str, list[float]] = {}

    @abstractmethod
    def _reset_at(self, timestamps: list[float], now: float) -> float:
        """When capacity returns for a key holding `timestamps`."""

    def _prune(self, timestamps: list[float], now: float) -> list[float]:
        cutoff = now - self.rule.window
        return [t for t in timestamps if t > cutoff]

    def check(self, key: str) -> RateLimitResult:
        """Admit or deny one request for `key`, recording it when admitted."""
        now = self._clock()
        timestamps = self._prune(self._requests.get(key, []), now)

        allowed = len(timestamps) < self.rule.limit
        if allowed:
            timestamps.append(now)
        self._requests[key] = timestamps

        reset_at = self._reset_at(timestamps, now)
        result = RateLimitResult(
            allowed=allowed,
            remaining=max(0, self.rule.limit - len(timestamps)),
            reset_at=reset_at,
            retry_after=None if allowed else max(reset_at - now, 0.0),
        )
        if not allowed:
            logger.debug(f"Rate limited {key}: retry in {result.retry_after:.2f}s")
        return result

    def reset(self, key: str) -> None:
        """Forget every request recorded for `key`."""
        self._requests.pop(key, None)

    def cleanup(self) -> None:
        """Drop keys with no requests left in the window."""
        now = self._clock()
        for key in list(self._requests):
            timestamps = self._prune(self._requests[key], now)
            if timestamps:
                self._requests[key] = timestamps
            else:
                del self._requests[key]

    def __len__(self) -> int:
        return len(self._requests)


class SlidingWindowRateLimiter(_TimestampRateLimiter):
    """Capacity returns as each old request ages out of the trailing window."""

    def _reset_at(self, timestamps: list[float], now: float) -> float:
        if timestamps:
            return timestamps[0] + self.rule.window
        return now + self.rule.window


class FixedWindowRateLimiter(_TimestampRateLimiter):
    """Reports capacity returning on the window-aligned boundary after the oldest request."""

    def _reset_at(self, timestamps: list[float], now: float) -> float:
        oldest = timestamps[0] if timestamps else now
        return math.ceil((oldest + self.rule.window) / self.rule.window) * self.rule.window


class RateLimitCategory(str, Enum):
    """Independently throttled operation kinds."""

    TWEET_GENERATION = "tweet generation"
    BATCH_GENERATION = "batch generation"
    VISION_ANALYSIS = "vision analysis"


class SessionRateLimiter:
    """One limiter per category, all keyed by the same session id.

    Build one per session and drop it when the session ends.
    """

    def __init__(
        self,
        rules: dict[RateLimitCategory, RateLimitRule] | None = None,
        session_key: str | None = None,
        sliding_window: bool = True,
        clock: Clock = time.monotonic,
    ):
        rules = rules or {
            RateLimitCategory.TWEET_GENERATION: RateLimitPresets.TWEET_GENERATION,
            RateLimitCategory.BATCH_GENERATION: RateLimitPresets.BATCH_GENERATION,
            RateLimitCategory.VISION_ANALYSIS: RateLimitPresets.VISION_ANALYSIS,
        }
        limiter_cls = SlidingWindowRateLimiter if sliding_window else FixedWindowRateLimiter
        self.session_key = session_key or str(uuid.uuid4())
        self._limiters = {
            category: limiter_cls(rule, clock=clock) for category, rule in rules.items()
        }

    @classmethod
    def from_config(
        cls,
        config: "RateLimitConfig",
        session_key: str | None = None,
        clock: Clock = time.monotonic,
    ) -> "SessionRateLimiter":
        """Create limiters from the `rate_limits` settings section."""
        rules = {
            RateLimitCategory.TWEET_GENERATION: RateLimitRule(
                config.tweet_generation.limit, config.tweet_generation.window_seconds
            ),
            RateLimitCategory.BATCH_GENERATION: RateLimitRule(
                config.batch_generation.limit, config.batch_generation.window_seconds
            ),
            RateLimitCategory.VISION_ANALYSIS: RateLimitRule(
                config.vision_analysis.limit, config.vision_analysis.window_seconds
            ),
        }
        return cls(
            rules, session_key=session_key, sliding_window=config.sliding_window, clock=clock
        )

    def check(self, category: RateLimitCategory) -> RateLimitResult:
        return self._limiters[category].check(self.session_key)

    def check_tweet_generation(self) -> RateLimitResult:
        return self.check(RateLimitCategory.TWEET_GENERATION)

    def check_batch_generation(self) -> RateLimitResult:
        return self.check(RateLimitCategory.BATCH_GENERATION)

    def check_vision_analysis(self) -> RateLimitResult:
        return self.check(RateLimitCategory.VISION_ANALYSIS)

    def reset_all(self) -> None:
        for limiter in self._limiters.values():
            limiter.reset(self.session_key)

    def cleanup(self) -> None:
        for limiter in self._limiters.values():
            limiter.cleanup()


def format_retry_after(seconds: float) -> str:
    """Human-readable wait, e.g. '12 seconds' or '2 minutes'."""
    whole_seconds = max(1, math.ceil(seconds))
    if whole_seconds < 60:
        return f"{whole_seconds} second{'s' if whole_seconds != 1 else ''}"
    minutes = math.ceil(whole_seconds / 60)
    return f"{minutes} minute{'s' if minutes != 1 else ''}"


def rate_limit_message(result: RateLimitResult, endpoint: str) -> str:
    """User-facing message for a denied check, or "" when allowed."""
    if result.allowed:
        return ""
    retry_after = format_retry_after(result.retry_after or 0.0)
    return f"Rate limit exceeded for {endpoint}. Please try again in {retry_after}."
