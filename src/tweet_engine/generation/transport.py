"""HTTP transport with bounded retries, exponential backoff and Retry-After support."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from tweet_engine.exceptions import TransportError

logger = logging.getLogger(__name__)

RetryCallback = Callable[[int, Exception], None]


def is_retryable(response: httpx.Response) -> bool:
    """429 and 5xx are transient. Other client errors never are."""
    return response.status_code == 429 or response.status_code >= 500


def parse_retry_after(response: httpx.Response) -> float | None:
    """Retry-After in seconds, or None when missing or not an integer."""
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(max(0, int(value.strip())))
    except ValueError:
        return None


class wait_retry_after(wait_base):
    """Exponential backoff that defers to the server's Retry-After header."""

    def __init__(self, initial_delay: float):
        self._backoff = wait_exponential(multiplier=initial_delay, exp_base=2)

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        if outcome is not None and not outcome.failed:
            retry_after = parse_retry_after(outcome.result())
            if retry_after is not None:
                return retry_after
        return self._backoff(retry_state)


def _outcome_error(retry_state: RetryCallState) -> Exception:
    outcome = retry_state.outcome
    if outcome.failed:
        return outcome.exception()
    response: httpx.Response = outcome.result()
    return TransportError(
        f"HTTP {response.status_code}: {response.reason_phrase}",
        status_code=response.status_code,
    )


class RetryingTransport:
    """Executes provider HTTP calls with retry/backoff.

    Failing responses are returned after the last attempt so callers can
    inspect the status. Only network exceptions are raised, and only when
    the final attempt also raised.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
        max_retries: int = 3,
        initial_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self._sleep = sleep

    async def aclose(self) -> None:
        """Close the HTTP client if we created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "RetryingTransport":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    def _retrying(
        self,
        max_retries: int | None,
        initial_delay: float | None,
        on_retry: RetryCallback | None,
    ) -> AsyncRetrying:
        retries = self.max_retries if max_retries is None else max_retries
        delay = self.initial_delay if initial_delay is None else initial_delay

        def before_sleep(retry_state: RetryCallState) -> None:
            error = _outcome_error(retry_state)
            logger.warning(
                f"Request failed ({error}), retry {retry_state.attempt_number}/{retries} "
                f"in {retry_state.upcoming_sleep:.1f}s"
            )
            if on_retry is not None:
                on_retry(retry_state.attempt_number, error)

        return AsyncRetrying(
            stop=stop_after_attempt(retries + 1),
            wait=wait_retry_after(delay),
            retry=retry_if_exception_type(httpx.TransportError) | retry_if_result(is_retryable),
            before_sleep=before_sleep,
            # Hand back the last response, or re-raise the last network error
            retry_error_callback=lambda retry_state: retry_state.outcome.result(),
            sleep=self._sleep,
        )

    async def execute(
        self,
        url: str,
        *,
        method: str = "POST",
        headers: dict[str, str] | None = None,
        json: Any = None,
        max_retries: int | None = None,
        initial_delay: float | None = None,
        on_retry: RetryCallback | None = None,
    ) -> httpx.Response:
        """Send a request, retrying 429/5xx and network errors."""

        async def send() -> httpx.Response:
            return await self._client.request(method, url, headers=headers, json=json)

        retrying = self._retrying(max_retries, initial_delay, on_retry)
        return await retrying(send)

    async def open_stream(
        self,
        url: str,
        *,
        method: str = "POST",
        headers: dict[str, str] | None = None,
        json: Any = None,
        max_retries: int | None = None,
        initial_delay: float | None = None,
        on_retry: RetryCallback | None = None,
    ) -> httpx.Response:
        """Like `execute`, but leaves the body unread. The caller must close it."""
        previous: list[httpx.Response] = []

        async def send() -> httpx.Response:
            # Release the connection held by a response we are retrying past
            while previous:
                await previous.pop().aclose()
            request = self._client.build_request(method, url, headers=headers, json=json)
            response = await self._client.send(request, stream=True)
            previous.append(response)
            return response

        retrying = self._retrying(max_retries, initial_delay, on_retry)
        try:
            return await retrying(send)
        except asyncio.CancelledError:
            # Cancelled during backoff: the response being retried is still open
            while previous:
                await previous.pop().aclose()
            raise
