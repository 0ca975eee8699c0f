"""Tweet generator - the single entry point collaborators call.

Every failure is converted into a display string on the response object;
nothing raises out of `generate`, `generate_batch`, `analyze_image` or a
`TweetStream`.
"""

import logging
from collections.abc import AsyncIterator, Mapping
from typing import TYPE_CHECKING, Any, TypeVar
from urllib.parse import quote

import httpx
import pydantic

from tweet_engine.exceptions import (
    ConfigurationError,
    ParseError,
    RateLimitError,
    TransportError,
    TweetEngineError,
    ValidationError,
)
from tweet_engine.generation.length import max_length_for, truncate_tweet
from tweet_engine.generation.normalizer import (
    clean_tweet_text,
    extract_error_message,
    extract_message_text,
    normalize_output,
)
from tweet_engine.generation.prompts import (
    BATCH_SEPARATOR,
    BATCH_TEMPERATURE,
    SYSTEM_PROMPT_BATCH,
    VISION_MAX_TOKENS,
    VISION_TEMPERATURE,
    build_batch_prompt,
    build_payload,
    build_tweet_prompt,
    build_vision_prompt,
    system_prompt,
)
from tweet_engine.generation.providers import ProviderConfig, ProviderRegistry, build_headers
from tweet_engine.generation.selector import has_any_credential, select_provider
from tweet_engine.generation.streaming import TweetStream, iter_sse_deltas
from tweet_engine.generation.transport import RetryingTransport
from tweet_engine.models import (
    BatchRequest,
    BatchResponse,
    GenerationRequest,
    GenerationResponse,
    VisionRequest,
    VisionResponse,
)
from tweet_engine.ratelimit import RateLimitResult, SessionRateLimiter, rate_limit_message

if TYPE_CHECKING:
    from tweet_engine.config import Settings

logger = logging.getLogger(__name__)

INTENT_URL = "https://twitter.com/intent/tweet?text="
BATCH_MAX_TOKENS = 2000
VISION_FALLBACK_DESCRIPTION = "Image analyzed successfully"

RequestT = TypeVar("RequestT", bound=pydantic.BaseModel)


def _coerce(request: Any, model: type[RequestT]) -> RequestT:
    if isinstance(request, model):
        return request
    try:
        return model.model_validate(request)
    except pydantic.ValidationError as e:
        messages = "; ".join(error["msg"] for error in e.errors())
        raise ValidationError(f"Invalid request: {messages}") from e


def _check_admitted(result: RateLimitResult, endpoint: str) -> None:
    if not result.allowed:
        raise RateLimitError(rate_limit_message(result, endpoint), result)


class TweetGenerator:
    """Generates tweets through the first configured provider."""

    def __init__(
        self,
        credentials: Mapping[str, str | None],
        registry: ProviderRegistry | None = None,
        transport: RetryingTransport | None = None,
        limiter: SessionRateLimiter | None = None,
        max_tokens: int = 1000,
        default_max_length: int = 280,
        temperature: float = 0.7,
    ):
        self.credentials = dict(credentials)
        self.registry = registry or ProviderRegistry()
        self.transport = transport or RetryingTransport()
        self.limiter = limiter or SessionRateLimiter()
        self.max_tokens = max_tokens
        self.default_max_length = default_max_length
        self.temperature = temperature

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        registry: ProviderRegistry | None = None,
        transport: RetryingTransport | None = None,
    ) -> "TweetGenerator":
        """Create a generator wired from application settings."""
        transport = transport or RetryingTransport(
            timeout=settings.transport.timeout,
            max_retries=settings.transport.max_retries,
            initial_delay=settings.transport.initial_delay,
        )
        return cls(
            credentials=settings.credentials(),
            registry=registry,
            transport=transport,
            limiter=SessionRateLimiter.from_config(settings.rate_limits),
            max_tokens=settings.generation.max_tokens,
            default_max_length=settings.generation.default_max_length,
            temperature=settings.generation.temperature,
        )

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def __aenter__(self) -> "TweetGenerator":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    def current_provider(self) -> str:
        """Display name of the provider text requests will use."""
        return select_provider(self.credentials, self.registry.text_providers).display_name

    def current_vision_provider(self) -> str:
        return select_provider(self.credentials, self.registry.vision_providers).display_name

    @staticmethod
    def intent_url(tweet: str) -> str:
        """Web intent URL that opens the compose box with `tweet` filled in."""
        return INTENT_URL + quote(tweet, safe="!'()*")

    def _select(self, vision: bool = False) -> tuple[ProviderConfig, str]:
        providers = self.registry.vision_providers if vision else self.registry.text_providers
        if not has_any_credential(self.credentials, providers):
            raise ConfigurationError(self.registry.setup_guidance(vision=vision))
        provider = select_provider(self.credentials, providers)
        logger.debug(f"Using provider {provider.display_name}")
        return provider, self.credentials[provider.credential_key] or ""

    def _max_length(self, request: GenerationRequest | VisionRequest) -> int:
        if request.advanced_settings is None:
            return self.default_max_length
        return max_length_for(request.advanced_settings.length)

    def _finalize(self, raw: str, max_length: int) -> str:
        """Unwrap, clean and truncate a raw text answer."""
        normalized = normalize_output(raw, reasoning=False)
        text = normalized.tweet if normalized is not None and normalized.tweet else raw
        return truncate_tweet(clean_tweet_text(text), max_length)

    async def _post(self, provider: ProviderConfig, api_key: str, payload: dict) -> Any:
        """Call the provider and return its decoded JSON body."""
        try:
            response = await self.transport.execute(
                provider.request_url,
                headers=build_headers(provider, api_key),
                json=payload,
            )
        except httpx.HTTPError as e:
            raise TransportError(
                f"Network error calling {provider.id}: {e}", provider=provider.id
            ) from e

        if not response.is_success:
            raise TransportError(
                extract_error_message(response, provider.id),
                status_code=response.status_code,
                provider=provider.id,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ParseError(f"Invalid JSON response from {provider.id}") from e

    async def _generate_text(
        self, provider: ProviderConfig, api_key: str, request: GenerationRequest
    ) -> str:
        temperature = (
            request.advanced_settings.temperature if request.advanced_settings else self.temperature
        )
        payload = build_payload(
            provider,
            build_tweet_prompt(request),
            system=system_prompt(request.personal),
            temperature=temperature,
            max_tokens=self.max_tokens,
        )
        data = await self._post(provider, api_key, payload)

        raw = extract_message_text(data, provider.request_format, provider.id)
        tweet = self._finalize(raw, self._max_length(request)) if raw.strip() else ""
        if not tweet:
            raise ParseError(f"No tweet content in response from {provider.id}")
        return tweet

    async def generate(self, request: GenerationRequest | Mapping) -> GenerationResponse:
        """Generate one tweet."""
        try:
            request = _coerce(request, GenerationRequest)
            provider, api_key = self._select()
            _check_admitted(self.limiter.check_tweet_generation(), "tweet generation")
            tweet = await self._generate_text(provider, api_key, request)
        except TweetEngineError as e:
            logger.error(f"Tweet generation failed: {e}")
            return GenerationResponse(tweet="", error=str(e))

        logger.info(f"Generated tweet ({len(tweet)} chars)")
        return GenerationResponse(tweet=tweet)

    async def generate_batch(
        self, request: BatchRequest | Mapping, count: int | None = None
    ) -> BatchResponse:
        """Generate several variations in one call, split on `---`."""
        try:
            if count is not None:
                data = request.model_dump() if isinstance(request, BatchRequest) else dict(request)
                request = {**data, "batch_count": count}
            request = _coerce(request, BatchRequest)
            provider, api_key = self._select()
            _check_admitted(self.limiter.check_batch_generation(), "batch generation")

            temperature = (
                request.advanced_settings.temperature
                if request.advanced_settings
                else BATCH_TEMPERATURE
            )
            payload = build_payload(
                provider,
                build_batch_prompt(request),
                system=SYSTEM_PROMPT_BATCH,
                temperature=temperature,
                max_tokens=BATCH_MAX_TOKENS,
            )
            data = await self._post(provider, api_key, payload)
            raw = extract_message_text(data, provider.request_format, provider.id)

            max_length = self._max_length(request)
            tweets = [
                truncate_tweet(clean_tweet_text(part), max_length)
                for part in raw.split(BATCH_SEPARATOR)
                if part.strip()
            ]
            tweets = [t for t in tweets if t][: request.batch_count]
            if not tweets:
                raise ParseError(f"No tweets in batch response from {provider.id}")
        except TweetEngineError as e:
            logger.error(f"Batch generation failed: {e}")
            return BatchResponse(tweets=[], error=str(e))

        if len(tweets) < request.batch_count:
            logger.warning(f"Requested {request.batch_count} tweets, got {len(tweets)}")
        return BatchResponse(tweets=tweets)

    def stream(self, request: GenerationRequest | Mapping) -> TweetStream:
        """Start a streaming generation.

        Providers without streaming support make one regular call and yield
        the finished tweet as a single delta.
        """
        try:
            request = _coerce(request, GenerationRequest)
        except ValidationError as e:
            return TweetStream(_failed(e))

        max_length = self._max_length(request)

        async def produce(stream: TweetStream) -> AsyncIterator[str]:
            provider, api_key = self._select()
            _check_admitted(self.limiter.check_tweet_generation(), "tweet generation")

            if not provider.supports_streaming:
                logger.debug(f"{provider.id} does not stream, using a single request")
                tweet = await self._generate_text(provider, api_key, request)
                stream.finalized = True
                yield tweet
                return

            temperature = (
                request.advanced_settings.temperature
                if request.advanced_settings
                else self.temperature
            )
            payload = build_payload(
                provider,
                build_tweet_prompt(request),
                system=system_prompt(request.personal),
                temperature=temperature,
                max_tokens=self.max_tokens,
                stream=True,
            )
            response = await self.transport.open_stream(
                provider.request_url,
                headers=build_headers(provider, api_key),
                json=payload,
            )
            await stream.attach(response)
            if stream.cancelled:
                return

            if not response.is_success:
                await response.aread()
                raise TransportError(
                    extract_error_message(response, provider.id),
                    status_code=response.status_code,
                    provider=provider.id,
                )

            received = 0
            async for delta in iter_sse_deltas(response):
                received += 1
                yield delta
            if received == 0:
                raise ParseError(f"No content received from {provider.id} stream")

        return TweetStream(produce, finalize=lambda text: self._finalize(text, max_length))

    async def analyze_image(self, request: VisionRequest | Mapping) -> VisionResponse:
        """Describe an image and write a tweet about it."""
        try:
            request = _coerce(request, VisionRequest)
            provider, api_key = self._select(vision=True)
            _check_admitted(self.limiter.check_vision_analysis(), "vision analysis")

            temperature = (
                request.advanced_settings.temperature
                if request.advanced_settings
                else VISION_TEMPERATURE
            )
            payload = build_payload(
                provider,
                build_vision_prompt(request),
                temperature=temperature,
                max_tokens=VISION_MAX_TOKENS,
                image_base64=request.image_base64,
            )
            data = await self._post(provider, api_key, payload)
            raw = extract_message_text(data, provider.request_format, provider.id)
            max_length = self._max_length(request)

            normalized = normalize_output(raw, provider.id)
            if normalized is not None:
                return VisionResponse(
                    description=normalized.description,
                    tweet=truncate_tweet(clean_tweet_text(normalized.tweet), max_length),
                    location=normalized.location,
                )

            if not raw.strip():
                raise ParseError(
                    "Unable to generate tweet from image. The API returned empty content."
                )
            logger.warning(f"{provider.id} answered without JSON, using the text as the tweet")
            return VisionResponse(
                description=VISION_FALLBACK_DESCRIPTION,
                tweet=truncate_tweet(clean_tweet_text(raw), max_length),
            )
        except TweetEngineError as e:
            logger.error(f"Image analysis failed: {e}")
            return VisionResponse(description="", tweet="", error=str(e))


def _failed(error: TweetEngineError):
    async def produce(stream: TweetStream) -> AsyncIterator[str]:
        raise error
        yield  # pragma: no cover

    return produce
