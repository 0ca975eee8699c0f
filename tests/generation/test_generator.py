"""End-to-end tests for TweetGenerator against mocked providers."""

import asyncio
import json

import httpx
import jwt
import pytest

from conftest import chat_response, sse_body
from tweet_engine.config import Settings
from tweet_engine.generation.generator import TweetGenerator
from tweet_engine.models import GenerationRequest, VisionRequest
from tweet_engine.ratelimit import RateLimitCategory, RateLimitRule, SessionRateLimiter

GROQ = {"GROQ_API_KEY": "gsk_test"}
GLM_SECRET = "glm-secret-with-enough-length-0123456789"

REASONING_TRACE = """I see a pier with a Ferris wheel at sunset.
The tweet could be: "Golden hour at Santa Monica Pier never gets old 🌅 #Sunset"
Wait, let me count the characters first."""


class Recorder:
    """Handler that records requests and replays queued responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses[min(len(self.requests), len(self.responses)) - 1]
        if isinstance(item, Exception):
            raise item
        return item

    @property
    def calls(self) -> int:
        return len(self.requests)

    def body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


@pytest.fixture
def build(make_transport, limiter):
    """Create a generator over a mock handler."""

    def factory(handler, credentials=None, **kwargs) -> TweetGenerator:
        return TweetGenerator(
            GROQ if credentials is None else credentials,
            transport=make_transport(handler),
            limiter=kwargs.pop("limiter", limiter),
            **kwargs,
        )

    return factory


class TestGenerate:
    """Tests for TweetGenerator.generate."""

    @pytest.mark.asyncio
    async def test_end_to_end(self, build):
        """A plain chat answer comes back as the tweet."""
        handler = Recorder(chat_response("Tip! #React"))
        generator = build(handler)

        result = await generator.generate(GenerationRequest(topic="React tips", style="viral"))

        assert result.tweet == "Tip! #React"
        assert result.error is None

        request = handler.requests[0]
        assert str(request.url) == "https://api.groq.com/openai/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer gsk_test"
        body = handler.body()
        assert body["model"] == "llama-3.3-70b-versatile"
        assert body["temperature"] == 0.7
        assert 'about: "React tips"' in body["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_accepts_plain_mapping(self, build):
        generator = build(Recorder(chat_response("Tip! #React")))
        result = await generator.generate({"topic": "React tips"})
        assert result.tweet == "Tip! #React"

    @pytest.mark.asyncio
    async def test_cleans_wrapping(self, build):
        generator = build(Recorder(chat_response('Tweet: "Ship it today 🚀"')))
        result = await generator.generate({"topic": "shipping"})
        assert result.tweet == "Ship it today 🚀"

    @pytest.mark.asyncio
    async def test_unwraps_json_answer(self, build):
        generator = build(Recorder(chat_response('```json\n{"tweet": "From JSON #ok"}\n```')))
        result = await generator.generate({"topic": "json"})
        assert result.tweet == "From JSON #ok"

    @pytest.mark.asyncio
    async def test_truncates_to_length_tier(self, build):
        generator = build(Recorder(chat_response("word " * 80)))

        result = await generator.generate(
            {"topic": "long", "advanced_settings": {"length": "short", "temperature": 1.1}}
        )

        assert 0 < len(result.tweet) <= 150
        assert result.tweet.endswith("word")

    @pytest.mark.asyncio
    async def test_temperature_from_advanced_settings(self, build):
        handler = Recorder(chat_response("ok then"))
        generator = build(handler)

        await generator.generate({"topic": "t", "advanced_settings": {"temperature": 1.3}})

        assert handler.body()["temperature"] == 1.3

    @pytest.mark.asyncio
    async def test_configured_temperature(self, clean_env, make_transport):
        """generation.temperature is the default when a request sets none."""
        handler = Recorder(chat_response("Configured #temp"))
        settings = Settings(groq_api_key="gsk_settings")
        settings.generation.temperature = 1.2

        async with TweetGenerator.from_settings(
            settings, transport=make_transport(handler)
        ) as generator:
            await generator.generate({"topic": "t"})
            assert handler.body()["temperature"] == 1.2

            await generator.generate({"topic": "t", "advanced_settings": {"temperature": 0.2}})
            assert handler.body()["temperature"] == 0.2

    @pytest.mark.asyncio
    async def test_no_credentials(self, build):
        """Missing keys are reported before any request is sent."""
        handler = Recorder(chat_response("unused"))
        generator = build(handler, credentials={})

        result = await generator.generate({"topic": "anything"})

        assert result.tweet == ""
        assert "No API key found" in result.error
        assert "GROQ_API_KEY" in result.error
        assert handler.calls == 0

    @pytest.mark.asyncio
    async def test_invalid_request(self, build):
        handler = Recorder(chat_response("unused"))
        generator = build(handler)

        result = await generator.generate({"topic": "   "})

        assert result.tweet == ""
        assert result.error.startswith("Invalid request")
        assert handler.calls == 0

    @pytest.mark.asyncio
    async def test_client_error_message(self, build):
        handler = Recorder(httpx.Response(401, json={"error": {"message": "Invalid API key"}}))
        generator = build(handler)

        result = await generator.generate({"topic": "x"})

        assert result.tweet == ""
        assert result.error == "Invalid API key"
        assert handler.calls == 1

    @pytest.mark.asyncio
    async def test_server_error_after_retries(self, build, recording_sleep):
        handler = Recorder(httpx.Response(500, json={"error": {"message": "Upstream overloaded"}}))
        generator = build(handler)

        result = await generator.generate({"topic": "x"})

        assert result.error == "Upstream overloaded"
        assert handler.calls == 4
        assert recording_sleep.delays == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_network_error(self, build):
        generator = build(Recorder(httpx.ConnectError("Connection refused")))

        result = await generator.generate({"topic": "x"})

        assert result.tweet == ""
        assert "Network error calling groq" in result.error

    @pytest.mark.asyncio
    async def test_empty_content(self, build):
        generator = build(Recorder(chat_response("")))
        result = await generator.generate({"topic": "x"})
        assert result.error == "No tweet content in response from groq"

    @pytest.mark.asyncio
    async def test_invalid_json_body(self, build):
        generator = build(Recorder(httpx.Response(200, text="not json")))
        result = await generator.generate({"topic": "x"})
        assert result.error == "Invalid JSON response from groq"

    @pytest.mark.asyncio
    async def test_rate_limited(self, build, clock):
        handler = Recorder(chat_response("Tip! #React"))
        limiter = SessionRateLimiter(
            {RateLimitCategory.TWEET_GENERATION: RateLimitRule(limit=1, window=30.0)},
            clock=clock,
        )
        generator = build(handler, limiter=limiter)

        first = await generator.generate({"topic": "x"})
        second = await generator.generate({"topic": "x"})

        assert first.error is None
        assert second.error == (
            "Rate limit exceeded for tweet generation. Please try again in 30 seconds."
        )
        assert handler.calls == 1

    @pytest.mark.asyncio
    async def test_gemini_request(self, build):
        handler = Recorder(
            httpx.Response(
                200, json={"candidates": [{"content": {"parts": [{"text": "Gemini says hi #ai"}]}}]}
            )
        )
        generator = build(handler, credentials={"GEMINI_API_KEY": "AIza-test"})

        result = await generator.generate({"topic": "AI"})

        assert result.tweet == "Gemini says hi #ai"
        request = handler.requests[0]
        assert str(request.url).endswith("/models/gemini-2.5-flash:generateContent")
        assert request.headers["x-goog-api-key"] == "AIza-test"
        assert "contents" in handler.body()

    @pytest.mark.asyncio
    async def test_glm_signed_token(self, build):
        handler = Recorder(chat_response("GLM tweet #glm"))
        generator = build(handler, credentials={"GLM_API_KEY": f"id42.{GLM_SECRET}", **GROQ})

        result = await generator.generate({"topic": "x"})

        assert result.tweet == "GLM tweet #glm"
        token = handler.requests[0].headers["Authorization"].removeprefix("Bearer ")
        assert jwt.decode(token, GLM_SECRET, algorithms=["HS256"])["api_key"] == "id42"

    @pytest.mark.asyncio
    async def test_malformed_glm_key(self, build):
        handler = Recorder(chat_response("unused"))
        generator = build(handler, credentials={"GLM_API_KEY": "no-dot"})

        result = await generator.generate({"topic": "x"})

        assert "Invalid GLM API key" in result.error
        assert handler.calls == 0


class TestGenerateBatch:
    """Tests for TweetGenerator.generate_batch."""

    @pytest.mark.asyncio
    async def test_splits_on_separator(self, build):
        handler = Recorder(chat_response("One #a\n---\nTwo #b\n---\n\n---\nThree #c\n---\nFour #d"))
        generator = build(handler)

        result = await generator.generate_batch({"topic": "coffee", "batch_count": 3})

        assert result.error is None
        assert result.tweets == ["One #a", "Two #b", "Three #c"]
        body = handler.body()
        assert body["temperature"] == 0.9
        assert body["max_tokens"] == 2000

    @pytest.mark.asyncio
    async def test_count_argument_overrides_request(self, build):
        handler = Recorder(chat_response("A\n---\nB\n---\nC\n---\nD\n---\nE"))
        generator = build(handler)

        result = await generator.generate_batch({"topic": "x"}, count=2)

        assert result.tweets == ["A", "B"]
        assert "Generate 2 different" in handler.body()["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_count_out_of_range(self, build):
        generator = build(Recorder(chat_response("unused")))
        result = await generator.generate_batch({"topic": "x"}, count=9)
        assert result.tweets == []
        assert result.error.startswith("Invalid request")

    @pytest.mark.asyncio
    async def test_empty_batch(self, build):
        generator = build(Recorder(chat_response("---\n---")))
        result = await generator.generate_batch({"topic": "x"})
        assert result.tweets == []
        assert result.error == "No tweets in batch response from groq"

    @pytest.mark.asyncio
    async def test_batch_rate_limit_is_separate(self, build):
        handler = Recorder(chat_response("A\n---\nB"))
        generator = build(handler)

        for _ in range(3):
            assert (await generator.generate_batch({"topic": "x"})).error is None
        limited = await generator.generate_batch({"topic": "x"})
        single = await generator.generate({"topic": "x"})

        assert limited.error.startswith("Rate limit exceeded for batch generation")
        assert single.error is None


class TestStream:
    """Tests for TweetGenerator.stream."""

    @pytest.mark.asyncio
    async def test_streaming_provider(self, build):
        handler = Recorder(httpx.Response(200, content=sse_body("Tip", "! ", "#React")))
        generator = build(handler)

        stream = generator.stream({"topic": "React tips"})
        deltas = [delta async for delta in stream]

        assert deltas == ["Tip", "! ", "#React"]
        assert stream.accumulated_text == "Tip! #React"
        assert stream.final_text == "Tip! #React"
        assert stream.error is None
        assert handler.body()["stream"] is True

    @pytest.mark.asyncio
    async def test_non_streaming_provider_single_delta(self, build):
        """A provider without streaming yields the full result once."""
        handler = Recorder(chat_response("Whole tweet #hf"))
        generator = build(handler, credentials={"HUGGINGFACE_API_KEY": "hf_test"})

        stream = generator.stream({"topic": "x"})
        deltas = [delta async for delta in stream]

        assert deltas == ["Whole tweet #hf"]
        assert "stream" not in handler.body()

    @pytest.mark.asyncio
    async def test_non_streaming_final_text_cleaned_once(self, build):
        """final_text matches the delta and generate() even when clean-up is not idempotent."""
        content = "Tweet: Answer: Double prefix #x"
        credentials = {"HUGGINGFACE_API_KEY": "hf_test"}
        streamed = build(Recorder(chat_response(content)), credentials=credentials)
        direct = build(Recorder(chat_response(content)), credentials=credentials)

        stream = streamed.stream({"topic": "x"})
        deltas = [delta async for delta in stream]
        result = await direct.generate({"topic": "x"})

        assert deltas == ["Answer: Double prefix #x"]
        assert stream.final_text == deltas[0] == result.tweet

    @pytest.mark.asyncio
    async def test_stream_uses_configured_temperature(self, build):
        handler = Recorder(httpx.Response(200, content=sse_body("warm")))
        stream = build(handler, temperature=0.3).stream({"topic": "x"})

        await stream.collect()

        assert handler.body()["temperature"] == 0.3

    @pytest.mark.asyncio
    async def test_cancel_during_retry_backoff(self, make_transport, limiter):
        """Cancelling while waiting out Retry-After ends the stream with no new request."""
        handler = Recorder(
            httpx.Response(429, headers={"Retry-After": "30"}, json={"error": "busy"}),
            httpx.Response(200, content=sse_body("too", " late")),
        )
        sleeping = asyncio.Event()
        delays = []

        async def blocking_sleep(seconds):
            delays.append(seconds)
            sleeping.set()
            await asyncio.Event().wait()

        generator = TweetGenerator(
            GROQ, transport=make_transport(handler, sleep=blocking_sleep), limiter=limiter
        )
        stream = generator.stream({"topic": "x"})
        consumer = asyncio.create_task(stream.collect())
        await asyncio.wait_for(sleeping.wait(), timeout=1)

        await stream.cancel()
        await asyncio.wait_for(consumer, timeout=1)

        assert delays == [30.0]
        assert handler.calls == 1
        assert stream.cancelled
        assert stream.accumulated_text == ""
        assert stream.error is None
        await generator.aclose()

    @pytest.mark.asyncio
    async def test_same_content_as_generate(self, build):
        content = 'Tweet: "Same either way #consistent"'
        streamed = build(Recorder(httpx.Response(200, content=sse_body(content))))
        direct = build(Recorder(chat_response(content)))

        stream = streamed.stream({"topic": "x"})
        final_text = await stream.collect()
        result = await direct.generate({"topic": "x"})

        assert final_text == result.tweet == "Same either way #consistent"

    @pytest.mark.asyncio
    async def test_error_status(self, build):
        handler = Recorder(httpx.Response(429, json={"error": {"message": "Slow down"}}))
        generator = build(handler)

        stream = generator.stream({"topic": "x"})
        await stream.collect()

        assert stream.error == "Slow down"
        assert stream.accumulated_text == ""
        assert handler.calls == 4

    @pytest.mark.asyncio
    async def test_no_credentials(self, build):
        stream = build(Recorder(chat_response("unused")), credentials={}).stream({"topic": "x"})
        await stream.collect()
        assert "No API key found" in stream.error

    @pytest.mark.asyncio
    async def test_invalid_request(self, build):
        stream = build(Recorder(chat_response("unused"))).stream({"topic": ""})
        assert [delta async for delta in stream] == []
        assert stream.error.startswith("Invalid request")

    @pytest.mark.asyncio
    async def test_empty_stream(self, build):
        stream = build(Recorder(httpx.Response(200, content=b"data: [DONE]\n\n"))).stream(
            {"topic": "x"}
        )
        await stream.collect()
        assert stream.error == "No content received from groq stream"

    @pytest.mark.asyncio
    async def test_cancel(self, build):
        handler = Recorder(httpx.Response(200, content=sse_body("one ", "two ", "three")))
        stream = build(handler).stream({"topic": "x"})

        async for _ in stream:
            await stream.cancel()

        assert stream.cancelled
        assert stream.accumulated_text == "one "
        assert stream.error is None
        await stream.cancel()


class TestAnalyzeImage:
    """Tests for TweetGenerator.analyze_image."""

    @pytest.mark.asyncio
    async def test_json_answer(self, build):
        answer = json.dumps(
            {"description": "A pier at sunset", "tweet": "Pier vibes #sunset", "location": "Santa Monica"}
        )
        handler = Recorder(chat_response(answer))
        generator = build(handler, credentials={"OPENAI_API_KEY": "sk-test"})

        result = await generator.analyze_image(VisionRequest(image_base64="QUJD"))

        assert result.description == "A pier at sunset"
        assert result.tweet == "Pier vibes #sunset"
        assert result.location == "Santa Monica"
        assert result.error is None
        body = handler.body()
        assert body["model"] == "gpt-4o"
        assert body["messages"][0]["content"][0]["image_url"]["url"].endswith("QUJD")

    @pytest.mark.asyncio
    async def test_reasoning_content(self, build):
        """GLM vision answers that only carry a reasoning trace are still usable."""
        handler = Recorder(
            httpx.Response(
                200,
                json={"choices": [{"message": {"content": "", "reasoning_content": REASONING_TRACE}}]},
            )
        )
        generator = build(handler, credentials={"GLM_API_KEY": f"id.{GLM_SECRET}"})

        result = await generator.analyze_image({"image_base64": "QUJD"})

        assert result.tweet == "Golden hour at Santa Monica Pier never gets old 🌅 #Sunset"
        assert handler.body()["model"] == "GLM-4.5V"

    @pytest.mark.asyncio
    async def test_gemini_inline_image(self, build):
        answer = json.dumps({"description": "Coffee", "tweet": "Fuel ☕"})
        handler = Recorder(
            httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": answer}]}}]})
        )
        generator = build(handler, credentials={"GEMINI_API_KEY": "AIza"})

        result = await generator.analyze_image({"image_base64": "QUJD"})

        assert result.tweet == "Fuel ☕"
        parts = handler.body()["contents"][0]["parts"]
        assert parts[0]["inlineData"]["data"] == "QUJD"

    @pytest.mark.asyncio
    async def test_plain_text_fallback(self, build):
        generator = build(
            Recorder(chat_response("Just a nice photo of the beach")),
            credentials={"OPENAI_API_KEY": "sk-test"},
        )

        result = await generator.analyze_image({"image_base64": "QUJD"})

        assert result.description == "Image analyzed successfully"
        assert result.tweet == "Just a nice photo of the beach"

    @pytest.mark.asyncio
    async def test_empty_answer(self, build):
        generator = build(Recorder(chat_response("")), credentials={"OPENAI_API_KEY": "sk"})
        result = await generator.analyze_image({"image_base64": "QUJD"})
        assert result.tweet == ""
        assert "empty content" in result.error

    @pytest.mark.asyncio
    async def test_requires_vision_credentials(self, build):
        """A text-only key is not enough for image analysis."""
        handler = Recorder(chat_response("unused"))
        generator = build(handler)

        result = await generator.analyze_image({"image_base64": "QUJD"})

        assert "No vision API key found" in result.error
        assert handler.calls == 0


class TestHelpers:
    """Tests for provider display and intent URLs."""

    def test_current_provider(self, build):
        generator = build(Recorder(), credentials={"DEEPSEEK_API_KEY": "d", "OPENAI_API_KEY": "o"})
        assert generator.current_provider() == "deepseek (deepseek-chat)"
        assert generator.current_vision_provider() == "openai (gpt-4o)"

    def test_intent_url(self):
        assert TweetGenerator.intent_url("Tip! #React") == (
            "https://twitter.com/intent/tweet?text=Tip!%20%23React"
        )

    @pytest.mark.asyncio
    async def test_from_settings(self, clean_env):
        settings = Settings(groq_api_key="gsk_settings")
        settings.transport.max_retries = 1

        async with TweetGenerator.from_settings(settings) as generator:
            assert generator.current_provider() == "groq (llama-3.3-70b-versatile)"
            assert generator.transport.max_retries == 1
            assert generator.limiter.check_batch_generation().remaining == 2
