"""Pytest configuration and fixtures."""

import json
import tempfile
from pathlib import Path

import httpx
import pytest

from tweet_engine.generation.transport import RetryingTransport
from tweet_engine.ratelimit import SessionRateLimiter

CREDENTIAL_KEYS = [
    "GLM_API_KEY",
    "GROQ_API_KEY",
    "DEEPSEEK_API_KEY",
    "OPENAI_API_KEY",
    "TOGETHER_API_KEY",
    "GEMINI_API_KEY",
    "HUGGINGFACE_API_KEY",
]


class FakeClock:
    """Manually advanced clock for rate limiter tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def chat_response(content: str, status_code: int = 200) -> httpx.Response:
    """OpenAI-style chat completion response."""
    return httpx.Response(
        status_code, json={"choices": [{"message": {"role": "assistant", "content": content}}]}
    )


def sse_body(*deltas: str, done: bool = True) -> bytes:
    """Encode deltas as an SSE chat completion stream."""
    lines = [
        "data: " + json.dumps({"choices": [{"delta": {"content": delta}}]}) for delta in deltas
    ]
    if done:
        lines.append("data: [DONE]")
    return ("\n\n".join(lines) + "\n\n").encode("utf-8")


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove provider keys from the environment."""
    for key in CREDENTIAL_KEYS:
        monkeypatch.delenv(key, raising=False)
        monkeypatch.delenv(f"TWEET_ENGINE_{key}", raising=False)


@pytest.fixture
def sample_config(temp_dir):
    """Create a sample config file."""
    config_path = temp_dir / "config.yaml"
    config_path.write_text("""
providers:
  groq: "${TEST_GROQ_KEY}"
  gemini: "gemini-test-key"

transport:
  max_retries: 2
  initial_delay: 0.5
  timeout: 30

rate_limits:
  sliding_window: false
  tweet_generation:
    limit: 20
    window_seconds: 30

generation:
  batch_count: 4
""")
    return config_path


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def limiter(clock):
    """Session limiter with default presets and a fake clock."""
    return SessionRateLimiter(session_key="test-session", clock=clock)


@pytest.fixture
def make_transport(recording_sleep):
    """Build a RetryingTransport over an httpx.MockTransport handler."""

    def factory(handler, **kwargs) -> RetryingTransport:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        kwargs.setdefault("sleep", recording_sleep)
        return RetryingTransport(client=client, **kwargs)

    return factory
