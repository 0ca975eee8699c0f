"""Request authentication for LLM providers."""

import time

import jwt

from tweet_engine.exceptions import ConfigurationError

TOKEN_TTL_MS = 3_600_000  # 1 hour


def generate_signed_token(api_key: str, now_ms: int | None = None) -> str:
    """Build a short-lived HS256 token from an `<id>.<secret>` API key.

    Timestamps are in milliseconds, as the GLM endpoint expects.
    """
    key_id, sep, secret = api_key.partition(".")
    if not sep or not key_id or not secret:
        raise ConfigurationError("Invalid GLM API key: expected the '<id>.<secret>' format")

    if now_ms is None:
        now_ms = int(time.time() * 1000)

    payload = {
        "api_key": key_id,
        "exp": now_ms + TOKEN_TTL_MS,
        "timestamp": now_ms,
    }
    return jwt.encode(
        payload,
        secret,
        algorithm="HS256",
        headers={"alg": "HS256", "sign_type": "SIGN"},
    )
