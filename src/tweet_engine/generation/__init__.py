"""LLM generation module - provider registry, transport and tweet generation."""

from tweet_engine.generation.generator import TweetGenerator
from tweet_engine.generation.length import max_length_for, truncate_tweet
from tweet_engine.generation.normalizer import NormalizedOutput, normalize_output
from tweet_engine.generation.providers import ProviderConfig, ProviderRegistry
from tweet_engine.generation.selector import select_provider
from tweet_engine.generation.streaming import TweetStream, consume_stream
from tweet_engine.generation.transport import RetryingTransport

__all__ = [
    "NormalizedOutput",
    "ProviderConfig",
    "ProviderRegistry",
    "RetryingTransport",
    "TweetGenerator",
    "TweetStream",
    "consume_stream",
    "max_length_for",
    "normalize_output",
    "select_provider",
    "truncate_tweet",
]
