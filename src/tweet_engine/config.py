"""Configuration management using Pydantic Settings."""

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import AliasChoices, BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from tweet_engine.exceptions import ConfigError

# Load environment variables from .env file
load_dotenv()


class TransportConfig(BaseModel):
    """HTTP retry and timeout configuration."""

    max_retries: int = 3
    initial_delay: float = 1.0  # seconds, doubled on every retry
    timeout: float = 60.0


class WindowConfig(BaseModel):
    """Limit and window for one request category."""

    limit: int
    window_seconds: float = 60.0


class RateLimitConfig(BaseModel):
    """Client-side throttling, one window per operation category."""

    sliding_window: bool = True
    tweet_generation: WindowConfig = Field(
        default_factory=lambda: WindowConfig(limit=10)
    )
    vision_analysis: WindowConfig = Field(default_factory=lambda: WindowConfig(limit=5))
    batch_generation: WindowConfig = Field(
        default_factory=lambda: WindowConfig(limit=3)
    )


class GenerationConfig(BaseModel):
    """Generation defaults."""

    default_max_length: int = 280
    batch_count: int = 3
    temperature: float = 0.7
    max_tokens: int = 1000


def _api_key_field(env_name: str) -> Any:
    return Field(
        default="",
        validation_alias=AliasChoices(env_name.lower(), env_name, f"TWEET_ENGINE_{env_name}"),
    )


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="TWEET_ENGINE_",
        env_nested_delimiter="__",
        extra="ignore",
        populate_by_name=True,
    )

    transport: TransportConfig = Field(default_factory=TransportConfig)
    rate_limits: RateLimitConfig = Field(default_factory=RateLimitConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)

    # LLM credentials, read from the plain provider variable names
    glm_api_key: str = _api_key_field("GLM_API_KEY")
    groq_api_key: str = _api_key_field("GROQ_API_KEY")
    deepseek_api_key: str = _api_key_field("DEEPSEEK_API_KEY")
    openai_api_key: str = _api_key_field("OPENAI_API_KEY")
    together_api_key: str = _api_key_field("TOGETHER_API_KEY")
    gemini_api_key: str = _api_key_field("GEMINI_API_KEY")
    huggingface_api_key: str = _api_key_field("HUGGINGFACE_API_KEY")

    def credentials(self) -> dict[str, str]:
        """Credential lookup table keyed by provider credential name."""
        return {
            "GLM_API_KEY": self.glm_api_key,
            "GROQ_API_KEY": self.groq_api_key,
            "DEEPSEEK_API_KEY": self.deepseek_api_key,
            "OPENAI_API_KEY": self.openai_api_key,
            "TOGETHER_API_KEY": self.together_api_key,
            "GEMINI_API_KEY": self.gemini_api_key,
            "HUGGINGFACE_API_KEY": self.huggingface_api_key,
        }


def _interpolate_env_vars(data: Any) -> Any:
    """Recursively interpolate ${VAR} patterns with environment variables."""
    if isinstance(data, str):
        if data.startswith("${") and data.endswith("}"):
            var_name = data[2:-1]
            return os.environ.get(var_name, "")
        return data
    elif isinstance(data, dict):
        return {k: _interpolate_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_interpolate_env_vars(item) for item in data]
    return data


def load_config(config_path: Path | None = None) -> Settings:
    """Load configuration from YAML file with env var interpolation."""
    if config_path is None:
        # Check current directory first, then home directory
        local_config = Path("config.yaml")
        if local_config.exists():
            config_path = local_config
        else:
            config_path = Path.home() / ".tweet-engine" / "config.yaml"

    if not config_path.exists():
        # Return defaults if no config file
        return Settings()

    try:
        with open(config_path) as f:
            raw_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e

    config_data = _interpolate_env_vars(raw_config)

    # Allow a `providers:` section mapping provider name to key
    providers = config_data.pop("providers", None) or {}
    for name, api_key in providers.items():
        if api_key:
            config_data[f"{name.lower()}_api_key"] = api_key

    try:
        return Settings(**config_data)
    except Exception as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
