"""Provider registry - static connection parameters for every supported LLM."""

from dataclasses import dataclass
from enum import Enum

from tweet_engine.generation.auth import generate_signed_token


class AuthScheme(str, Enum):
    """How the credential is attached to a request."""

    BEARER = "bearer"
    GOOG_API_KEY = "goog_api_key"
    SIGNED_TOKEN = "signed_token"


class RequestFormat(str, Enum):
    """Request/response body shape spoken by the provider."""

    OPENAI_CHAT = "openai_chat"
    GEMINI_CONTENTS = "gemini_contents"


@dataclass(frozen=True)
class ProviderConfig:
    """Connection parameters for one provider."""

    id: str
    endpoint_url: str
    model_id: str
    credential_key: str
    auth_scheme: AuthScheme = AuthScheme.BEARER
    supports_streaming: bool = False
    request_format: RequestFormat = RequestFormat.OPENAI_CHAT

    @property
    def request_url(self) -> str:
        if self.request_format is RequestFormat.GEMINI_CONTENTS:
            return f"{self.endpoint_url}/{self.model_id}:generateContent"
        return self.endpoint_url

    @property
    def display_name(self) -> str:
        return f"{self.id} ({self.model_id})"


_GLM_URL = "https://api.z.ai/api/coding/paas/v4/chat/completions"
_GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models"
_OPENAI_URL = "https://api.openai.com/v1/chat/completions"

# Fixed priority order: the first provider with a credential wins
TEXT_PROVIDERS: tuple[ProviderConfig, ...] = (
    ProviderConfig(
        id="glm",
        endpoint_url=_GLM_URL,
        model_id="GLM-4.7",
        credential_key="GLM_API_KEY",
        auth_scheme=AuthScheme.SIGNED_TOKEN,
    ),
    ProviderConfig(
        id="groq",
        endpoint_url="https://api.groq.com/openai/v1/chat/completions",
        model_id="llama-3.3-70b-versatile",
        credential_key="GROQ_API_KEY",
        supports_streaming=True,
    ),
    ProviderConfig(
        id="deepseek",
        endpoint_url="https://api.deepseek.com/v1/chat/completions",
        model_id="deepseek-chat",
        credential_key="DEEPSEEK_API_KEY",
        supports_streaming=True,
    ),
    ProviderConfig(
        id="openai",
        endpoint_url=_OPENAI_URL,
        model_id="gpt-4o-mini",
        credential_key="OPENAI_API_KEY",
        supports_streaming=True,
    ),
    ProviderConfig(
        id="together",
        endpoint_url="https://api.together.xyz/v1/chat/completions",
        model_id="mistralai/Mixtral-8x7B-Instruct-v0.1",
        credential_key="TOGETHER_API_KEY",
        supports_streaming=True,
    ),
    ProviderConfig(
        id="gemini",
        endpoint_url=_GEMINI_URL,
        model_id="gemini-2.5-flash",
        credential_key="GEMINI_API_KEY",
        auth_scheme=AuthScheme.GOOG_API_KEY,
        request_format=RequestFormat.GEMINI_CONTENTS,
    ),
    ProviderConfig(
        id="huggingface",
        endpoint_url=(
            "https://api-inference.huggingface.co/models/"
            "mistralai/Mistral-7B-Instruct-v0.3/v1/chat/completions"
        ),
        model_id="mistralai/Mistral-7B-Instruct-v0.3",
        credential_key="HUGGINGFACE_API_KEY",
    ),
)

VISION_PROVIDERS: tuple[ProviderConfig, ...] = (
    ProviderConfig(
        id="glm",
        endpoint_url=_GLM_URL,
        model_id="GLM-4.5V",
        credential_key="GLM_API_KEY",
        auth_scheme=AuthScheme.SIGNED_TOKEN,
    ),
    ProviderConfig(
        id="gemini",
        endpoint_url=_GEMINI_URL,
        model_id="gemini-2.5-flash",
        credential_key="GEMINI_API_KEY",
        auth_scheme=AuthScheme.GOOG_API_KEY,
        request_format=RequestFormat.GEMINI_CONTENTS,
    ),
    ProviderConfig(
        id="openai",
        endpoint_url=_OPENAI_URL,
        model_id="gpt-4o",
        credential_key="OPENAI_API_KEY",
    ),
)

# Where to get a key, shown when nothing is configured
SETUP_HINTS = {
    "GLM_API_KEY": "GLM-4.7",
    "GROQ_API_KEY": "Recommended - Free, unlimited, fast",
    "DEEPSEEK_API_KEY": "Free tier available",
    "OPENAI_API_KEY": "$5 free credit",
    "TOGETHER_API_KEY": "$25 free credit",
    "HUGGINGFACE_API_KEY": "30K free requests/month",
    "GEMINI_API_KEY": "Google AI Studio",
}


class ProviderRegistry:
    """Read-only provider tables, built once per process."""

    def __init__(
        self,
        text_providers: tuple[ProviderConfig, ...] = TEXT_PROVIDERS,
        vision_providers: tuple[ProviderConfig, ...] = VISION_PROVIDERS,
    ):
        self.text_providers = tuple(text_providers)
        self.vision_providers = tuple(vision_providers)

    def get(self, provider_id: str, vision: bool = False) -> ProviderConfig:
        """Look up a provider by id."""
        providers = self.vision_providers if vision else self.text_providers
        for provider in providers:
            if provider.id == provider_id:
                return provider
        raise KeyError(f"Unknown provider: {provider_id}")

    @property
    def credential_keys(self) -> list[str]:
        keys: list[str] = []
        for provider in self.text_providers + self.vision_providers:
            if provider.credential_key not in keys:
                keys.append(provider.credential_key)
        return keys

    def setup_guidance(self, vision: bool = False) -> str:
        """Human-readable instructions listing every usable credential."""
        providers = self.vision_providers if vision else self.text_providers
        lines = [
            f"- {p.credential_key} ({SETUP_HINTS.get(p.credential_key, p.model_id)})"
            for p in providers
        ]
        kind = "vision API key" if vision else "API key"
        return (
            f"No {kind} found. Please add one of these to your .env file:\n\n"
            + "\n".join(lines)
            + "\n\nGet a free Groq key: https://console.groq.com/keys"
        )


def build_headers(provider: ProviderConfig, api_key: str) -> dict[str, str]:
    """Build request headers including provider-specific auth."""
    headers = {"Content-Type": "application/json"}

    if provider.auth_scheme is AuthScheme.GOOG_API_KEY:
        headers["x-goog-api-key"] = api_key
    elif provider.auth_scheme is AuthScheme.SIGNED_TOKEN:
        headers["Authorization"] = f"Bearer {generate_signed_token(api_key)}"
    else:
        headers["Authorization"] = f"Bearer {api_key}"

    return headers
