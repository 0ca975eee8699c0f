"""Provider selection from an injected credential source."""

from collections.abc import Mapping, Sequence

from tweet_engine.generation.providers import ProviderConfig


def has_credential(credentials: Mapping[str, str | None], provider: ProviderConfig) -> bool:
    """Check if the provider's credential is present and non-blank."""
    value = credentials.get(provider.credential_key)
    return bool(value and value.strip())


def has_any_credential(
    credentials: Mapping[str, str | None], providers: Sequence[ProviderConfig]
) -> bool:
    return any(has_credential(credentials, provider) for provider in providers)


def select_provider(
    credentials: Mapping[str, str | None], providers: Sequence[ProviderConfig]
) -> ProviderConfig:
    """Pick the first provider, in priority order, with a present credential.

    Falls back to the top-priority provider when none is configured; the
    missing credential is reported by the caller, not here.
    """
    if not providers:
        raise ValueError("At least one provider is required")

    for provider in providers:
        if has_credential(credentials, provider):
            return provider

    return providers[0]
