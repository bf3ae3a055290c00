from __future__ import annotations

from typing import Any, Sequence

from openai import AsyncOpenAI

from yagi._exceptions import ProviderError

from .providers import DEFAULT_PROVIDERS, Provider, find_provider, get_api_key


def create_client(
    provider: Provider | str,
    *,
    api_key: str | None = None,
    providers: Sequence[Provider] = DEFAULT_PROVIDERS,
    **client_kwargs: Any,
) -> AsyncOpenAI:
    """
    Factory for an ``AsyncOpenAI`` client pointed at a provider's endpoint.

    Args:
        provider: A Provider, or the name of one in *providers*.
        api_key: Overrides automatic lookup; if omitted, pulled from env.
        providers: Table used to resolve a provider name.
        **client_kwargs: Any extra args to pass through (timeout, max_retries).

    The engine does its own retrying, so the SDK's retries default to 0.
    """
    if isinstance(provider, str):
        resolved = find_provider(provider, providers)
        if resolved is None:
            names = ", ".join(p.name for p in providers)
            raise ProviderError(f"Unknown provider: {provider} (available: {names})")
        provider = resolved

    key = api_key or get_api_key(provider)
    client_kwargs.setdefault("max_retries", 0)
    return AsyncOpenAI(api_key=key, base_url=provider.api_url, **client_kwargs)
