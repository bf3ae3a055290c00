from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final, Optional, Sequence

from dotenv import load_dotenv

from yagi._exceptions import ProviderError

load_dotenv()


@dataclass(frozen=True, slots=True)
class Provider:
    """An OpenAI-compatible endpoint and the environment variable holding its key."""
    name: str
    api_url: str
    env_key: str = ""
    default_model: str = ""


DEFAULT_PROVIDERS: Final[tuple[Provider, ...]] = (
    Provider("openai", "https://api.openai.com/v1", "OPENAI_API_KEY", "gpt-4.1-mini"),
    Provider("google", "https://generativelanguage.googleapis.com/v1beta/openai", "GEMINI_API_KEY", "gemini-2.5-flash"),
    Provider("anthropic", "https://api.anthropic.com/v1", "ANTHROPIC_API_KEY", "claude-sonnet-4-5"),
    Provider("deepseek", "https://api.deepseek.com/v1", "DEEPSEEK_API_KEY", "deepseek-chat"),
    Provider("mistral", "https://api.mistral.ai/v1", "MISTRAL_API_KEY", "mistral-large-latest"),
    Provider("groq", "https://api.groq.com/openai/v1", "GROQ_API_KEY", "llama-3.3-70b-versatile"),
    Provider("xai", "https://api.x.ai/v1", "XAI_API_KEY", "grok-3-mini"),
    Provider("perplexity", "https://api.perplexity.ai", "PERPLEXITY_API_KEY", "sonar"),
    Provider("together", "https://api.together.xyz/v1", "TOGETHER_API_KEY"),
    Provider("fireworks", "https://api.fireworks.ai/inference/v1", "FIREWORKS_API_KEY"),
    Provider("cerebras", "https://api.cerebras.ai/v1", "CEREBRAS_API_KEY"),
    Provider("cohere", "https://api.cohere.com/compatibility/v1", "COHERE_API_KEY"),
    Provider("openrouter", "https://openrouter.ai/api/v1", "OPENROUTER_API_KEY"),
    Provider("sambanova", "https://api.sambanova.ai/v1", "SAMBANOVA_API_KEY"),
    Provider("huggingface", "https://router.huggingface.co/v1", "HF_TOKEN"),
    Provider("qwen", "https://dashscope-intl.aliyuncs.com/compatible-mode/v1", "QWEN_API_KEY"),
)


def find_provider(name: str, providers: Sequence[Provider] = DEFAULT_PROVIDERS) -> Optional[Provider]:
    """Return the first provider called *name*, or None."""
    for provider in providers:
        if provider.name == name:
            return provider
    return None


def load_providers(config_dir: str | Path) -> list[Provider]:
    """
    Return the provider table with entries from ``<config_dir>/providers.json``
    placed first, so they shadow built-ins of the same name.

    The file holds a JSON list of ``{"name", "apiurl", "envKey", "model"}`` objects.
    """
    path = Path(config_dir) / "providers.json"
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return list(DEFAULT_PROVIDERS)
    except json.JSONDecodeError as exc:
        raise ProviderError(f"Invalid {path}: {exc}", exc) from exc

    if not isinstance(raw, list):
        raise ProviderError(f"Invalid {path}: expected a list of providers")

    extra = []
    for entry in raw:
        try:
            extra.append(
                Provider(
                    name=entry["name"],
                    api_url=entry["apiurl"],
                    env_key=entry.get("envKey", ""),
                    default_model=entry.get("model", ""),
                )
            )
        except (KeyError, TypeError) as exc:
            raise ProviderError(f"Invalid provider entry in {path}: {entry!r}") from exc
    return extra + list(DEFAULT_PROVIDERS)


def get_api_key(provider: Provider) -> str:
    """Return the API key for *provider* or raise ProviderError."""
    if not provider.env_key:
        raise ProviderError(f"No API key variable configured for {provider.name}")
    try:
        return os.environ[provider.env_key]
    except KeyError as exc:
        raise ProviderError(
            f"{provider.env_key} environment variable is required for provider {provider.name}"
        ) from exc


__all__ = ["Provider", "DEFAULT_PROVIDERS", "find_provider", "load_providers", "get_api_key"]
