"""Tests for the provider table and client factory."""

import json

import pytest

from yagi import ProviderError
from yagi.factory import create_client
from yagi.providers import DEFAULT_PROVIDERS, Provider, find_provider, get_api_key, load_providers


def test_builtin_table_has_unique_names():
    names = [p.name for p in DEFAULT_PROVIDERS]
    assert len(names) == len(set(names))
    assert find_provider("openai").env_key == "OPENAI_API_KEY"
    assert find_provider("nope") is None


def test_get_api_key_from_env(monkeypatch):
    monkeypatch.setenv("GROQ_API_KEY", "secret")
    assert get_api_key(find_provider("groq")) == "secret"


def test_get_api_key_missing(monkeypatch):
    monkeypatch.delenv("GROQ_API_KEY", raising=False)

    with pytest.raises(ProviderError, match="GROQ_API_KEY environment variable is required"):
        get_api_key(find_provider("groq"))


def test_load_providers_without_file(tmp_path):
    assert load_providers(tmp_path) == list(DEFAULT_PROVIDERS)


def test_load_providers_extra_entries_shadow_builtins(tmp_path):
    (tmp_path / "providers.json").write_text(
        json.dumps(
            [
                {"name": "local", "apiurl": "http://localhost:11434/v1", "envKey": "LOCAL_KEY", "model": "llama3"},
                {"name": "openai", "apiurl": "https://proxy.example/v1", "envKey": "PROXY_KEY"},
            ]
        )
    )

    providers = load_providers(tmp_path)

    assert providers[0] == Provider("local", "http://localhost:11434/v1", "LOCAL_KEY", "llama3")
    assert find_provider("openai", providers).api_url == "https://proxy.example/v1"
    assert len(providers) == len(DEFAULT_PROVIDERS) + 2


def test_load_providers_invalid_json(tmp_path):
    (tmp_path / "providers.json").write_text("{not json")

    with pytest.raises(ProviderError, match="Invalid"):
        load_providers(tmp_path)


def test_load_providers_missing_fields(tmp_path):
    (tmp_path / "providers.json").write_text(json.dumps([{"name": "half"}]))

    with pytest.raises(ProviderError, match="Invalid provider entry"):
        load_providers(tmp_path)


def test_create_client_points_at_provider():
    client = create_client("deepseek", api_key="k")

    assert str(client.base_url).rstrip("/") == "https://api.deepseek.com/v1"
    assert client.api_key == "k"
    assert client.max_retries == 0


def test_create_client_unknown_provider():
    with pytest.raises(ProviderError, match="Unknown provider: nowhere"):
        create_client("nowhere", api_key="k")
