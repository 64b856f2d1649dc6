"""Tests for chatstream config loading and provider resolution."""

import os
import tempfile
from pathlib import Path

import pydantic
import pytest
import yaml

from chatstream.config import (
    DEFAULT_SYSTEM_PROMPT,
    AppConfig,
    LocalSpec,
    ProviderKind,
    RemoteSpec,
    load_config,
    resolve_provider,
    save_config,
)
from chatstream.errors import ConfigError


class TestDefaults:
    def test_app_config(self):
        cfg = AppConfig()
        assert cfg.provider is ProviderKind.OPENAI
        assert cfg.openai_model == "gpt-4"
        assert cfg.temperature == 0.9
        assert cfg.system_prompt == DEFAULT_SYSTEM_PROMPT

    def test_local_settings(self):
        local = AppConfig().local
        assert local.context_size == 2048
        assert local.batch_size == 512
        assert local.max_tokens == 512
        assert local.greedy_epsilon == 0.01
        assert local.stop_tags == ["<end_of_turn>", "<eos>"]

    @pytest.mark.parametrize("temperature", [-0.1, 2.01])
    def test_temperature_range(self, temperature):
        with pytest.raises(pydantic.ValidationError):
            AppConfig(temperature=temperature)


class TestLoadConfig:
    def test_valid_config(self):
        fd, path = tempfile.mkstemp(suffix=".yaml")
        try:
            with os.fdopen(fd, "w") as f:
                yaml.dump({
                    "provider": "ollama",
                    "custom_model": "qwen3:8b",
                    "temperature": 0.2,
                    "local": {"max_tokens": 128},
                }, f)
            config, cfg_path = load_config(path)
            assert config.provider is ProviderKind.OLLAMA
            assert config.custom_model == "qwen3:8b"
            assert config.temperature == 0.2
            assert config.local.max_tokens == 128
            assert config.local.context_size == 2048
            assert cfg_path == Path(path).resolve()
        finally:
            os.unlink(path)

    def test_nonexistent_file(self):
        with pytest.raises(FileNotFoundError):
            load_config("/tmp/nonexistent_chatstream_12345.yaml")

    def test_invalid_yaml(self):
        fd, path = tempfile.mkstemp(suffix=".yaml")
        try:
            with os.fdopen(fd, "w") as f:
                f.write("invalid: yaml: content: [[[")
            with pytest.raises(yaml.YAMLError):
                load_config(path)
        finally:
            os.unlink(path)

    def test_unknown_provider_rejected(self, tmp_path: Path):
        path = tmp_path / "chatstream.yaml"
        path.write_text("provider: skynet\n")
        with pytest.raises(pydantic.ValidationError):
            load_config(path)

    def test_empty_file_gives_defaults(self, tmp_path: Path):
        path = tmp_path / "chatstream.yaml"
        path.write_text("")
        config, _ = load_config(path)
        assert config == AppConfig()

    def test_discovers_file_in_cwd(self, tmp_path: Path, monkeypatch):
        (tmp_path / "chatstream.yaml").write_text("provider: lmstudio\n")
        monkeypatch.chdir(tmp_path)
        config, cfg_path = load_config()
        assert config.provider is ProviderKind.LMSTUDIO
        assert cfg_path == (tmp_path / "chatstream.yaml").resolve()

    def test_save_then_load(self, tmp_path: Path):
        original = AppConfig(
            provider=ProviderKind.BUILTIN,
            builtin_model_path="/models/gemma.gguf",
            temperature=0.0,
        )
        path = save_config(original, tmp_path / "nested" / "config.yaml")
        loaded, _ = load_config(path)
        assert loaded == original


class TestResolveProvider:
    def test_openai(self):
        spec = resolve_provider(AppConfig(openai_api_key="sk-1"))
        assert spec == RemoteSpec("https://api.openai.com/v1", "sk-1", "gpt-4")

    def test_openai_missing_key(self):
        with pytest.raises(ConfigError):
            resolve_provider(AppConfig())

    def test_lmstudio_defaults(self):
        spec = resolve_provider(AppConfig(provider=ProviderKind.LMSTUDIO))
        assert spec == RemoteSpec("http://localhost:1234/v1", "lm-studio", "default")

    def test_ollama_defaults(self):
        spec = resolve_provider(AppConfig(provider=ProviderKind.OLLAMA))
        assert spec == RemoteSpec("http://localhost:11434/v1", "ollama", "llama3.2")

    def test_ollama_overrides(self):
        spec = resolve_provider(AppConfig(
            provider=ProviderKind.OLLAMA,
            custom_api_url="http://gpu:11434/v1",
            custom_model="mistral",
        ))
        assert spec == RemoteSpec("http://gpu:11434/v1", "ollama", "mistral")

    def test_custom(self):
        spec = resolve_provider(AppConfig(
            provider=ProviderKind.CUSTOM, custom_api_url="https://llm.internal/v1",
        ))
        assert spec == RemoteSpec("https://llm.internal/v1", "", "default")

    def test_custom_missing_url(self):
        with pytest.raises(ConfigError):
            resolve_provider(AppConfig(provider=ProviderKind.CUSTOM))

    def test_builtin(self):
        spec = resolve_provider(AppConfig(
            provider=ProviderKind.BUILTIN, builtin_model_path="/m.gguf",
        ))
        assert spec == LocalSpec("/m.gguf")

    def test_builtin_missing_path(self):
        with pytest.raises(ConfigError):
            resolve_provider(AppConfig(provider=ProviderKind.BUILTIN))

    @pytest.mark.parametrize("url", ["localhost:1234/v1", "ftp://models.local/v1", "not a url"])
    def test_malformed_custom_url(self, url):
        with pytest.raises(ConfigError, match="URL"):
            resolve_provider(AppConfig(provider=ProviderKind.CUSTOM, custom_api_url=url))

    def test_malformed_ollama_override(self):
        with pytest.raises(ConfigError, match="URL"):
            resolve_provider(AppConfig(
                provider=ProviderKind.OLLAMA, custom_api_url="gpu-box:11434",
            ))
