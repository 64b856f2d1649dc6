"""Configuration management for chatstream.

Config discovery (first match wins):
  1. Explicit ``--config`` path
  2. ``./chatstream.yaml``
  3. ``~/.config/chatstream/config.yaml``
  4. Built-in defaults
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union

import httpx
import yaml
from pydantic import BaseModel, Field

from chatstream.errors import ConfigError

_logger = logging.getLogger(__name__)


DEFAULT_SYSTEM_PROMPT = (
    "You are Clippy, the cheerful paperclip assistant, back from retirement "
    "with a brand new language model behind you.\n"
    "- Be enthusiastic and genuinely helpful.\n"
    "- Open with \"It looks like you're trying to...\" when it fits.\n"
    "- Joke about being a paperclip now and then.\n"
    "- Keep answers short unless the user asks for detail."
)


class ProviderKind(str, enum.Enum):
    OPENAI = "openai"
    LMSTUDIO = "lmstudio"
    OLLAMA = "ollama"
    CUSTOM = "custom"
    BUILTIN = "builtin"


class LocalModelSettings(BaseModel):
    """Fixed resource bounds for the built-in llama.cpp engine."""

    context_size: int = Field(default=2048, gt=0)
    batch_size: int = Field(default=512, gt=0)
    max_tokens: int = Field(default=512, gt=0)
    gpu_layers: int = -1  # -1 = offload every layer when acceleration exists
    greedy_epsilon: float = 0.01
    stop_tags: list[str] = Field(
        default_factory=lambda: ["<end_of_turn>", "<eos>"]
    )


class AppConfig(BaseModel):
    provider: ProviderKind = ProviderKind.OPENAI
    openai_api_key: str | None = None
    openai_model: str = "gpt-4"
    custom_api_url: str | None = None
    custom_api_key: str | None = None
    custom_model: str | None = None
    builtin_model_path: str | None = None
    temperature: float = Field(default=0.9, ge=0.0, le=2.0)
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    request_timeout: float = 120.0
    local: LocalModelSettings = Field(default_factory=LocalModelSettings)


CONFIG_FILENAME = "chatstream.yaml"

_SEARCH_PATHS = [
    Path(CONFIG_FILENAME),
    Path.home() / ".config" / "chatstream" / "config.yaml",
]


def load_config(
    config_path: str | Path | None = None,
) -> tuple[AppConfig, Path | None]:
    """Load configuration from YAML.

    Returns ``(config, resolved_path)``.  *resolved_path* is ``None`` when
    no file was found and built-in defaults are used.
    """
    if config_path is not None:
        resolved = Path(config_path).expanduser()
        if not resolved.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        resolved = next((p for p in _SEARCH_PATHS if p.exists()), None)
        if resolved is None:
            _logger.info("No config file found, using defaults")
            return AppConfig(), None

    _logger.info("Loading config from %s", resolved)
    with open(resolved, encoding="utf-8") as f:
        raw: dict[str, Any] = yaml.safe_load(f) or {}
    return AppConfig.model_validate(raw), resolved.resolve()


def save_config(config: AppConfig, config_path: str | Path) -> Path:
    """Write *config* as YAML, creating parent directories."""
    path = Path(config_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="json", exclude_none=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
    return path


# ---------------------------------------------------------------------------
# Provider resolution
# ---------------------------------------------------------------------------

OPENAI_BASE_URL = "https://api.openai.com/v1"
LMSTUDIO_BASE_URL = "http://localhost:1234/v1"
OLLAMA_BASE_URL = "http://localhost:11434/v1"


@dataclass(frozen=True)
class RemoteSpec:
    """An OpenAI-compatible chat completions endpoint."""

    endpoint: str
    credential: str
    model_id: str


@dataclass(frozen=True)
class LocalSpec:
    """A model file loaded into this process."""

    model_path: str


ProviderSpec = Union[RemoteSpec, LocalSpec]


def resolve_provider(config: AppConfig) -> ProviderSpec:
    """Map the configured provider kind to a RemoteSpec or LocalSpec.

    Raises ``ConfigError`` when a required setting is missing.
    """
    kind = config.provider
    if kind is ProviderKind.OPENAI:
        if not config.openai_api_key:
            raise ConfigError(
                "OpenAI API key not set. Please configure it in settings."
            )
        return RemoteSpec(OPENAI_BASE_URL, config.openai_api_key, config.openai_model)
    if kind is ProviderKind.LMSTUDIO:
        return RemoteSpec(
            _endpoint(config.custom_api_url or LMSTUDIO_BASE_URL),
            config.custom_api_key or "lm-studio",
            config.custom_model or "default",
        )
    if kind is ProviderKind.OLLAMA:
        return RemoteSpec(
            _endpoint(config.custom_api_url or OLLAMA_BASE_URL),
            "ollama",
            config.custom_model or "llama3.2",
        )
    if kind is ProviderKind.CUSTOM:
        if not config.custom_api_url:
            raise ConfigError("Custom API URL is required.")
        return RemoteSpec(
            _endpoint(config.custom_api_url),
            config.custom_api_key or "",
            config.custom_model or "default",
        )
    if kind is ProviderKind.BUILTIN:
        if not config.builtin_model_path:
            raise ConfigError(
                "No local model path configured. Please select a model file in settings."
            )
        return LocalSpec(config.builtin_model_path)
    raise ConfigError(f"Unknown provider: {kind!r}")


def _endpoint(url: str) -> str:
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as e:
        raise ConfigError(f"Invalid API URL {url!r}: {e}") from e
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise ConfigError(f"API URL must be an absolute http(s) URL, got {url!r}")
    return url
