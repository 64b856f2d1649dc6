"""Streaming completion backends for chatstream."""

from chatstream.llm.bridge import TokenStream, stream_from_worker
from chatstream.llm.client import RemoteCompletionClient, build_payload
from chatstream.llm.local import GenerationStats, LocalGenerationEngine, Sampler
from chatstream.llm.prompt import format_chat_prompt
from chatstream.llm.provider import (
    LocalProvider,
    Provider,
    RemoteProvider,
    build_provider,
)
from chatstream.llm.sse import SSEDecoder

__all__ = [
    "GenerationStats",
    "LocalGenerationEngine",
    "LocalProvider",
    "Provider",
    "RemoteCompletionClient",
    "RemoteProvider",
    "SSEDecoder",
    "Sampler",
    "TokenStream",
    "build_payload",
    "build_provider",
    "format_chat_prompt",
    "stream_from_worker",
]
