"""Provider facade: one streaming operation over remote and local backends.

``build_provider()`` picks the backend once per call from configuration.
Configuration and missing-model errors are raised here, before any
fragment exists; everything else ends the returned stream.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor
from pathlib import Path
from typing import AsyncIterator, Protocol, Sequence, runtime_checkable

import httpx

from chatstream.config import (
    AppConfig,
    LocalModelSettings,
    LocalSpec,
    RemoteSpec,
    resolve_provider,
)
from chatstream.errors import ModelLoadError
from chatstream.types import CompletionRequest, Message

from .bridge import DEFAULT_CAPACITY, TokenStream, stream_from_worker
from .client import RemoteCompletionClient
from .local import LocalGenerationEngine, ModelFactory

_logger = logging.getLogger(__name__)


@runtime_checkable
class Provider(Protocol):
    """Anything that can stream a chat completion."""

    def stream_completion(
        self,
        messages: Sequence[Message],
        temperature: float,
    ) -> AsyncIterator[str]:
        """Yield text fragments in order; a failure is raised as the last item."""
        ...


class RemoteProvider:
    """OpenAI-compatible HTTP backend."""

    def __init__(
        self,
        spec: RemoteSpec,
        timeout: float = 120,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.spec = spec
        self._timeout = timeout
        self._transport = transport

    async def stream_completion(
        self,
        messages: Sequence[Message],
        temperature: float,
    ) -> AsyncIterator[str]:
        request = CompletionRequest.of(messages, temperature)
        client = RemoteCompletionClient(
            self.spec.endpoint,
            self.spec.credential,
            self.spec.model_id,
            timeout=self._timeout,
            transport=self._transport,
        )
        try:
            async for fragment in client.stream_chat(request.messages, request.temperature):
                yield fragment
        finally:
            await client.aclose()


class LocalProvider:
    """In-process llama.cpp backend.  The model is reloaded on every call."""

    def __init__(
        self,
        spec: LocalSpec,
        settings: LocalModelSettings | None = None,
        executor: Executor | None = None,
        model_factory: ModelFactory | None = None,
        capacity: int = DEFAULT_CAPACITY,
    ) -> None:
        if not Path(spec.model_path).is_file():
            raise ModelLoadError(f"Model file not found: {spec.model_path}")
        self.spec = spec
        self.settings = settings or LocalModelSettings()
        self._executor = executor
        self._model_factory = model_factory
        self._capacity = capacity

    async def stream_completion(
        self,
        messages: Sequence[Message],
        temperature: float,
    ) -> AsyncIterator[str]:
        request = CompletionRequest.of(messages, temperature)
        engine = LocalGenerationEngine(
            self.spec.model_path, self.settings, self._model_factory,
        )

        def work(channel: TokenStream) -> None:
            engine.run(
                request.messages, request.temperature,
                channel.send, lambda: channel.closed,
            )

        stream = stream_from_worker(work, self._executor, self._capacity)
        try:
            async for fragment in stream:
                yield fragment
        finally:
            await stream.aclose()


def build_provider(
    config: AppConfig,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Provider:
    """Construct the provider selected by *config*.

    Raises ``ConfigError`` or ``ModelLoadError`` before any network or
    model work starts.
    """
    spec = resolve_provider(config)
    if isinstance(spec, LocalSpec):
        _logger.debug("Using local provider: %s", spec.model_path)
        return LocalProvider(spec, config.local)
    _logger.debug("Using remote provider: %s model=%s", spec.endpoint, spec.model_id)
    return RemoteProvider(spec, timeout=config.request_timeout, transport=transport)
