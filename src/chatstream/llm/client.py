"""Async client for OpenAI-compatible streaming chat completions.

Works with OpenAI, LM Studio, Ollama's ``/v1`` API and any other server
that speaks the Chat Completions SSE protocol.  Uses ``httpx.AsyncClient``.
"""

from __future__ import annotations

import logging
import time
from typing import Any, AsyncGenerator, Sequence

import httpx

from chatstream.errors import TransportError
from chatstream.types import Message

from .sse import SSEDecoder

_logger = logging.getLogger(__name__)


def build_payload(
    model_id: str,
    messages: Sequence[Message],
    temperature: float,
) -> dict[str, Any]:
    """Request body for ``POST /chat/completions``.  Messages map 1:1, in order."""
    return {
        "model": model_id,
        "messages": [m.to_dict() for m in messages],
        "temperature": temperature,
        "stream": True,
    }


class RemoteCompletionClient:
    """Streams chat completions from one endpoint.

    Parameters
    ----------
    endpoint:
        Base URL such as ``https://api.openai.com/v1``.
    credential:
        Sent as ``Authorization: Bearer <credential>``.  Omitted when empty.
    model_id:
        Model name placed in every request.
    timeout:
        Overall request timeout in seconds.
    transport:
        Optional httpx transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        endpoint: str,
        credential: str,
        model_id: str,
        timeout: float = 120,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.model_id = model_id

        headers = {"Content-Type": "application/json"}
        if credential:
            headers["Authorization"] = f"Bearer {credential}"

        self._client = httpx.AsyncClient(
            base_url=self.endpoint,
            headers=headers,
            timeout=httpx.Timeout(timeout, connect=30),
            transport=transport,
        )

    async def stream_chat(
        self,
        messages: Sequence[Message],
        temperature: float,
    ) -> AsyncGenerator[str, None]:
        """Yield text fragments, one per network chunk that carried content.

        Raises ``TransportError`` for a non-success status (no retry) or a
        network failure, possibly after some fragments were yielded.
        """
        payload = build_payload(self.model_id, messages, temperature)
        decoder = SSEDecoder()
        start = time.monotonic()
        fragments = 0

        _logger.debug(
            "POST %s/chat/completions model=%s messages=%d",
            self.endpoint, self.model_id, len(messages),
        )
        try:
            async with self._client.stream(
                "POST", "/chat/completions", json=payload,
            ) as resp:
                if not resp.is_success:
                    await resp.aread()
                    _logger.warning(
                        "Completion API returned %d", resp.status_code,
                    )
                    raise TransportError.from_status(resp.status_code, resp.text)

                async for chunk in resp.aiter_bytes():
                    text = decoder.feed(chunk)
                    if text:
                        fragments += 1
                        yield text
                    if decoder.done:
                        break
                else:
                    text = decoder.finish()
                    if text:
                        fragments += 1
                        yield text
        except httpx.HTTPError as e:
            _logger.warning("Completion stream failed: %s", e)
            raise TransportError(f"Stream error: {e}") from e

        _logger.debug(
            "Stream finished: %d fragments in %.0f ms",
            fragments, (time.monotonic() - start) * 1000,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
