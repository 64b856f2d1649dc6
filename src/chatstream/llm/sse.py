"""Incremental decoder for OpenAI-style chat completion SSE streams.

Only ``data: `` lines matter.  Each carries either the ``[DONE]`` sentinel
or a JSON chunk of the form ``{"choices": [{"delta": {"content": ...}}]}``.
Lines are buffered until their terminating newline arrives, so the output
does not depend on where the network splits the byte stream.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any

from chatstream.errors import ProtocolError

_logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


def parse_data_line(payload: str) -> str | None:
    """Extract the first choice's delta content from one ``data:`` payload.

    Raises ``ProtocolError`` if *payload* is not a JSON object.
    """
    try:
        data: Any = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"invalid JSON in SSE data line: {e}") from e
    if not isinstance(data, dict):
        raise ProtocolError("SSE data line is not a JSON object")

    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    choice = choices[0]
    if not isinstance(choice, dict):
        return None
    delta = choice.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    return content if isinstance(content, str) else None


class SSEDecoder:
    """Turns raw body chunks into text deltas.

    ``feed()`` returns the concatenated content of every line completed by
    the chunk, or ``None`` when the chunk completed no content-bearing line.
    """

    def __init__(self) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""
        self.done = False

    def feed(self, chunk: bytes) -> str | None:
        if self.done:
            return None
        self._pending += self._utf8.decode(chunk)
        *lines, self._pending = self._pending.split("\n")
        return self._consume(lines)

    def finish(self) -> str | None:
        """Flush a trailing line that had no newline before end of body."""
        if self.done:
            return None
        tail = self._pending + self._utf8.decode(b"", final=True)
        self._pending = ""
        return self._consume([tail])

    def _consume(self, lines: list[str]) -> str | None:
        parts: list[str] = []
        for line in lines:
            line = line.rstrip("\r")
            if not line.startswith(DATA_PREFIX):
                continue
            payload = line[len(DATA_PREFIX):]
            if payload.strip() == DONE_SENTINEL:
                self.done = True
                self._pending = ""
                break
            try:
                content = parse_data_line(payload)
            except ProtocolError as e:
                _logger.debug("Dropping malformed SSE line: %s", e)
                continue
            if content:
                parts.append(content)
        return "".join(parts) if parts else None
