"""Error taxonomy for completion calls.

Config and model-load errors are raised before any fragment is produced.
Context and transport errors end a stream after zero or more fragments.
Protocol errors never leave the SSE decoder.
"""

from __future__ import annotations


class CompletionError(RuntimeError):
    pass


class ConfigError(CompletionError):
    """Missing credential, endpoint URL or model path."""


class ModelLoadError(CompletionError):
    """Model file missing, unreadable, or rejected by the backend."""


class ContextError(CompletionError):
    """Context allocation, tokenization, batch or decode failure."""


class TransportError(CompletionError):
    """Network failure or non-success HTTP status."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str = "",
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    @classmethod
    def from_status(cls, status_code: int, body: str) -> "TransportError":
        return cls(f"API error {status_code}: {body}", status_code, body)


class ProtocolError(CompletionError):
    """A single malformed SSE data line."""
