"""In-memory, append-only conversation log."""

from __future__ import annotations

import threading
from typing import Iterator

from chatstream.types import Message


class ConversationHistory:
    """Ordered messages shared by all calls.

    Access is serialized by one lock held only for the duration of a single
    append or read, never across an await.
    """

    def __init__(self) -> None:
        self._messages: list[Message] = []
        self._lock = threading.Lock()

    def append(self, message: Message) -> None:
        with self._lock:
            self._messages.append(message)

    def snapshot(self) -> list[Message]:
        """Copy of the log at this instant."""
        with self._lock:
            return list(self._messages)

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self.snapshot())
