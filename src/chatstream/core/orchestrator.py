"""Orchestrator: history → provider → UI events → history.

Owns no generation logic.  For each user message it picks a provider from
configuration, streams the reply while forwarding every fragment to the
EventBus, and commits the assistant turn only after the stream ends.
"""

from __future__ import annotations

import contextlib
import logging
from typing import Any, Callable

from chatstream.config import AppConfig
from chatstream.core.history import ConversationHistory
from chatstream.events.bus import EventBus
from chatstream.llm.provider import Provider, build_provider
from chatstream.types import ChatEvent, EventType, Message

_logger = logging.getLogger(__name__)

ProviderFactory = Callable[[AppConfig], Provider]


class ConversationOrchestrator:
    """Runs chat turns against the configured provider.

    Parameters
    ----------
    config:
        Application config (provider choice, temperature, system prompt).
    history:
        Shared conversation log.  A fresh one is created if omitted.
    event_bus:
        Receives ``chat.token`` / ``chat.done`` / ``chat.error`` events.
    provider_factory:
        Builds the provider for each call.  Defaults to ``build_provider``.
    """

    def __init__(
        self,
        config: AppConfig,
        history: ConversationHistory | None = None,
        event_bus: EventBus | None = None,
        provider_factory: ProviderFactory = build_provider,
    ) -> None:
        self.config = config
        self.history = history or ConversationHistory()
        self.event_bus = event_bus or EventBus()
        self._provider_factory = provider_factory

    async def send_message(self, text: str) -> str:
        """Send *text* as the next user turn and return the full reply.

        Exactly one of ``chat.done`` or ``chat.error`` is emitted.  On error
        the exception is re-raised and no assistant turn is recorded.
        """
        try:
            provider = self._provider_factory(self.config)
        except Exception as e:
            _logger.warning("Could not build provider: %s", e)
            await self._emit(EventType.CHAT_ERROR, {"error": str(e)})
            raise

        self.history.append(Message.user(text))
        messages = [Message.system(self.config.system_prompt), *self.history.snapshot()]

        parts: list[str] = []
        try:
            async with contextlib.aclosing(
                provider.stream_completion(messages, self.config.temperature)
            ) as stream:
                async for token in stream:
                    parts.append(token)
                    await self._emit(EventType.CHAT_TOKEN, {"token": token})
        except Exception as e:
            _logger.warning("Completion failed after %d fragments: %s", len(parts), e)
            await self._emit(EventType.CHAT_ERROR, {"error": f"Stream error: {e}"})
            raise

        response = "".join(parts)
        self.history.append(Message.assistant(response))
        await self._emit(EventType.CHAT_DONE, {"response": response})
        return response

    async def _emit(self, event_type: EventType, data: dict[str, Any]) -> None:
        await self.event_bus.emit(ChatEvent(type=event_type, data=data))
