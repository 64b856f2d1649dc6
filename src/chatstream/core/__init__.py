"""Conversation state and orchestration for chatstream."""

from chatstream.core.history import ConversationHistory
from chatstream.core.orchestrator import ConversationOrchestrator

__all__ = ["ConversationHistory", "ConversationOrchestrator"]
