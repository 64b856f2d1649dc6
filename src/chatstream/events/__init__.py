"""Event bus for decoupling the conversation core from the UI."""

from chatstream.events.bus import EventBus

__all__ = ["EventBus"]
