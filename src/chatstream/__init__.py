"""chatstream: streaming chat completions from remote APIs or local models."""

__version__ = "0.1.0"
