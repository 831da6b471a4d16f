"""Normalize tool calls, terminal reasons and event streams from LLM servers."""

__version__ = "0.1.0"
