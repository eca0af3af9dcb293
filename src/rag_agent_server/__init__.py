"""Streaming chat agent server with retrieval, routing and tool calling."""

__version__ = "0.1.0"
