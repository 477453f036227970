"""Asynchronous JSON-RPC transports over HTTP, Unix sockets, WebSocket and EIP-1193 providers."""

__version__ = "0.1.0"

__all__ = ["base", "recording", "batch", "either", "http", "ipc", "ws", "eip1193"]