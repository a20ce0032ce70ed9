"""Real-time observer layer (aiohttp)."""

from .server import ObserverServer, WebSocketObserver, setup_routes

__all__ = ["ObserverServer", "WebSocketObserver", "setup_routes"]
