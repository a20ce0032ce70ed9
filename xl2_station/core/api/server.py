"""
Observer Server - aiohttp real-time layer for the station.

Endpoints:
    GET /ws                      WebSocket event stream ({"event", "data"} frames)
    GET /api/v1/devices          Status of both devices
    GET /api/v1/devices/{kind}   Status of one device (measurement|position|xl2|gps)
    GET /api/v1/health           Platform tier and the latest health sample
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from aiohttp import WSCloseCode, WSMsgType, web

from ..broadcast_hub import BroadcastHub
from ..devices.orchestrator import DeviceOrchestrator
from ..devices.types import DeviceKind
from ..errors import ObserverError
from ..health.monitor import HealthMonitor
from ..logging_utils import get_module_logger
from ..platform_profile import PlatformProfile
from .middleware import create_error_response, error_handling_middleware

logger = get_module_logger("ObserverServer")

HUB_KEY = web.AppKey("hub", BroadcastHub)
ORCHESTRATOR_KEY = web.AppKey("orchestrator", DeviceOrchestrator)
HEALTH_KEY = web.AppKey("health_monitor", HealthMonitor)
PROFILE_KEY = web.AppKey("profile", PlatformProfile)


class WebSocketObserver:
    """BroadcastHub observer that writes events to one WebSocket."""

    def __init__(self, ws: web.WebSocketResponse) -> None:
        self._ws = ws

    async def send(self, event_name: str, payload: Dict[str, Any]) -> None:
        if self._ws.closed:
            raise ConnectionResetError("websocket closed")
        await self._ws.send_json({"event": event_name, "data": payload})


# ----------------------------------------------------------------------
# Handlers

async def websocket_handler(request: web.Request) -> web.StreamResponse:
    """GET /ws - Subscribe to the live event stream."""
    hub = request.app[HUB_KEY]
    if hub.closed:
        return create_error_response("SHUTTING_DOWN", "Station is shutting down", status=503)
    if hub.observer_count >= hub.max_clients:
        return create_error_response(
            "OBSERVER_LIMIT", f"Observer limit reached ({hub.max_clients})", status=503
        )

    ws = web.WebSocketResponse(heartbeat=30.0)
    await ws.prepare(request)

    try:
        handle = hub.subscribe(WebSocketObserver(ws))
    except ObserverError as exc:
        await ws.close(code=WSCloseCode.TRY_AGAIN_LATER, message=str(exc).encode("utf-8"))
        return ws

    try:
        async for msg in ws:
            if msg.type == WSMsgType.ERROR:
                logger.debug("WebSocket error for %s: %s", handle.observer_id, ws.exception())
                break
            # Observers are read-only; inbound frames are ignored
    finally:
        hub.unsubscribe(handle)
    return ws


async def devices_handler(request: web.Request) -> web.Response:
    """GET /api/v1/devices - Status of both devices."""
    orchestrator = request.app[ORCHESTRATOR_KEY]
    return web.json_response(
        {kind: status.to_dict() for kind, status in orchestrator.get_all_status().items()}
    )


async def device_status_handler(request: web.Request) -> web.Response:
    """GET /api/v1/devices/{kind} - Status of one device."""
    orchestrator = request.app[ORCHESTRATOR_KEY]
    try:
        kind = DeviceKind.parse(request.match_info["kind"])
    except ValueError:
        raise web.HTTPNotFound(text=f"Unknown device kind: {request.match_info['kind']}")
    return web.json_response(orchestrator.get_device_status(kind).to_dict())


async def health_handler(request: web.Request) -> web.Response:
    """GET /api/v1/health - Latest health sample."""
    monitor = request.app[HEALTH_KEY]
    profile = request.app[PROFILE_KEY]
    sample = monitor.get_last_sample()
    return web.json_response(
        {
            "platform": profile.to_dict(),
            "sample": sample.to_payload() if sample else None,
            "temperatureStatus": monitor.classify(sample).value if sample else None,
            "connectedObservers": request.app[HUB_KEY].observer_count,
        }
    )


def setup_routes(app: web.Application) -> None:
    app.router.add_get("/ws", websocket_handler)
    app.router.add_get("/api/v1/devices", devices_handler)
    app.router.add_get("/api/v1/devices/{kind}", device_status_handler)
    app.router.add_get("/api/v1/health", health_handler)


# ----------------------------------------------------------------------

class ObserverServer:
    """HTTP/WebSocket server exposing the station to observers."""

    def __init__(
        self,
        hub: BroadcastHub,
        orchestrator: DeviceOrchestrator,
        health_monitor: HealthMonitor,
        profile: PlatformProfile,
        host: str = "0.0.0.0",
        port: int = 3000,
    ) -> None:
        self.hub = hub
        self.orchestrator = orchestrator
        self.health_monitor = health_monitor
        self.profile = profile
        self.host = host
        self.port = port

        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._running = False

    def create_app(self) -> web.Application:
        app = web.Application(middlewares=[error_handling_middleware])
        app[HUB_KEY] = self.hub
        app[ORCHESTRATOR_KEY] = self.orchestrator
        app[HEALTH_KEY] = self.health_monitor
        app[PROFILE_KEY] = self.profile
        setup_routes(app)
        return app

    async def start(self) -> None:
        """Start the server (non-blocking)."""
        if self._running:
            logger.warning("Observer server already running")
            return

        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()

        self._running = True
        logger.info("Observer server listening on http://%s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Stop the server gracefully."""
        if not self._running:
            return

        logger.info("Stopping observer server...")
        if self._site:
            await self._site.stop()
            self._site = None
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

        self._running = False
        logger.info("Observer server stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"


__all__ = ["ObserverServer", "WebSocketObserver", "setup_routes"]
