"""WebSocket adapter that forwards session state changes to UI clients."""

import asyncio
import json
import logging
from collections.abc import AsyncIterable

from websockets.asyncio.server import ServerConnection, serve
from websockets.exceptions import ConnectionClosedError

from .ble import DeviceDescriptor
from .events import DATA_POINTS, DEVICES, STATE, StateChange
from .parser import Measurement

logger = logging.getLogger(__name__)


def _encode_measurement(measurement: Measurement) -> dict[str, int | float]:
    return {
        "bpm": measurement.heart_rate_value,
        "energy": measurement.expended_energy,
        "offset": measurement.offset_seconds,
    }


def _encode_device(device: DeviceDescriptor) -> dict[str, str]:
    return {"id": device.id, "name": device.name}


def encode_change(change: StateChange) -> dict:
    """Turn a state change into a JSON-serializable message."""
    value = change.value
    if change.name == DATA_POINTS:
        value = [_encode_measurement(m) for m in value]
    elif change.name == DEVICES:
        value = [_encode_device(d) for d in value]
    elif change.name == STATE:
        value = value.value
    return {"field": change.name, "value": value}


class SessionServer:
    """WebSocket server that broadcasts session changes to all connected clients.

    The latest message for each field is replayed to clients that connect
    later, so a fresh UI starts from the current state.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 8765,
        broadcast_timeout: float = 0.5,
    ):
        self.host = host
        self.port = port
        self._broadcast_timeout = broadcast_timeout
        self._clients: set[ServerConnection] = set()
        self._latest: dict[str, str] = {}
        self._server = None

    def _client_info(self, websocket: ServerConnection) -> str:
        """Get client info string for logging."""
        addr = websocket.remote_address
        if addr:
            return f"{addr[0]}:{addr[1]}"
        return "unknown"

    async def _handler(self, websocket: ServerConnection) -> None:
        """Handle a WebSocket connection."""
        self._clients.add(websocket)
        logger.info("Client connected: %s (%d total)", self._client_info(websocket), len(self._clients))
        try:
            for data in list(self._latest.values()):
                await websocket.send(data)
            async for _ in websocket:
                pass  # Clients only listen
        except ConnectionClosedError:
            pass  # Client disconnected abruptly, this is normal
        finally:
            self._clients.discard(websocket)
            logger.info("Client disconnected: %s (%d total)", self._client_info(websocket), len(self._clients))

    async def broadcast(self, message: dict) -> None:
        """Broadcast a message to all connected clients."""
        if not self._clients:
            return
        # Snapshot clients to avoid RuntimeError if set changes during iteration
        clients = list(self._clients)
        data = json.dumps(message)
        try:
            results = await asyncio.wait_for(
                asyncio.gather(
                    *[client.send(data) for client in clients],
                    return_exceptions=True,
                ),
                timeout=self._broadcast_timeout,
            )
            self._remove_failed_clients(clients, results)
        except TimeoutError:
            logger.warning("Broadcast timeout, slow client(s) skipped")

    def _remove_failed_clients(self, clients: list[ServerConnection], results: list) -> None:
        """Remove clients that failed to receive a message."""
        for client, result in zip(clients, results, strict=True):
            if isinstance(result, Exception):
                self._clients.discard(client)
                logger.debug("Removed failed client: %s", result)

    async def publish(self, change: StateChange) -> None:
        """Broadcast a session state change and remember it for new clients."""
        message = encode_change(change)
        self._latest[change.name] = json.dumps(message)
        await self.broadcast(message)

    async def pump(self, events: AsyncIterable[StateChange]) -> None:
        """Forward every change from ``events`` until the channel closes."""
        async for change in events:
            await self.publish(change)
        logger.debug("Event channel closed")

    async def broadcast_status(self, status: str, device: str | None = None) -> None:
        """Broadcast a progress message (scanning, binding)."""
        msg = {"status": status}
        if device:
            msg["device"] = device
        await self.broadcast(msg)

    async def start(self) -> None:
        """Start the WebSocket server."""
        self._server = await serve(self._handler, self.host, self.port)
        logger.debug("Server started on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Stop the WebSocket server."""
        if self._server:
            self._server.close()
            await self._server.wait_closed()
            logger.debug("Server stopped")

    @property
    def client_count(self) -> int:
        """Number of connected clients."""
        return len(self._clients)
