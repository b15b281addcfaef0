"""Entry point for pulse-session."""

import argparse
import asyncio
import logging
import signal

from .ble import BleakTransport, DeviceDescriptor
from .config import Config, load_config
from .errors import DiscoveryFailed
from .log import setup_logging
from .server import SessionServer
from .session import HeartRateSession, SessionState

logger = logging.getLogger(__name__)

# Shutdown event for graceful termination
_shutdown_event: asyncio.Event | None = None


def _signal_handler() -> None:
    """Handle shutdown signals."""
    if _shutdown_event:
        logger.info("Shutdown requested...")
        _shutdown_event.set()


def _filter_description(name_filter: str | None) -> str:
    """Return description suffix for filter-aware messages."""
    return f" matching '{name_filter}'" if name_filter else ""


def _prompt_device_selection(devices: list[DeviceDescriptor]) -> DeviceDescriptor:
    """Prompt user to select a device from the list."""
    print("Found devices:")
    for i, device in enumerate(devices, 1):
        print(f"  {i}. {device.name} ({device.id})")

    while True:
        choice = input("Select device [1]: ").strip() or "1"
        try:
            idx = int(choice) - 1
            if 0 <= idx < len(devices):
                return devices[idx]
        except ValueError:
            pass
        print("Invalid selection, try again.")


async def discover_until_found(
    session: HeartRateSession,
    name_filter: str | None,
    server: SessionServer,
    retry_delay: float,
) -> DeviceDescriptor | None:
    """Run discovery repeatedly until a device is found."""
    desc = _filter_description(name_filter)

    while not (_shutdown_event and _shutdown_event.is_set()):
        await server.broadcast_status("scanning", None)
        logger.info("Scanning for HR devices%s...", desc)

        try:
            devices = await session.discover()
        except DiscoveryFailed as e:
            logger.warning("%s, retrying in %.0fs...", e, retry_delay)
            await asyncio.sleep(retry_delay)
            continue

        if devices:
            # Auto-select if single device or filter was used
            if len(devices) == 1 or name_filter:
                logger.info("Found: %s (%s)", devices[0].name, devices[0].id)
                return devices[0]
            return _prompt_device_selection(devices)

        logger.warning("No HR devices%s found, retrying in %.0fs...", desc, retry_delay)
        await asyncio.sleep(retry_delay)

    return None


async def run(
    config: Config,
    host: str,
    port: int,
    device: str | None,
    name_filter: str | None,
    stacking_count: int = 30,
) -> None:
    """Run a heart rate session and forward its changes to WebSocket clients."""
    global _shutdown_event
    _shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    # Start server first so clients can connect during scanning
    server = SessionServer(
        host=host,
        port=port,
        broadcast_timeout=config.server.broadcast_timeout,
    )
    await server.start()
    logger.info("WebSocket server running on ws://%s:%d", host, port)

    transport = BleakTransport(
        scan_timeout=config.ble.scan_timeout,
        connect_timeout=config.ble.connect_timeout,
        name_filter=name_filter,
    )
    session = HeartRateSession(transport, stacking_count=stacking_count)
    session.events.attach(loop)
    pump_task = asyncio.create_task(server.pump(session.events))

    try:
        if device:
            target = DeviceDescriptor(id=device, name=device)
        else:
            target = await discover_until_found(session, name_filter, server, config.ble.scan_timeout)

        # Shutdown requested during scanning
        if target is None:
            return

        await server.broadcast_status("binding", target.name)
        state = await session.bind(target)
        if state is not SessionState.SUBSCRIBED:
            logger.error("Could not subscribe to %s: %s", target.name, session.error)
            return

        await session.fetch_body_location()

        # Forward measurements until shutdown or the channel ends
        shutdown_task = asyncio.create_task(_shutdown_event.wait())
        await asyncio.wait([pump_task, shutdown_task], return_when=asyncio.FIRST_COMPLETED)
        shutdown_task.cancel()
        try:
            await shutdown_task
        except asyncio.CancelledError:
            pass
    finally:
        await session.dispose()
        try:
            # Dispose closes the channel, so the pump drains and returns
            await pump_task
        except Exception as e:
            logger.error("Event forwarding failed: %s", e)
        finally:
            await server.stop()
        logger.info("Shutdown complete")


def main() -> None:
    """CLI entry point."""
    config = load_config()

    parser = argparse.ArgumentParser(description="BLE Heart Rate session with WebSocket output")
    parser.add_argument("-H", "--host", default=config.server.host, help="Server host")
    parser.add_argument("-p", "--port", type=int, default=config.server.port, help="Server port")
    parser.add_argument("-d", "--device", default=config.device.address or None, help="Device address (skip scanning)")
    parser.add_argument(
        "-n",
        "--name",
        default=config.device.name_filter or None,
        help="Filter by device name (case-insensitive, auto-connects to first match)",
    )
    parser.add_argument(
        "-c",
        "--count",
        type=int,
        default=config.history.stacking_count,
        help="Number of measurements kept in the history",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.count < 1:
        parser.error("--count must be at least 1")

    # Setup logging before anything else
    log_level = "DEBUG" if args.verbose else config.log.level
    setup_logging(log_level, config.log.file or None)

    asyncio.run(run(config, args.host, args.port, args.device, args.name, args.count))


if __name__ == "__main__":
    main()
