#!/usr/bin/env python3
"""
Run the tracker gateway
Usage: python -m tcp_server.run_server [device_port]
"""
import asyncio
import logging
import sys
import uuid

from config import settings
from logs.async_logging import AsyncLoggingManager
from logs.logconfig import configure_logging
from tcp_server.gps_tcp_server import GPSTrackerTCPServer
from tcp_server.relay import DownstreamRelay

logger = logging.getLogger(__name__)


def device_port(argv) -> int:
    return int(argv[1]) if len(argv) > 1 else settings.DEVICE_PORT


async def run_gateway(port: int):
    relay = DownstreamRelay()
    server = GPSTrackerTCPServer(port=port, relay=relay)

    logger.info(f"Starting {settings.APP_NAME} (device port {port}, relay port {relay.port})")
    await relay.start()
    try:
        await server.serve_forever()
    finally:
        await server.shutdown()
        await relay.stop()
        status = server.get_status()
        logger.info(
            f"Gateway stopped: {status['total_messages']} frames, "
            f"{status['reports_decoded']} decoded, {status['errors']} errors"
        )


def main():
    configure_logging(uuid.uuid4().hex[:8])
    try:
        asyncio.run(run_gateway(device_port(sys.argv)))
    except KeyboardInterrupt:
        pass
    finally:
        AsyncLoggingManager().stop()


if __name__ == "__main__":
    main()
