"""
Downstream relay to the consumer application.

A single consumer connects to the relay port and receives every decoded
report as one JSON line. A new consumer connection replaces the previous
one.
"""
import asyncio
import json
import logging
from typing import Optional

from config import settings

logger = logging.getLogger(__name__)


def format_hex(frame: bytes) -> str:
    """Space separated hex bytes, e.g. '7e 01 00'"""
    return ' '.join(f'{b:02x}' for b in frame)


class RelayClientProtocol(asyncio.Protocol):
    """Connection from the consumer application"""

    def __init__(self, relay: 'DownstreamRelay'):
        self.relay = relay
        self.transport = None
        self.peername = None

    def connection_made(self, transport):
        self.transport = transport
        self.peername = transport.get_extra_info('peername')
        self.relay.attach(self)

    def connection_lost(self, exc):
        self.relay.detach(self)

    def data_received(self, data):
        # The consumer does not send anything the gateway acts on
        logger.debug(f"Ignoring {len(data)} bytes from relay consumer {self.peername}")


class DownstreamRelay:
    """Relay listener holding at most one consumer connection"""

    def __init__(self, host: str = None, port: int = None):
        self.host = host if host is not None else settings.CLIENT_HOST
        self.port = port if port is not None else settings.CLIENT_PORT
        self.server = None
        self.consumer: Optional[RelayClientProtocol] = None
        self.stats = {
            'forwarded': 0,
            'dropped': 0,
        }

    async def start(self):
        loop = asyncio.get_running_loop()
        self.server = await loop.create_server(
            lambda: RelayClientProtocol(self),
            self.host,
            self.port,
            reuse_address=True,
        )
        logger.info(f"Relay listening on {self.host}:{self.bound_port}")

    async def stop(self):
        if self.consumer and not self.consumer.transport.is_closing():
            self.consumer.transport.close()
        if self.server:
            self.server.close()
            await self.server.wait_closed()
        logger.info("Relay stopped")

    @property
    def bound_port(self) -> Optional[int]:
        if not self.server or not self.server.sockets:
            return None
        return self.server.sockets[0].getsockname()[1]

    @property
    def connected(self) -> bool:
        return self.consumer is not None and not self.consumer.transport.is_closing()

    def attach(self, consumer: RelayClientProtocol):
        previous = self.consumer
        self.consumer = consumer
        logger.info(f"Relay consumer connected from {consumer.peername}")
        if previous and not previous.transport.is_closing():
            logger.info(f"Replacing relay consumer {previous.peername}")
            previous.transport.close()

    def detach(self, consumer: RelayClientProtocol):
        if self.consumer is consumer:
            self.consumer = None
            logger.info(f"Relay consumer {consumer.peername} disconnected")

    def send(self, payload: bytes) -> bool:
        """Write bytes to the current consumer. False when none is connected"""
        if not self.connected:
            self.stats['dropped'] += 1
            return False
        self.consumer.transport.write(payload)
        self.stats['forwarded'] += 1
        return True

    def forward(self, frame: bytes, report) -> bool:
        """Send a decoded report with its raw frame as one JSON line"""
        message = {
            'raw': frame.hex(),
            'hex': format_hex(frame),
            'parsed': report.model_dump(mode='json', by_alias=True),
        }
        sent = self.send((json.dumps(message) + '\n').encode('utf-8'))
        if not sent:
            logger.debug("No relay consumer connected, report not forwarded")
        return sent
