"""
Production-ready GPS Tracker TCP Server
Accepts JT808 and Queclink devices, decodes their frames, acknowledges
JT808 commands and forwards every report to the downstream relay
"""
import asyncio
import logging
import signal
import socket
import time
from collections import defaultdict
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from config import settings
from logs.async_logging import AsyncLoggingManager
from tcp_server.protocols import ProtocolFactory, protocol_factory
from tcp_server.protocols.jt808_framing import FRAME_MARKER
from tcp_server.protocols.queclink import BINARY_HEADERS
from tcp_server.relay import DownstreamRelay

logger = logging.getLogger(__name__)

LOCAL_ADDRESSES = ('127.0.0.1', 'localhost', '::1')
WHITESPACE = b'\r\n \t'
HEX_DIGITS = frozenset(b'0123456789abcdefABCDEF')
RESYNC_BYTES = (FRAME_MARKER, ord('+'), ord('\n'))


def _text_report_end(buffer: bytes) -> Tuple[int, int]:
    """End of an ASCII report: '$' or a line break, whichever comes first"""
    dollar = buffer.find(b'$')
    newline = buffer.find(b'\n')
    if newline != -1 and (dollar == -1 or newline < dollar):
        return newline + 1, len(buffer[:newline].rstrip(b'\r'))
    if dollar != -1:
        return dollar + 1, dollar + 1
    return -1, -1


def _hex_run(buffer: bytes) -> int:
    for index, byte in enumerate(buffer):
        if byte not in HEX_DIGITS:
            return index
    return len(buffer)


def _resync(buffer: bytes) -> bytes:
    """Drop bytes up to the next possible frame start"""
    starts = [index for index in (buffer.find(bytes([b]), 1) for b in RESYNC_BYTES) if index != -1]
    dropped = min(starts) if starts else len(buffer)
    logger.debug(f"Skipped {dropped} bytes outside any frame")
    return buffer[dropped:]


def extract_frames(buffer: bytes) -> Tuple[List[bytes], bytes]:
    """
    Split a connection buffer into complete frames.

    JT808 frames run from 0x7E to the next 0x7E, ASCII Queclink reports up
    to '$' or the end of the line, binary Queclink frames up to CRLF and hex
    encoded reports are a line of hex digits. Anything else is skipped up to
    the next 0x7E, '+' or newline. Returns the frames and the unconsumed
    remainder.
    """
    frames = []
    while buffer:
        if buffer[0] == FRAME_MARKER:
            end = buffer.find(bytes([FRAME_MARKER]), 1)
            if end == -1:
                break
            if end == 1:
                # Two adjacent markers: the first closed a frame we never saw
                buffer = buffer[1:]
                continue
            frames.append(buffer[:end + 1])
            buffer = buffer[end + 1:]
        elif buffer.startswith(b'+'):
            if buffer[:4] in BINARY_HEADERS and buffer[4:5] != b':':
                end = buffer.find(b'\r\n')
                if end == -1:
                    break
                consumed = frame_size = end + 2
            else:
                consumed, frame_size = _text_report_end(buffer)
                if consumed == -1:
                    break
            frames.append(buffer[:frame_size])
            buffer = buffer[consumed:]
        elif buffer[:1] in WHITESPACE:
            buffer = buffer.lstrip(WHITESPACE)
        else:
            end = _hex_run(buffer)
            if end == len(buffer):
                break
            if end > 0 and buffer[end] in b'\r\n':
                frames.append(buffer[:end])
                buffer = buffer[end:]
            else:
                buffer = _resync(buffer)
    return frames, buffer


def report_device_id(report) -> Optional[str]:
    """Device identifier of a decoded report, if it carries one"""
    header = getattr(report, 'header', None)
    if header is not None:
        return header.device_id
    data = getattr(report, 'data', None)
    return getattr(data, 'unique_id', None)


class ConnectionManager:
    """Manage connection limits and tracking"""

    def __init__(self, max_per_ip: int = None):
        self.max_per_ip = max_per_ip if max_per_ip is not None else settings.MAX_CONNECTIONS_PER_IP
        self.connections_by_ip = defaultdict(set)
        # Whitelist for testing/localhost - never limited
        self.whitelisted_ips = set(LOCAL_ADDRESSES)

    def can_connect(self, peername) -> bool:
        """Check if connection is allowed"""
        if not peername:
            return False

        ip = peername[0]
        if ip in self.whitelisted_ips:
            return True

        if len(self.connections_by_ip[ip]) >= self.max_per_ip:
            logger.warning(f"Connection limit exceeded for IP: {ip}")
            return False

        return True

    def add_connection(self, peername, conn_id):
        """Register a new connection"""
        if peername:
            self.connections_by_ip[peername[0]].add(conn_id)

    def remove_connection(self, peername, conn_id):
        """Remove a connection"""
        if peername:
            ip = peername[0]
            self.connections_by_ip[ip].discard(conn_id)
            if not self.connections_by_ip[ip]:
                del self.connections_by_ip[ip]


class GPSClientProtocol(asyncio.Protocol):
    """Handle an individual tracker connection"""

    def __init__(self, server: 'GPSTrackerTCPServer'):
        self.server = server
        self.transport = None
        self.device_id = None
        self.protocol_name = None
        self.buffer = b""
        self.peername = None
        self.conn_id = None
        self.last_activity = time.time()
        self.message_count = 0
        self.timeout_task = None

    def connection_made(self, transport):
        """Handle new connection"""
        self.transport = transport
        self.peername = transport.get_extra_info('peername')
        self.conn_id = f"{self.peername}_{time.time()}"

        if not self.server.conn_manager.can_connect(self.peername):
            logger.warning(f"Connection rejected from {self.peername}")
            transport.close()
            return

        if len(self.server.active_connections) >= self.server.max_connections:
            logger.warning(f"Max connections reached, rejecting {self.peername}")
            transport.close()
            return

        self.server.conn_manager.add_connection(self.peername, self.conn_id)
        self.server.active_connections[self.conn_id] = self
        self.server.stats['connections_total'] += 1

        sock = transport.get_extra_info('socket')
        if sock is not None:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        if self.peername and self.peername[0] not in LOCAL_ADDRESSES:
            logger.info(f"Tracker connected from {self.peername} (total: {len(self.server.active_connections)})")
        else:
            logger.debug(f"Local connection from {self.peername}")

        self.timeout_task = asyncio.create_task(self._monitor_timeout())

    def connection_lost(self, exc):
        """Handle connection loss"""
        if exc:
            logger.info(f"Tracker {self.device_id or self.peername} disconnected: {exc}")
        else:
            logger.info(f"Tracker {self.device_id or self.peername} disconnected")

        if self.timeout_task:
            self.timeout_task.cancel()

        self.server.active_connections.pop(self.conn_id, None)
        self.server.conn_manager.remove_connection(self.peername, self.conn_id)

    def data_received(self, data):
        """Handle incoming bytes, decoding every complete frame"""
        self.last_activity = time.time()

        if len(self.buffer) + len(data) > self.server.max_buffer_size:
            logger.warning(f"Buffer overflow from {self.peername}, closing connection")
            self.server.stats['errors'] += 1
            self.transport.close()
            return

        frames, self.buffer = extract_frames(self.buffer + data)
        for frame in frames:
            self.process_message(frame)

    def process_message(self, frame: bytes):
        """Decode one frame, write back its acknowledgement and relay the report"""
        self.message_count += 1
        self.server.stats['messages_received'] += 1
        logger.debug(f"Frame #{self.message_count} from {self.peername}: {frame[:64].hex()}")

        result = self.server.factory.decode(frame)
        if not result.ok:
            self.server.stats['errors'] += 1
            logger.warning(f"Dropped {result.protocol} frame from {self.peername}: {result.error}")
            return

        self.server.stats['reports_decoded'] += 1
        self.protocol_name = result.protocol
        device_id = report_device_id(result.report)
        if device_id:
            if not self.device_id:
                self.device_id = device_id
            elif self.device_id != device_id:
                logger.warning(f"Device ID changed on {self.peername}: {self.device_id} -> {device_id}")
                self.device_id = device_id

        if result.acknowledgement and not self.transport.is_closing():
            self.transport.write(result.acknowledgement)
            self.server.stats['acks_sent'] += 1

        if self.server.relay is not None:
            self.server.relay.forward(frame, result.report)

    async def _monitor_timeout(self):
        """Monitor connection timeout"""
        timeout = self.server.connection_timeout
        try:
            while True:
                await asyncio.sleep(min(30, timeout))

                if time.time() - self.last_activity > timeout:
                    logger.warning(f"Connection timeout for {self.peername}")
                    if self.transport and not self.transport.is_closing():
                        self.transport.close()
                    break

        except asyncio.CancelledError:
            pass


class GPSTrackerTCPServer:
    """Production-ready TCP server for GPS trackers"""

    def __init__(self, host: str = None, port: int = None,
                 relay: Optional[DownstreamRelay] = None,
                 factory: ProtocolFactory = None):
        self.host = host if host is not None else settings.DEVICE_HOST
        self.port = port if port is not None else settings.DEVICE_PORT
        self.relay = relay
        self.factory = factory or protocol_factory
        self.max_connections = settings.MAX_CONNECTIONS
        self.max_buffer_size = settings.MAX_BUFFER_SIZE
        self.connection_timeout = settings.CONNECTION_TIMEOUT
        self.server = None
        self.active_connections = {}
        self.conn_manager = ConnectionManager()
        self.stats = {
            'start_time': None,
            'connections_total': 0,
            'messages_received': 0,
            'reports_decoded': 0,
            'acks_sent': 0,
            'errors': 0,
        }
        self.shutdown_event = asyncio.Event()

    async def start(self):
        """Bind the listener and start accepting trackers"""
        self.stats['start_time'] = datetime.now()
        loop = asyncio.get_running_loop()

        self.server = await loop.create_server(
            lambda: GPSClientProtocol(self),
            self.host,
            self.port,
            reuse_address=True,
        )

        logger.info(f"GPS TCP Server started on {self.host}:{self.bound_port}")
        logger.info(f"Configuration:")
        logger.info(f"  - Protocols: {', '.join(self.factory.get_supported_protocols())}")
        logger.info(f"  - Max connections: {self.max_connections}")
        logger.info(f"  - Max per IP: {self.conn_manager.max_per_ip}")
        logger.info(f"  - Connection timeout: {self.connection_timeout}s")

    async def serve_forever(self):
        """Run until SIGINT/SIGTERM or shutdown()"""
        if self.server is None:
            await self.start()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda: asyncio.create_task(self.shutdown()))

        await self.shutdown_event.wait()

    async def shutdown(self):
        """Graceful shutdown"""
        if self.shutdown_event.is_set():
            return
        logger.info("Shutting down GPS TCP Server...")

        for conn in list(self.active_connections.values()):
            if conn.transport and not conn.transport.is_closing():
                conn.transport.close()

        if self.server:
            self.server.close()
            await self.server.wait_closed()

        self.shutdown_event.set()
        logger.info("GPS TCP Server stopped")

    @property
    def bound_port(self) -> Optional[int]:
        if not self.server or not self.server.sockets:
            return None
        return self.server.sockets[0].getsockname()[1]

    def get_status(self):
        """Get detailed server status"""
        uptime = datetime.now() - self.stats['start_time'] if self.stats['start_time'] else timedelta(0)

        return {
            'running': self.server is not None and self.server.is_serving(),
            'uptime': str(uptime),
            'active_connections': len(self.active_connections),
            'total_messages': self.stats['messages_received'],
            'reports_decoded': self.stats['reports_decoded'],
            'acks_sent': self.stats['acks_sent'],
            'errors': self.stats['errors'],
            'relay_connected': self.relay.connected if self.relay else False,
            'log_records_dropped': AsyncLoggingManager().dropped,
            'connections': [
                {
                    'id': conn_id,
                    'device_id': conn.device_id,
                    'protocol': conn.protocol_name,
                    'peername': str(conn.peername),
                    'messages': conn.message_count,
                    'last_activity': datetime.fromtimestamp(conn.last_activity).isoformat()
                }
                for conn_id, conn in self.active_connections.items()
            ]
        }
