import atexit
import logging
import queue
import threading
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from typing import List, Optional


class GatewayQueueHandler(QueueHandler):
    """
    QueueHandler that drops records when the queue is full.

    A burst of frame dumps from many trackers must not raise inside the
    event loop, so overflow is counted instead of reported per record.
    """

    def __init__(self, log_queue: queue.Queue):
        super().__init__(log_queue)
        self.dropped = 0

    def enqueue(self, record):
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            self.dropped += 1


class AsyncLoggingManager:
    """
    Single QueueListener shared by the process.

    Records are put on a bounded queue by a GatewayQueueHandler and written
    by the listener thread, so decode and socket handling never wait on I/O.
    """

    _instance: Optional['AsyncLoggingManager'] = None
    _lock = threading.Lock()

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if not hasattr(self, '_initialized'):
            self._initialized = True
            self.queue_handler: Optional[GatewayQueueHandler] = None
            self.queue_listener: Optional[QueueListener] = None
            self.handlers: List[logging.Handler] = []
            atexit.register(self.stop)

    def setup_async_logging(
        self,
        handlers: List[logging.Handler],
        respect_handler_level: bool = True,
        max_queue_size: int = 10000,
    ) -> GatewayQueueHandler:
        """
        Start a listener writing to ``handlers`` and return the handler
        that feeds it. Calling it again replaces the previous listener.
        """
        if self.is_running():
            self.stop()

        log_queue = queue.Queue(maxsize=max_queue_size)
        self.handlers = handlers
        self.queue_handler = GatewayQueueHandler(log_queue)
        self.queue_listener = QueueListener(
            log_queue,
            *handlers,
            respect_handler_level=respect_handler_level
        )
        self.queue_listener.start()
        return self.queue_handler

    def stop(self):
        """Stop the queue listener and flush remaining records"""
        if self.queue_listener:
            self.queue_listener.stop()
            self.queue_listener = None

        for handler in self.handlers:
            handler.flush()
            handler.close()
        self.handlers = []

    def is_running(self) -> bool:
        return self.queue_listener is not None

    @property
    def dropped(self) -> int:
        return self.queue_handler.dropped if self.queue_handler else 0


def create_rotating_file_handler(
    filename: str,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 10,
    formatter: logging.Formatter = None
) -> RotatingFileHandler:
    """Rotating file handler to be driven by the queue listener"""
    handler = RotatingFileHandler(
        filename=filename,
        maxBytes=max_bytes,
        backupCount=backup_count
    )
    if formatter:
        handler.setFormatter(formatter)
    return handler


def create_stream_handler(stream=None, formatter: logging.Formatter = None) -> logging.StreamHandler:
    handler = logging.StreamHandler(stream)
    if formatter:
        handler.setFormatter(formatter)
    return handler
