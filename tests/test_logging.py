import logging
import queue
from logging.handlers import QueueHandler

import pytest

from config import settings
from logs.async_logging import AsyncLoggingManager, GatewayQueueHandler
from logs.logconfig import configure_logging


@pytest.fixture
def production_log(tmp_path, monkeypatch):
    log_file = tmp_path / "gateway" / "gateway.log"
    monkeypatch.setattr(settings, 'PROD', True)
    monkeypatch.setattr(settings, 'LOG_FILE', str(log_file))
    yield log_file
    AsyncLoggingManager().stop()
    monkeypatch.setattr(settings, 'PROD', False)
    configure_logging("reset", use_async=False)


def test_async_logging_writes_through_the_queue(production_log):
    """Records go through the queue listener into the rotating file"""
    configure_logging("abc123", use_async=True)

    root = logging.getLogger()
    assert any(isinstance(handler, QueueHandler) for handler in root.handlers)
    assert AsyncLoggingManager().is_running()

    logging.getLogger("tcp_server.test").info("Frame decoded")
    AsyncLoggingManager().stop()

    content = production_log.read_text()
    assert "[SESSION_ID: abc123]" in content
    assert "Frame decoded" in content


def test_sync_logging_in_production(production_log):
    configure_logging("sync01", use_async=False)
    logging.getLogger("tcp_server.test").warning("Checksum mismatch")

    for handler in logging.getLogger().handlers:
        handler.flush()
    assert "Checksum mismatch" in production_log.read_text()


def test_development_logging_is_console_only(monkeypatch):
    monkeypatch.setattr(settings, 'PROD', False)
    configure_logging("dev", use_async=True)

    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert all(type(handler) is logging.StreamHandler for handler in root.handlers)
    assert logging.getLogger('asyncio').level == logging.WARNING


def test_manager_is_a_singleton():
    assert AsyncLoggingManager() is AsyncLoggingManager()


def test_full_queue_drops_records_instead_of_raising():
    handler = GatewayQueueHandler(queue.Queue(maxsize=1))

    handler.handle(logging.makeLogRecord({'msg': 'first frame'}))
    handler.handle(logging.makeLogRecord({'msg': 'second frame'}))

    assert handler.dropped == 1
    assert handler.queue.get_nowait().getMessage() == 'first frame'
