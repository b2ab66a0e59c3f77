import logging
import os
from logging.config import dictConfig

from config import settings
from logs.async_logging import AsyncLoggingManager, create_rotating_file_handler, create_stream_handler

# Third party loggers kept at WARNING so frame dumps stay readable
QUIET_LOGGERS = ('asyncio',)


def log_format(session_id_run) -> str:
    return f'%(asctime)s %(name)-12s %(levelname)-8s [SESSION_ID: {session_id_run}] %(message)s'


def configure_logging(session_id_run, use_async=None):
    """
    Install the gateway logging configuration.

    Console output always; a rotating file in production. With async
    logging the handlers run on a QueueListener thread so the event loop
    never blocks on log I/O.
    """
    if use_async is None:
        use_async = settings.ASYNC_LOGGING
    log_level = logging.INFO if settings.PROD else logging.DEBUG

    if settings.PROD:
        log_dir = os.path.dirname(settings.LOG_FILE)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

    if use_async and settings.PROD:
        async_manager = AsyncLoggingManager()
        formatter = logging.Formatter(log_format(session_id_run))

        stream_handler = create_stream_handler(formatter=formatter)
        stream_handler.setLevel(log_level)
        file_handler = create_rotating_file_handler(
            filename=settings.LOG_FILE,
            max_bytes=1024 * 1024 * 5,  # 5 MB
            backup_count=10,
            formatter=formatter
        )
        file_handler.setLevel(log_level)

        queue_handler = async_manager.setup_async_logging([stream_handler, file_handler])

        LOGGING_CONFIG = dict(
            version=1,
            disable_existing_loggers=False,
            handlers={
                'queue': {
                    '()': lambda: queue_handler,
                },
            },
            root={
                'handlers': ['queue'],
                'level': log_level,
            },
        )
    else:
        handlers = ['h', 'file'] if settings.PROD else ['h']

        LOGGING_CONFIG = dict(
            version=1,
            disable_existing_loggers=False,
            formatters={
                'f': {
                    'format': log_format(session_id_run),
                },
            },
            handlers={
                'h': {
                    'class': 'logging.StreamHandler',
                    'formatter': 'f',
                    'level': log_level,
                },
            },
            root={
                'handlers': handlers,
                'level': log_level,
            },
        )

        if settings.PROD:
            LOGGING_CONFIG['handlers']['file'] = {
                'class': 'logging.handlers.RotatingFileHandler',
                'filename': settings.LOG_FILE,
                'formatter': 'f',
                'level': log_level,
                'maxBytes': 1024 * 1024 * 5,  # 5 MB
                'backupCount': 10,
            }

    LOGGING_CONFIG['loggers'] = {name: {'level': 'WARNING'} for name in QUIET_LOGGERS}
    dictConfig(LOGGING_CONFIG)
