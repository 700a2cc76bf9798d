"""
Logging utilities for the Wasil auth service
"""
import atexit
import logging

from app.logging.config import LoggingConfig
from app.logging.filters import CallerContextFilter, RequestContextFilter
from app.logging.handlers import flush_handlers, get_app_handler, get_audit_handler, get_local_file_handler
from app.logging.slack_handler import slack_handler

AUDIT_LOGGER_NAME = 'wasil.audit'


def _attach(logger: logging.Logger, handler: logging.Handler):
    # handlers are shared between loggers
    if not handler.filters:
        handler.addFilter(RequestContextFilter())
        handler.addFilter(CallerContextFilter())
    logger.addHandler(handler)


def get_app_logger(name: str | None = None):
    name = name or 'wasil'
    logger = logging.getLogger(name)
    if not logger.handlers:
        # central handler, or local file handler per module
        handler = get_app_handler() if LoggingConfig.FIREHOSE_ENABLED else get_local_file_handler(name.replace('.', '_'))
        _attach(logger, handler)
        logger.addHandler(slack_handler)
        logger.setLevel(logging.INFO)
        logger.propagate = False
    return logger


def init_audit_logger():
    logger = logging.getLogger(AUDIT_LOGGER_NAME)
    if not logger.handlers:
        _attach(logger, get_audit_handler())
        logger.setLevel(logging.INFO)
        logger.propagate = False
    return logger


def initialize_logging():
    is_valid, message = LoggingConfig.is_valid_config()
    if not is_valid:
        print(f"Warning: {message}")
    atexit.register(flush_handlers)
    print("Logging system initialized (wasil-auth-service)")
