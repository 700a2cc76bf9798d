"""
Logging handlers: buffered Kinesis Firehose delivery with local-file fallback.
"""
import logging
import os
import time
from logging.handlers import MemoryHandler

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.logging.config import LoggingConfig
from app.logging.formatters import AppLogsJSONFormatter, AuditLogsJSONFormatter

from app.config.settings import AuthConfigs
configs = AuthConfigs()

LOG_DEBUG_PRINTS = configs.LOG_DEBUG_PRINTS


def dbg(msg: str) -> None:
    """Debug print for the logging pipeline itself; enabled by LOG_DEBUG_PRINTS"""
    if LOG_DEBUG_PRINTS:
        print(msg)


class FireHoseHandler(logging.Handler):
    """Kinesis Firehose handler with exponential-backoff retries"""

    def __init__(self, stream_name: str):
        super().__init__()
        self.stream_name = stream_name
        self.client = self._create_client()
        self.retry_count = LoggingConfig.FIREHOSE_RETRY_COUNT
        self.retry_delay = LoggingConfig.FIREHOSE_RETRY_DELAY

    def _create_client(self):
        return boto3.client(
            "firehose",
            region_name=LoggingConfig.FIREHOSE_REGION_NAME,
            aws_access_key_id=LoggingConfig.FIREHOSE_ACCESS_KEY_ID,
            aws_secret_access_key=LoggingConfig.FIREHOSE_SECRET_ACCESS_KEY,
            config=Config(connect_timeout=10, read_timeout=30, retries={"max_attempts": 2}),
        )

    def emit(self, record):
        self.bulk_insert([{"Data": self.format(record)}])

    def bulk_insert(self, actions):
        if not actions:
            return True

        pending = actions
        for attempt in range(self.retry_count):
            try:
                response = self.client.put_record_batch(
                    DeliveryStreamName=self.stream_name,
                    Records=pending,
                )
                failed = response.get("FailedPutCount", 0)
                dbg(f"[Firehose:{self.stream_name}] attempt={attempt + 1} total={len(pending)} failed={failed}")
                if failed == 0:
                    return True
                # retry only the rejected records
                results = response.get("RequestResponses", [])
                pending = [record for record, result in zip(pending, results) if result.get("ErrorCode")] or pending
            except (BotoCoreError, ClientError) as e:
                dbg(f"[Firehose:{self.stream_name}] error on attempt={attempt + 1}: {e}")
            if attempt < self.retry_count - 1:
                time.sleep(self.retry_delay * (2 ** attempt))
        return False


class SimpleMemoryHandler(MemoryHandler):
    def __init__(self, capacity, target_handler, stream_name):
        super().__init__(capacity=capacity, target=target_handler)
        self.stream_name = stream_name
        self.buffer_timeout = LoggingConfig.LOG_BUFFER_TIMEOUT
        self.last_flush = time.time()

    def emit(self, record):
        super().emit(record)
        now = time.time()
        if now - self.last_flush >= self.buffer_timeout or len(self.buffer) >= self.capacity:
            dbg(f"[Buffer:{self.stream_name}] flushing size={len(self.buffer)}")
            self.flush()

    def shouldFlush(self, record):
        # flushing is driven by emit() so timeouts are honoured
        return False

    def flush(self):
        self.acquire()
        try:
            if self.target and self.buffer:
                actions = [{"Data": self.format(record)} for record in self.buffer]
                ok = self.target.bulk_insert(actions)
                dbg(f"[Buffer:{self.stream_name}] flush count={len(actions)} ok={ok}")
                self.buffer.clear()
                self.last_flush = time.time()
        finally:
            self.release()


class AppLogsMemoryHandler(SimpleMemoryHandler):
    def __init__(self, stream_name: str):
        target = FireHoseHandler(stream_name)
        super().__init__(capacity=LoggingConfig.APP_LOGS_CAPACITY, target_handler=target, stream_name=stream_name)
        fmt = AppLogsJSONFormatter()
        self.setFormatter(fmt)
        target.setFormatter(fmt)


class AuditLogsMemoryHandler(SimpleMemoryHandler):
    def __init__(self, stream_name: str):
        target = FireHoseHandler(stream_name)
        super().__init__(capacity=LoggingConfig.AUDIT_LOGS_CAPACITY, target_handler=target, stream_name=stream_name)
        fmt = AuditLogsJSONFormatter()
        self.setFormatter(fmt)
        target.setFormatter(fmt)


_handlers = {}


def get_local_file_handler(name: str = 'app'):
    key = f"file:{name}"
    if key not in _handlers:
        os.makedirs(LoggingConfig.LOG_DIR, exist_ok=True)
        handler = logging.FileHandler(os.path.join(LoggingConfig.LOG_DIR, f'{name}.log'), delay=True)
        formatter = AuditLogsJSONFormatter() if name.startswith('audit') else AppLogsJSONFormatter()
        handler.setFormatter(formatter)
        _handlers[key] = handler
    return _handlers[key]


def get_app_handler():
    if LoggingConfig.FIREHOSE_ENABLED:
        if 'app' not in _handlers:
            stream = LoggingConfig.APP_LOGS_STREAM_NAME or 'wasil-auth-app-logs'
            _handlers['app'] = AppLogsMemoryHandler(stream)
        return _handlers['app']
    return get_local_file_handler('app')


def get_audit_handler():
    if LoggingConfig.FIREHOSE_ENABLED:
        if 'audit' not in _handlers:
            stream = LoggingConfig.AUDIT_LOGS_STREAM_NAME or 'wasil-auth-audit-logs'
            _handlers['audit'] = AuditLogsMemoryHandler(stream)
        return _handlers['audit']
    return get_local_file_handler('audit_logs')


def flush_handlers():
    for handler in _handlers.values():
        handler.flush()
