"""
Logging filters that stamp request and caller context onto records
"""
import logging
from app.middlewares.request_context import request_context


class RequestContextFilter(logging.Filter):
    def filter(self, record):
        record.request_id = getattr(request_context, 'request_id', '') or ''
        record.request_method = getattr(request_context, 'request_method', '') or ''
        record.request_path = getattr(request_context, 'request_path', '') or ''
        record.app_version = getattr(request_context, 'app_version', '') or ''
        return True


class CallerContextFilter(logging.Filter):
    """Authenticated user and the normalized phone the request is about"""

    def filter(self, record):
        record.user_id = getattr(request_context, 'user_id', '') or ''
        record.phone = getattr(request_context, 'phone', '') or ''
        record.client_ip = getattr(request_context, 'client_ip', '') or ''
        return True
