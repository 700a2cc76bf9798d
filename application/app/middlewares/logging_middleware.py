"""
Audit and request logging middleware (Starlette BaseHTTPMiddleware).

One audit record per request. Credentials and one-time codes are masked and
phone numbers are replaced by their sha256 hash before anything is written.
"""
import hashlib
import json
import socket
import time
from datetime import datetime, timezone

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from app.logging.utils import get_app_logger, init_audit_logger
from app.logging.config import LoggingConfig
from app.middlewares.request_context import (
    RequestContext,
    clear_request_context,
    create_request_id,
    request_context,
    set_request_context,
)
from app.services.rate_limiter import get_caller_key

from app.config.settings import AuthConfigs
configs = AuthConfigs()

MASK = '****'
MASKED_HEADERS = {'authorization', 'cookie'}
MASKED_BODY_FIELDS = {'otp', 'token'}
HASHED_BODY_FIELDS = {'phone'}


def hash_phone(phone) -> str:
    if not phone:
        return ''
    return hashlib.sha256(str(phone).encode('utf-8')).hexdigest()


def mask_headers(headers) -> dict:
    return {k: (MASK if k.lower() in MASKED_HEADERS else v) for k, v in headers.items()}


def mask_body(body):
    if isinstance(body, dict):
        masked = {}
        for key, value in body.items():
            if key in MASKED_BODY_FIELDS:
                masked[key] = MASK
            elif key in HASHED_BODY_FIELDS:
                masked[key] = hash_phone(value)
            else:
                masked[key] = mask_body(value)
        return masked
    if isinstance(body, list):
        return [mask_body(item) for item in body]
    return body


class AuditMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, exclude_paths: list[str] | None = None, audit_enabled: bool | None = None,
                 trusted_proxies: int | None = None):
        super().__init__(app)
        self.trusted_proxies = configs.TRUSTED_PROXY_COUNT if trusted_proxies is None else trusted_proxies
        self.logger = get_app_logger('app.audit_middleware')
        self.exclude_audit_paths = exclude_paths or ['/health', '/docs', '/redoc', '/openapi.json']
        self.audit_enabled = LoggingConfig.AUDIT_LOGGING_ENABLED if audit_enabled is None else audit_enabled
        self.hostname = socket.gethostname()
        self.app_name = configs.APP_NAME
        self.version = configs.APP_VERSION

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        # fresh context per request; the endpoint task shares this object
        set_request_context(RequestContext())
        request_id = create_request_id()
        start_time = time.time()
        timestamp = datetime.now(timezone.utc).isoformat()

        request_context.request_method = request.method
        request_context.request_path = request.url.path
        request_context.app_version = request.headers.get('x-app-version', '')
        request_context.client_ip = get_caller_key(request, self.trusted_proxies)

        should_audit = self.audit_enabled and not any(
            request.url.path.startswith(p) for p in self.exclude_audit_paths
        )
        body_bytes = await request.body() if should_audit else b''

        try:
            response = await call_next(request)
            duration = (time.time() - start_time) * 1000
            response.headers['X-Request-ID'] = request_id
            self.logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({duration:.0f}ms)")

            if should_audit:
                audit_data = self._build_audit_data(request, response, body_bytes, duration, timestamp)
                init_audit_logger().info("Audit log", extra=audit_data)
            return response
        except Exception as exc:
            duration = (time.time() - start_time) * 1000
            self.logger.error(
                f"Exception: {request.method} {request.url.path} - {exc.__class__.__name__} ({duration:.0f}ms)",
                exc_info=True,
            )
            if should_audit:
                audit_data = self._build_audit_data(request, Response(status_code=500), body_bytes, duration, timestamp)
                audit_data['exception'] = exc.__class__.__name__
                init_audit_logger().info("Audit log (exception)", extra=audit_data)
            raise
        finally:
            clear_request_context()

    def _parse_body(self, request: Request, body_bytes: bytes):
        if not body_bytes:
            return {}
        content_type = request.headers.get('content-type', '')
        try:
            if 'application/json' in content_type:
                return mask_body(json.loads(body_bytes.decode('utf-8')))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return '<unparseable body>'
        # non-JSON bodies may still carry a code, keep them out
        return f'<{len(body_bytes)} bytes>'

    def _parse_response(self, response: Response):
        status = getattr(response, 'status_code', 0)
        if not LoggingConfig.CAPTURE_RESPONSE_BODY or 200 <= status < 300:
            return ''
        body = getattr(response, 'body', None)
        if body is None:
            # streamed responses cannot be consumed here
            return ''
        try:
            return mask_body(json.loads(body.decode('utf-8')))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return body.decode('utf-8', errors='replace')[:1000]

    def _build_audit_data(self, request: Request, response: Response, body_bytes: bytes,
                          duration: float, timestamp: str) -> dict:
        body = getattr(response, 'body', None)
        return {
            'duration': round(duration, 2),
            'hostname': self.hostname,
            'app_name': self.app_name,
            'request': {
                'GET': dict(request.query_params),
                'BODY': self._parse_body(request, body_bytes),
                'HEADERS': mask_headers(dict(request.headers)),
            },
            'request_method': request.method,
            'request_path': request.url.path,
            'response': self._parse_response(response),
            'size_in_bytes': len(body) if body is not None else 0,
            'status_code': getattr(response, 'status_code', 0),
            'timestamp': timestamp,
            'version': self.version,
            'app_version': request_context.app_version,
            'phone_hash': hash_phone(request_context.phone),
        }
