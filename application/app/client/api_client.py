"""
HTTP client for the Wasil API, built on httpx.AsyncClient.

Attaches the stored bearer token, logs every call with its duration and turns
error responses into ApiError with a single user-facing message.
"""
import inspect
import time
from typing import Any, Callable, Dict, Optional

import httpx

from app.client.storage import AUTH_TOKEN_KEY, USER_DATA_KEY, LocalSessionStorage
from app.logging.utils import get_app_logger

logger = get_app_logger('app.client.api')

NETWORK_ERROR_MESSAGE = "Network error. Please check your internet connection."
RATE_LIMITED_MESSAGE = "Too many requests. Please try again later."


class ApiError(Exception):
    def __init__(self, status: int, error_code: Optional[str], message: str):
        super().__init__(message)
        self.status = status
        self.error_code = error_code
        self.message = message

    @property
    def is_rate_limited(self) -> bool:
        return self.status == 429 or self.error_code == "RATE_LIMITED"

    @property
    def is_network_error(self) -> bool:
        return self.status == 0


def error_message_for(status: int, body: Dict[str, Any]) -> str:
    if status == 400:
        return body.get('message') or 'Invalid request'
    if status == 401:
        return body.get('message') or 'Session expired. Please sign in again.'
    if status == 403:
        return 'Access denied'
    if status == 404:
        return 'Resource not found'
    if status == 429:
        return RATE_LIMITED_MESSAGE
    if status >= 500:
        return 'Server error. Please try again later.'
    return body.get('message') or 'An error occurred'


class WasilApiClient:

    def __init__(self, base_url: str, storage: LocalSessionStorage, timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 on_unauthorized: Optional[Callable[[], Any]] = None):
        self.storage = storage
        self.on_unauthorized = on_unauthorized
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={'Content-Type': 'application/json', 'Accept': 'application/json'},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def request(self, method: str, url: str, json: Optional[Dict[str, Any]] = None,
                      params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        headers = {}
        token = await self.storage.get_item(AUTH_TOKEN_KEY)
        if token:
            headers['Authorization'] = f'Bearer {token}'

        start = time.monotonic()
        logger.info(f"[API] {method.upper()} {url}")
        try:
            response = await self._client.request(method, url, json=json, params=params, headers=headers)
        except httpx.RequestError as e:
            logger.error(f"[API] Network error | {method.upper()} {url} error={e}")
            raise ApiError(0, "NETWORK_ERROR", NETWORK_ERROR_MESSAGE) from e

        duration = (time.monotonic() - start) * 1000
        logger.info(f"[API] Response {response.status_code} ({duration:.0f}ms)")

        body = self._parse_body(response)
        if response.is_success:
            return body

        logger.warning(f"[API] Error | status={response.status_code} url={url} error={body.get('error')}")
        if response.status_code == 401 and token:
            await self._handle_unauthorized()
        raise ApiError(response.status_code, body.get('error'), error_message_for(response.status_code, body))

    async def _handle_unauthorized(self) -> None:
        # the stored session is no longer accepted by the server
        await self.storage.multi_remove([AUTH_TOKEN_KEY, USER_DATA_KEY])
        if self.on_unauthorized is not None:
            result = self.on_unauthorized()
            if inspect.isawaitable(result):
                await result

    @staticmethod
    def _parse_body(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    async def get(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self.request('GET', url, params=params)

    async def post(self, url: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self.request('POST', url, json=data or {})

    async def put(self, url: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self.request('PUT', url, json=data or {})
