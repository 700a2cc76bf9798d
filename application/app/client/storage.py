"""
Local persistent key-value storage for the mobile auth client.

Values are strings, like the device storage the app uses; the whole store is
one JSON document written atomically on every change.
"""
import asyncio
import json
import os
import tempfile
from typing import Dict, Iterable, Optional, Tuple

from app.logging.utils import get_app_logger

logger = get_app_logger('app.client.storage')

AUTH_TOKEN_KEY = '@wasil_auth_token'
USER_DATA_KEY = '@wasil_user_data'
LANGUAGE_KEY = '@wasil_language'


class LocalSessionStorage:

    def __init__(self, path: Optional[str] = None):
        # path=None keeps everything in memory (nothing survives the process)
        self.path = path
        self._lock = asyncio.Lock()
        self._data: Dict[str, str] = self._load()

    def _load(self) -> Dict[str, str]:
        if not self.path or not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Session storage unreadable, starting empty: {e}")
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _persist(self) -> None:
        if not self.path:
            return
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.session-')
        with os.fdopen(fd, 'w', encoding='utf-8') as fh:
            json.dump(self._data, fh)
        os.replace(tmp_path, self.path)

    async def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        await self.multi_set([(key, value)])

    async def remove_item(self, key: str) -> None:
        await self.multi_remove([key])

    async def multi_set(self, pairs: Iterable[Tuple[str, str]]) -> None:
        async with self._lock:
            for key, value in pairs:
                self._data[key] = value
            self._persist()

    async def multi_remove(self, keys: Iterable[str]) -> None:
        async with self._lock:
            for key in keys:
                self._data.pop(key, None)
            self._persist()
