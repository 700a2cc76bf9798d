"""
Client-side authentication service: phone/OTP login and the locally cached
session (token plus user). The server stays the source of truth for the user;
the cached copy is refreshed whenever the server returns one.
"""
import json
from typing import Any, Dict, Optional

from app.client.api_client import ApiError, WasilApiClient
from app.client.storage import AUTH_TOKEN_KEY, LANGUAGE_KEY, USER_DATA_KEY, LocalSessionStorage
from app.logging.utils import get_app_logger

logger = get_app_logger('app.client.auth_service')

SERVER_LANGUAGES = ('en', 'ar')


class AuthClientService:

    def __init__(self, api: WasilApiClient, storage: LocalSessionStorage):
        self.api = api
        self.storage = storage

    async def request_otp(self, phone: str, country_code: Optional[str] = None) -> Dict[str, Any]:
        payload = {'phone': phone}
        if country_code:
            payload['country_code'] = country_code
        return await self.api.post('/auth/send-otp', payload)

    async def verify_otp(self, phone: str, otp: str, user_type: str = 'rider') -> Dict[str, Any]:
        """Verify the code and persist the session; returns {token, user}."""
        data = await self.api.post('/auth/verify-otp', {'phone': phone, 'otp': otp, 'user_type': user_type})
        token, user = data['token'], data['user']
        await self.storage.multi_set([
            (AUTH_TOKEN_KEY, token),
            (USER_DATA_KEY, json.dumps(user)),
        ])
        return {'token': token, 'user': user}

    async def update_profile(self, updates: Dict[str, Any]) -> Dict[str, Any]:
        data = await self.api.put('/auth/profile', updates)
        user = {**(await self.get_current_user() or {}), **data['user']}
        await self.storage.set_item(USER_DATA_KEY, json.dumps(user))
        return user

    async def complete_profile(self, profile: Dict[str, Any]) -> Dict[str, Any]:
        """Save the onboarding profile, then reload the full user from the server."""
        await self.update_profile(profile)
        return await self.refresh_profile()

    async def refresh_profile(self) -> Dict[str, Any]:
        user = await self.api.get('/auth/me')
        await self.storage.set_item(USER_DATA_KEY, json.dumps(user))
        return user

    async def get_current_user(self) -> Optional[Dict[str, Any]]:
        raw = await self.storage.get_item(USER_DATA_KEY)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Cached user data is corrupt, ignoring it")
            return None

    async def is_authenticated(self) -> bool:
        return bool(await self.storage.get_item(AUTH_TOKEN_KEY))

    async def set_language(self, language: str) -> None:
        await self.storage.set_item(LANGUAGE_KEY, language)
        if language in SERVER_LANGUAGES and await self.is_authenticated():
            try:
                await self.update_profile({'language': language})
            except ApiError as e:
                logger.warning(f"Could not save language on server: {e.message}")

    async def get_language(self) -> str:
        return await self.storage.get_item(LANGUAGE_KEY) or 'en'

    async def logout(self) -> None:
        try:
            await self.api.post('/auth/logout')
        except ApiError as e:
            # local logout happens regardless
            logger.warning(f"Logout API error: {e.message}")
        await self.storage.multi_remove([AUTH_TOKEN_KEY, USER_DATA_KEY])
