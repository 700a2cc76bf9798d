"""
Onboarding/auth state machine behind the mobile screens.

    UNINITIALIZED -> AUTHENTICATED | UNAUTHENTICATED   (initialize)
    PHONE_ENTRY -> CODE_ENTRY -> PROFILE_SETUP (new user) | HOME

Only one request per action may be outstanding. Results that arrive after
unmount() are dropped so nothing is applied to a screen that is gone.
"""
import enum
import re
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from app.client.api_client import ApiError
from app.client.auth_service import AuthClientService
from app.client.countdown import DEFAULT_RESEND_SECONDS, ResendCountdown
from app.client.otp_input import OTPInput
from app.logging.utils import get_app_logger

logger = get_app_logger('app.client.auth_flow')

COUNTRY_CODE = '+211'
LOCAL_PHONE_LENGTH = 9
EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


class AuthState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


class Screen(enum.Enum):
    PHONE_ENTRY = "phone_entry"
    CODE_ENTRY = "code_entry"
    PROFILE_SETUP = "profile_setup"
    HOME = "home"


def format_local_phone(text: str) -> str:
    """Digits only, no leading 0, at most nine digits (9XX XXX XXX)."""
    digits = re.sub(r'\D', '', text or '')
    if digits.startswith('0'):
        digits = digits[1:]
    return digits[:LOCAL_PHONE_LENGTH]


class AuthFlow:

    def __init__(self, auth_service: AuthClientService, resend_seconds: int = DEFAULT_RESEND_SECONDS,
                 countdown: Optional[ResendCountdown] = None, user_type: str = 'rider'):
        self.auth_service = auth_service
        self.user_type = user_type
        self.otp_input = OTPInput()
        self.countdown = countdown or ResendCountdown(resend_seconds)

        self.auth_state = AuthState.UNINITIALIZED
        self.screen = Screen.PHONE_ENTRY
        self.user: Optional[Dict[str, Any]] = None
        self.phone: Optional[str] = None
        self.demo_hint: Optional[str] = None
        self.error: Optional[str] = None
        self.error_code: Optional[str] = None
        self.mounted = True
        self._in_flight: Set[str] = set()

    @property
    def loading(self) -> bool:
        return bool(self._in_flight)

    def is_busy(self, action: str) -> bool:
        return action in self._in_flight

    def clear_error(self) -> None:
        self.error = None
        self.error_code = None

    def _fail(self, message: str, error_code: Optional[str] = None) -> None:
        self.error = message
        self.error_code = error_code

    def _go(self, screen: Screen) -> None:
        if screen != Screen.CODE_ENTRY:
            self.countdown.cancel()
        self.screen = screen

    def _screen_for_user(self, user: Optional[Dict[str, Any]]) -> Screen:
        if user and user.get('is_new_user'):
            return Screen.PROFILE_SETUP
        return Screen.HOME

    async def _run(self, action: str, call: Callable[[], Awaitable[Any]],
                   on_error: Optional[Callable[[ApiError], None]] = None):
        """
        Run one request for an action. Returns (True, result) on success,
        (False, None) when refused, failed, or unmounted meanwhile.
        """
        if action in self._in_flight:
            logger.info(f"auth_flow | {action} already in flight, ignoring")
            return False, None
        self._in_flight.add(action)
        self.clear_error()
        try:
            result = await call()
        except ApiError as e:
            if self.mounted:
                self._fail(e.message, e.error_code)
                if on_error is not None:
                    on_error(e)
            return False, None
        finally:
            self._in_flight.discard(action)
        if not self.mounted:
            return False, None
        return True, result

    async def initialize(self) -> AuthState:
        if await self.auth_service.is_authenticated():
            self.user = await self.auth_service.get_current_user()
            self.auth_state = AuthState.AUTHENTICATED
            self._go(self._screen_for_user(self.user))
        else:
            self.auth_state = AuthState.UNAUTHENTICATED
            self._go(Screen.PHONE_ENTRY)
        return self.auth_state

    async def submit_phone(self, local_number: str) -> bool:
        digits = format_local_phone(local_number)
        if len(digits) != LOCAL_PHONE_LENGTH:
            self._fail("Please enter a valid phone number", "VALIDATION_ERROR")
            return False

        ok, data = await self._run('send_otp', lambda: self.auth_service.request_otp(COUNTRY_CODE + digits))
        if not ok:
            return False
        self.phone = data.get('phone') or COUNTRY_CODE + digits
        self.demo_hint = data.get('hint')
        self.otp_input.clear()
        self._go(Screen.CODE_ENTRY)
        self.countdown.restart()
        return True

    async def enter_code(self, index: int, text: str) -> bool:
        """Type or paste into a box; a full code is submitted straight away."""
        self.otp_input.change_text(index, text)
        if self.otp_input.is_complete:
            return await self.verify()
        return False

    def press_backspace(self, index: int) -> None:
        self.otp_input.backspace(index)

    async def verify(self) -> bool:
        code = self.otp_input.value
        if len(code) != self.otp_input.length or not self.phone:
            return False

        ok, data = await self._run(
            'verify_otp',
            lambda: self.auth_service.verify_otp(self.phone, code, self.user_type),
            on_error=lambda _: self.otp_input.clear(),
        )
        if not ok:
            return False
        self.user = data['user']
        self.auth_state = AuthState.AUTHENTICATED
        self._go(self._screen_for_user(self.user))
        return True

    async def resend_code(self) -> bool:
        if not self.countdown.can_resend or not self.phone:
            return False
        self.otp_input.clear()
        self.countdown.restart()
        ok, data = await self._run('resend_otp', lambda: self.auth_service.request_otp(self.phone))
        if ok:
            self.demo_hint = data.get('hint')
        return ok

    async def complete_profile(self, first_name: str, last_name: str = '', email: str = '') -> bool:
        first_name, last_name, email = first_name.strip(), last_name.strip(), email.strip()
        if len(first_name) < 2:
            self._fail("Please enter your first name", "VALIDATION_ERROR")
            return False
        if email and not EMAIL_PATTERN.match(email):
            self._fail("Please enter a valid email address", "VALIDATION_ERROR")
            return False

        profile = {'first_name': first_name}
        if last_name:
            profile['last_name'] = last_name
        if email:
            profile['email'] = email

        ok, user = await self._run('complete_profile', lambda: self.auth_service.complete_profile(profile))
        if not ok:
            return False
        self.user = user
        self._go(Screen.HOME)
        return True

    def skip_profile(self) -> None:
        if self.auth_state == AuthState.AUTHENTICATED:
            self._go(Screen.HOME)

    def handle_unauthorized(self) -> None:
        """The server rejected the stored token; back to phone entry."""
        if not self.mounted:
            return
        self.user = None
        self.auth_state = AuthState.UNAUTHENTICATED
        self._go(Screen.PHONE_ENTRY)

    async def logout(self) -> None:
        await self.auth_service.logout()
        if not self.mounted:
            return
        self.user = None
        self.phone = None
        self.demo_hint = None
        self.clear_error()
        self.otp_input.clear()
        self.auth_state = AuthState.UNAUTHENTICATED
        self._go(Screen.PHONE_ENTRY)

    def unmount(self) -> None:
        self.mounted = False
        self.countdown.cancel()
