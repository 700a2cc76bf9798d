"""
Phone/OTP login orchestration.

Validation happens in the DTOs before anything here runs; every method below
either completes its side effects or raises an AuthServiceError subclass.
"""
import secrets
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.config.sentry import add_breadcrumb, capture_exception, capture_message
from app.config.settings import AuthConfigs
from app.core.exceptions import (
    InternalError,
    InvalidOTPError,
    OTPNotFoundError,
    RateLimitError,
    UserNotFoundError,
    ValidationError,
)
from app.dto.phone_validations import normalize_phone
from app.logging.utils import get_app_logger
from app.middlewares.request_context import request_context
from app.models.user import User
from app.repository.users import UserRepository
from app.services.otp_store import OTPStore
from app.services.rate_limiter import RateLimiter
from app.services.token_service import SessionClaims, TokenIssuer

logger = get_app_logger(__name__)

SMS_TEMPLATE = "Your Wasil verification code is: {code}. Valid for {minutes} minutes."


@dataclass(frozen=True)
class OTPDispatch:
    phone: str
    message: str


@dataclass(frozen=True)
class RequestCodeResult:
    phone: str
    demo_mode: bool
    dispatch: OTPDispatch
    hint: Optional[str] = None


@dataclass(frozen=True)
class VerifyCodeResult:
    token: str
    user: User
    is_new_user: bool


class AuthService:

    def __init__(self, otp_store: OTPStore, users: UserRepository, tokens: TokenIssuer,
                 rate_limiter: RateLimiter, sms_gateway, configs: AuthConfigs):
        self.otp_store = otp_store
        self.users = users
        self.tokens = tokens
        self.rate_limiter = rate_limiter
        self.sms_gateway = sms_gateway
        self.configs = configs
        self.otp_length = configs.OTP_LENGTH

    def generate_otp(self) -> str:
        """Uniform over 000000-999999 (for the default length)."""
        if self.configs.DEMO_MODE:
            return self.configs.DEMO_OTP
        return str(secrets.randbelow(10 ** self.otp_length)).zfill(self.otp_length)

    def _normalize(self, phone: str, country_code: Optional[str]) -> str:
        return normalize_phone(phone, country_code or self.configs.DEFAULT_COUNTRY_CODE)

    def request_code(self, phone: str, country_code: Optional[str], caller_key: str) -> RequestCodeResult:
        if not self.rate_limiter.allow_request(caller_key):
            raise RateLimitError(retry_after_seconds=self.rate_limiter.retry_after(caller_key))

        normalized = self._normalize(phone, country_code)
        request_context.phone = normalized
        otp = self.generate_otp()
        self.otp_store.put(normalized, otp)

        minutes = max(1, self.configs.OTP_EXPIRY_SECONDS // 60)
        dispatch = OTPDispatch(phone=normalized, message=SMS_TEMPLATE.format(code=otp, minutes=minutes))
        hint = f"Demo OTP: {otp}" if self.configs.DEMO_MODE else None
        logger.info(f"request_code | phone={normalized} demo_mode={self.configs.DEMO_MODE}")
        return RequestCodeResult(phone=normalized, demo_mode=self.configs.DEMO_MODE, dispatch=dispatch, hint=hint)

    def dispatch_sms(self, dispatch: OTPDispatch) -> bool:
        """Send the code; failures are recorded and never undo the stored code."""
        try:
            result = self.sms_gateway.send_sms(dispatch.phone, dispatch.message)
        except Exception as e:
            logger.error(f"sms_dispatch_error | phone={dispatch.phone} error={e}", exc_info=True)
            capture_exception(e, extra={"phone": dispatch.phone})
            return False

        if not result.get('success'):
            logger.warning(f"sms_dispatch_failed | phone={dispatch.phone} reason={result.get('message')}")
            capture_message(f"SMS dispatch failed: {result.get('message')}", level="warning")
            return False
        return True

    def verify_code(self, phone: str, code: str, country_code: Optional[str] = None,
                    user_type: str = "rider") -> VerifyCodeResult:
        normalized = self._normalize(phone, country_code)
        request_context.phone = normalized

        consumed = self.otp_store.consume(normalized, code)
        if consumed is None:
            logger.info(f"verify_code_not_found | phone={normalized}")
            raise OTPNotFoundError()
        if not consumed:
            logger.info(f"verify_code_mismatch | phone={normalized}")
            raise InvalidOTPError()

        # the code is spent from here on: a storage failure below means a new code is needed
        try:
            user = self.users.get_by_phone(normalized)
            if user is None:
                user = self._create_user(normalized, user_type)
            else:
                user = self.users.touch(user.id) or user
        except SQLAlchemyError as e:
            logger.error(f"verify_code_storage_error | phone={normalized} error={e}", exc_info=True)
            capture_exception(e, extra={"phone": normalized})
            raise InternalError("Could not complete sign in. Please request a new code.") from e

        request_context.user_id = user.id
        add_breadcrumb("otp_verified", data={"user_id": user.id, "is_new_user": user.is_new_user})
        token = self.tokens.mint(user)
        logger.info(f"verify_code_success | user_id={user.id} is_new_user={user.is_new_user}")
        return VerifyCodeResult(token=token, user=user, is_new_user=user.is_new_user)

    def _create_user(self, phone: str, user_type: str) -> User:
        try:
            return self.users.create_verified(phone, user_type=user_type)
        except IntegrityError:
            # another sign-in for the same phone created the row first
            logger.info(f"verify_code_user_exists | phone={phone}")
            user = self.users.get_by_phone(phone)
            if user is None:
                raise
            return user

    def get_profile(self, claims: SessionClaims) -> User:
        try:
            user = self.users.get_by_id(claims.user_id)
        except SQLAlchemyError as e:
            logger.error(f"get_profile_storage_error | user_id={claims.user_id} error={e}", exc_info=True)
            raise InternalError() from e
        if user is None:
            raise UserNotFoundError()
        return user

    def update_profile(self, claims: SessionClaims, fields: Dict[str, Any]) -> User:
        if not fields:
            raise ValidationError("No fields to update")

        try:
            user = self.users.update_profile(claims.user_id, fields)
        except SQLAlchemyError as e:
            logger.error(f"update_profile_storage_error | user_id={claims.user_id} error={e}", exc_info=True)
            capture_exception(e, extra={"user_id": claims.user_id})
            raise InternalError() from e
        if user is None:
            raise UserNotFoundError()
        return user

    def logout(self, claims: SessionClaims) -> None:
        # Tokens are stateless; the client drops its copy
        logger.info(f"logout | user_id={claims.user_id}")
