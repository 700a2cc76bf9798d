"""
Session tokens: HS256 JWTs carrying the user's identity.

Tokens are stateless. There is no revocation list, so invalidating outstanding
tokens means rotating JWT_SECRET.
"""
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable

import jwt

from app.core.exceptions import AuthError
from app.logging.utils import get_app_logger

logger = get_app_logger(__name__)


@dataclass(frozen=True)
class SessionClaims:
    user_id: int
    phone: str
    user_type: str
    issued_at: int
    expires_at: int


class TokenIssuer:

    def __init__(self, secret: str, algorithm: str = "HS256", expiry_days: int = 7,
                 clock: Callable[[], float] = time.time):
        if not secret:
            raise ValueError("JWT secret must not be empty")
        self.secret = secret
        self.algorithm = algorithm
        self.validity = timedelta(days=expiry_days)
        self.clock = clock

    def mint(self, user) -> str:
        issued_at = int(self.clock())
        payload = {
            "sub": str(user.id),
            "id": user.id,
            "phone": user.phone,
            "user_type": user.user_type,
            "iat": issued_at,
            "exp": issued_at + int(self.validity.total_seconds()),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def validate(self, token: str) -> SessionClaims:
        """Decode a token; every failure is reported the same way."""
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                # expiry is checked against the injected clock below
                options={"require": ["sub", "iat", "exp"], "verify_exp": False, "verify_iat": False},
            )
            if int(payload["exp"]) <= int(self.clock()):
                raise jwt.ExpiredSignatureError("Signature has expired")
            return SessionClaims(
                user_id=int(payload["id"]),
                phone=payload["phone"],
                user_type=payload["user_type"],
                issued_at=int(payload["iat"]),
                expires_at=int(payload["exp"]),
            )
        except (jwt.PyJWTError, KeyError, TypeError, ValueError) as e:
            logger.info(f"token_rejected | reason={type(e).__name__}")
            raise AuthError() from e
