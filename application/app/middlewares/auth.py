"""Bearer token dependency for authenticated auth routes."""
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.exceptions import AuthError
from app.middlewares.request_context import request_context
from app.services.token_service import SessionClaims

# auto_error=False so a missing header gets the common 401 error body
bearer_scheme = HTTPBearer(auto_error=False)


def get_current_claims(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> SessionClaims:
    if credentials is None or not credentials.credentials:
        raise AuthError("No token provided")

    claims = request.app.state.token_issuer.validate(credentials.credentials)
    request_context.user_id = claims.user_id
    return claims
