import jwt
import pytest

from app.core.exceptions import AuthError
from app.models.user import User
from app.services.token_service import TokenIssuer

from conftest import TEST_SECRET


def _user():
    return User(id=42, phone="+211900000001", user_type="rider")


def test_mint_then_validate_round_trips_identity(token_issuer, clock):
    claims = token_issuer.validate(token_issuer.mint(_user()))
    assert claims.user_id == 42
    assert claims.phone == "+211900000001"
    assert claims.user_type == "rider"
    assert claims.issued_at == int(clock())
    assert claims.expires_at - claims.issued_at == 7 * 24 * 3600


def test_token_carries_subject_claim(token_issuer):
    payload = jwt.decode(token_issuer.mint(_user()), TEST_SECRET, algorithms=["HS256"], options={"verify_exp": False})
    assert payload["sub"] == "42"
    assert payload["id"] == 42


def test_token_expires_after_validity_window(token_issuer, clock):
    token = token_issuer.mint(_user())
    clock.advance(7 * 24 * 3600 - 1)
    assert token_issuer.validate(token).user_id == 42

    clock.advance(1)
    with pytest.raises(AuthError):
        token_issuer.validate(token)


def test_tampered_and_malformed_tokens_fail_the_same_way(token_issuer):
    other = TokenIssuer("another-secret", clock=token_issuer.clock)
    errors = []
    for token in ("not-a-token", other.mint(_user()), token_issuer.mint(_user())[:-3] + "abc"):
        with pytest.raises(AuthError) as exc:
            token_issuer.validate(token)
        errors.append(exc.value.to_payload())
    assert all(e == errors[0] for e in errors)
    assert errors[0]["error"] == "UNAUTHORIZED"


def test_token_missing_identity_claims_is_rejected(token_issuer, clock):
    token = jwt.encode({"sub": "1", "iat": int(clock()), "exp": int(clock()) + 60}, TEST_SECRET, algorithm="HS256")
    with pytest.raises(AuthError):
        token_issuer.validate(token)


def test_empty_secret_is_refused():
    with pytest.raises(ValueError):
        TokenIssuer("")
