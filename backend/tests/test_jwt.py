from datetime import datetime, timedelta, timezone

import jwt
import pytest

from app.config.settings import Settings, settings
from app.domain.errors import AuthenticationError
from app.utils.jwt import JWTValidator, create_storage_token, verify_storage_token
from tests.conftest import make_actor, make_token


def forged_token() -> str:
    now = datetime.now(timezone.utc)
    return jwt.encode(
        {"sub": "attacker", "email": "attacker@acme-corp.com", "aud": "authenticated",
         "iat": now, "exp": now + timedelta(hours=1)},
        "not-the-server-secret-but-long-enough-for-hs256",
        algorithm="HS256",
    )


@pytest.fixture
def default_auth_settings(monkeypatch):
    defaults = Settings.model_fields
    monkeypatch.setattr(settings, "environment", defaults["environment"].default)
    monkeypatch.setattr(settings, "allow_unverified_tokens", defaults["allow_unverified_tokens"].default)


def test_wrong_key_rejected_with_default_settings(default_auth_settings):
    with pytest.raises(AuthenticationError, match="Invalid token"):
        JWTValidator().validate_token(forged_token())


def test_unverified_tokens_need_explicit_opt_in(monkeypatch):
    monkeypatch.setattr(settings, "environment", "development")
    monkeypatch.setattr(settings, "allow_unverified_tokens", True)
    assert JWTValidator().validate_token(forged_token())["sub"] == "attacker"

    # The flag alone does nothing outside development
    monkeypatch.setattr(settings, "environment", "production")
    with pytest.raises(AuthenticationError):
        JWTValidator().validate_token(forged_token())


def test_valid_token_yields_actor():
    actor = make_actor("member", "Milo Member")
    context = JWTValidator().get_actor_context(f"Bearer {make_token(actor)}")
    assert context.user_id == actor.user_id
    assert context.display_name == "Milo Member"


def test_storage_token_round_trip():
    token = create_storage_token("vouchers/org-1/vch-1.pdf")
    assert verify_storage_token(token) == "vouchers/org-1/vch-1.pdf"
    with pytest.raises(AuthenticationError):
        verify_storage_token(token + "x")
