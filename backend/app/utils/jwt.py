"""JWT Token Validation and Signed Storage URLs"""
import jwt
from typing import Any, Dict, Optional
from datetime import timedelta

from ..config.settings import settings
from ..domain.errors import AuthenticationError
from ..domain.models import ActorContext
from .logger import get_logger
from .time import utc_now

logger = get_logger(__name__)

STORAGE_TOKEN_AUDIENCE = "storage"


class JWTValidator:
    """Validator for HS256 access tokens issued by the auth service"""

    def __init__(self, secret: Optional[str] = None, audience: Optional[str] = None):
        self.secret = secret or settings.jwt_secret
        self.audience = audience or settings.jwt_audience
        self.algorithm = settings.jwt_algorithm

    def validate_token(self, token: str) -> Dict[str, Any]:
        """
        Validate a bearer token

        The signature is skipped only when allow_unverified_tokens is set in a
        development environment, so tokens minted by a local auth emulator
        work without sharing the secret.

        Args:
            token: Bearer token (with or without 'Bearer ' prefix)

        Returns:
            Decoded token claims

        Raises:
            AuthenticationError: If token is invalid
        """
        if not token:
            raise AuthenticationError("Token is missing")

        if token.startswith("Bearer "):
            token = token[7:]

        try:
            if settings.allow_unverified_tokens and settings.environment.lower() in ["development", "dev", "local"]:
                unverified_claims = jwt.decode(
                    token,
                    options={
                        "verify_signature": False,
                        "verify_exp": True,  # Still check expiration
                        "verify_aud": False,
                    }
                )
                logger.debug(f"Dev mode - Token subject: {unverified_claims.get('sub')}")
                return unverified_claims

            return jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                options={"verify_exp": True, "verify_aud": True, "require": ["sub", "exp"]},
            )

        except jwt.ExpiredSignatureError:
            logger.warning("Token expired")
            raise AuthenticationError("Token has expired")
        except jwt.InvalidAudienceError as e:
            logger.warning(f"Invalid token audience: {e}")
            raise AuthenticationError("Invalid token audience")
        except jwt.PyJWTError as e:
            logger.warning(f"JWT validation error: {e}")
            raise AuthenticationError(f"Invalid token: {str(e)}")

    def get_actor_context(self, token: str) -> ActorContext:
        """
        Extract actor context from validated token

        Args:
            token: Bearer token

        Returns:
            ActorContext with user information
        """
        claims = self.validate_token(token)

        user_id = claims.get("sub", "")
        email = claims.get("email") or ""
        metadata = claims.get("user_metadata") or {}
        display_name = metadata.get("full_name") or claims.get("name") or email

        if not user_id or not email:
            logger.warning(f"Token missing subject or email. Available claims: {list(claims.keys())}")
            raise AuthenticationError("Unable to determine user from token")

        return ActorContext(user_id=user_id, email=email, display_name=display_name)


# Global validator instance
_jwt_validator: Optional[JWTValidator] = None


def get_jwt_validator() -> JWTValidator:
    """Get global JWT validator instance"""
    global _jwt_validator
    if _jwt_validator is None:
        _jwt_validator = JWTValidator()
    return _jwt_validator


def get_current_user(authorization: str) -> ActorContext:
    """
    Get current user from authorization header

    Args:
        authorization: Authorization header value

    Returns:
        ActorContext
    """
    if not authorization:
        raise AuthenticationError("Authorization header is missing")

    return get_jwt_validator().get_actor_context(authorization)


def create_storage_token(path: str, ttl_seconds: Optional[int] = None) -> str:
    """Sign a storage path into a short-lived download token"""
    ttl = ttl_seconds if ttl_seconds is not None else settings.signed_url_ttl_seconds
    now = utc_now()
    payload = {
        "sub": path,
        "aud": STORAGE_TOKEN_AUDIENCE,
        "iat": now,
        "exp": now + timedelta(seconds=ttl),
    }
    return jwt.encode(payload, settings.signed_url_secret, algorithm="HS256")


def verify_storage_token(token: str) -> str:
    """
    Verify a download token and return the storage path it grants

    Raises:
        AuthenticationError: If the token is invalid or expired
    """
    try:
        claims = jwt.decode(
            token,
            settings.signed_url_secret,
            algorithms=["HS256"],
            audience=STORAGE_TOKEN_AUDIENCE,
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Download link has expired")
    except jwt.PyJWTError as e:
        raise AuthenticationError(f"Invalid download link: {str(e)}")
    return claims["sub"]
