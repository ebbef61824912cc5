"""Token issuance and verification.

Two kinds of bearer token are accepted: ID tokens minted by the external
identity platform (RS256, checked against its published signing keys) and the
API's own HS256 access tokens issued at login.
"""

import hashlib
import hmac
import logging
import secrets
import time
from datetime import datetime, timedelta
from typing import Optional

import jwt

from config import get_auth_config
from . import models
from .errors import AuthenticationError

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 260000


def hash_password(password: str) -> str:
    """Hash password using salted PBKDF2-SHA256"""
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac('sha256', password.encode(), salt.encode(), PBKDF2_ITERATIONS).hex()
    return f"pbkdf2_sha256${PBKDF2_ITERATIONS}${salt}${digest}"


def verify_password(password: str, stored: Optional[str]) -> bool:
    if not stored:
        return False
    try:
        _, iterations, salt, digest = stored.split('$')
    except ValueError:
        return False
    candidate = hashlib.pbkdf2_hmac('sha256', password.encode(), salt.encode(), int(iterations)).hex()
    return hmac.compare_digest(candidate, digest)


def generate_auth_id() -> str:
    return f"direct-{int(time.time() * 1000)}-{secrets.token_hex(5)}"


# ==================== LOCAL TOKENS ====================

def _encode(user: models.UserAccount, token_type: str, lifetime: timedelta) -> str:
    settings = get_auth_config()
    now = datetime.utcnow()
    payload = {
        "sub": user.auth_id,
        "user_id": user.user_id,
        "email": user.email,
        "type": token_type,
        "iss": settings.issuer,
        "aud": settings.audience,
        "iat": now,
        "exp": now + lifetime,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.algorithm)


def create_access_token(user: models.UserAccount) -> str:
    return _encode(user, "access", timedelta(hours=get_auth_config().access_expire_hours))


def create_refresh_token(user: models.UserAccount) -> str:
    return _encode(user, "refresh", timedelta(days=get_auth_config().refresh_expire_days))


def issue_token_pair(user: models.UserAccount) -> dict:
    return {
        "access_token": create_access_token(user),
        "refresh_token": create_refresh_token(user),
        "token_type": "bearer",
        "expires_in": get_auth_config().access_expire_hours * 3600,
    }


def decode_local_token(token: str, expected_type: str = "access") -> dict:
    settings = get_auth_config()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.algorithm],
            audience=settings.audience,
            issuer=settings.issuer,
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")

    if payload.get("type") != expected_type:
        raise AuthenticationError("Invalid token type")
    return payload


# ==================== IDENTITY PLATFORM ====================

class IdentityVerifier:
    """Verifies identity-platform ID tokens; returns claims with ``uid`` and ``email``"""

    enabled = False

    def verify(self, token: str) -> dict:
        raise AuthenticationError("Identity platform is not configured")


class IdentityPlatformVerifier(IdentityVerifier):
    JWKS_URL = "https://www.googleapis.com/service_accounts/v1/jwk/securetoken@system.gserviceaccount.com"
    ISSUER_PREFIX = "https://securetoken.google.com/"

    def __init__(self, project_id: Optional[str] = None):
        self.project_id = project_id if project_id is not None else get_auth_config().identity_project_id
        self.enabled = bool(self.project_id)
        self._jwks = jwt.PyJWKClient(self.JWKS_URL) if self.enabled else None

    def verify(self, token: str) -> dict:
        if not self.enabled:
            raise AuthenticationError("Identity platform is not configured")
        try:
            signing_key = self._jwks.get_signing_key_from_jwt(token)
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                audience=self.project_id,
                issuer=f"{self.ISSUER_PREFIX}{self.project_id}",
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token expired")
        except jwt.PyJWTError as e:
            logger.debug(f"Identity token rejected: {e}")
            raise AuthenticationError("Invalid token")

        if not claims.get("sub"):
            raise AuthenticationError("Invalid token")
        return {
            "uid": claims["sub"],
            "email": claims.get("email"),
            "email_verified": claims.get("email_verified", False),
            "name": claims.get("name"),
            "picture": claims.get("picture"),
        }


def authenticate_token(session, token: Optional[str], verifier: Optional[IdentityVerifier]) -> models.UserAccount:
    """Resolve a bearer token to an active user; identity-platform first, then local"""
    if not token:
        raise AuthenticationError("Access token required")

    auth_id = None
    if verifier is not None and verifier.enabled:
        try:
            auth_id = verifier.verify(token)["uid"]
        except AuthenticationError:
            auth_id = None
    if auth_id is None:
        auth_id = decode_local_token(token)["sub"]

    user = session.query(models.UserAccount).filter(models.UserAccount.auth_id == auth_id).first()
    if not user:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthenticationError("Account is deactivated")
    return user
