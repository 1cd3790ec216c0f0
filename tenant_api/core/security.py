"""
Security Module

Password hashing, JWT access tokens and opaque refresh tokens.

Password hashes come in two formats:
- "sha256": base64(SHA-256(password + PASSWORD_HASH_SECRET)). Deterministic,
  shared secret, no per-user salt. This is what existing tenant stores hold.
- "bcrypt": passlib's bcrypt, salted per hash.
PASSWORD_HASH_SCHEME picks the format for new hashes; verification accepts
both, so a store can hold a mix.

Access tokens are HS256 JWTs (python-jose) carrying identity, display name,
tenant code and role names. Refresh tokens are random strings with no
structure; their state lives in the tenant store.
"""
import base64
import hashlib
import hmac
import secrets
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, Tuple
from jose import JWTError, jwt
from passlib.context import CryptContext
from tenant_api.config import get_settings
from tenant_api.database import utcnow

settings = get_settings()

SHA256_SCHEME = "sha256"
BCRYPT_SCHEME = "bcrypt"

# Claim carrying the tenant code; the tenant resolver reads it back
TENANT_CLAIM = "tenantCode"

# 64 random bytes, URL-safe
REFRESH_TOKEN_BYTES = 64

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def _sha256_hash(password: str, secret: str) -> str:
    digest = hashlib.sha256((password + secret).encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


def get_password_hash(password: str, scheme: Optional[str] = None) -> str:
    """
    Hash a password with the configured scheme.

    The sha256 scheme is deterministic: the same password and secret
    always produce the same hash.
    """
    scheme = scheme or settings.PASSWORD_HASH_SCHEME
    if scheme == BCRYPT_SCHEME:
        return pwd_context.hash(password)
    if scheme == SHA256_SCHEME:
        return _sha256_hash(password, settings.PASSWORD_HASH_SECRET)
    raise ValueError(f"Unknown password hash scheme: {scheme}")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """
    Verify a password against a stored hash of either format.

    Both comparisons are constant-time.
    """
    if not hashed_password:
        return False
    if pwd_context.identify(hashed_password) is not None:
        return pwd_context.verify(plain_password, hashed_password)
    expected = _sha256_hash(plain_password, settings.PASSWORD_HASH_SECRET)
    return hmac.compare_digest(expected, hashed_password)


def create_access_token(
    data: Dict[str, Any],
    expires_delta: Optional[timedelta] = None
) -> Tuple[str, datetime]:
    """
    Create a signed JWT access token.

    Returns the token and its expiry (naive UTC). Issuer and audience come
    from settings and are checked again by decode_access_token.
    """
    to_encode = data.copy()

    issued_at = utcnow()
    expire = issued_at + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))

    to_encode.update({
        "iss": settings.JWT_ISSUER,
        "aud": settings.JWT_AUDIENCE,
        "iat": int((issued_at - datetime(1970, 1, 1)).total_seconds()),
        "exp": int((expire - datetime(1970, 1, 1)).total_seconds()),
    })

    encoded_jwt = jwt.encode(
        to_encode,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )
    return encoded_jwt, expire


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and verify a JWT token.

    Returns the payload if signature, expiry, issuer and audience all check
    out, None otherwise.
    """
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
        )
    except JWTError:
        return None


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an `Authorization: Bearer ...` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def generate_refresh_token() -> str:
    """High-entropy opaque refresh token value."""
    return secrets.token_urlsafe(REFRESH_TOKEN_BYTES)
