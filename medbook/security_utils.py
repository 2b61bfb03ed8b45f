"""
Credential utilities
Password hashing, bearer tokens, and signed one-time tokens
"""

import logging
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

# Token generation and validation
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from jose import JWTError
from jose import jwt as jose_jwt

# Password hashing
from passlib.context import CryptContext

from .config import ACCESS_TOKEN_EXPIRE_HOURS, SECRET_KEY, VERIFICATION_TOKEN_MAX_AGE

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
VERIFICATION_SALT = "email-verification"
REGISTRATION_KEY_LENGTH = 8

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


# ============================================================================
# PASSWORD SECURITY
# ============================================================================


def hash_password(password: str) -> str:
    """Hash password using bcrypt"""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password against bcrypt hash"""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except Exception as e:
        logger.error(f"Password verification error: {e}")
        return False


# ============================================================================
# TOKEN GENERATION & VALIDATION
# ============================================================================


def generate_secure_token(length: int = 32) -> str:
    """Generate a cryptographically secure random token"""
    return secrets.token_urlsafe(length)


def generate_registration_key() -> str:
    """Numeric key handed to practitioners out of band"""
    return "".join(secrets.choice(string.digits) for _ in range(REGISTRATION_KEY_LENGTH))


def generate_verification_token(account_id: str, verification_token: str) -> str:
    """
    Generate the time-limited token mailed for email verification.
    Binds the account id to the one-time value stored on the account.
    """
    serializer = URLSafeTimedSerializer(SECRET_KEY)
    return serializer.dumps(
        {"account_id": account_id, "verification_token": verification_token},
        salt=VERIFICATION_SALT,
    )


def read_verification_token(token: str, max_age: int = VERIFICATION_TOKEN_MAX_AGE) -> Optional[dict[str, Any]]:
    """
    Verify and decode an email verification token

    Returns:
        Decoded data if valid, None if invalid or expired
    """
    serializer = URLSafeTimedSerializer(SECRET_KEY)
    try:
        return serializer.loads(token, salt=VERIFICATION_SALT, max_age=max_age)
    except SignatureExpired:
        logger.warning("Verification token expired")
        return None
    except BadSignature:
        logger.warning("Invalid verification token signature")
        return None


def create_access_token(account_id: str, role: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create the bearer token returned at login

    Args:
        account_id: Stored as the `sub` claim
        role: patient or practitioner
        expires_delta: Token lifetime (default ACCESS_TOKEN_EXPIRE_HOURS)
    """
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS))
    to_encode = {"sub": account_id, "role": role, "exp": expire}
    return jose_jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def verify_access_token(token: str) -> Optional[dict[str, Any]]:
    """
    Verify and decode a bearer token

    Returns:
        Decoded payload if valid, None if invalid or expired
    """
    try:
        return jose_jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        return None


def mask_sensitive_data(data: str, visible_chars: int = 4) -> str:
    """Mask tokens and keys for logging"""
    if not data or len(data) <= visible_chars:
        return "****"
    return data[:visible_chars] + "*" * (len(data) - visible_chars)
