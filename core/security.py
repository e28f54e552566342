"""
Security utilities for password hashing and session token management
"""
from datetime import datetime, timezone
from typing import Any
import secrets

import bcrypt
from jose import jwt

from core.config import get_settings

# Bcrypt configuration
BCRYPT_ROUNDS = 12


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """
    Hash a password using bcrypt

    Args:
        password: Plain text password
        rounds: bcrypt cost factor

    Returns:
        Hashed password string
    """
    password_bytes = password.encode('utf-8')
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password_bytes, salt)
    return hashed.decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash

    Args:
        plain_password: Plain text password to verify
        hashed_password: Hashed password to compare against

    Returns:
        True if password matches, False otherwise
    """
    try:
        password_bytes = plain_password.encode('utf-8')
        hashed_bytes = hashed_password.encode('utf-8')
        return bcrypt.checkpw(password_bytes, hashed_bytes)
    except (ValueError, AttributeError):
        return False


def create_session_token(data: dict[str, Any], expires_at: datetime) -> str:
    """
    Create a signed JWT for a login session

    Args:
        data: Data to encode in the token (typically {"sub": user_id, "sid": session_id})
        expires_at: Absolute expiry of the session

    Returns:
        Encoded JWT token string
    """
    settings = get_settings()
    to_encode = data.copy()
    to_encode.update({
        "exp": expires_at,
        "iat": datetime.now(timezone.utc),
        "type": "session"
    })

    return jwt.encode(
        to_encode,
        settings.SESSION_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM
    )


def decode_token(token: str) -> dict[str, Any]:
    """
    Decode and validate a JWT token

    Args:
        token: JWT token string

    Returns:
        Decoded token payload

    Raises:
        JWTError: If token is invalid or expired
    """
    settings = get_settings()

    payload = jwt.decode(
        token,
        settings.SESSION_SECRET_KEY,
        algorithms=[settings.JWT_ALGORITHM]
    )
    return payload


def generate_secure_token(length: int = 32) -> str:
    """
    Generate a cryptographically secure random token

    Args:
        length: Number of bytes for token (default 32)

    Returns:
        URL-safe token string
    """
    return secrets.token_urlsafe(length)
