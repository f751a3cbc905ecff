import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from agency_backend.core.config import settings
from agency_backend.core.exceptions import InvalidToken, TokenExpired

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS)


# Validates that a password meets minimum length requirements
def is_valid_password(password: str) -> bool:
    return bool(password) and len(password) >= 8


# Hashes a password using bcrypt after validating its length
def hash_password(password: str) -> str:
    if not is_valid_password(password):
        raise ValueError("Password must be at least 8 characters long")
    return pwd_context.hash(password)


# Verifies a plain password against its hashed version
def verify_password(password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(password, hashed_password)
    except (ValueError, TypeError) as e:
        logger.warning("Password verification error: %s", e)
        return False


# Creates a JWT access token carrying the user id and role
def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


# Creates a JWT refresh token signed with the separate refresh secret
def create_refresh_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS))
    # jti keeps two refresh tokens issued in the same second distinct
    to_encode.update({"exp": expire, "type": "refresh", "jti": uuid.uuid4().hex})
    return jwt.encode(to_encode, settings.JWT_REFRESH_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def _decode(token: str, secret: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, secret, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError as e:
        raise TokenExpired() from e
    except JWTError as e:
        raise InvalidToken() from e


# Decodes an access token, raising TokenExpired or InvalidToken
def decode_access_token(token: str) -> Dict[str, Any]:
    payload = _decode(token, settings.JWT_SECRET_KEY)
    if payload.get("type") != "access" or not payload.get("sub"):
        raise InvalidToken()
    return payload


# Decodes a refresh token, raising TokenExpired or InvalidToken
def decode_refresh_token(token: str) -> Dict[str, Any]:
    payload = _decode(token, settings.JWT_REFRESH_SECRET_KEY)
    if payload.get("type") != "refresh" or not payload.get("sub"):
        raise InvalidToken("Invalid refresh token")
    return payload


# Creates a short-lived password reset token bound to the current password hash
def create_reset_token(user_id: str, password_hash: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.PASSWORD_RESET_TOKEN_EXPIRE_MINUTES)
    to_encode = {"sub": user_id, "type": "reset", "fp": password_hash[-12:], "exp": expire}
    return jwt.encode(to_encode, settings.JWT_REFRESH_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


# Decodes a password reset token, raising TokenExpired or InvalidToken
def decode_reset_token(token: str) -> Dict[str, Any]:
    payload = _decode(token, settings.JWT_REFRESH_SECRET_KEY)
    if payload.get("type") != "reset" or not payload.get("sub"):
        raise InvalidToken("Invalid reset token")
    return payload


def issue_token_pair(user_id: str, role: str) -> Dict[str, Any]:
    access_token = create_access_token({"sub": user_id, "role": role})
    refresh_token = create_refresh_token({"sub": user_id})
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "bearer",
        "expires_in": settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    }
