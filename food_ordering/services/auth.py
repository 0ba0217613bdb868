from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from jose import JWTError, jwt

from food_ordering.core.config import (
    BCRYPT_ROUNDS,
    JWT_ALGORITHM,
    JWT_EXPIRE_MINUTES,
    JWT_REFRESH_EXPIRE_MINUTES,
    JWT_REFRESH_SECRET_KEY,
    JWT_SECRET_KEY,
)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


# =========================
# PASSWORD (bcrypt directly)
# =========================
def _normalize_password_for_bcrypt(password: str) -> bytes:
    """
    bcrypt only looks at the first 72 bytes and newer releases reject
    longer input, so truncate instead of failing.
    """
    pw = (password or "").encode("utf-8")
    if len(pw) <= 72:
        return pw
    return pw[:72]


def hash_password(password: str) -> str:
    pw = _normalize_password_for_bcrypt(password)
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(pw, salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    try:
        pw = _normalize_password_for_bcrypt(plain_password)
        ph = (password_hash or "").encode("utf-8")
        return bcrypt.checkpw(pw, ph)
    except ValueError:
        # malformed stored hash
        return False


# =========================
# JWT HELPERS
# =========================
def _build_claims(user_id: int | str, email: str, role: str, token_type: str, expires_minutes: int) -> Dict[str, Any]:
    """
    "sub" must be a string for python-jose; "user_id" is repeated for
    clients that read it directly.
    """
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=expires_minutes)
    return {
        "sub": str(user_id),
        "user_id": str(user_id),
        "email": email,
        "role": role,
        "type": token_type,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }


def create_access_token(
    user_id: int | str,
    email: str,
    role: str,
    expires_minutes: int = JWT_EXPIRE_MINUTES,
) -> str:
    claims = _build_claims(user_id, email, role, ACCESS_TOKEN_TYPE, expires_minutes)
    return jwt.encode(claims, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def create_refresh_token(
    user_id: int | str,
    email: str,
    role: str,
    expires_minutes: int = JWT_REFRESH_EXPIRE_MINUTES,
) -> str:
    claims = _build_claims(user_id, email, role, REFRESH_TOKEN_TYPE, expires_minutes)
    return jwt.encode(claims, JWT_REFRESH_SECRET_KEY, algorithm=JWT_ALGORITHM)


def create_token_pair(user) -> Dict[str, str]:
    return {
        "access_token": create_access_token(user.id, user.email, user.role),
        "refresh_token": create_refresh_token(user.id, user.email, user.role),
        "token_type": "bearer",
    }


def _decode(token: str, secret: str, expected_type: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        raise ValueError("Invalid or expired token") from e
    if payload.get("type") != expected_type:
        raise ValueError("Invalid or expired token")
    return payload


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Return the JWT payload or raise ValueError when invalid.
    """
    return _decode(token, JWT_SECRET_KEY, ACCESS_TOKEN_TYPE)


def decode_refresh_token(token: str) -> Dict[str, Any]:
    return _decode(token, JWT_REFRESH_SECRET_KEY, REFRESH_TOKEN_TYPE)


def extract_user_id(payload: Dict[str, Any]) -> Optional[int]:
    """Read the user id from "sub" (or "user_id") as an int."""
    raw = payload.get("sub", None)
    if raw is None:
        raw = payload.get("user_id", None)

    if raw is None:
        return None

    if isinstance(raw, int):
        return raw

    if isinstance(raw, str):
        raw = raw.strip()
        if raw.isdigit():
            return int(raw)

    return None
