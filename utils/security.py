from __future__ import annotations

import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt
from werkzeug.security import generate_password_hash, check_password_hash


class AuthError(Exception):
    """Raised when a bearer token cannot be accepted."""

    def __init__(self, message: str, reason: str = "invalid"):
        super().__init__(message)
        self.reason = reason


def hash_password(plain: str, method: str = "pbkdf2:sha256", salt_length: int = 16) -> str:
    plain = (plain or "").strip()
    return generate_password_hash(plain, method=method, salt_length=salt_length)


def is_hashed(value: Optional[str]) -> bool:
    if not value:
        return False
    v = str(value)
    # Werkzeug hashes usually start with method prefix like 'pbkdf2:sha256:'
    return v.startswith("pbkdf2:") or v.startswith("scrypt:")


def legacy_sha256(plain: str, salt: str = "") -> str:
    return hashlib.sha256(((plain or "") + (salt or "")).encode("utf-8")).hexdigest()


def verify_password(stored_value: str, candidate: str, salt: str = "") -> bool:
    """Verify a stored admin password hash.

    - Werkzeug hashes are checked with check_password_hash.
    - Otherwise the stored value is a sha256 hex digest, either of
      ``password + salt`` or (older deployments) of the bare password.
    Empty stored values never match.
    """
    if not stored_value:
        return False
    if is_hashed(stored_value):
        return check_password_hash(stored_value, candidate or "")
    stored = stored_value.strip().lower()
    if hmac.compare_digest(legacy_sha256(candidate, salt), stored):
        return True
    return hmac.compare_digest(legacy_sha256(candidate), stored)


def issue_token(email: str, secret: str, expires_hours: int = 8, role: str = "admin",
                algorithm: str = "HS256") -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "email": email,
        "role": role,
        "iat": now,
        "exp": now + timedelta(hours=expires_hours),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_token(token: str, secret: str, algorithm: str = "HS256") -> dict[str, Any]:
    try:
        return jwt.decode(token, secret, algorithms=[algorithm], options={"require": ["exp"]})
    except jwt.ExpiredSignatureError as e:
        raise AuthError("Your session has expired. Please log in again.", reason="expired") from e
    except jwt.InvalidTokenError as e:
        raise AuthError("Invalid authentication token.", reason="invalid") from e


def expires_within(claims: dict[str, Any], seconds: float) -> bool:
    exp = claims.get("exp")
    if exp is None:
        return False
    remaining = float(exp) - datetime.now(timezone.utc).timestamp()
    return remaining < seconds
