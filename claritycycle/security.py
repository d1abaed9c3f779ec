from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import re
import secrets
import string

import bcrypt
import jwt

from .config import PasswordPolicy, Settings
from .db import UserRecord

JWT_ALGORITHM = "HS256"
BCRYPT_MAX_BYTES = 72

_SPECIAL_RE = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")


class TokenError(Exception):
    """Raised when a bearer token cannot be resolved to a user id."""

    def __init__(self, error: str, message: str) -> None:
        super().__init__(message)
        self.error = error
        self.message = message


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    username: str
    email: str
    issued_at: datetime
    expires_at: datetime


def validate_password(password: str, policy: PasswordPolicy) -> list[str]:
    errors: list[str] = []
    if len(password) < policy.min_length:
        errors.append(f"Password must be at least {policy.min_length} characters long")
    if len(password.encode("utf-8")) > BCRYPT_MAX_BYTES:
        errors.append(f"Password cannot exceed {BCRYPT_MAX_BYTES} bytes")
    if policy.require_uppercase and not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if policy.require_lowercase and not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if policy.require_numbers and not re.search(r"\d", password):
        errors.append("Password must contain at least one number")
    if policy.require_special_chars and not _SPECIAL_RE.search(password):
        errors.append("Password must contain at least one special character")
    return errors


def hash_password(password: str, rounds: int = 12) -> str:
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("ascii")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("ascii"))
    except ValueError:
        return False


def password_strength(password: str) -> int:
    """Score from 0 (very weak) to 4 (strong)."""
    score = 0
    if len(password) >= 8:
        score += 1
    if len(password) >= 12:
        score += 1
    if re.search(r"[a-z]", password):
        score += 1
    if re.search(r"[A-Z]", password):
        score += 1
    if re.search(r"\d", password):
        score += 1
    if _SPECIAL_RE.search(password):
        score += 1
    if re.search(r"(.)\1{2,}", password):
        score -= 1
    if re.search(r"123|abc|qwe", password, re.IGNORECASE):
        score -= 1
    return max(0, min(4, score))


def generate_password(policy: PasswordPolicy, length: int = 16) -> str:
    pools: list[str] = []
    if policy.require_lowercase:
        pools.append(string.ascii_lowercase)
    if policy.require_uppercase:
        pools.append(string.ascii_uppercase)
    if policy.require_numbers:
        pools.append(string.digits)
    if policy.require_special_chars:
        pools.append("!@#$%^&*")

    alphabet = string.ascii_letters + string.digits + "!@#$%^&*"
    chars = [secrets.choice(pool) for pool in pools]
    while len(chars) < max(length, policy.min_length):
        chars.append(secrets.choice(alphabet))
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


def issue_token(user: UserRecord, settings: Settings, now: datetime | None = None) -> str:
    issued = now or datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "username": user.username,
        "email": user.email,
        "iat": int(issued.timestamp()),
        "exp": int((issued + timedelta(seconds=settings.jwt_expires_in_sec)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str, settings: Settings, now: datetime | None = None) -> TokenClaims:
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[JWT_ALGORITHM],
            options={"verify_exp": False, "verify_iat": False},
        )
    except jwt.InvalidTokenError as exc:
        raise TokenError("Invalid token", "The provided token is invalid or expired") from exc

    try:
        user_id = int(payload["sub"])
        expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        issued_at = datetime.fromtimestamp(int(payload.get("iat", 0)), tz=timezone.utc)
    except (KeyError, TypeError, ValueError) as exc:
        raise TokenError("Invalid token", "The provided token is invalid or expired") from exc

    # exp is compared against the caller clock, not the wall clock PyJWT uses.
    if (now or datetime.now(timezone.utc)) >= expires_at:
        raise TokenError("Token expired", "Your session has expired. Please log in again")

    return TokenClaims(
        user_id=user_id,
        username=str(payload.get("username", "")),
        email=str(payload.get("email", "")),
        issued_at=issued_at,
        expires_at=expires_at,
    )
