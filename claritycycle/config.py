from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
import re
from typing import Mapping

from dotenv import load_dotenv

from .db import default_db_path

DEFAULT_JWT_SECRET = "change-me-clarity-cycle-secret"

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


@dataclass(frozen=True)
class PasswordPolicy:
    min_length: int = 8
    require_uppercase: bool = True
    require_lowercase: bool = True
    require_numbers: bool = True
    require_special_chars: bool = False


@dataclass(frozen=True)
class SmtpSettings:
    host: str = ""
    port: int = 587
    username: str = ""
    password: str = ""
    use_tls: bool = True
    sender: str = ""
    contact_recipient: str = ""

    @property
    def enabled(self) -> bool:
        return bool(self.host and self.contact_recipient)


@dataclass(frozen=True)
class Settings:
    db_path: Path = field(default_factory=default_db_path)
    environment: str = "development"
    api_version: str = "1.0.0"
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_expires_in_sec: int = 7 * 86400
    bcrypt_rounds: int = 12
    cors_origins: tuple[str, ...] = ("http://localhost:5173",)
    rate_limit_window_sec: int = 15 * 60
    rate_limit_max_requests: int = 100
    rate_limit_sweep_sec: int = 5 * 60
    password_policy: PasswordPolicy = field(default_factory=PasswordPolicy)
    smtp: SmtpSettings = field(default_factory=SmtpSettings)


@dataclass(frozen=True)
class ConfigReport:
    errors: list[str]
    warnings: list[str]
    info: list[str]

    @property
    def is_valid(self) -> bool:
        return not self.errors


def parse_duration(text: str) -> int:
    """Parse ``"7d"``, ``"12h"``, ``"30m"`` or plain seconds into seconds."""
    match = _DURATION_RE.match(text or "")
    if match is None:
        raise ValueError(f"invalid duration: {text!r}")
    return int(match.group(1)) * _DURATION_UNITS[match.group(2)]


def _env_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from exc


def load_settings(env: Mapping[str, str] | None = None, dotenv: bool = True) -> Settings:
    if env is None:
        if dotenv:
            load_dotenv()
        env = os.environ

    db_raw = (env.get("CLARITY_DB_PATH") or "").strip()
    cors_raw = env.get("CORS_ORIGINS") or env.get("CORS_ORIGIN") or "http://localhost:5173"
    cors_origins = tuple(origin.strip() for origin in cors_raw.split(",") if origin.strip())

    policy = PasswordPolicy(
        min_length=_env_int(env, "MIN_PASSWORD_LENGTH", 8),
        require_uppercase=_env_bool(env, "REQUIRE_UPPERCASE", True),
        require_lowercase=_env_bool(env, "REQUIRE_LOWERCASE", True),
        require_numbers=_env_bool(env, "REQUIRE_NUMBERS", True),
        require_special_chars=_env_bool(env, "REQUIRE_SPECIAL_CHARS", False),
    )
    smtp_user = (env.get("SMTP_USER") or env.get("EMAIL_USER") or "").strip()
    smtp = SmtpSettings(
        host=(env.get("SMTP_HOST") or "").strip(),
        port=_env_int(env, "SMTP_PORT", 587),
        username=smtp_user,
        password=env.get("SMTP_PASSWORD") or env.get("EMAIL_PASSWORD") or "",
        use_tls=_env_bool(env, "SMTP_TLS", True),
        sender=(env.get("SMTP_SENDER") or smtp_user).strip(),
        contact_recipient=(env.get("CONTACT_EMAIL") or smtp_user).strip(),
    )

    return Settings(
        db_path=Path(db_raw) if db_raw else default_db_path(),
        environment=(env.get("CLARITY_ENV") or "development").strip().lower(),
        api_version=(env.get("API_VERSION") or "1.0.0").strip(),
        jwt_secret=env.get("JWT_SECRET") or DEFAULT_JWT_SECRET,
        jwt_expires_in_sec=parse_duration(env.get("JWT_EXPIRES_IN") or "7d"),
        bcrypt_rounds=_env_int(env, "BCRYPT_ROUNDS", 12),
        cors_origins=cors_origins,
        rate_limit_window_sec=_env_int(env, "RATE_LIMIT_WINDOW_SEC", 15 * 60),
        rate_limit_max_requests=_env_int(env, "RATE_LIMIT_MAX_REQUESTS", 100),
        rate_limit_sweep_sec=_env_int(env, "RATE_LIMIT_SWEEP_SEC", 5 * 60),
        password_policy=policy,
        smtp=smtp,
    )


def validate_settings(settings: Settings) -> ConfigReport:
    errors: list[str] = []
    warnings: list[str] = []
    info: list[str] = []

    if not settings.jwt_secret:
        errors.append("JWT_SECRET is empty")
    elif settings.jwt_secret == DEFAULT_JWT_SECRET:
        if settings.environment == "production":
            errors.append("JWT_SECRET must be changed from default in production")
        else:
            warnings.append("JWT_SECRET uses the development default")
    elif len(settings.jwt_secret) < 32:
        warnings.append("JWT_SECRET is shorter than 32 characters")

    if settings.jwt_expires_in_sec <= 0:
        errors.append("JWT_EXPIRES_IN must be positive")
    if not 4 <= settings.bcrypt_rounds <= 31:
        errors.append("BCRYPT_ROUNDS must be between 4 and 31")
    elif settings.bcrypt_rounds < 10:
        warnings.append("BCRYPT_ROUNDS is set to less than 10, which may be insecure")
    if settings.password_policy.min_length < 8:
        warnings.append("MIN_PASSWORD_LENGTH is set to less than 8 characters")
    if settings.rate_limit_window_sec <= 0 or settings.rate_limit_max_requests <= 0:
        errors.append("rate limit window and max requests must be positive")

    if settings.smtp.enabled:
        info.append("Email service is configured")
    else:
        warnings.append("Email service is not configured; contact messages are only logged")

    info.append(f"Database: {settings.db_path}")
    return ConfigReport(errors=errors, warnings=warnings, info=info)


def settings_summary(settings: Settings) -> dict[str, object]:
    return {
        "jwtExpiresInSec": settings.jwt_expires_in_sec,
        "emailEnabled": settings.smtp.enabled,
        "passwordPolicy": {
            "minLength": settings.password_policy.min_length,
            "requireUppercase": settings.password_policy.require_uppercase,
            "requireLowercase": settings.password_policy.require_lowercase,
            "requireNumbers": settings.password_policy.require_numbers,
            "requireSpecialChars": settings.password_policy.require_special_chars,
        },
        "rateLimit": {
            "windowSec": settings.rate_limit_window_sec,
            "maxRequests": settings.rate_limit_max_requests,
        },
    }
