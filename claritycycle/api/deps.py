from __future__ import annotations

from pathlib import Path
from typing import Callable

from fastapi import Depends, Request, Response

from ..clock import Clock
from ..config import Settings
from ..db import ClarityDB, UserRecord
from ..mailer import Mailer
from ..security import TokenError, decode_token
from .errors import ApiError, unauthorized


def get_db(request: Request) -> ClarityDB:
    db_path = Path(request.app.state.db_path)
    return ClarityDB(db_path)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer


def get_current_user(
    request: Request,
    db: ClarityDB = Depends(get_db),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> UserRecord:
    header = request.headers.get("Authorization", "")
    parts = header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise unauthorized("Access token required", "Please provide a valid authentication token")

    try:
        claims = decode_token(parts[1], settings, now=clock.now())
    except TokenError as exc:
        raise unauthorized(exc.error, exc.message) from exc

    user = db.get_user(claims.user_id)
    if user is None:
        raise unauthorized("Invalid token", "User no longer exists")
    if not user.is_active:
        raise unauthorized("Account deactivated", "Your account has been deactivated")
    return user


def rate_limited(name: str) -> Callable[[Request, Response], None]:
    def _check(request: Request, response: Response) -> None:
        limiter = request.app.state.limiters[name]
        client = request.client.host if request.client else "unknown"
        decision = limiter.check(client)
        if not decision.allowed:
            raise ApiError(
                429,
                "Rate limit exceeded",
                f"Too many requests. Please try again in {decision.retry_after_sec} seconds.",
                headers=decision.headers(),
                extra={"retryAfter": decision.retry_after_sec},
            )
        response.headers.update(decision.headers())

    return _check
