from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status

from ...clock import Clock
from ...config import Settings
from ...db import ClarityDB, UserRecord
from ...security import hash_password, issue_token, validate_password, verify_password
from ..deps import get_clock, get_current_user, get_db, get_settings, rate_limited
from ..errors import not_found, unauthorized, validation_failed
from ..schemas import (
    AuthOut,
    ChangePasswordRequest,
    DeleteAccountRequest,
    LoginRequest,
    MessageOut,
    PreferencesOut,
    ProfileOut,
    ProfileUpdateRequest,
    RegisterRequest,
    UserOut,
    UserStatsOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"], dependencies=[Depends(rate_limited("auth"))])


def user_out(user: UserRecord) -> UserOut:
    return UserOut(
        id=user.id,
        username=user.username,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        full_name=user.full_name,
        avatar=user.avatar,
        preferences=PreferencesOut(**vars(user.preferences)),
        stats=UserStatsOut(**vars(user.stats)),
        completion_rate=user.completion_rate,
        average_focus_time=user.average_focus_time,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def _check_password_policy(password: str, field_name: str, settings: Settings) -> None:
    problems = validate_password(password, settings.password_policy)
    if problems:
        raise validation_failed([{"field": field_name, "message": text} for text in problems])


@router.post(
    "/register",
    response_model=AuthOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limited("register"))],
)
def register(
    payload: RegisterRequest,
    db: ClarityDB = Depends(get_db),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> AuthOut:
    _check_password_policy(payload.password, "password", settings)
    now = clock.now()
    user = db.create_user(
        username=payload.username,
        email=payload.email,
        password_hash=hash_password(payload.password, settings.bcrypt_rounds),
        first_name=payload.first_name,
        last_name=payload.last_name,
        now=now,
    )
    logger.info("registered user %s", user.id)
    return AuthOut(
        message="User registered successfully",
        token=issue_token(user, settings, now=now),
        user=user_out(user),
    )


@router.post("/login", response_model=AuthOut, dependencies=[Depends(rate_limited("login"))])
def login(
    payload: LoginRequest,
    db: ClarityDB = Depends(get_db),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> AuthOut:
    user = db.get_user_by_email(payload.email)
    if user is None:
        raise unauthorized("Invalid credentials", "Email or password is incorrect")
    if not user.is_active:
        raise unauthorized("Account deactivated", "Your account has been deactivated")
    if not verify_password(payload.password, user.password_hash):
        raise unauthorized("Invalid credentials", "Email or password is incorrect")

    now = clock.now()
    db.record_login(user.id, now=now)
    refreshed = db.get_user(user.id) or user
    return AuthOut(
        message="Login successful",
        token=issue_token(refreshed, settings, now=now),
        user=user_out(refreshed),
    )


@router.get("/profile", response_model=ProfileOut)
def get_profile(user: UserRecord = Depends(get_current_user)) -> ProfileOut:
    return ProfileOut(user=user_out(user))


@router.put("/profile", response_model=ProfileOut)
def update_profile(
    payload: ProfileUpdateRequest,
    user: UserRecord = Depends(get_current_user),
    db: ClarityDB = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> ProfileOut:
    changes = payload.model_dump(exclude_unset=True)
    if payload.preferences is not None:
        changes["preferences"] = payload.preferences.model_dump(exclude_none=True)
    updated = db.update_user_profile(user.id, changes, now=clock.now())
    if updated is None:
        raise not_found("User")
    return ProfileOut(message="Profile updated successfully", user=user_out(updated))


@router.put(
    "/change-password",
    response_model=MessageOut,
    dependencies=[Depends(rate_limited("password"))],
)
def change_password(
    payload: ChangePasswordRequest,
    user: UserRecord = Depends(get_current_user),
    db: ClarityDB = Depends(get_db),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> MessageOut:
    if not verify_password(payload.current_password, user.password_hash):
        raise unauthorized("Invalid current password", "Current password is incorrect")
    _check_password_policy(payload.new_password, "newPassword", settings)
    db.set_password_hash(user.id, hash_password(payload.new_password, settings.bcrypt_rounds), now=clock.now())
    return MessageOut(message="Password changed successfully")


@router.delete("/account", response_model=MessageOut)
def delete_account(
    payload: DeleteAccountRequest,
    user: UserRecord = Depends(get_current_user),
    db: ClarityDB = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> MessageOut:
    if not verify_password(payload.password, user.password_hash):
        raise unauthorized("Invalid password", "Password is incorrect")
    db.deactivate_user(user.id, now=clock.now())
    logger.info("deactivated user %s", user.id)
    return MessageOut(message="Account deactivated successfully")
