from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Body, Depends, Query, status

from ...clock import Clock
from ...db import ClarityDB, SessionRecord, UserRecord
from ..deps import get_clock, get_current_user, get_db
from ..errors import not_found
from ..schemas import SessionBreakRequest, SessionCompleteRequest, SessionCreateRequest, SessionOut

router = APIRouter(prefix="/api/pomodoro-sessions", tags=["sessions"])


def session_out(item: SessionRecord) -> SessionOut:
    return SessionOut(
        id=item.id,
        user_id=item.user_id,
        task_id=item.task_id,
        duration=item.duration,
        start_time=item.start_time,
        end_time=item.end_time,
        completed=item.completed,
        notes=item.notes,
        interruptions=item.interruptions,
        break_duration=item.break_duration,
        status=item.status,
        actual_duration=item.actual_duration,
        efficiency=item.efficiency,
        created_at=item.created_at,
        updated_at=item.updated_at,
    )


@router.get("", response_model=list[SessionOut])
def list_sessions(
    since: datetime | None = None,
    until: datetime | None = None,
    task_id: int | None = Query(default=None, alias="taskId"),
    completed: bool | None = None,
    limit: int = Query(default=500, ge=1, le=2000),
    user: UserRecord = Depends(get_current_user),
    db: ClarityDB = Depends(get_db),
) -> list[SessionOut]:
    items = db.list_sessions(
        user.id,
        since=since,
        until=until,
        task_id=task_id,
        completed=completed,
        limit=limit,
    )
    return [session_out(item) for item in items]


@router.post("", response_model=SessionOut, status_code=status.HTTP_201_CREATED)
def create_session(
    payload: SessionCreateRequest,
    user: UserRecord = Depends(get_current_user),
    db: ClarityDB = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> SessionOut:
    try:
        item = db.create_session(
            user.id,
            duration=payload.duration,
            task_id=payload.task_id,
            start_time=payload.start_time,
            notes=payload.notes,
            break_duration=payload.break_duration,
            now=clock.now(),
        )
    except LookupError as exc:
        raise not_found("Task") from exc
    return session_out(item)


@router.get("/{session_id}", response_model=SessionOut)
def get_session(
    session_id: int,
    user: UserRecord = Depends(get_current_user),
    db: ClarityDB = Depends(get_db),
) -> SessionOut:
    item = db.get_session(user.id, session_id)
    if item is None:
        raise not_found("Session")
    return session_out(item)


@router.put("/{session_id}/complete", response_model=SessionOut)
def complete_session(
    session_id: int,
    payload: SessionCompleteRequest | None = Body(default=None),
    user: UserRecord = Depends(get_current_user),
    db: ClarityDB = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> SessionOut:
    notes = payload.notes if payload is not None else None
    item = db.complete_session(user.id, session_id, notes=notes, now=clock.now())
    if item is None:
        raise not_found("Session")
    return session_out(item)


@router.put("/{session_id}/interrupt", response_model=SessionOut)
def interrupt_session(
    session_id: int,
    user: UserRecord = Depends(get_current_user),
    db: ClarityDB = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> SessionOut:
    item = db.interrupt_session(user.id, session_id, now=clock.now())
    if item is None:
        raise not_found("Session")
    return session_out(item)


@router.put("/{session_id}/break", response_model=SessionOut)
def add_break(
    session_id: int,
    payload: SessionBreakRequest,
    user: UserRecord = Depends(get_current_user),
    db: ClarityDB = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> SessionOut:
    item = db.add_break_time(user.id, session_id, payload.minutes, now=clock.now())
    if item is None:
        raise not_found("Session")
    return session_out(item)
