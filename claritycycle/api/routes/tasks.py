from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status

from ...clock import Clock
from ...db import ClarityDB, TaskRecord, UserRecord
from ..deps import get_clock, get_current_user, get_db
from ..errors import not_found
from ..schemas import MessageOut, TaskCreateRequest, TaskOut, TaskPriority, TaskStatus, TaskUpdateRequest

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


def task_out(task: TaskRecord, now: datetime) -> TaskOut:
    return TaskOut(
        id=task.id,
        user_id=task.user_id,
        title=task.title,
        description=task.description,
        status=task.status,
        priority=task.priority,
        due_date=task.due_date,
        estimated_pomodoros=task.estimated_pomodoros,
        completed_pomodoros=task.completed_pomodoros,
        tags=task.tags,
        progress_percentage=task.progress_percentage,
        is_overdue=task.is_overdue(now),
        created_at=task.created_at,
        updated_at=task.updated_at,
    )


@router.get("", response_model=list[TaskOut])
def list_tasks(
    status_filter: TaskStatus | None = Query(default=None, alias="status"),
    priority: TaskPriority | None = None,
    tag: str | None = None,
    user: UserRecord = Depends(get_current_user),
    db: ClarityDB = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> list[TaskOut]:
    now = clock.now()
    items = db.list_tasks(user.id, status=status_filter, priority=priority, tag=tag)
    return [task_out(item, now) for item in items]


@router.post("", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
def create_task(
    payload: TaskCreateRequest,
    user: UserRecord = Depends(get_current_user),
    db: ClarityDB = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> TaskOut:
    now = clock.now()
    task = db.create_task(
        user.id,
        title=payload.title,
        description=payload.description,
        status=payload.status,
        priority=payload.priority,
        due_date=payload.due_date,
        estimated_pomodoros=payload.estimated_pomodoros,
        tags=payload.tags,
        now=now,
    )
    return task_out(task, now)


@router.get("/{task_id}", response_model=TaskOut)
def get_task(
    task_id: int,
    user: UserRecord = Depends(get_current_user),
    db: ClarityDB = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> TaskOut:
    task = db.get_task(user.id, task_id)
    if task is None:
        raise not_found("Task")
    return task_out(task, clock.now())


@router.put("/{task_id}", response_model=TaskOut)
def update_task(
    task_id: int,
    payload: TaskUpdateRequest,
    user: UserRecord = Depends(get_current_user),
    db: ClarityDB = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> TaskOut:
    now = clock.now()
    task = db.update_task(user.id, task_id, payload.model_dump(exclude_unset=True), now=now)
    if task is None:
        raise not_found("Task")
    return task_out(task, now)


@router.delete("/{task_id}", response_model=MessageOut)
def delete_task(
    task_id: int,
    user: UserRecord = Depends(get_current_user),
    db: ClarityDB = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> MessageOut:
    if not db.delete_task(user.id, task_id, now=clock.now()):
        raise not_found("Task")
    return MessageOut(message="Task deleted successfully")


@router.put("/{task_id}/complete", response_model=TaskOut)
def complete_task(
    task_id: int,
    user: UserRecord = Depends(get_current_user),
    db: ClarityDB = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> TaskOut:
    now = clock.now()
    task = db.mark_task_complete(user.id, task_id, now=now)
    if task is None:
        raise not_found("Task")
    return task_out(task, now)


@router.post("/{task_id}/pomodoros", response_model=TaskOut)
def add_pomodoro(
    task_id: int,
    user: UserRecord = Depends(get_current_user),
    db: ClarityDB = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> TaskOut:
    now = clock.now()
    task = db.add_pomodoro(user.id, task_id, now=now)
    if task is None:
        raise not_found("Task")
    return task_out(task, now)
