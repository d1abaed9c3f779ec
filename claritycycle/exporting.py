from __future__ import annotations

import csv
import io
from pathlib import Path

from .db import ClarityDB

TASK_COLUMNS = [
    "id",
    "title",
    "description",
    "status",
    "priority",
    "due_date",
    "estimated_pomodoros",
    "completed_pomodoros",
    "tags",
    "created_at",
    "updated_at",
]

SESSION_COLUMNS = [
    "id",
    "task_id",
    "duration",
    "start_time",
    "end_time",
    "completed",
    "notes",
    "interruptions",
    "break_duration",
]


def _iso(value) -> str:
    return value.isoformat() if value is not None else ""


def render_tasks_csv(db: ClarityDB, user_id: int) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(TASK_COLUMNS)
    for item in db.list_all_tasks(user_id):
        writer.writerow(
            [
                item.id,
                item.title,
                item.description or "",
                item.status,
                item.priority,
                _iso(item.due_date),
                item.estimated_pomodoros,
                item.completed_pomodoros,
                ",".join(item.tags),
                _iso(item.created_at),
                _iso(item.updated_at),
            ]
        )
    return buffer.getvalue()


def render_sessions_csv(db: ClarityDB, user_id: int) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(SESSION_COLUMNS)
    for item in db.list_all_sessions(user_id):
        writer.writerow(
            [
                item.id,
                item.task_id if item.task_id is not None else "",
                item.duration,
                _iso(item.start_time),
                _iso(item.end_time),
                1 if item.completed else 0,
                item.notes or "",
                item.interruptions,
                item.break_duration,
            ]
        )
    return buffer.getvalue()


def export_user_csv(db: ClarityDB, user_id: int, out_dir: Path) -> tuple[Path, Path]:
    out_path = Path(out_dir)
    out_path.mkdir(parents=True, exist_ok=True)
    tasks_path = out_path / f"tasks-{user_id}.csv"
    sessions_path = out_path / f"sessions-{user_id}.csv"
    tasks_path.write_text(render_tasks_csv(db, user_id), encoding="utf-8", newline="")
    sessions_path.write_text(render_sessions_csv(db, user_id), encoding="utf-8", newline="")
    return tasks_path, sessions_path
