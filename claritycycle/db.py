from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, timezone
import json
import os
from pathlib import Path
import sqlite3
from typing import Any, Iterable, Mapping

TASK_STATUSES = ("todo", "in-progress", "completed")
TASK_PRIORITIES = ("low", "medium", "high")
THEMES = ("light", "dark", "system")

TITLE_MAX = 100
DESCRIPTION_MAX = 500
TAG_MAX = 20
ESTIMATE_MIN, ESTIMATE_MAX = 1, 50
DURATION_MIN, DURATION_MAX = 1, 120
BREAK_MIN, BREAK_MAX = 0, 60
NOTES_MAX = 1000

_TASK_FIELDS = {
    "title",
    "description",
    "status",
    "priority",
    "due_date",
    "estimated_pomodoros",
    "completed_pomodoros",
    "tags",
}


class ValidationError(ValueError):
    """Raised when a write would break a field constraint."""

    def __init__(self, field_name: str, message: str) -> None:
        super().__init__(message)
        self.field = field_name
        self.message = message


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _to_utc_text(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.%f")


def _from_utc_text(text: str | None) -> datetime | None:
    if not text:
        return None
    return datetime.strptime(text, "%Y-%m-%dT%H:%M:%S.%f").replace(tzinfo=timezone.utc)


def normalize_tags(raw: str | Iterable[str] | None) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        pieces = raw.split(",")
    else:
        pieces = list(raw)

    clean: list[str] = []
    seen: set[str] = set()
    for piece in pieces:
        tag = str(piece).strip().lower()
        if not tag or tag in seen:
            continue
        if "," in tag:
            raise ValidationError("tags", "Tags cannot contain commas")
        if len(tag) > TAG_MAX:
            raise ValidationError("tags", f"Tag cannot exceed {TAG_MAX} characters")
        seen.add(tag)
        clean.append(tag)
    return clean


@dataclass(frozen=True)
class Preferences:
    default_pomodoro_duration: int = 25
    default_break_duration: int = 5
    auto_start_breaks: bool = False
    auto_start_pomodoros: bool = False
    sound_enabled: bool = True
    notifications_enabled: bool = True
    theme: str = "system"

    def merged(self, changes: Mapping[str, Any]) -> "Preferences":
        known = {key: value for key, value in changes.items() if key in vars(self) and value is not None}
        merged = replace(self, **known)
        if not DURATION_MIN <= merged.default_pomodoro_duration <= DURATION_MAX:
            raise ValidationError(
                "preferences.defaultPomodoroDuration",
                "Default pomodoro duration must be between 1 and 120 minutes",
            )
        if not 1 <= merged.default_break_duration <= BREAK_MAX:
            raise ValidationError(
                "preferences.defaultBreakDuration",
                "Default break duration must be between 1 and 60 minutes",
            )
        if merged.theme not in THEMES:
            raise ValidationError("preferences.theme", "Theme must be light, dark, or system")
        return merged


@dataclass(frozen=True)
class UserStats:
    total_pomodoros: int = 0
    total_tasks: int = 0
    total_completed_tasks: int = 0
    total_focus_time: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_active_date: datetime | None = None


@dataclass(frozen=True)
class UserRecord:
    id: int
    username: str
    email: str
    password_hash: str
    first_name: str | None
    last_name: str | None
    avatar: str | None
    preferences: Preferences
    stats: UserStats
    is_active: bool
    last_login_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @property
    def full_name(self) -> str:
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.first_name or self.last_name or self.username

    @property
    def completion_rate(self) -> int:
        if self.stats.total_tasks == 0:
            return 0
        return round(self.stats.total_completed_tasks / self.stats.total_tasks * 100)

    @property
    def average_focus_time(self) -> int:
        """Mean focus minutes per completed pomodoro."""
        if self.stats.total_pomodoros == 0:
            return 0
        return round(self.stats.total_focus_time / self.stats.total_pomodoros)


@dataclass(frozen=True)
class TaskRecord:
    id: int
    user_id: int
    title: str
    description: str | None
    status: str
    priority: str
    due_date: datetime | None
    estimated_pomodoros: int
    completed_pomodoros: int
    tags: list[str] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def progress_percentage(self) -> float:
        if self.estimated_pomodoros <= 0:
            return 0.0
        return min(self.completed_pomodoros / self.estimated_pomodoros * 100, 100.0)

    def is_overdue(self, now: datetime | None = None) -> bool:
        if self.due_date is None or self.status == "completed":
            return False
        return (now or utc_now()) > self.due_date


@dataclass(frozen=True)
class SessionRecord:
    id: int
    user_id: int
    task_id: int | None
    duration: int
    start_time: datetime
    end_time: datetime | None
    completed: bool
    notes: str | None
    interruptions: int
    break_duration: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def status(self) -> str:
        if self.completed:
            return "completed"
        if self.end_time is not None:
            return "interrupted"
        return "active"

    @property
    def actual_duration(self) -> int:
        """Wall-clock minutes from start to end, or the planned duration while running."""
        if self.end_time is None:
            return self.duration
        return int((self.end_time - self.start_time).total_seconds() / 60 + 0.5)

    @property
    def efficiency(self) -> float:
        if not self.completed or self.end_time is None:
            return 0.0
        actual = self.actual_duration
        if actual <= 0:
            return 0.0
        return min(self.duration / actual * 100, 100.0)


def apply_task_rules(values: dict[str, Any]) -> dict[str, Any]:
    """Clamp completed pomodoros and auto-complete a fully worked task."""
    estimated = int(values.get("estimated_pomodoros") or 0)
    completed = int(values.get("completed_pomodoros") or 0)
    if estimated > 0 and completed > estimated:
        completed = estimated
    values["completed_pomodoros"] = completed
    if estimated > 0 and completed == estimated:
        values["status"] = "completed"
    return values


def _validate_task(values: Mapping[str, Any], now: datetime, check_due_date: bool) -> None:
    title = values.get("title")
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("title", "Task title is required")
    if len(title) > TITLE_MAX:
        raise ValidationError("title", f"Title cannot exceed {TITLE_MAX} characters")
    description = values.get("description")
    if description is not None and len(description) > DESCRIPTION_MAX:
        raise ValidationError("description", f"Description cannot exceed {DESCRIPTION_MAX} characters")
    if values.get("status") not in TASK_STATUSES:
        raise ValidationError("status", "Status must be one of: todo, in-progress, completed")
    if values.get("priority") not in TASK_PRIORITIES:
        raise ValidationError("priority", "Priority must be one of: low, medium, high")
    estimated = values.get("estimated_pomodoros")
    if not isinstance(estimated, int) or not ESTIMATE_MIN <= estimated <= ESTIMATE_MAX:
        raise ValidationError("estimatedPomodoros", "Estimated pomodoros must be between 1 and 50")
    completed = values.get("completed_pomodoros")
    if not isinstance(completed, int) or completed < 0:
        raise ValidationError("completedPomodoros", "Completed pomodoros cannot be negative")
    due_date = values.get("due_date")
    if check_due_date and due_date is not None and _aware(due_date) < now:
        raise ValidationError("dueDate", "Due date cannot be in the past")


def _validate_session(values: Mapping[str, Any]) -> None:
    duration = values.get("duration")
    if not isinstance(duration, int) or not DURATION_MIN <= duration <= DURATION_MAX:
        raise ValidationError("duration", "Duration must be between 1 and 120 minutes")
    break_duration = values.get("break_duration")
    if not isinstance(break_duration, int) or not BREAK_MIN <= break_duration <= BREAK_MAX:
        raise ValidationError("breakDuration", "Break duration must be between 0 and 60 minutes")
    notes = values.get("notes")
    if notes is not None and len(notes) > NOTES_MAX:
        raise ValidationError("notes", f"Notes cannot exceed {NOTES_MAX} characters")
    if values.get("interruptions", 0) < 0:
        raise ValidationError("interruptions", "Interruptions cannot be negative")
    start_time = values.get("start_time")
    end_time = values.get("end_time")
    if start_time is not None and end_time is not None and _aware(end_time) < _aware(start_time):
        raise ValidationError("endTime", "End time cannot be before start time")


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    text = value.strip()
    return text or None


class ClarityDB:
    def __init__(self, db_path: Path, journal_mode: str | None = None) -> None:
        self.db_path = Path(db_path)
        raw_mode = (journal_mode or os.getenv("CLARITY_JOURNAL_MODE") or "MEMORY").strip()
        self.journal_mode = raw_mode.upper() if raw_mode else "MEMORY"
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        self._apply_journal_mode(conn)
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def _apply_journal_mode(self, conn: sqlite3.Connection) -> None:
        try:
            conn.execute(f"PRAGMA journal_mode={self.journal_mode}")
        except sqlite3.OperationalError:
            conn.execute("PRAGMA journal_mode=MEMORY")

    def init_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    username TEXT NOT NULL UNIQUE,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    first_name TEXT,
                    last_name TEXT,
                    avatar TEXT,
                    preferences TEXT NOT NULL DEFAULT '{}',
                    total_pomodoros INTEGER NOT NULL DEFAULT 0,
                    total_tasks INTEGER NOT NULL DEFAULT 0,
                    total_completed_tasks INTEGER NOT NULL DEFAULT 0,
                    total_focus_time INTEGER NOT NULL DEFAULT 0,
                    current_streak INTEGER NOT NULL DEFAULT 0,
                    longest_streak INTEGER NOT NULL DEFAULT 0,
                    last_active_date TEXT,
                    is_active INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0, 1)),
                    last_login_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    CHECK (total_completed_tasks <= total_tasks),
                    CHECK (longest_streak >= current_streak)
                );

                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL REFERENCES users(id),
                    title TEXT NOT NULL,
                    description TEXT,
                    status TEXT NOT NULL CHECK (status IN ('todo', 'in-progress', 'completed')),
                    priority TEXT NOT NULL CHECK (priority IN ('low', 'medium', 'high')),
                    due_date TEXT,
                    estimated_pomodoros INTEGER NOT NULL DEFAULT 1,
                    completed_pomodoros INTEGER NOT NULL DEFAULT 0,
                    tags TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    CHECK (completed_pomodoros <= estimated_pomodoros)
                );

                CREATE INDEX IF NOT EXISTS idx_tasks_user_status_created
                ON tasks(user_id, status, created_at);

                CREATE INDEX IF NOT EXISTS idx_tasks_user_priority_due
                ON tasks(user_id, priority, due_date);

                CREATE TABLE IF NOT EXISTS task_tags (
                    task_id INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
                    tag TEXT NOT NULL,
                    PRIMARY KEY (task_id, tag)
                );

                CREATE INDEX IF NOT EXISTS idx_task_tags_tag ON task_tags(tag);

                CREATE TABLE IF NOT EXISTS sessions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL REFERENCES users(id),
                    task_id INTEGER REFERENCES tasks(id) ON DELETE SET NULL,
                    duration INTEGER NOT NULL CHECK (duration BETWEEN 1 AND 120),
                    start_time TEXT NOT NULL,
                    end_time TEXT,
                    completed INTEGER NOT NULL DEFAULT 0 CHECK (completed IN (0, 1)),
                    notes TEXT,
                    interruptions INTEGER NOT NULL DEFAULT 0,
                    break_duration INTEGER NOT NULL DEFAULT 0 CHECK (break_duration BETWEEN 0 AND 60),
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_sessions_user_start
                ON sessions(user_id, start_time);

                CREATE INDEX IF NOT EXISTS idx_sessions_task_start
                ON sessions(task_id, start_time);

                CREATE INDEX IF NOT EXISTS idx_sessions_completed_start
                ON sessions(completed, start_time);
                """
            )

    # Users

    def create_user(
        self,
        username: str,
        email: str,
        password_hash: str,
        first_name: str | None = None,
        last_name: str | None = None,
        now: datetime | None = None,
    ) -> UserRecord:
        ts = _to_utc_text(now or utc_now())
        email = email.strip().lower()
        username = username.strip()
        with self._connect() as conn:
            if conn.execute("SELECT 1 FROM users WHERE username = ?", (username,)).fetchone():
                raise ValidationError("username", "Username already exists")
            if conn.execute("SELECT 1 FROM users WHERE email = ?", (email,)).fetchone():
                raise ValidationError("email", "Email already registered")
            cur = conn.execute(
                """
                INSERT INTO users (
                    username, email, password_hash, first_name, last_name, preferences, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    username,
                    email,
                    password_hash,
                    _clean_text(first_name),
                    _clean_text(last_name),
                    json.dumps(vars(Preferences())),
                    ts,
                    ts,
                ),
            )
            user_id = int(cur.lastrowid)
        user = self.get_user(user_id)
        if user is None:
            raise LookupError(f"user {user_id} missing after insert")
        return user

    def get_user(self, user_id: int) -> UserRecord | None:
        return self._read_user("SELECT * FROM users WHERE id = ?", (user_id,))

    def get_user_by_email(self, email: str) -> UserRecord | None:
        return self._read_user("SELECT * FROM users WHERE email = ?", (email.strip().lower(),))

    def get_user_by_username(self, username: str) -> UserRecord | None:
        return self._read_user("SELECT * FROM users WHERE username = ?", (username.strip(),))

    def update_user_profile(
        self,
        user_id: int,
        changes: Mapping[str, Any],
        now: datetime | None = None,
    ) -> UserRecord | None:
        user = self.get_user(user_id)
        if user is None:
            return None

        first_name = _clean_text(changes["first_name"]) if "first_name" in changes else user.first_name
        last_name = _clean_text(changes["last_name"]) if "last_name" in changes else user.last_name
        avatar = _clean_text(changes["avatar"]) if "avatar" in changes else user.avatar
        preferences = user.preferences
        if changes.get("preferences"):
            preferences = preferences.merged(changes["preferences"])

        with self._connect() as conn:
            conn.execute(
                """
                UPDATE users
                SET first_name = ?, last_name = ?, avatar = ?, preferences = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    first_name,
                    last_name,
                    avatar,
                    json.dumps(vars(preferences)),
                    _to_utc_text(now or utc_now()),
                    user_id,
                ),
            )
        return self.get_user(user_id)

    def set_password_hash(self, user_id: int, password_hash: str, now: datetime | None = None) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE users SET password_hash = ?, updated_at = ? WHERE id = ?",
                (password_hash, _to_utc_text(now or utc_now()), user_id),
            )

    def record_login(self, user_id: int, now: datetime | None = None) -> None:
        ts = _to_utc_text(now or utc_now())
        with self._connect() as conn:
            conn.execute(
                "UPDATE users SET last_login_at = ?, updated_at = ? WHERE id = ?",
                (ts, ts, user_id),
            )

    def deactivate_user(self, user_id: int, now: datetime | None = None) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE users SET is_active = 0, updated_at = ? WHERE id = ?",
                (_to_utc_text(now or utc_now()), user_id),
            )

    def _refresh_stats(self, conn: sqlite3.Connection, user_id: int, now: datetime) -> None:
        task_row = conn.execute(
            """
            SELECT COUNT(*) AS total,
                   COALESCE(SUM(CASE WHEN status = 'completed' THEN 1 ELSE 0 END), 0) AS done
            FROM tasks WHERE user_id = ?
            """,
            (user_id,),
        ).fetchone()
        session_row = conn.execute(
            """
            SELECT COUNT(*) AS total, COALESCE(SUM(duration), 0) AS minutes
            FROM sessions WHERE user_id = ? AND completed = 1
            """,
            (user_id,),
        ).fetchone()
        done_days = {
            _from_utc_text(row["updated_at"]).date()
            for row in conn.execute(
                "SELECT updated_at FROM tasks WHERE user_id = ? AND status = 'completed'",
                (user_id,),
            )
        }
        current = _streak_ending(done_days, _aware(now).astimezone(timezone.utc).date())
        previous = conn.execute("SELECT longest_streak FROM users WHERE id = ?", (user_id,)).fetchone()
        longest = max(int(previous["longest_streak"]) if previous else 0, current)

        conn.execute(
            """
            UPDATE users
            SET total_pomodoros = ?, total_tasks = ?, total_completed_tasks = ?, total_focus_time = ?,
                current_streak = ?, longest_streak = ?, last_active_date = ?
            WHERE id = ?
            """,
            (
                int(session_row["total"]),
                int(task_row["total"]),
                int(task_row["done"]),
                int(session_row["minutes"]),
                current,
                longest,
                _to_utc_text(now),
                user_id,
            ),
        )

    def _read_user(self, query: str, params: tuple[object, ...]) -> UserRecord | None:
        with self._connect() as conn:
            row = conn.execute(query, params).fetchone()
        if row is None:
            return None

        stored_prefs = json.loads(row["preferences"] or "{}")
        preferences = replace(
            Preferences(),
            **{key: value for key, value in stored_prefs.items() if key in vars(Preferences())},
        )
        return UserRecord(
            id=int(row["id"]),
            username=row["username"],
            email=row["email"],
            password_hash=row["password_hash"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            avatar=row["avatar"],
            preferences=preferences,
            stats=UserStats(
                total_pomodoros=int(row["total_pomodoros"]),
                total_tasks=int(row["total_tasks"]),
                total_completed_tasks=int(row["total_completed_tasks"]),
                total_focus_time=int(row["total_focus_time"]),
                current_streak=int(row["current_streak"]),
                longest_streak=int(row["longest_streak"]),
                last_active_date=_from_utc_text(row["last_active_date"]),
            ),
            is_active=bool(row["is_active"]),
            last_login_at=_from_utc_text(row["last_login_at"]),
            created_at=_from_utc_text(row["created_at"]),
            updated_at=_from_utc_text(row["updated_at"]),
        )

    # Tasks

    def create_task(
        self,
        user_id: int,
        title: str,
        description: str | None = None,
        status: str | None = None,
        priority: str | None = None,
        due_date: datetime | None = None,
        estimated_pomodoros: int | None = None,
        completed_pomodoros: int | None = None,
        tags: Iterable[str] | str | None = None,
        now: datetime | None = None,
    ) -> TaskRecord:
        ref = now or utc_now()
        values: dict[str, Any] = {
            "title": title.strip() if isinstance(title, str) else title,
            "description": _clean_text(description),
            "status": status or "todo",
            "priority": priority or "medium",
            "due_date": due_date,
            "estimated_pomodoros": ESTIMATE_MIN if estimated_pomodoros is None else estimated_pomodoros,
            "completed_pomodoros": completed_pomodoros or 0,
            "tags": normalize_tags(tags),
        }
        _validate_task(values, ref, check_due_date=True)
        apply_task_rules(values)

        ts = _to_utc_text(ref)
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO tasks (
                    user_id, title, description, status, priority, due_date,
                    estimated_pomodoros, completed_pomodoros, tags, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    values["title"],
                    values["description"],
                    values["status"],
                    values["priority"],
                    _to_utc_text(due_date) if due_date else None,
                    values["estimated_pomodoros"],
                    values["completed_pomodoros"],
                    ",".join(values["tags"]),
                    ts,
                    ts,
                ),
            )
            task_id = int(cur.lastrowid)
            self._write_tags(conn, task_id, values["tags"])
            self._refresh_stats(conn, user_id, ref)

        task = self.get_task(user_id, task_id)
        if task is None:
            raise LookupError(f"task {task_id} missing after insert")
        return task

    def get_task(self, user_id: int, task_id: int) -> TaskRecord | None:
        tasks = self._read_tasks(
            "SELECT * FROM tasks WHERE id = ? AND user_id = ?",
            [task_id, user_id],
        )
        return tasks[0] if tasks else None

    def list_tasks(
        self,
        user_id: int,
        status: str | None = None,
        priority: str | None = None,
        tag: str | None = None,
    ) -> list[TaskRecord]:
        clauses = ["t.user_id = ?"]
        params: list[object] = [user_id]
        if status:
            clauses.append("t.status = ?")
            params.append(status)
        if priority:
            clauses.append("t.priority = ?")
            params.append(priority)
        if tag:
            clauses.append("t.id IN (SELECT task_id FROM task_tags WHERE tag = ?)")
            params.append(tag.strip().lower())

        query = (
            "SELECT t.* FROM tasks t "
            f"WHERE {' AND '.join(clauses)} "
            "ORDER BY t.created_at DESC, t.id DESC"
        )
        return self._read_tasks(query, params)

    def list_tasks_touched_between(self, user_id: int, start: datetime, end: datetime) -> list[TaskRecord]:
        """Tasks created or last updated inside ``[start, end)``, oldest first."""
        lo, hi = _to_utc_text(start), _to_utc_text(end)
        query = (
            "SELECT * FROM tasks "
            "WHERE user_id = ? AND ((created_at >= ? AND created_at < ?) OR (updated_at >= ? AND updated_at < ?)) "
            "ORDER BY created_at ASC, id ASC"
        )
        return self._read_tasks(query, [user_id, lo, hi, lo, hi])

    def update_task(
        self,
        user_id: int,
        task_id: int,
        changes: Mapping[str, Any],
        now: datetime | None = None,
    ) -> TaskRecord | None:
        current = self.get_task(user_id, task_id)
        if current is None:
            return None

        ref = now or utc_now()
        values: dict[str, Any] = {name: getattr(current, name) for name in _TASK_FIELDS}
        for key, value in changes.items():
            if key not in _TASK_FIELDS:
                continue
            if key == "title" and isinstance(value, str):
                value = value.strip()
            elif key == "description":
                value = _clean_text(value)
            elif key == "tags":
                value = normalize_tags(value)
            elif key in {"status", "priority", "estimated_pomodoros"} and value is None:
                raise ValidationError(_camel(key), f"{_camel(key)} cannot be null")
            elif key == "completed_pomodoros" and value is None:
                value = 0
            values[key] = value

        _validate_task(values, ref, check_due_date="due_date" in changes)
        apply_task_rules(values)
        return self._save_task(user_id, task_id, values, ref)

    def mark_task_complete(self, user_id: int, task_id: int, now: datetime | None = None) -> TaskRecord | None:
        current = self.get_task(user_id, task_id)
        if current is None:
            return None
        values = {name: getattr(current, name) for name in _TASK_FIELDS}
        values["status"] = "completed"
        values["completed_pomodoros"] = current.estimated_pomodoros
        return self._save_task(user_id, task_id, values, now or utc_now())

    def add_pomodoro(self, user_id: int, task_id: int, now: datetime | None = None) -> TaskRecord | None:
        current = self.get_task(user_id, task_id)
        if current is None:
            return None
        values = {name: getattr(current, name) for name in _TASK_FIELDS}
        if current.completed_pomodoros < current.estimated_pomodoros:
            values["completed_pomodoros"] = current.completed_pomodoros + 1
        apply_task_rules(values)
        return self._save_task(user_id, task_id, values, now or utc_now())

    def delete_task(self, user_id: int, task_id: int, now: datetime | None = None) -> bool:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id))
            deleted = cur.rowcount > 0
            if deleted:
                self._refresh_stats(conn, user_id, now or utc_now())
        return deleted

    def _save_task(self, user_id: int, task_id: int, values: Mapping[str, Any], now: datetime) -> TaskRecord | None:
        due_date = values.get("due_date")
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE tasks
                SET title = ?, description = ?, status = ?, priority = ?, due_date = ?,
                    estimated_pomodoros = ?, completed_pomodoros = ?, tags = ?, updated_at = ?
                WHERE id = ? AND user_id = ?
                """,
                (
                    values["title"],
                    values["description"],
                    values["status"],
                    values["priority"],
                    _to_utc_text(due_date) if due_date else None,
                    values["estimated_pomodoros"],
                    values["completed_pomodoros"],
                    ",".join(values["tags"]),
                    _to_utc_text(now),
                    task_id,
                    user_id,
                ),
            )
            self._write_tags(conn, task_id, values["tags"])
            self._refresh_stats(conn, user_id, now)
        return self.get_task(user_id, task_id)

    def _write_tags(self, conn: sqlite3.Connection, task_id: int, tags: list[str]) -> None:
        conn.execute("DELETE FROM task_tags WHERE task_id = ?", (task_id,))
        conn.executemany(
            "INSERT INTO task_tags (task_id, tag) VALUES (?, ?)",
            [(task_id, tag) for tag in tags],
        )

    def _read_tasks(self, query: str, params: list[object]) -> list[TaskRecord]:
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()

        items: list[TaskRecord] = []
        for row in rows:
            items.append(
                TaskRecord(
                    id=int(row["id"]),
                    user_id=int(row["user_id"]),
                    title=row["title"],
                    description=row["description"],
                    status=row["status"],
                    priority=row["priority"],
                    due_date=_from_utc_text(row["due_date"]),
                    estimated_pomodoros=int(row["estimated_pomodoros"]),
                    completed_pomodoros=int(row["completed_pomodoros"]),
                    tags=[tag for tag in (row["tags"] or "").split(",") if tag],
                    created_at=_from_utc_text(row["created_at"]),
                    updated_at=_from_utc_text(row["updated_at"]),
                )
            )
        return items

    # Pomodoro sessions

    def create_session(
        self,
        user_id: int,
        duration: int,
        task_id: int | None = None,
        start_time: datetime | None = None,
        notes: str | None = None,
        break_duration: int = 0,
        now: datetime | None = None,
    ) -> SessionRecord:
        ref = now or utc_now()
        if task_id is not None and self.get_task(user_id, task_id) is None:
            raise LookupError("task not found")

        values: dict[str, Any] = {
            "duration": duration,
            "break_duration": break_duration,
            "notes": _clean_text(notes),
            "start_time": start_time or ref,
            "end_time": None,
        }
        _validate_session(values)
        values["break_duration"] = min(values["break_duration"], values["duration"])

        ts = _to_utc_text(ref)
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO sessions (
                    user_id, task_id, duration, start_time, notes, break_duration, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    task_id,
                    values["duration"],
                    _to_utc_text(values["start_time"]),
                    values["notes"],
                    values["break_duration"],
                    ts,
                    ts,
                ),
            )
            session_id = int(cur.lastrowid)
            self._refresh_stats(conn, user_id, ref)

        session = self.get_session(user_id, session_id)
        if session is None:
            raise LookupError(f"session {session_id} missing after insert")
        return session

    def get_session(self, user_id: int, session_id: int) -> SessionRecord | None:
        items = self._read_sessions(
            "SELECT * FROM sessions WHERE id = ? AND user_id = ?",
            [session_id, user_id],
        )
        return items[0] if items else None

    def list_sessions(
        self,
        user_id: int,
        since: datetime | None = None,
        until: datetime | None = None,
        task_id: int | None = None,
        completed: bool | None = None,
        limit: int = 500,
    ) -> list[SessionRecord]:
        clauses = ["user_id = ?"]
        params: list[object] = [user_id]

        if since is not None:
            clauses.append("start_time >= ?")
            params.append(_to_utc_text(since))
        if until is not None:
            clauses.append("start_time < ?")
            params.append(_to_utc_text(until))
        if task_id is not None:
            clauses.append("task_id = ?")
            params.append(task_id)
        if completed is not None:
            clauses.append("completed = ?")
            params.append(1 if completed else 0)

        safe_limit = max(1, min(2000, int(limit)))
        query = (
            "SELECT * FROM sessions "
            f"WHERE {' AND '.join(clauses)} "
            "ORDER BY start_time DESC, id DESC "
            "LIMIT ?"
        )
        params.append(safe_limit)
        return self._read_sessions(query, params)

    def list_sessions_between(self, user_id: int, start: datetime, end: datetime) -> list[SessionRecord]:
        query = (
            "SELECT * FROM sessions "
            "WHERE user_id = ? AND start_time >= ? AND start_time < ? "
            "ORDER BY start_time ASC, id ASC"
        )
        return self._read_sessions(query, [user_id, _to_utc_text(start), _to_utc_text(end)])

    def list_all_tasks(self, user_id: int) -> list[TaskRecord]:
        return self._read_tasks(
            "SELECT * FROM tasks WHERE user_id = ? ORDER BY created_at ASC, id ASC",
            [user_id],
        )

    def list_all_sessions(self, user_id: int) -> list[SessionRecord]:
        return self._read_sessions(
            "SELECT * FROM sessions WHERE user_id = ? ORDER BY start_time ASC, id ASC",
            [user_id],
        )

    def complete_session(
        self,
        user_id: int,
        session_id: int,
        notes: str | None = None,
        now: datetime | None = None,
    ) -> SessionRecord | None:
        current = self.get_session(user_id, session_id)
        if current is None:
            return None
        ref = now or utc_now()
        changes: dict[str, Any] = {
            "completed": True,
            "end_time": max(ref, current.start_time),
        }
        if notes is not None:
            changes["notes"] = _clean_text(notes)
        return self._save_session(current, changes, ref)

    def interrupt_session(self, user_id: int, session_id: int, now: datetime | None = None) -> SessionRecord | None:
        current = self.get_session(user_id, session_id)
        if current is None:
            return None
        ref = now or utc_now()
        return self._save_session(
            current,
            {"end_time": max(ref, current.start_time), "interruptions": current.interruptions + 1},
            ref,
        )

    def add_break_time(
        self,
        user_id: int,
        session_id: int,
        minutes: int,
        now: datetime | None = None,
    ) -> SessionRecord | None:
        current = self.get_session(user_id, session_id)
        if current is None:
            return None
        if minutes < 0:
            raise ValidationError("minutes", "Break time cannot be negative")
        total = min(current.break_duration + minutes, BREAK_MAX, current.duration)
        return self._save_session(current, {"break_duration": total}, now or utc_now())

    def _save_session(
        self,
        current: SessionRecord,
        changes: Mapping[str, Any],
        now: datetime,
    ) -> SessionRecord | None:
        values: dict[str, Any] = {
            "duration": current.duration,
            "break_duration": current.break_duration,
            "notes": current.notes,
            "start_time": current.start_time,
            "end_time": current.end_time,
            "completed": current.completed,
            "interruptions": current.interruptions,
        }
        values.update(changes)
        if values["completed"] and values["end_time"] is None:
            values["end_time"] = max(now, current.start_time)
        values["break_duration"] = min(values["break_duration"], values["duration"])
        _validate_session(values)

        with self._connect() as conn:
            conn.execute(
                """
                UPDATE sessions
                SET end_time = ?, completed = ?, notes = ?, interruptions = ?, break_duration = ?, updated_at = ?
                WHERE id = ? AND user_id = ?
                """,
                (
                    _to_utc_text(values["end_time"]) if values["end_time"] else None,
                    1 if values["completed"] else 0,
                    values["notes"],
                    values["interruptions"],
                    values["break_duration"],
                    _to_utc_text(now),
                    current.id,
                    current.user_id,
                ),
            )
            self._refresh_stats(conn, current.user_id, now)
        return self.get_session(current.user_id, current.id)

    def _read_sessions(self, query: str, params: list[object]) -> list[SessionRecord]:
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()

        items: list[SessionRecord] = []
        for row in rows:
            items.append(
                SessionRecord(
                    id=int(row["id"]),
                    user_id=int(row["user_id"]),
                    task_id=int(row["task_id"]) if row["task_id"] is not None else None,
                    duration=int(row["duration"]),
                    start_time=_from_utc_text(row["start_time"]),
                    end_time=_from_utc_text(row["end_time"]),
                    completed=bool(row["completed"]),
                    notes=row["notes"],
                    interruptions=int(row["interruptions"]),
                    break_duration=int(row["break_duration"]),
                    created_at=_from_utc_text(row["created_at"]),
                    updated_at=_from_utc_text(row["updated_at"]),
                )
            )
        return items


def _streak_ending(days: set[date], today: date) -> int:
    cursor = today if today in days else today - timedelta(days=1)
    count = 0
    while cursor in days:
        count += 1
        cursor -= timedelta(days=1)
    return count


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def default_db_path() -> Path:
    return Path(__file__).resolve().parent / "data" / "clarity.sqlite"
