from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
import math
from pathlib import Path
from typing import Any, Iterable

from .db import ClarityDB

DAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")
FULL_DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")
LAST_MOMENT = timedelta(milliseconds=1)


@dataclass(frozen=True)
class DayRecord:
    date: date
    day_name: str
    focus_sessions: int
    total_focus_time: int
    tasks_completed: int
    total_tasks: int
    breaks_taken: int
    productivity: int
    streak: bool


@dataclass(frozen=True)
class WeeklyStats:
    total_sessions: int
    total_focus_time: int
    total_tasks: int
    completed_tasks: int
    average_productivity: int
    current_streak: int
    best_day: str
    improvement: int


@dataclass(frozen=True)
class WeekSummary:
    offset: int
    week_start: datetime
    week_end: datetime
    days: tuple[DayRecord, ...]
    stats: WeeklyStats


def format_minutes(minutes: int) -> str:
    total = max(0, int(minutes))
    hours, mins = divmod(total, 60)
    return f"{hours}h {mins}m"


def week_bounds(now: datetime, offset: int = 0) -> tuple[datetime, datetime]:
    """Sunday 00:00:00.000 through Saturday 23:59:59.999 of the week ``offset`` weeks from ``now``.

    A naive ``now`` is server wall-clock time and each midnight takes the local
    UTC offset in force on that date. An aware ``now`` keeps its own tzinfo.
    """
    shifted = now.date() + timedelta(days=offset * 7)
    first = shifted - timedelta(days=(shifted.weekday() + 1) % 7)
    return _midnight(first, now.tzinfo), _midnight(first + timedelta(days=7), now.tzinfo) - LAST_MOMENT


def build_week_summary(
    tasks: Iterable[Any],
    sessions: Iterable[Any],
    offset: int = 0,
    now: datetime | None = None,
) -> WeekSummary:
    """Aggregate one week of tasks and focus sessions into per-day and weekly figures.

    ``tasks`` and ``sessions`` may be records or mappings using either
    snake_case or camelCase keys. Items with missing or unreadable dates are
    left out of every count. Only ``offset <= 0`` is accepted.
    """
    if offset > 0:
        raise ValueError("week offset must not point to a future week")

    ref = now or datetime.now()
    tz = ref.tzinfo
    week_start, week_end = week_bounds(ref, offset)
    prev_start, _ = week_bounds(ref, offset - 1)
    first_day = week_start.date()

    sessions_per_day = [0] * 7
    minutes_per_day = [0] * 7
    breaks_per_day = [0] * 7
    created_per_day = [0] * 7
    completed_per_day = [0] * 7
    completed_last_week = 0

    for item in sessions:
        idx = _day_index(_field_time(item, "start_time", "startTime", tz), first_day, tz)
        if idx is None:
            continue
        sessions_per_day[idx] += 1
        minutes_per_day[idx] += _field_minutes(item, "duration")
        if _field_minutes(item, "break_duration", "breakDuration") > 0:
            breaks_per_day[idx] += 1

    for item in tasks:
        created_idx = _day_index(_field_time(item, "created_at", "createdAt", tz), first_day, tz)
        if created_idx is not None:
            created_per_day[created_idx] += 1

        if _field(item, "status") != "completed":
            continue
        updated = _field_time(item, "updated_at", "updatedAt", tz)
        updated_idx = _day_index(updated, first_day, tz)
        if updated_idx is not None:
            completed_per_day[updated_idx] += 1
        elif updated is not None and prev_start <= updated < week_start:
            completed_last_week += 1

    days: list[DayRecord] = []
    for idx in range(7):
        created = created_per_day[idx]
        completed = completed_per_day[idx]
        productivity = _round_half_up(100 * completed / created) if created else 0
        days.append(
            DayRecord(
                date=first_day + timedelta(days=idx),
                day_name=DAY_NAMES[idx],
                focus_sessions=sessions_per_day[idx],
                total_focus_time=minutes_per_day[idx],
                tasks_completed=completed,
                total_tasks=created,
                breaks_taken=breaks_per_day[idx],
                productivity=productivity,
                streak=completed > 0,
            )
        )

    completed_tasks = sum(completed_per_day)
    stats = WeeklyStats(
        total_sessions=sum(sessions_per_day),
        total_focus_time=sum(minutes_per_day),
        total_tasks=sum(created_per_day),
        completed_tasks=completed_tasks,
        average_productivity=_round_half_up(sum(day.productivity for day in days) / 7),
        current_streak=_current_streak(days, ref.date(), first_day),
        best_day=_best_day(days),
        improvement=_improvement(completed_tasks, completed_last_week),
    )
    return WeekSummary(
        offset=offset,
        week_start=week_start,
        week_end=week_end,
        days=tuple(days),
        stats=stats,
    )


def load_week_summary(
    db: ClarityDB,
    user_id: int,
    offset: int = 0,
    now: datetime | None = None,
) -> WeekSummary:
    ref = now or datetime.now()
    week_start, week_end = week_bounds(ref, offset)
    window_start, _ = week_bounds(ref, offset - 1)
    window_end = week_end + LAST_MOMENT
    tasks = db.list_tasks_touched_between(user_id, window_start, window_end)
    sessions = db.list_sessions_between(user_id, week_start, window_end)
    return build_week_summary(tasks, sessions, offset=offset, now=ref)


def render_week_markdown(summary: WeekSummary, title: str = "Clarity Cycle") -> str:
    stats = summary.stats
    lines: list[str] = []
    lines.append(f"# {title} weekly track record")
    lines.append("")
    lines.append(
        f"- Week: {summary.week_start.strftime('%Y-%m-%d')} to {summary.week_end.strftime('%Y-%m-%d')}"
    )
    lines.append("")

    lines.append("## Overview")
    lines.append(f"- Focus sessions: {stats.total_sessions}")
    lines.append(f"- Focus time: {format_minutes(stats.total_focus_time)}")
    lines.append(f"- Tasks completed: {stats.completed_tasks} / {stats.total_tasks}")
    lines.append(f"- Average productivity: {stats.average_productivity}%")
    lines.append(f"- Current streak: {stats.current_streak} days")
    lines.append(f"- Best day: {stats.best_day or '-'}")
    lines.append(f"- Change vs. last week: {stats.improvement:+d}%")
    lines.append("")

    lines.append("## Daily breakdown")
    lines.append("| Day | Date | Sessions | Focus | Completed | Created | Productivity |")
    lines.append("| --- | --- | --- | --- | --- | --- | --- |")
    for day in summary.days:
        lines.append(
            f"| {day.day_name} | {day.date.isoformat()} | {day.focus_sessions} | "
            f"{format_minutes(day.total_focus_time)} | {day.tasks_completed} | {day.total_tasks} | "
            f"{day.productivity}% |"
        )
    lines.append("")
    return "\n".join(lines)


def generate_weekly_report(
    db: ClarityDB,
    user_id: int,
    out_dir: Path,
    offset: int = 0,
    now: datetime | None = None,
) -> Path:
    summary = load_week_summary(db, user_id, offset=offset, now=now)
    return write_week_report(summary, user_id, out_dir)


def write_week_report(summary: WeekSummary, user_id: int, out_dir: Path) -> Path:
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    report_path = out_dir / f"track-record-{user_id}-{summary.week_start.strftime('%Y-%m-%d')}.md"
    report_path.write_text(render_week_markdown(summary), encoding="utf-8")
    return report_path


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _midnight(day: date, tz: tzinfo | None) -> datetime:
    value = datetime.combine(day, time.min)
    if tz is None:
        return value.astimezone()
    return value.replace(tzinfo=tz)


def _current_streak(days: list[DayRecord], today: date, first_day: date) -> int:
    if today < first_day:
        return 0
    last_idx = min(6, (today - first_day).days)
    streak = 0
    for idx in range(last_idx, -1, -1):
        if days[idx].tasks_completed == 0:
            break
        streak += 1
    return streak


def _best_day(days: list[DayRecord]) -> str:
    best: DayRecord | None = None
    for day in days:
        if best is None or (day.productivity, day.tasks_completed) > (best.productivity, best.tasks_completed):
            best = day
    if best is None or (best.productivity == 0 and best.tasks_completed == 0):
        return ""
    return FULL_DAY_NAMES[DAY_NAMES.index(best.day_name)]


def _improvement(current: int, previous: int) -> int:
    if previous == 0:
        return 100 if current > 0 else 0
    return _round_half_up((current - previous) / previous * 100)


def _day_index(value: datetime | None, first_day: date, tz: tzinfo | None) -> int | None:
    if value is None:
        return None
    idx = (value.astimezone(tz).date() - first_day).days
    return idx if 0 <= idx < 7 else None


def _field(item: Any, *names: str) -> Any:
    for name in names:
        if isinstance(item, dict):
            if name in item:
                return item[name]
        elif hasattr(item, name):
            return getattr(item, name)
    return None


def _field_time(item: Any, snake: str, camel: str, tz: tzinfo | None) -> datetime | None:
    value = _field(item, snake, camel)
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        value = value.astimezone() if tz is None else value.replace(tzinfo=tz)
    return value


def _field_minutes(item: Any, *names: str) -> int:
    value = _field(item, *names)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if not math.isfinite(value) or value < 0:
        return 0
    return int(round(value))
