from __future__ import annotations

from datetime import timedelta, timezone

from fastapi import APIRouter, Depends, Query

from ...clock import Clock
from ...db import ClarityDB, UserRecord
from ...reporting import load_week_summary
from ..deps import get_clock, get_current_user, get_db
from ..schemas import DayRecordOut, TrackRecordOut, WeeklyStatsOut

router = APIRouter(prefix="/api", tags=["track-record"])


@router.get("/track-record", response_model=TrackRecordOut)
def track_record(
    week: int = Query(default=0, le=0, description="Whole weeks before the current week"),
    tz_offset: int | None = Query(
        default=None,
        alias="tzOffset",
        ge=-14 * 60,
        le=14 * 60,
        description="Client UTC offset in minutes; server local time when omitted",
    ),
    user: UserRecord = Depends(get_current_user),
    db: ClarityDB = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> TrackRecordOut:
    if tz_offset is None:
        # naive wall-clock time, so week midnights follow local DST rules
        now = clock.now().astimezone().replace(tzinfo=None)
    else:
        now = clock.now().astimezone(timezone(timedelta(minutes=tz_offset)))

    summary = load_week_summary(db, user.id, offset=week, now=now)
    return TrackRecordOut(
        week=summary.offset,
        week_start=summary.week_start,
        week_end=summary.week_end,
        days=[DayRecordOut(**vars(day)) for day in summary.days],
        stats=WeeklyStatsOut(**vars(summary.stats)),
    )
