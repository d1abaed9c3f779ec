from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from ...db import ClarityDB, UserRecord
from ...exporting import render_sessions_csv, render_tasks_csv
from ..deps import get_current_user, get_db

router = APIRouter(prefix="/api/export", tags=["export"])


@router.get("/csv", response_class=PlainTextResponse)
def export_csv(
    kind: Literal["tasks", "sessions"] = "tasks",
    user: UserRecord = Depends(get_current_user),
    db: ClarityDB = Depends(get_db),
) -> PlainTextResponse:
    content = render_tasks_csv(db, user.id) if kind == "tasks" else render_sessions_csv(db, user.id)
    return PlainTextResponse(
        content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{kind}.csv"'},
    )
