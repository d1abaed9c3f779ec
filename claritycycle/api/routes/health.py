from __future__ import annotations

from fastapi import APIRouter, Depends

from ...clock import Clock
from ...config import Settings, settings_summary
from ..deps import get_clock, get_settings
from ..schemas import ConfigOut, HealthOut, ServerInfoOut

router = APIRouter(prefix="/api", tags=["system"])


@router.get("/health", response_model=HealthOut)
def health(clock: Clock = Depends(get_clock)) -> HealthOut:
    return HealthOut(timestamp=clock.now())


@router.get("/config", response_model=ConfigOut)
def config(settings: Settings = Depends(get_settings)) -> ConfigOut:
    return ConfigOut(
        auth=settings_summary(settings),
        server=ServerInfoOut(version=settings.api_version, environment=settings.environment),
    )
