from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel

TaskStatus = Literal["todo", "in-progress", "completed"]
TaskPriority = Literal["low", "medium", "high"]
Theme = Literal["light", "dark", "system"]

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$"
URL_PATTERN = r"^https?://\S+$"

Title = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
Description = Annotated[str, StringConstraints(max_length=500)]
Tag = Annotated[str, StringConstraints(strip_whitespace=True, max_length=20, pattern=r"^[^,]*$")]
Notes = Annotated[str, StringConstraints(max_length=1000)]
Name = Annotated[str, StringConstraints(strip_whitespace=True, max_length=50)]
Email = Annotated[str, StringConstraints(strip_whitespace=True, to_lower=True, pattern=EMAIL_PATTERN)]


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorOut(ApiModel):
    error: str
    message: str
    details: list[dict[str, Any]] | None = None


class MessageOut(ApiModel):
    message: str


# Tasks


class TaskCreateRequest(ApiModel):
    title: Title
    description: Description | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: datetime | None = None
    estimated_pomodoros: int | None = Field(default=None, ge=1, le=50)
    tags: list[Tag] = Field(default_factory=list)


class TaskUpdateRequest(ApiModel):
    title: Title | None = None
    description: Description | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: datetime | None = None
    estimated_pomodoros: int | None = Field(default=None, ge=1, le=50)
    completed_pomodoros: int | None = Field(default=None, ge=0)
    tags: list[Tag] | None = None


class TaskOut(ApiModel):
    id: int
    user_id: int
    title: str
    description: str | None = None
    status: TaskStatus
    priority: TaskPriority
    due_date: datetime | None = None
    estimated_pomodoros: int
    completed_pomodoros: int
    tags: list[str]
    progress_percentage: float
    is_overdue: bool
    created_at: datetime
    updated_at: datetime


# Pomodoro sessions


class SessionCreateRequest(ApiModel):
    duration: int = Field(ge=1, le=120)
    task_id: int | None = None
    notes: Notes | None = None
    start_time: datetime | None = None
    break_duration: int = Field(default=0, ge=0, le=60)


class SessionCompleteRequest(ApiModel):
    notes: Notes | None = None


class SessionBreakRequest(ApiModel):
    minutes: int = Field(ge=0, le=60)


class SessionOut(ApiModel):
    id: int
    user_id: int
    task_id: int | None = None
    duration: int
    start_time: datetime
    end_time: datetime | None = None
    completed: bool
    notes: str | None = None
    interruptions: int
    break_duration: int
    status: Literal["active", "completed", "interrupted"]
    actual_duration: int
    efficiency: float
    created_at: datetime
    updated_at: datetime


# Identity


class RegisterRequest(ApiModel):
    username: Annotated[
        str,
        StringConstraints(strip_whitespace=True, min_length=3, max_length=30, pattern=r"^[a-zA-Z0-9_-]+$"),
    ]
    email: Email
    password: str
    first_name: Name | None = None
    last_name: Name | None = None


class LoginRequest(ApiModel):
    email: Email
    password: Annotated[str, StringConstraints(min_length=1)]


class PreferencesUpdate(ApiModel):
    default_pomodoro_duration: int | None = Field(default=None, ge=1, le=120)
    default_break_duration: int | None = Field(default=None, ge=1, le=60)
    auto_start_breaks: bool | None = None
    auto_start_pomodoros: bool | None = None
    sound_enabled: bool | None = None
    notifications_enabled: bool | None = None
    theme: Theme | None = None


class ProfileUpdateRequest(ApiModel):
    first_name: Name | None = None
    last_name: Name | None = None
    avatar: Annotated[str, StringConstraints(strip_whitespace=True, pattern=URL_PATTERN)] | None = None
    preferences: PreferencesUpdate | None = None


class ChangePasswordRequest(ApiModel):
    current_password: Annotated[str, StringConstraints(min_length=1)]
    new_password: str


class DeleteAccountRequest(ApiModel):
    password: Annotated[str, StringConstraints(min_length=1)]


class PreferencesOut(ApiModel):
    default_pomodoro_duration: int
    default_break_duration: int
    auto_start_breaks: bool
    auto_start_pomodoros: bool
    sound_enabled: bool
    notifications_enabled: bool
    theme: Theme


class UserStatsOut(ApiModel):
    total_pomodoros: int
    total_tasks: int
    total_completed_tasks: int
    total_focus_time: int
    current_streak: int
    longest_streak: int
    last_active_date: datetime | None = None


class UserOut(ApiModel):
    id: int
    username: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    full_name: str
    avatar: str | None = None
    preferences: PreferencesOut
    stats: UserStatsOut
    completion_rate: int
    average_focus_time: int
    created_at: datetime
    updated_at: datetime


class AuthOut(ApiModel):
    message: str
    token: str
    user: UserOut


class ProfileOut(ApiModel):
    message: str | None = None
    user: UserOut


# Track record


class DayRecordOut(ApiModel):
    date: date
    day_name: str
    focus_sessions: int
    total_focus_time: int
    tasks_completed: int
    total_tasks: int
    breaks_taken: int
    productivity: int
    streak: bool


class WeeklyStatsOut(ApiModel):
    total_sessions: int
    total_focus_time: int
    total_tasks: int
    completed_tasks: int
    average_productivity: int
    current_streak: int
    best_day: str
    improvement: int


class TrackRecordOut(ApiModel):
    week: int
    week_start: datetime
    week_end: datetime
    days: list[DayRecordOut]
    stats: WeeklyStatsOut


# System & contact


class HealthOut(ApiModel):
    status: str = Field(default="OK")
    message: str = Field(default="Server is running")
    timestamp: datetime


class ServerInfoOut(ApiModel):
    version: str
    environment: str


class ConfigOut(ApiModel):
    auth: dict[str, Any]
    server: ServerInfoOut


class ContactRequest(ApiModel):
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=100)]
    email: Email
    subject: Annotated[str, StringConstraints(strip_whitespace=True, min_length=5, max_length=200)]
    message: Annotated[str, StringConstraints(strip_whitespace=True, min_length=10, max_length=1000)]
    phone: Annotated[str, StringConstraints(strip_whitespace=True, max_length=30)] | None = None


class ContactOut(ApiModel):
    success: bool
    message: str
