from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from threading import Lock

from .clock import Clock, RealClock


@dataclass
class RateLimitEntry:
    count: int
    reset_at: datetime


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: datetime
    retry_after_sec: int

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": self.reset_at.isoformat(),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after_sec)
        return headers


class RateLimitStore:
    """Keyed request counters that expire after their window."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or RealClock()
        self._lock = Lock()
        self._entries: dict[str, RateLimitEntry] = {}

    def hit(self, key: str, window_sec: int) -> RateLimitEntry:
        now = self._clock.now()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or now > entry.reset_at:
                entry = RateLimitEntry(count=0, reset_at=now + timedelta(seconds=window_sec))
                self._entries[key] = entry
            entry.count += 1
            return RateLimitEntry(count=entry.count, reset_at=entry.reset_at)

    def sweep(self) -> int:
        now = self._clock.now()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if now > entry.reset_at]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def now(self) -> datetime:
        return self._clock.now()


class RateLimiter:
    def __init__(self, store: RateLimitStore, scope: str, window_sec: int, max_requests: int) -> None:
        self.store = store
        self.scope = scope
        self.window_sec = max(1, int(window_sec))
        self.max_requests = max(1, int(max_requests))

    def check(self, client_key: str) -> RateLimitDecision:
        entry = self.store.hit(f"{self.scope}:{client_key}", self.window_sec)
        now = self.store.now()
        retry_after = max(0, int((entry.reset_at - now).total_seconds() + 0.999))
        return RateLimitDecision(
            allowed=entry.count <= self.max_requests,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - entry.count),
            reset_at=entry.reset_at,
            retry_after_sec=retry_after,
        )


def build_limiters(store: RateLimitStore, window_sec: int, max_requests: int) -> dict[str, RateLimiter]:
    return {
        "auth": RateLimiter(store, "auth", window_sec, max_requests // 2),
        "login": RateLimiter(store, "login", window_sec, max_requests // 4),
        "register": RateLimiter(store, "register", window_sec, max_requests // 4),
        "password": RateLimiter(store, "password-change", window_sec, max_requests // 8),
        "contact": RateLimiter(store, "contact", window_sec, max_requests // 4),
    }
