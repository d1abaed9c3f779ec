from __future__ import annotations

import io
import unittest

from claritycycle.clock import FakeClock
from claritycycle.mailer import Mailer
from claritycycle.ratelimit import RateLimiter, RateLimitStore, build_limiters
from claritycycle.tests.test_helpers import STRONG_PASSWORD, local_tmp_dir, make_settings, register_user


class TestRateLimitStore(unittest.TestCase):
    def test_window_resets_and_sweep_drops_expired(self) -> None:
        clock = FakeClock()
        store = RateLimitStore(clock=clock)
        limiter = RateLimiter(store, "login", window_sec=60, max_requests=2)

        self.assertTrue(limiter.check("1.2.3.4").allowed)
        second = limiter.check("1.2.3.4")
        self.assertTrue(second.allowed)
        self.assertEqual(second.remaining, 0)

        denied = limiter.check("1.2.3.4")
        self.assertFalse(denied.allowed)
        self.assertEqual(denied.retry_after_sec, 60)
        self.assertEqual(denied.headers()["Retry-After"], "60")
        self.assertTrue(limiter.check("5.6.7.8").allowed)

        clock.advance(61)
        self.assertEqual(store.sweep(), 2)
        self.assertEqual(len(store), 0)
        self.assertTrue(limiter.check("1.2.3.4").allowed)

    def test_sweep_keeps_live_entries(self) -> None:
        clock = FakeClock()
        store = RateLimitStore(clock=clock)
        store.hit("a", 10)
        clock.advance(5)
        store.hit("b", 10)
        clock.advance(6)

        self.assertEqual(store.sweep(), 1)
        self.assertEqual(len(store), 1)

    def test_scopes_are_independent(self) -> None:
        store = RateLimitStore(clock=FakeClock())
        limiters = build_limiters(store, window_sec=900, max_requests=8)

        self.assertEqual(limiters["auth"].max_requests, 4)
        self.assertEqual(limiters["login"].max_requests, 2)
        self.assertEqual(limiters["password"].max_requests, 1)
        self.assertEqual(limiters["contact"].max_requests, 2)
        for _ in range(2):
            limiters["login"].check("ip")
        self.assertFalse(limiters["login"].check("ip").allowed)
        self.assertTrue(limiters["register"].check("ip").allowed)
        self.assertTrue(limiters["contact"].check("ip").allowed)

    def test_limit_never_below_one(self) -> None:
        limiter = RateLimiter(RateLimitStore(clock=FakeClock()), "tiny", window_sec=0, max_requests=0)
        self.assertEqual(limiter.max_requests, 1)
        self.assertTrue(limiter.check("ip").allowed)


class TestRateLimitAPI(unittest.TestCase):
    def setUp(self) -> None:
        try:
            from fastapi.testclient import TestClient  # noqa: F401
            from claritycycle.api.app import create_app  # noqa: F401
        except Exception as exc:  # pragma: no cover
            self.skipTest(f"fastapi test client unavailable: {exc}")

    def test_login_limit_returns_429(self) -> None:
        from fastapi.testclient import TestClient

        from claritycycle.api.app import create_app

        with local_tmp_dir() as tmp:
            settings = make_settings(tmp, rate_limit_max_requests=8)
            clock = FakeClock()
            app = create_app(settings=settings, clock=clock, mailer=Mailer(settings.smtp, stream=io.StringIO()))
            client = TestClient(app)
            register_user(client, "alice")
            payload = {"email": "alice@example.com", "password": STRONG_PASSWORD}

            first = client.post("/api/auth/login", json=payload)
            self.assertEqual(first.status_code, 200)
            self.assertEqual(first.headers["X-RateLimit-Limit"], "2")
            self.assertEqual(client.post("/api/auth/login", json=payload).status_code, 200)

            blocked = client.post("/api/auth/login", json=payload)
            self.assertEqual(blocked.status_code, 429)
            self.assertEqual(blocked.json()["error"], "Rate limit exceeded")
            self.assertEqual(blocked.json()["retryAfter"], 900)
            self.assertEqual(blocked.headers["Retry-After"], "900")

            clock.advance(901)
            self.assertEqual(client.post("/api/auth/login", json=payload).status_code, 200)

    def test_lifespan_sweeper_runs_with_app(self) -> None:
        from fastapi.testclient import TestClient

        from claritycycle.api.app import create_app

        with local_tmp_dir() as tmp:
            settings = make_settings(tmp)
            app = create_app(settings=settings, clock=FakeClock(), mailer=Mailer(settings.smtp, stream=io.StringIO()))
            with TestClient(app) as client:
                self.assertEqual(client.get("/api/health").status_code, 200)


if __name__ == "__main__":
    unittest.main()
