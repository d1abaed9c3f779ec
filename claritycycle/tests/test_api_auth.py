from __future__ import annotations

import io
import unittest

from claritycycle.clock import FakeClock
from claritycycle.mailer import Mailer
from claritycycle.tests.test_helpers import STRONG_PASSWORD, local_tmp_dir, make_settings, register_user


class TestAuthAPI(unittest.TestCase):
    def setUp(self) -> None:
        try:
            from fastapi.testclient import TestClient  # noqa: F401
            from claritycycle.api.app import create_app  # noqa: F401
        except Exception as exc:  # pragma: no cover
            self.skipTest(f"fastapi test client unavailable: {exc}")

    def _client(self, tmp, clock: FakeClock | None = None, **overrides):
        from fastapi.testclient import TestClient

        from claritycycle.api.app import create_app

        settings = make_settings(tmp, **overrides)
        app = create_app(
            settings=settings,
            clock=clock or FakeClock(),
            mailer=Mailer(settings.smtp, stream=io.StringIO()),
        )
        return TestClient(app)

    def test_register_login_and_profile(self) -> None:
        with local_tmp_dir() as tmp:
            client = self._client(tmp)

            registered = client.post(
                "/api/auth/register",
                json={
                    "username": "alice",
                    "email": "Alice@Example.com",
                    "password": STRONG_PASSWORD,
                    "firstName": "Alice",
                    "lastName": "Liddell",
                },
            )
            self.assertEqual(registered.status_code, 201)
            body = registered.json()
            self.assertTrue(body["token"])
            user = body["user"]
            self.assertEqual(user["email"], "alice@example.com")
            self.assertEqual(user["fullName"], "Alice Liddell")
            self.assertEqual(user["preferences"]["defaultPomodoroDuration"], 25)
            self.assertEqual(user["preferences"]["theme"], "system")
            self.assertNotIn("passwordHash", user)
            self.assertNotIn("password", user)

            login = client.post("/api/auth/login", json={"email": "alice@example.com", "password": STRONG_PASSWORD})
            self.assertEqual(login.status_code, 200)
            self.assertEqual(login.json()["message"], "Login successful")

            auth = {"Authorization": f"Bearer {login.json()['token']}"}
            profile = client.get("/api/auth/profile", headers=auth)
            self.assertEqual(profile.status_code, 200)
            self.assertEqual(profile.json()["user"]["username"], "alice")

    def test_register_rejects_weak_password_and_duplicates(self) -> None:
        with local_tmp_dir() as tmp:
            client = self._client(tmp)

            weak = client.post(
                "/api/auth/register",
                json={"username": "alice", "email": "alice@example.com", "password": "short"},
            )
            self.assertEqual(weak.status_code, 400)
            self.assertTrue(all(item["field"] == "password" for item in weak.json()["details"]))

            register_user(client, "alice")
            same_email = client.post(
                "/api/auth/register",
                json={"username": "alice2", "email": "alice@example.com", "password": STRONG_PASSWORD},
            )
            self.assertEqual(same_email.status_code, 400)
            self.assertEqual(same_email.json()["details"][0]["field"], "email")

    def test_wrong_password(self) -> None:
        with local_tmp_dir() as tmp:
            client = self._client(tmp)
            register_user(client, "alice")

            response = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "Wrong1234"})

            self.assertEqual(response.status_code, 401)
            self.assertEqual(response.json()["error"], "Invalid credentials")

    def test_update_profile_preferences(self) -> None:
        with local_tmp_dir() as tmp:
            client = self._client(tmp)
            auth = register_user(client, "alice")

            updated = client.put(
                "/api/auth/profile",
                json={"firstName": "Al", "preferences": {"theme": "dark", "defaultPomodoroDuration": 50}},
                headers=auth,
            )
            self.assertEqual(updated.status_code, 200)
            user = updated.json()["user"]
            self.assertEqual(user["firstName"], "Al")
            self.assertEqual(user["preferences"]["theme"], "dark")
            self.assertEqual(user["preferences"]["defaultPomodoroDuration"], 50)
            self.assertEqual(user["preferences"]["defaultBreakDuration"], 5)

            bad = client.put("/api/auth/profile", json={"preferences": {"theme": "neon"}}, headers=auth)
            self.assertEqual(bad.status_code, 400)

    def test_change_password(self) -> None:
        with local_tmp_dir() as tmp:
            client = self._client(tmp)
            auth = register_user(client, "alice")

            wrong = client.put(
                "/api/auth/change-password",
                json={"currentPassword": "Nope12345", "newPassword": "NewPassw0rd"},
                headers=auth,
            )
            self.assertEqual(wrong.status_code, 401)

            changed = client.put(
                "/api/auth/change-password",
                json={"currentPassword": STRONG_PASSWORD, "newPassword": "NewPassw0rd"},
                headers=auth,
            )
            self.assertEqual(changed.status_code, 200)

            old = client.post("/api/auth/login", json={"email": "alice@example.com", "password": STRONG_PASSWORD})
            new = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "NewPassw0rd"})
            self.assertEqual(old.status_code, 401)
            self.assertEqual(new.status_code, 200)

    def test_deactivated_account_rejected(self) -> None:
        with local_tmp_dir() as tmp:
            client = self._client(tmp)
            auth = register_user(client, "alice")

            deleted = client.request("DELETE", "/api/auth/account", json={"password": STRONG_PASSWORD}, headers=auth)
            self.assertEqual(deleted.status_code, 200)

            profile = client.get("/api/auth/profile", headers=auth)
            self.assertEqual(profile.status_code, 401)
            self.assertEqual(profile.json()["error"], "Account deactivated")

            tasks = client.get("/api/tasks", headers=auth)
            self.assertEqual(tasks.status_code, 401)

            login = client.post("/api/auth/login", json={"email": "alice@example.com", "password": STRONG_PASSWORD})
            self.assertEqual(login.status_code, 401)

    def test_expired_token(self) -> None:
        with local_tmp_dir() as tmp:
            clock = FakeClock()
            client = self._client(tmp, clock=clock, jwt_expires_in_sec=3600)
            auth = register_user(client, "alice")

            self.assertEqual(client.get("/api/auth/profile", headers=auth).status_code, 200)
            clock.advance(3601)
            expired = client.get("/api/auth/profile", headers=auth)
            self.assertEqual(expired.status_code, 401)
            self.assertEqual(expired.json()["error"], "Token expired")

    def test_token_signed_with_other_secret(self) -> None:
        with local_tmp_dir() as tmp:
            first = self._client(tmp / "a", jwt_secret="first-secret-first-secret-first-secret")
            auth = register_user(first, "alice")
            second = self._client(tmp / "a", jwt_secret="other-secret-other-secret-other-secret")

            response = second.get("/api/auth/profile", headers=auth)

            self.assertEqual(response.status_code, 401)
            self.assertEqual(response.json()["error"], "Invalid token")


if __name__ == "__main__":
    unittest.main()
