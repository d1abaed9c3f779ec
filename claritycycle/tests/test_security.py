from __future__ import annotations

from datetime import datetime, timedelta, timezone
import unittest

from claritycycle.config import PasswordPolicy, Settings
from claritycycle.db import ClarityDB
from claritycycle.security import (
    TokenError,
    decode_token,
    generate_password,
    hash_password,
    issue_token,
    password_strength,
    validate_password,
    verify_password,
)
from claritycycle.tests.test_helpers import local_tmp_dir

NOW = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


class TestPasswords(unittest.TestCase):
    def test_hash_and_verify(self) -> None:
        hashed = hash_password("Passw0rdOk", rounds=4)
        self.assertNotEqual(hashed, "Passw0rdOk")
        self.assertTrue(verify_password("Passw0rdOk", hashed))
        self.assertFalse(verify_password("passw0rdok", hashed))
        self.assertFalse(verify_password("Passw0rdOk", "not-a-bcrypt-hash"))

    def test_policy_messages(self) -> None:
        policy = PasswordPolicy()
        self.assertEqual(validate_password("Passw0rdOk", policy), [])
        problems = validate_password("abc", policy)
        self.assertIn("Password must be at least 8 characters long", problems)
        self.assertIn("Password must contain at least one uppercase letter", problems)
        self.assertIn("Password must contain at least one number", problems)

        strict = PasswordPolicy(require_special_chars=True)
        self.assertIn(
            "Password must contain at least one special character",
            validate_password("Passw0rdOk", strict),
        )

    def test_generated_password_meets_policy(self) -> None:
        policy = PasswordPolicy(min_length=12, require_special_chars=True)
        for _ in range(20):
            candidate = generate_password(policy)
            self.assertEqual(validate_password(candidate, policy), [])

    def test_strength_scores(self) -> None:
        self.assertEqual(password_strength(""), 0)
        self.assertLess(password_strength("aaa123"), password_strength("Tr0ub4dor&Horse"))
        self.assertEqual(password_strength("Tr0ub4dor&Horse"), 4)


class TestTokens(unittest.TestCase):
    def _user(self, tmp):
        db = ClarityDB(tmp / "clarity.sqlite")
        return db.create_user("alice", "alice@example.com", "hash", now=NOW)

    def test_issue_and_decode(self) -> None:
        with local_tmp_dir() as tmp:
            user = self._user(tmp)
            settings = Settings(db_path=tmp / "clarity.sqlite", jwt_expires_in_sec=600)

            token = issue_token(user, settings, now=NOW)
            claims = decode_token(token, settings, now=NOW + timedelta(minutes=5))

            self.assertEqual(claims.user_id, user.id)
            self.assertEqual(claims.username, "alice")
            self.assertEqual(claims.expires_at, NOW + timedelta(minutes=10))

    def test_expired_and_tampered(self) -> None:
        with local_tmp_dir() as tmp:
            user = self._user(tmp)
            settings = Settings(db_path=tmp / "clarity.sqlite", jwt_expires_in_sec=600)
            token = issue_token(user, settings, now=NOW)

            with self.assertRaises(TokenError) as exc:
                decode_token(token, settings, now=NOW + timedelta(minutes=10))
            self.assertEqual(exc.exception.error, "Token expired")

            other = Settings(db_path=tmp / "clarity.sqlite", jwt_secret="a-completely-different-secret-value")
            with self.assertRaises(TokenError) as exc:
                decode_token(token, other, now=NOW)
            self.assertEqual(exc.exception.error, "Invalid token")


if __name__ == "__main__":
    unittest.main()
