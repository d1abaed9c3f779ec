from __future__ import annotations

from pathlib import Path
import unittest

from claritycycle.config import (
    DEFAULT_JWT_SECRET,
    Settings,
    load_settings,
    parse_duration,
    settings_summary,
    validate_settings,
)


class TestConfig(unittest.TestCase):
    def test_parse_duration(self) -> None:
        self.assertEqual(parse_duration("7d"), 7 * 86400)
        self.assertEqual(parse_duration("12h"), 12 * 3600)
        self.assertEqual(parse_duration("30m"), 1800)
        self.assertEqual(parse_duration("45"), 45)
        with self.assertRaises(ValueError):
            parse_duration("soon")

    def test_load_settings_from_mapping(self) -> None:
        settings = load_settings(
            {
                "CLARITY_DB_PATH": "/tmp/clarity-test.sqlite",
                "CLARITY_ENV": "Production",
                "JWT_SECRET": "s" * 40,
                "JWT_EXPIRES_IN": "2h",
                "CORS_ORIGINS": "http://a.test, http://b.test",
                "RATE_LIMIT_MAX_REQUESTS": "20",
                "REQUIRE_UPPERCASE": "false",
                "EMAIL_USER": "owner@example.com",
                "SMTP_HOST": "smtp.example.com",
            }
        )

        self.assertEqual(settings.db_path, Path("/tmp/clarity-test.sqlite"))
        self.assertEqual(settings.environment, "production")
        self.assertEqual(settings.jwt_expires_in_sec, 7200)
        self.assertEqual(settings.cors_origins, ("http://a.test", "http://b.test"))
        self.assertEqual(settings.rate_limit_max_requests, 20)
        self.assertFalse(settings.password_policy.require_uppercase)
        self.assertTrue(settings.smtp.enabled)
        self.assertEqual(settings.smtp.contact_recipient, "owner@example.com")

    def test_bad_integer_reported(self) -> None:
        with self.assertRaises(ValueError):
            load_settings({"BCRYPT_ROUNDS": "many"})

    def test_validate_settings(self) -> None:
        dev = validate_settings(Settings())
        self.assertTrue(dev.is_valid)
        self.assertIn("JWT_SECRET uses the development default", dev.warnings)

        prod = validate_settings(Settings(environment="production", jwt_secret=DEFAULT_JWT_SECRET))
        self.assertFalse(prod.is_valid)

        weak = validate_settings(Settings(bcrypt_rounds=2))
        self.assertIn("BCRYPT_ROUNDS must be between 4 and 31", weak.errors)

    def test_summary_shape(self) -> None:
        summary = settings_summary(Settings())
        self.assertEqual(summary["jwtExpiresInSec"], 7 * 86400)
        self.assertFalse(summary["emailEnabled"])
        self.assertEqual(summary["rateLimit"], {"windowSec": 900, "maxRequests": 100})


if __name__ == "__main__":
    unittest.main()
