import sys
import unittest
from datetime import datetime, timedelta
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from storefront.services.release_guard import ALREADY_USED, NOT_EXPIRED, ReleaseGuard

NOW = datetime(2026, 1, 15, 12, 0, 0)
PAST = NOW - timedelta(minutes=5)
FUTURE = NOW + timedelta(minutes=5)


class ReleaseGuardTests(unittest.TestCase):
    def test_from_flags_maps_every_combination(self) -> None:
        self.assertIs(ReleaseGuard.from_flags(), ReleaseGuard.NONE)
        self.assertIs(ReleaseGuard.from_flags(require_unused=True), ReleaseGuard.UNUSED)
        self.assertIs(ReleaseGuard.from_flags(require_expired=True), ReleaseGuard.EXPIRED)
        self.assertIs(
            ReleaseGuard.from_flags(require_unused=True, require_expired=True),
            ReleaseGuard.BOTH,
        )

    def test_none_never_rejects(self) -> None:
        self.assertIsNone(
            ReleaseGuard.NONE.rejection(used_at=PAST, expires_at=FUTURE, now=NOW)
        )
        self.assertEqual(ReleaseGuard.NONE.conditions(NOW), [])

    def test_unused_rejects_used_quote(self) -> None:
        self.assertEqual(
            ReleaseGuard.UNUSED.rejection(used_at=PAST, expires_at=PAST, now=NOW),
            ALREADY_USED,
        )
        self.assertIsNone(
            ReleaseGuard.UNUSED.rejection(used_at=None, expires_at=FUTURE, now=NOW)
        )

    def test_expired_rejects_quote_still_inside_window(self) -> None:
        self.assertEqual(
            ReleaseGuard.EXPIRED.rejection(used_at=None, expires_at=FUTURE, now=NOW),
            NOT_EXPIRED,
        )
        self.assertEqual(
            ReleaseGuard.EXPIRED.rejection(used_at=None, expires_at=NOW, now=NOW),
            NOT_EXPIRED,
        )
        self.assertIsNone(
            ReleaseGuard.EXPIRED.rejection(used_at=PAST, expires_at=PAST, now=NOW)
        )

    def test_both_checks_usage_before_expiry(self) -> None:
        self.assertEqual(
            ReleaseGuard.BOTH.rejection(used_at=PAST, expires_at=FUTURE, now=NOW),
            ALREADY_USED,
        )
        self.assertEqual(
            ReleaseGuard.BOTH.rejection(used_at=None, expires_at=FUTURE, now=NOW),
            NOT_EXPIRED,
        )
        self.assertIsNone(
            ReleaseGuard.BOTH.rejection(used_at=None, expires_at=PAST, now=NOW)
        )

    def test_conditions_count_matches_required_guards(self) -> None:
        self.assertEqual(len(ReleaseGuard.UNUSED.conditions(NOW)), 1)
        self.assertEqual(len(ReleaseGuard.EXPIRED.conditions(NOW)), 1)
        self.assertEqual(len(ReleaseGuard.BOTH.conditions(NOW)), 2)


if __name__ == "__main__":
    unittest.main()
