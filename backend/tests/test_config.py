import os
import unittest
from unittest import mock

import support  # noqa: F401

from storefront.db.config import get_quote_sweep_batch, get_quote_ttl, get_redeem_rate_limit


class QuoteSweepBatchConfigTests(unittest.TestCase):
    def test_invalid_or_non_positive_values_fall_back_to_default(self) -> None:
        for raw in ("0", "-4", "abc", ""):
            with self.subTest(raw=raw):
                with mock.patch.dict(os.environ, {"CHECKOUT_QUOTE_SWEEP_BATCH": raw}):
                    self.assertEqual(get_quote_sweep_batch(), 30)

    def test_large_values_are_capped(self) -> None:
        with mock.patch.dict(os.environ, {"CHECKOUT_QUOTE_SWEEP_BATCH": "5000"}):
            self.assertEqual(get_quote_sweep_batch(), 300)
        with mock.patch.dict(os.environ, {"CHECKOUT_QUOTE_SWEEP_BATCH": "45"}):
            self.assertEqual(get_quote_sweep_batch(), 45)


class PositiveIntConfigTests(unittest.TestCase):
    def test_required_positive_settings_reject_bad_values(self) -> None:
        for raw in ("0", "ten"):
            with self.subTest(raw=raw):
                with mock.patch.dict(os.environ, {"CHECKOUT_REDEEM_RATE_LIMIT": raw}):
                    with self.assertRaises(RuntimeError):
                        get_redeem_rate_limit()

    def test_defaults_apply_when_unset(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=False):
            os.environ.pop("CHECKOUT_QUOTE_TTL_MIN", None)
            self.assertEqual(get_quote_ttl().total_seconds(), 20 * 60)


if __name__ == "__main__":
    unittest.main()
