import unittest
from datetime import timedelta
from unittest import mock

from support import SqliteDatabase

from storefront.services.quote_sweeper_s import QuoteSweeper, clamp_sweep_batch
from storefront.services.quote_store_s import (
    _utc_now,
    build_quote_fingerprint,
    reserve_quote_stock_and_insert,
)


class QuoteSweeperTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.db = SqliteDatabase()

    @classmethod
    def tearDownClass(cls) -> None:
        cls.db.dispose()

    def setUp(self) -> None:
        self.db.reset()
        self.sweeper = QuoteSweeper(self.db.session_factory, max_batch=30)

    def _reserve(self, quote_id: str, product_id: int, quantity: int, *, expires_in: timedelta) -> None:
        payload = {"items": [{"product_id": product_id, "quantity": quantity}]}
        reserve_quote_stock_and_insert(
            self.db.session_factory,
            quote_id=quote_id,
            payload=payload,
            total=0,
            expires_at=_utc_now() + expires_in,
            fingerprint=build_quote_fingerprint(payload),
        )

    def test_clamp_sweep_batch(self) -> None:
        self.assertEqual(clamp_sweep_batch(0), 30)
        self.assertEqual(clamp_sweep_batch("abc"), 30)
        self.assertEqual(clamp_sweep_batch(5000), 300)
        self.assertEqual(clamp_sweep_batch(7), 7)

    def test_sweep_releases_expired_unused_quotes_and_restores_stock(self) -> None:
        product_id = self.db.add_product(stock=5)
        self._reserve("expired", product_id, 2, expires_in=-timedelta(minutes=1))
        self._reserve("live", product_id, 1, expires_in=timedelta(minutes=20))

        result = self.sweeper.sweep()

        self.assertEqual((result.scanned, result.released), (1, 1))
        self.assertEqual(self.db.stock_of(product_id), 4)
        expired = self.db.quote("expired")
        live = self.db.quote("live")
        assert expired is not None and live is not None
        self.assertEqual(expired.released_reason, "expired")
        self.assertIsNone(live.released_at)

    def test_sweep_skips_used_quotes(self) -> None:
        product_id = self.db.add_product(stock=5)
        quote_id = self.db.add_quote(
            items=[(product_id, 2)],
            expires_in=-timedelta(minutes=5),
            used=True,
        )

        result = self.sweeper.sweep()

        self.assertEqual((result.scanned, result.released), (0, 0))
        quote = self.db.quote(quote_id)
        assert quote is not None
        self.assertIsNone(quote.released_at)
        self.assertEqual(self.db.stock_of(product_id), 5)

    def test_sweep_is_idempotent_after_first_run(self) -> None:
        product_id = self.db.add_product(stock=5)
        self._reserve("expired", product_id, 3, expires_in=-timedelta(minutes=1))

        first = self.sweeper.sweep()
        second = self.sweeper.sweep()

        self.assertEqual(first.released, 1)
        self.assertEqual((second.scanned, second.released), (0, 0))
        self.assertEqual(self.db.stock_of(product_id), 5)

    def test_sweep_respects_batch_size_soonest_expired_first(self) -> None:
        product_id = self.db.add_product(stock=10)
        self._reserve("oldest", product_id, 1, expires_in=-timedelta(minutes=30))
        self._reserve("middle", product_id, 1, expires_in=-timedelta(minutes=20))
        self._reserve("newest", product_id, 1, expires_in=-timedelta(minutes=10))

        result = self.sweeper.sweep(max_batch=2)

        self.assertEqual((result.scanned, result.released), (2, 2))
        newest = self.db.quote("newest")
        oldest = self.db.quote("oldest")
        assert newest is not None and oldest is not None
        self.assertIsNotNone(oldest.released_at)
        self.assertIsNone(newest.released_at)
        self.assertEqual(self.db.stock_of(product_id), 9)

    def test_sweep_quietly_swallows_store_failures(self) -> None:
        with mock.patch(
            "storefront.services.quote_sweeper_s.list_expired_quote_ids",
            side_effect=RuntimeError("store unreachable"),
        ):
            with self.assertLogs("storefront.services.quote_sweeper_s", level="WARNING"):
                self.assertIsNone(self.sweeper.sweep_quietly(trace_id="t-1"))


if __name__ == "__main__":
    unittest.main()
