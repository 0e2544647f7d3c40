from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging

from sqlalchemy.orm import sessionmaker

from storefront.db.config import DEFAULT_SWEEP_BATCH, MAX_SWEEP_BATCH
from storefront.services.quote_store_s import (
    RELEASE_EXPIRED,
    _utc_now,
    list_expired_quote_ids,
    release_quote_stock,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepResult:
    scanned: int
    released: int


def clamp_sweep_batch(max_batch: object, default: int = DEFAULT_SWEEP_BATCH) -> int:
    try:
        value = int(max_batch)
    except (TypeError, ValueError):
        value = default
    if value <= 0:
        value = default
    return max(1, min(value, MAX_SWEEP_BATCH))


class QuoteSweeper:
    """Releases quotes whose reservation window lapsed without a redemption.

    Built once per process and handed to the issuer and the redeemer, which
    call ``sweep_quietly`` before their own work.
    """

    def __init__(self, session_factory: sessionmaker, max_batch: int = DEFAULT_SWEEP_BATCH) -> None:
        self.session_factory = session_factory
        self.max_batch = clamp_sweep_batch(max_batch)

    def sweep(self, max_batch: int | None = None, *, now: datetime | None = None) -> SweepResult:
        limit = self.max_batch
        if max_batch is not None:
            limit = clamp_sweep_batch(max_batch, default=self.max_batch)
        now = now or _utc_now()
        quote_ids = list_expired_quote_ids(self.session_factory, limit=limit, now=now)

        scanned = 0
        released = 0
        for quote_id in quote_ids:
            scanned += 1
            result = release_quote_stock(
                self.session_factory,
                quote_id,
                RELEASE_EXPIRED,
                require_unused=True,
                require_expired=True,
                now=now,
            )
            if result.released:
                released += 1
            else:
                logger.info(
                    "event=quote_release_skipped quote_id=%s reason=%s",
                    quote_id,
                    result.reason,
                )

        if scanned:
            logger.info(
                "event=quote_sweep_completed scanned=%s released=%s",
                scanned,
                released,
            )
        return SweepResult(scanned=scanned, released=released)

    def sweep_quietly(self, *, trace_id: str | None = None) -> SweepResult | None:
        try:
            return self.sweep()
        except Exception as exc:
            logger.warning(
                "event=quote_sweep_failed trace_id=%s error=%s",
                trace_id,
                str(exc),
            )
            return None
