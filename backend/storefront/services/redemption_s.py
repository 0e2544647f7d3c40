from __future__ import annotations

from datetime import datetime
import logging

from sqlalchemy.orm import Session, sessionmaker

from storefront.db.models import CheckoutQuote
from storefront.db.session import transaction
from storefront.services.quote_errors import (
    QUOTE_ALREADY_USED,
    QUOTE_EXPIRED,
    QUOTE_NOT_FOUND,
    QUOTE_PAYLOAD_INVALID,
    QUOTE_UNAVAILABLE,
    QuoteError,
    RedemptionResult,
)
from storefront.services.quote_store_s import (
    RELEASE_INVALID_PAYLOAD,
    _utc_now,
    parse_quote_payload,
    payload_items_are_complete,
    release_quote_stock,
)
from storefront.services.quote_sweeper_s import QuoteSweeper

logger = logging.getLogger(__name__)


def _classify_unredeemable_quote(db: Session, quote_id: str) -> QuoteError:
    quote = (
        db.query(CheckoutQuote)
        .filter(CheckoutQuote.quote_id == quote_id)
        .first()
    )
    if quote is None:
        return QuoteError(QUOTE_NOT_FOUND)
    if quote.released_at is not None:
        return QuoteError(
            QUOTE_UNAVAILABLE,
            {"released_reason": quote.released_reason},
        )
    if quote.used_at is not None:
        return QuoteError(QUOTE_ALREADY_USED)
    return QuoteError(QUOTE_EXPIRED)


def redeem_quote(
    quote_id: str,
    *,
    session_factory: sessionmaker,
    sweeper: QuoteSweeper | None = None,
    now: datetime | None = None,
    trace_id: str | None = None,
) -> RedemptionResult:
    """Consume an active quote exactly once and hand back its frozen payload.

    The caller owns the follow-up: either record the provider transaction id or
    release the quote with ``mp_error`` when the provider call fails.
    """
    normalized_id = str(quote_id or "").strip()
    if not normalized_id:
        return RedemptionResult(quote_id=normalized_id, error=QuoteError(QUOTE_NOT_FOUND))

    if sweeper is not None:
        sweeper.sweep_quietly(trace_id=trace_id)

    now = now or _utc_now()
    with transaction(session_factory) as db:
        updated = (
            db.query(CheckoutQuote)
            .filter(
                CheckoutQuote.quote_id == normalized_id,
                CheckoutQuote.used_at.is_(None),
                CheckoutQuote.released_at.is_(None),
                CheckoutQuote.expires_at >= now,
            )
            .update({CheckoutQuote.used_at: now}, synchronize_session=False)
        )
        if int(updated or 0) == 0:
            error = _classify_unredeemable_quote(db, normalized_id)
            logger.info(
                "event=quote_redeem_rejected trace_id=%s quote_id=%s error=%s",
                trace_id,
                normalized_id,
                error.code,
            )
            return RedemptionResult(quote_id=normalized_id, error=error)

        raw_payload = (
            db.query(CheckoutQuote.payload_json)
            .filter(CheckoutQuote.quote_id == normalized_id)
            .scalar()
        )

    payload = parse_quote_payload(raw_payload)
    if payload is None or not payload_items_are_complete(payload):
        logger.error(
            "event=quote_payload_invalid trace_id=%s quote_id=%s",
            trace_id,
            normalized_id,
        )
        release_quote_stock(session_factory, normalized_id, RELEASE_INVALID_PAYLOAD)
        return RedemptionResult(
            quote_id=normalized_id,
            error=QuoteError(QUOTE_PAYLOAD_INVALID),
        )

    logger.info(
        "event=quote_redeemed trace_id=%s quote_id=%s",
        trace_id,
        normalized_id,
    )
    return RedemptionResult(quote_id=normalized_id, payload=payload)
