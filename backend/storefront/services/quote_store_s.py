from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import hashlib
import json
import logging

from sqlalchemy import or_, true
from sqlalchemy.orm import Session, sessionmaker

from storefront.db.models import CheckoutQuote, Product
from storefront.db.session import transaction
from storefront.services.quote_errors import (
    INSUFFICIENT_STOCK,
    ITEMS_MISSING,
    PRODUCT_INACTIVE,
    PRODUCT_NOT_FOUND,
    QuoteReservationError,
)
from storefront.services.release_guard import ALREADY_USED, ReleaseGuard

logger = logging.getLogger(__name__)

RELEASE_REASON_MAX_LENGTH = 40
RELEASE_MANUAL = "manual"
RELEASE_EXPIRED = "expired"
RELEASE_INVALID_PAYLOAD = "invalid_payload"
RELEASE_MP_ERROR = "mp_error"
# Reasons that may roll back a redeemed quote that never reached the provider.
REDEMPTION_ROLLBACK_REASONS = {RELEASE_MP_ERROR, RELEASE_INVALID_PAYLOAD}


@dataclass(frozen=True)
class ReleaseResult:
    released: bool
    reason: str | None = None
    items: int = 0


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_positive_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    if parsed <= 0:
        return None
    return parsed


def serialize_quote_payload(payload: dict) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=True, sort_keys=True)


def build_quote_fingerprint(payload: dict) -> str:
    return hashlib.sha256(serialize_quote_payload(payload).encode("utf-8")).hexdigest()


def parse_quote_payload(raw_payload: object) -> dict | None:
    if isinstance(raw_payload, dict):
        return raw_payload
    if not isinstance(raw_payload, str):
        return None
    try:
        parsed = json.loads(raw_payload)
    except (TypeError, ValueError):
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def extract_quote_items(raw_payload: object) -> list[dict]:
    """Return the ``{product_id, quantity}`` pairs of a frozen payload.

    Entries without a positive integer id and quantity are skipped; a payload
    that is not a JSON object yields an empty list.
    """
    payload = parse_quote_payload(raw_payload)
    if payload is None:
        return []
    raw_items = payload.get("items")
    if not isinstance(raw_items, list):
        return []

    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        product_id = _to_positive_int(raw.get("product_id"))
        quantity = _to_positive_int(raw.get("quantity"))
        if product_id is None or quantity is None:
            continue
        items.append({"product_id": product_id, "quantity": quantity})
    return items


def payload_items_are_complete(raw_payload: object) -> bool:
    """True when every frozen item entry carries a usable id and quantity."""
    payload = parse_quote_payload(raw_payload)
    if payload is None:
        return False
    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        return False
    return len(extract_quote_items(payload)) == len(raw_items)


def _raise_reservation_failure(db: Session, *, product_id: int, quantity: int) -> None:
    row = (
        db.query(Product.id, Product.stock, Product.active)
        .filter(Product.id == product_id)
        .first()
    )
    if row is None:
        raise QuoteReservationError(PRODUCT_NOT_FOUND, product_id=product_id)
    if row.active is False:
        raise QuoteReservationError(PRODUCT_INACTIVE, product_id=product_id)
    raise QuoteReservationError(
        INSUFFICIENT_STOCK,
        product_id=product_id,
        available=int(row.stock or 0),
        requested=quantity,
    )


def reserve_quote_stock_and_insert(
    session_factory: sessionmaker,
    *,
    quote_id: str,
    payload: dict,
    total: int,
    expires_at: datetime,
    fingerprint: str,
    now: datetime | None = None,
) -> int:
    items = extract_quote_items(payload)
    if not items:
        raise QuoteReservationError(ITEMS_MISSING)

    now = now or _utc_now()
    with transaction(session_factory) as db:
        for item in items:
            product_id = item["product_id"]
            quantity = item["quantity"]
            updated = (
                db.query(Product)
                .filter(
                    Product.id == product_id,
                    or_(Product.active.is_(None), Product.active == true()),
                    Product.stock >= quantity,
                )
                .update(
                    {
                        Product.stock: Product.stock - quantity,
                        Product.updated_at: now,
                    },
                    synchronize_session=False,
                )
            )
            if int(updated or 0) == 1:
                continue
            _raise_reservation_failure(db, product_id=product_id, quantity=quantity)

        db.add(
            CheckoutQuote(
                quote_id=quote_id,
                payload_json=serialize_quote_payload(payload),
                total=int(total),
                request_fingerprint=fingerprint,
                expires_at=expires_at,
                used_at=None,
                released_at=None,
                released_reason=None,
                provider_transaction_id=None,
                created_at=now,
            )
        )
        db.flush()

    return len(items)


def release_quote_stock(
    session_factory: sessionmaker,
    quote_id: str,
    reason: str = RELEASE_MANUAL,
    *,
    require_unused: bool = False,
    require_expired: bool = False,
    now: datetime | None = None,
) -> ReleaseResult:
    guard = ReleaseGuard.from_flags(
        require_unused=require_unused,
        require_expired=require_expired,
    )
    released_reason = str(reason or RELEASE_MANUAL)[:RELEASE_REASON_MAX_LENGTH]
    now = now or _utc_now()

    with transaction(session_factory) as db:
        quote = (
            db.query(CheckoutQuote)
            .filter(CheckoutQuote.quote_id == quote_id)
            .with_for_update()
            .first()
        )
        if quote is None:
            return ReleaseResult(released=False, reason="quote_not_found")
        if quote.released_at is not None:
            return ReleaseResult(released=False, reason="already_released")

        rejection = guard.rejection(
            used_at=quote.used_at,
            expires_at=quote.expires_at,
            now=now,
        )
        if rejection is not None:
            return ReleaseResult(released=False, reason=rejection)

        rolls_back_redemption = quote.used_at is not None
        if rolls_back_redemption and (
            released_reason not in REDEMPTION_ROLLBACK_REASONS
            or quote.provider_transaction_id is not None
        ):
            return ReleaseResult(released=False, reason=ALREADY_USED)

        conditions = [
            CheckoutQuote.quote_id == quote_id,
            CheckoutQuote.released_at.is_(None),
            *guard.conditions(now),
        ]
        values = {
            CheckoutQuote.released_at: now,
            CheckoutQuote.released_reason: released_reason,
        }
        if rolls_back_redemption:
            conditions.append(CheckoutQuote.used_at.isnot(None))
            conditions.append(CheckoutQuote.provider_transaction_id.is_(None))
            values[CheckoutQuote.used_at] = None
        else:
            conditions.append(CheckoutQuote.used_at.is_(None))

        updated = (
            db.query(CheckoutQuote)
            .filter(*conditions)
            .update(values, synchronize_session=False)
        )
        if int(updated or 0) == 0:
            db.rollback()
            return ReleaseResult(released=False, reason="not_releasable")

        items = extract_quote_items(quote.payload_json)
        for item in items:
            db.query(Product).filter(Product.id == item["product_id"]).update(
                {
                    Product.stock: Product.stock + item["quantity"],
                    Product.updated_at: now,
                },
                synchronize_session=False,
            )

    logger.info(
        "event=quote_released quote_id=%s reason=%s items=%s",
        quote_id,
        released_reason,
        len(items),
    )
    return ReleaseResult(released=True, items=len(items))


def list_expired_quote_ids(
    session_factory: sessionmaker,
    *,
    limit: int,
    now: datetime,
) -> list[str]:
    db = session_factory()
    try:
        rows = (
            db.query(CheckoutQuote.quote_id)
            .filter(
                CheckoutQuote.released_at.is_(None),
                CheckoutQuote.used_at.is_(None),
                CheckoutQuote.expires_at < now,
            )
            .order_by(CheckoutQuote.expires_at.asc())
            .limit(limit)
            .all()
        )
    finally:
        db.close()
    return [row.quote_id for row in rows]


def attach_provider_transaction(
    session_factory: sessionmaker,
    quote_id: str,
    transaction_id: str,
) -> bool:
    with transaction(session_factory) as db:
        updated = (
            db.query(CheckoutQuote)
            .filter(
                CheckoutQuote.quote_id == quote_id,
                CheckoutQuote.used_at.isnot(None),
                CheckoutQuote.released_at.is_(None),
                CheckoutQuote.provider_transaction_id.is_(None),
            )
            .update(
                {CheckoutQuote.provider_transaction_id: str(transaction_id)[:80]},
                synchronize_session=False,
            )
        )
    return int(updated or 0) == 1
