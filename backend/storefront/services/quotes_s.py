from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
import logging
import uuid

from sqlalchemy.orm import sessionmaker

from storefront.db.config import get_quote_ttl
from storefront.db.models import Product
from storefront.services.quote_errors import (
    CANNOT_SHIP,
    INSUFFICIENT_STOCK,
    ITEMS_MISSING,
    PRODUCT_INACTIVE,
    PRODUCT_NOT_FOUND,
    QuoteError,
    QuoteReservationError,
    QuoteResult,
)
from storefront.services.quote_store_s import (
    _to_positive_int,
    _utc_now,
    build_quote_fingerprint,
    reserve_quote_stock_and_insert,
)
from storefront.services.quote_sweeper_s import QuoteSweeper
from storefront.services.shipping_s import ShippingQuote, compute_shipping, normalize_zone

QUOTE_CURRENCY = "ARS"
TITLE_MAX_LENGTH = 256

logger = logging.getLogger(__name__)

ShippingCalculator = Callable[[list[dict], str], ShippingQuote]


def build_items_map(raw_items: Iterable | None) -> dict[int, int]:
    """Merge raw cart rows into ``{product_id: quantity}`` keeping first-seen order."""
    items_map: dict[int, int] = {}
    for row in raw_items or []:
        if not isinstance(row, dict):
            continue
        product_id = _to_positive_int(row.get("id"))
        if product_id is None:
            continue
        quantity = _to_positive_int(row.get("quantity")) or 1
        items_map[product_id] = items_map.get(product_id, 0) + quantity
    return items_map


def _load_products(session_factory: sessionmaker, product_ids: list[int]) -> dict[int, Product]:
    db = session_factory()
    try:
        products = db.query(Product).filter(Product.id.in_(product_ids)).all()
    finally:
        db.close()
    return {int(product.id): product for product in products}


def _price_items(
    items_map: dict[int, int],
    products_by_id: dict[int, Product],
) -> tuple[list[dict], QuoteError | None]:
    priced_items = []
    for product_id, quantity in items_map.items():
        product = products_by_id.get(product_id)
        if product is None:
            return [], QuoteError(PRODUCT_NOT_FOUND, {"product_id": product_id})
        if product.active is False:
            return [], QuoteError(PRODUCT_INACTIVE, {"product_id": product_id})
        available = int(product.stock or 0)
        if available < quantity:
            return [], QuoteError(
                INSUFFICIENT_STOCK,
                {
                    "product_id": product_id,
                    "available": available,
                    "requested": quantity,
                },
            )

        priced_items.append(
            {
                "product_id": product_id,
                "title": str(product.name or "")[:TITLE_MAX_LENGTH],
                "category": product.category,
                "quantity": quantity,
                "unit_price": round(float(product.price or 0)),
                "currency_id": QUOTE_CURRENCY,
            }
        )
    return priced_items, None


def _reject(error: QuoteError, *, trace_id: str | None) -> QuoteResult:
    logger.info(
        "event=checkout_quote_rejected trace_id=%s error=%s details=%s",
        trace_id,
        error.code,
        error.details,
    )
    return QuoteResult(error=error)


def issue_quote(
    raw_items: Iterable | None,
    zone: object,
    *,
    session_factory: sessionmaker,
    sweeper: QuoteSweeper | None = None,
    shipping_calculator: ShippingCalculator = compute_shipping,
    ttl: timedelta | None = None,
    now: datetime | None = None,
    trace_id: str | None = None,
) -> QuoteResult:
    items_map = build_items_map(raw_items)
    if not items_map:
        return _reject(QuoteError(ITEMS_MISSING), trace_id=trace_id)

    if sweeper is not None:
        sweeper.sweep_quietly(trace_id=trace_id)

    products_by_id = _load_products(session_factory, list(items_map))
    priced_items, error = _price_items(items_map, products_by_id)
    if error is not None:
        return _reject(error, trace_id=trace_id)

    normalized_zone = normalize_zone(zone)
    shipping = shipping_calculator(priced_items, normalized_zone)
    if not shipping.shippable:
        return _reject(
            QuoteError(CANNOT_SHIP, {"reason": shipping.reason}),
            trace_id=trace_id,
        )

    subtotal = sum(item["quantity"] * item["unit_price"] for item in priced_items)
    shipping_cost = int(shipping.cost)
    total = subtotal + shipping_cost

    now = now or _utc_now()
    expires_at = now + (ttl or get_quote_ttl())
    quote_id = str(uuid.uuid4())
    payload = {
        "currency": QUOTE_CURRENCY,
        "items": priced_items,
        "shipping": {
            "zone": normalized_zone,
            "cost": shipping_cost,
            "free": bool(shipping.free),
            "tier": shipping.tier,
        },
        "subtotal": subtotal,
        "total": total,
    }
    fingerprint = build_quote_fingerprint(payload)

    try:
        reserve_quote_stock_and_insert(
            session_factory,
            quote_id=quote_id,
            payload=payload,
            total=total,
            expires_at=expires_at,
            fingerprint=fingerprint,
            now=now,
        )
    except QuoteReservationError as exc:
        logger.info(
            "event=quote_reservation_conflict trace_id=%s quote_id=%s error=%s",
            trace_id,
            quote_id,
            exc.code,
        )
        return _reject(exc.to_quote_error(), trace_id=trace_id)

    logger.info(
        "event=checkout_quote_created trace_id=%s quote_id=%s items_count=%s total=%s expires_at=%s",
        trace_id,
        quote_id,
        len(priced_items),
        total,
        expires_at.isoformat(),
    )
    return QuoteResult(
        quote={
            "quote_id": quote_id,
            "expires_at": expires_at,
            "currency": QUOTE_CURRENCY,
            "items": priced_items,
            "subtotal": subtotal,
            "shipping_cost": shipping_cost,
            "shipping": payload["shipping"],
            "total": total,
        }
    )
