from __future__ import annotations

from datetime import datetime
import logging

from sqlalchemy.orm import sessionmaker

from storefront.db.config import get_app_url, get_mercadopago_statement_descriptor
from storefront.services.mercadopago_client import PaymentProvider
from storefront.services.payment_errors import (
    PaymentProviderError,
    PaymentProviderValidationError,
)
from storefront.services.quote_errors import (
    MP_ERROR,
    QUOTE_PAYLOAD_INVALID,
    RATE_LIMITED,
    PreferenceResult,
    QuoteError,
)
from storefront.services.quote_store_s import (
    RELEASE_INVALID_PAYLOAD,
    RELEASE_MP_ERROR,
    attach_provider_transaction,
    release_quote_stock,
)
from storefront.services.quote_sweeper_s import QuoteSweeper
from storefront.services.rate_limit_s import RateLimiter
from storefront.services.redemption_s import redeem_quote
from storefront.services.shipping_s import ZONE_LABELS

UNEXPECTED_PROVIDER_ERROR = "provider_unexpected"

logger = logging.getLogger(__name__)


def _preference_items(payload: dict) -> list[dict]:
    currency = payload.get("currency") or "ARS"
    items = [
        {
            "id": str(item.get("product_id")),
            "title": str(item.get("title") or "")[:256],
            "quantity": int(item.get("quantity")),
            "unit_price": float(item.get("unit_price") or 0),
            "currency_id": currency,
        }
        for item in payload.get("items") or []
    ]

    shipping = payload.get("shipping") if isinstance(payload.get("shipping"), dict) else {}
    shipping_cost = int(shipping.get("cost") or 0)
    if shipping_cost > 0:
        zone = shipping.get("zone")
        items.append(
            {
                "id": "shipping",
                "title": f"Shipping - {ZONE_LABELS.get(zone, zone or 'General')}",
                "quantity": 1,
                "unit_price": float(shipping_cost),
                "currency_id": currency,
            }
        )
    return items


def build_preference_payload(
    quote_id: str,
    payload: dict,
    buyer: dict,
    *,
    app_url: str,
    statement_descriptor: str,
) -> dict:
    shipping = payload.get("shipping") if isinstance(payload.get("shipping"), dict) else {}
    return {
        "items": _preference_items(payload),
        "payer": {
            "name": buyer.get("name"),
            "surname": buyer.get("last_name"),
            "email": buyer.get("email"),
            "phone": {"area_code": "", "number": buyer.get("phone") or ""},
            "address": {
                "street_name": buyer.get("address") or "",
                "city_name": buyer.get("city") or "",
                "zip_code": "",
            },
        },
        "back_urls": {
            "success": f"{app_url}/checkout/resultado?status=success",
            "failure": f"{app_url}/checkout/resultado?status=failure",
            "pending": f"{app_url}/checkout/resultado?status=pending",
        },
        "auto_return": "approved",
        "statement_descriptor": statement_descriptor,
        "notification_url": f"{app_url}/api/mp-webhook",
        "external_reference": quote_id,
        "metadata": {
            "quote_id": quote_id,
            "buyer_zone": str(shipping.get("zone") or ""),
            "buyer_city": str(buyer.get("city") or ""),
        },
    }


def create_preference_for_quote(
    quote_id: str,
    buyer: dict,
    *,
    session_factory: sessionmaker,
    provider: PaymentProvider,
    rate_limiter: RateLimiter | None = None,
    client_key: str = "unknown",
    sweeper: QuoteSweeper | None = None,
    app_url: str | None = None,
    statement_descriptor: str | None = None,
    now: datetime | None = None,
    trace_id: str | None = None,
) -> PreferenceResult:
    if rate_limiter is not None:
        decision = rate_limiter.take(f"redeem:{client_key}")
        if not decision.allowed:
            logger.warning(
                "event=quote_redeem_rate_limited trace_id=%s client=%s",
                trace_id,
                client_key,
            )
            return PreferenceResult(
                error=QuoteError(
                    RATE_LIMITED,
                    {"retry_after_seconds": decision.retry_after_seconds},
                )
            )

    app_url = app_url or get_app_url()
    statement_descriptor = statement_descriptor or get_mercadopago_statement_descriptor()

    redemption = redeem_quote(
        quote_id,
        session_factory=session_factory,
        sweeper=sweeper,
        now=now,
        trace_id=trace_id,
    )
    if not redemption.ok:
        return PreferenceResult(error=redemption.error)

    try:
        preference = build_preference_payload(
            redemption.quote_id,
            redemption.payload,
            buyer,
            app_url=app_url,
            statement_descriptor=statement_descriptor,
        )
    except (KeyError, TypeError, ValueError) as exc:
        release = release_quote_stock(session_factory, redemption.quote_id, RELEASE_INVALID_PAYLOAD)
        logger.error(
            "event=quote_payload_invalid trace_id=%s quote_id=%s error=%s released=%s",
            trace_id,
            redemption.quote_id,
            str(exc),
            release.released,
        )
        return PreferenceResult(error=QuoteError(QUOTE_PAYLOAD_INVALID))

    try:
        transaction = provider.create_transaction(
            preference,
            idempotency_key=f"quote-{redemption.quote_id}",
        )
        transaction_id = str(transaction.get("transaction_id") or "").strip()
        if not transaction_id:
            raise PaymentProviderValidationError("provider returned no transaction id")
    except Exception as exc:
        error_code = getattr(exc, "code", UNEXPECTED_PROVIDER_ERROR)
        release = release_quote_stock(session_factory, redemption.quote_id, RELEASE_MP_ERROR)
        logger.error(
            "event=mp_preference_failed trace_id=%s quote_id=%s code=%s error=%s released=%s",
            trace_id,
            redemption.quote_id,
            error_code,
            str(exc),
            release.released,
            exc_info=not isinstance(exc, PaymentProviderError),
        )
        return PreferenceResult(
            error=QuoteError(
                MP_ERROR,
                {
                    "message": "payment provider error",
                    "provider_error": error_code,
                },
            )
        )

    attached = attach_provider_transaction(session_factory, redemption.quote_id, transaction_id)
    if not attached:
        logger.warning(
            "event=mp_preference_not_attached trace_id=%s quote_id=%s preference_id=%s",
            trace_id,
            redemption.quote_id,
            transaction_id,
        )

    logger.info(
        "event=mp_preference_created trace_id=%s quote_id=%s preference_id=%s",
        trace_id,
        redemption.quote_id,
        transaction_id,
    )
    return PreferenceResult(
        preference={
            "quote_id": redemption.quote_id,
            "preference_id": transaction_id,
            "checkout_url": transaction.get("checkout_url"),
            "init_point": transaction.get("init_point"),
            "sandbox_init_point": transaction.get("sandbox_init_point"),
        }
    )
