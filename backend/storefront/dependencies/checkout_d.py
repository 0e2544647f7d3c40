from __future__ import annotations

from functools import lru_cache
import uuid

from fastapi import Request
from sqlalchemy.orm import sessionmaker

from storefront.db.config import (
    get_quote_sweep_batch,
    get_redeem_rate_limit,
    get_redeem_rate_window,
)
from storefront.db.session import build_engine, build_session_factory
from storefront.services.mercadopago_client import MercadoPagoClient, PaymentProvider
from storefront.services.quote_sweeper_s import QuoteSweeper
from storefront.services.rate_limit_s import RateLimiter, SlidingWindowRateLimiter

TRACE_HEADER = "x-trace-id"


@lru_cache(maxsize=None)
def get_session_factory() -> sessionmaker:
    return build_session_factory(build_engine())


@lru_cache(maxsize=None)
def get_quote_sweeper() -> QuoteSweeper:
    return QuoteSweeper(get_session_factory(), max_batch=get_quote_sweep_batch())


@lru_cache(maxsize=None)
def get_redeem_rate_limiter() -> RateLimiter:
    return SlidingWindowRateLimiter(
        max_requests=get_redeem_rate_limit(),
        window=get_redeem_rate_window(),
    )


@lru_cache(maxsize=None)
def get_payment_provider() -> PaymentProvider:
    return MercadoPagoClient.from_env()


def get_trace_id(request: Request) -> str:
    from_header = request.headers.get(TRACE_HEADER)
    if from_header and from_header.strip():
        return from_header.strip()[:64]
    return str(uuid.uuid4())


def get_client_key(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"
