from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import sessionmaker

from storefront.dependencies.checkout_d import (
    TRACE_HEADER,
    get_client_key,
    get_payment_provider,
    get_quote_sweeper,
    get_redeem_rate_limiter,
    get_session_factory,
    get_trace_id,
)
from storefront.errors import quote_error_response, raise_http_error_from_exception
from storefront.schemas import CreatePreferenceRequest, CreateQuoteRequest
from storefront.services.checkout_s import create_preference_for_quote
from storefront.services.mercadopago_client import PaymentProvider
from storefront.services.quote_sweeper_s import QuoteSweeper
from storefront.services.quotes_s import issue_quote
from storefront.services.rate_limit_s import RateLimiter

router = APIRouter()


@router.post("/checkout/quote")
def create_checkout_quote(
    payload: CreateQuoteRequest,
    response: Response,
    trace_id: str = Depends(get_trace_id),
    session_factory: sessionmaker = Depends(get_session_factory),
    sweeper: QuoteSweeper = Depends(get_quote_sweeper),
):
    response.headers[TRACE_HEADER] = trace_id
    zone = payload.shipping.zone if payload.shipping is not None else None
    try:
        result = issue_quote(
            [item.model_dump() for item in payload.items],
            zone,
            session_factory=session_factory,
            sweeper=sweeper,
            trace_id=trace_id,
        )
    except Exception as exc:
        raise_http_error_from_exception(exc, trace_id=trace_id, event="checkout_quote_failed")

    if not result.ok:
        return quote_error_response(result.error, trace_id)
    return {"data": result.quote}


@router.post("/checkout/preference")
def create_checkout_preference(
    payload: CreatePreferenceRequest,
    response: Response,
    trace_id: str = Depends(get_trace_id),
    client_key: str = Depends(get_client_key),
    session_factory: sessionmaker = Depends(get_session_factory),
    sweeper: QuoteSweeper = Depends(get_quote_sweeper),
    rate_limiter: RateLimiter = Depends(get_redeem_rate_limiter),
    provider: PaymentProvider = Depends(get_payment_provider),
):
    response.headers[TRACE_HEADER] = trace_id
    try:
        result = create_preference_for_quote(
            payload.quote_id.strip(),
            payload.buyer.model_dump(),
            session_factory=session_factory,
            provider=provider,
            rate_limiter=rate_limiter,
            client_key=client_key,
            sweeper=sweeper,
            trace_id=trace_id,
        )
    except Exception as exc:
        raise_http_error_from_exception(exc, trace_id=trace_id, event="create_preference_failed")

    if not result.ok:
        return quote_error_response(result.error, trace_id)
    return {"data": result.preference}
