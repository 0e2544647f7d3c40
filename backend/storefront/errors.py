import logging

from fastapi import HTTPException
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from storefront.dependencies.checkout_d import TRACE_HEADER
from storefront.services.quote_errors import QuoteError

logger = logging.getLogger(__name__)


def quote_error_response(error: QuoteError, trace_id: str) -> JSONResponse:
    headers = {TRACE_HEADER: trace_id}
    retry_after = error.details.get("retry_after_seconds")
    if retry_after:
        headers["retry-after"] = str(retry_after)
    return JSONResponse(
        status_code=error.status_code,
        content=jsonable_encoder({**error.to_dict(), "trace_id": trace_id}),
        headers=headers,
    )


def raise_http_error_from_exception(exc: Exception, *, trace_id: str, event: str) -> None:
    logger.error("event=%s trace_id=%s error=%s", event, trace_id, str(exc))

    if isinstance(exc, IntegrityError):
        raise HTTPException(
            status_code=409,
            detail={"error": "database_constraint_violation", "trace_id": trace_id},
            headers={TRACE_HEADER: trace_id},
        ) from exc
    if isinstance(exc, SQLAlchemyError):
        raise HTTPException(
            status_code=500,
            detail={"error": "database_error", "trace_id": trace_id},
            headers={TRACE_HEADER: trace_id},
        ) from exc

    raise HTTPException(
        status_code=500,
        detail={"error": "internal_error", "trace_id": trace_id},
        headers={TRACE_HEADER: trace_id},
    ) from exc
