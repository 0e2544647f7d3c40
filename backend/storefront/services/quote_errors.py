from __future__ import annotations

from dataclasses import dataclass, field

ITEMS_MISSING = "items_missing"
PRODUCT_NOT_FOUND = "product_not_found"
PRODUCT_INACTIVE = "product_inactive"
INSUFFICIENT_STOCK = "insufficient_stock"
CANNOT_SHIP = "cannot_ship"
QUOTE_NOT_FOUND = "quote_not_found"
QUOTE_ALREADY_USED = "quote_already_used"
QUOTE_UNAVAILABLE = "quote_unavailable"
QUOTE_EXPIRED = "quote_expired"
QUOTE_PAYLOAD_INVALID = "quote_payload_invalid"
RATE_LIMITED = "rate_limited"
MP_ERROR = "mp_error"

QUOTE_ERROR_STATUS = {
    ITEMS_MISSING: 400,
    PRODUCT_NOT_FOUND: 404,
    PRODUCT_INACTIVE: 400,
    INSUFFICIENT_STOCK: 409,
    CANNOT_SHIP: 400,
    QUOTE_NOT_FOUND: 404,
    QUOTE_ALREADY_USED: 409,
    QUOTE_UNAVAILABLE: 409,
    QUOTE_EXPIRED: 410,
    QUOTE_PAYLOAD_INVALID: 500,
    RATE_LIMITED: 429,
    MP_ERROR: 502,
}


@dataclass(frozen=True)
class QuoteError:
    """Expected business rejection, returned to the caller as a value."""

    code: str
    details: dict = field(default_factory=dict)

    @property
    def status_code(self) -> int:
        return QUOTE_ERROR_STATUS.get(self.code, 400)

    def to_dict(self) -> dict:
        return {"error": self.code, **self.details}


class QuoteReservationError(Exception):
    """Raised inside the reservation transaction so that it rolls back."""

    def __init__(self, code: str, **details) -> None:
        super().__init__(code)
        self.code = code
        self.details = details

    def to_quote_error(self) -> QuoteError:
        return QuoteError(code=self.code, details=dict(self.details))


@dataclass(frozen=True)
class QuoteResult:
    quote: dict | None = None
    error: QuoteError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class RedemptionResult:
    quote_id: str
    payload: dict | None = None
    error: QuoteError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class PreferenceResult:
    preference: dict | None = None
    error: QuoteError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
