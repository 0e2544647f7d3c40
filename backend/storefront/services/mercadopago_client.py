from __future__ import annotations

from collections.abc import Callable
import logging
import time
from typing import Protocol

import mercadopago

from storefront.db.config import (
    get_mercadopago_access_token,
    get_mercadopago_env,
    get_mercadopago_timeout_seconds,
)
from storefront.services.payment_errors import (
    PaymentProviderAuthError,
    PaymentProviderError,
    PaymentProviderTimeoutError,
    PaymentProviderUnavailableError,
    PaymentProviderValidationError,
)

MAX_RETRY_ATTEMPTS = 3
RETRY_BASE_DELAY_SECONDS = 0.2

logger = logging.getLogger(__name__)


class PaymentProvider(Protocol):
    def create_transaction(
        self,
        preference: dict,
        *,
        idempotency_key: str | None = None,
    ) -> dict: ...


def _handle_response_status(status: int, *, operation: str) -> None:
    if status in {400, 404, 422}:
        raise PaymentProviderValidationError(f"mercadopago {operation} rejected")
    if status in {401, 403}:
        raise PaymentProviderAuthError("mercadopago credentials rejected")
    if status >= 400:
        raise PaymentProviderError(f"mercadopago {operation} failed")


class MercadoPagoClient:
    """Creates checkout preferences through the MercadoPago SDK.

    Timeouts, transport failures, 5xx answers and malformed bodies are retried
    with a linear backoff; everything else maps straight to a typed
    ``PaymentProviderError``.
    """

    def __init__(
        self,
        access_token: str,
        *,
        environment: str = "sandbox",
        timeout_seconds: int = 10,
        sdk=None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.environment = environment
        self.timeout_seconds = timeout_seconds
        self._sdk = sdk or mercadopago.SDK(access_token)
        self._sleep = sleep

    @classmethod
    def from_env(cls) -> "MercadoPagoClient":
        return cls(
            get_mercadopago_access_token(),
            environment=get_mercadopago_env(),
            timeout_seconds=get_mercadopago_timeout_seconds(),
        )

    def _backoff(self, attempt: int, reason: str) -> None:
        logger.warning("event=mp_retry attempt=%s reason=%s", attempt, reason)
        self._sleep(RETRY_BASE_DELAY_SECONDS * attempt)

    def create_preference(
        self,
        preference_payload: dict,
        *,
        idempotency_key: str | None = None,
    ) -> dict:
        options = {"timeout": self.timeout_seconds}
        if idempotency_key:
            options["headers"] = {"x-idempotency-key": idempotency_key}

        for attempt in range(1, MAX_RETRY_ATTEMPTS + 1):
            try:
                response = self._sdk.preference().create(preference_payload, options)
            except TimeoutError as exc:
                if attempt == MAX_RETRY_ATTEMPTS:
                    raise PaymentProviderTimeoutError(
                        "mercadopago request timed out"
                    ) from exc
                self._backoff(attempt, "timeout")
                continue
            except Exception as exc:
                if attempt == MAX_RETRY_ATTEMPTS:
                    raise PaymentProviderUnavailableError(
                        "mercadopago request failed"
                    ) from exc
                self._backoff(attempt, "transport_error")
                continue

            status = int(response.get("status", 0))
            data = response.get("response")
            if status >= 500:
                if attempt == MAX_RETRY_ATTEMPTS:
                    raise PaymentProviderUnavailableError("mercadopago unavailable")
                self._backoff(attempt, f"status_{status}")
                continue
            _handle_response_status(status, operation="preference creation")
            if not isinstance(data, dict):
                if attempt == MAX_RETRY_ATTEMPTS:
                    raise PaymentProviderUnavailableError(
                        "mercadopago invalid response payload"
                    )
                self._backoff(attempt, "invalid_payload")
                continue

            if not data.get("id"):
                raise PaymentProviderValidationError("mercadopago preference id missing")
            if not data.get("init_point") and not data.get("sandbox_init_point"):
                raise PaymentProviderValidationError("mercadopago checkout url missing")
            return data

        raise PaymentProviderUnavailableError("mercadopago preference creation failed")

    def create_transaction(
        self,
        preference: dict,
        *,
        idempotency_key: str | None = None,
    ) -> dict:
        data = self.create_preference(preference, idempotency_key=idempotency_key)
        init_point = data.get("init_point")
        sandbox_init_point = data.get("sandbox_init_point")
        checkout_url = sandbox_init_point if self.environment == "sandbox" else init_point
        return {
            "transaction_id": str(data["id"]),
            "init_point": init_point,
            "sandbox_init_point": sandbox_init_point,
            "checkout_url": checkout_url or init_point or sandbox_init_point,
        }
