from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(dotenv_path=ENV_PATH)

DEFAULT_SWEEP_BATCH = 30
MAX_SWEEP_BATCH = 300


def _get_positive_int(name: str, default: int) -> int:
    raw_value = os.getenv(name, str(default)).strip()
    try:
        value = int(raw_value)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer") from exc
    if value <= 0:
        raise RuntimeError(f"{name} must be greater than 0")
    return value


def get_database_url() -> str:
    database_url = os.getenv("DATABASE_URL")
    if database_url and database_url.strip():
        return database_url.strip()
    raise RuntimeError("DATABASE_URL is required")


def get_database_isolation_level() -> str:
    return os.getenv("DATABASE_ISOLATION_LEVEL", "READ COMMITTED").strip().upper()


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").strip().upper()


def get_quote_ttl() -> timedelta:
    return timedelta(minutes=_get_positive_int("CHECKOUT_QUOTE_TTL_MIN", 20))


def get_quote_sweep_batch() -> int:
    # Invalid or non-positive values fall back to the default.
    try:
        value = int(os.getenv("CHECKOUT_QUOTE_SWEEP_BATCH", "").strip())
    except ValueError:
        return DEFAULT_SWEEP_BATCH
    if value <= 0:
        return DEFAULT_SWEEP_BATCH
    return min(value, MAX_SWEEP_BATCH)


def get_redeem_rate_limit() -> int:
    return _get_positive_int("CHECKOUT_REDEEM_RATE_LIMIT", 10)


def get_redeem_rate_window() -> timedelta:
    return timedelta(seconds=_get_positive_int("CHECKOUT_REDEEM_RATE_WINDOW_SECONDS", 60))


def get_app_url() -> str:
    return os.getenv("APP_URL", "http://localhost:8000").strip().rstrip("/")


def get_mercadopago_access_token() -> str:
    access_token = os.getenv("MERCADOPAGO_ACCESS_TOKEN", "").strip()
    if access_token:
        return access_token
    raise RuntimeError("MERCADOPAGO_ACCESS_TOKEN is required")


def get_mercadopago_env() -> str:
    env = os.getenv("MERCADOPAGO_ENV", "sandbox").strip().lower()
    if env not in {"sandbox", "production"}:
        raise RuntimeError("MERCADOPAGO_ENV must be 'sandbox' or 'production'")
    return env


def get_mercadopago_timeout_seconds() -> int:
    return _get_positive_int("MERCADOPAGO_TIMEOUT_SECONDS", 10)


def get_mercadopago_statement_descriptor() -> str:
    return os.getenv("MERCADOPAGO_STATEMENT_DESCRIPTOR", "TovalTech").strip()[:22]
