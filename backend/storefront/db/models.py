from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String, nullable=False)
    category = Column(String, nullable=True)
    price = Column(Integer, nullable=False, default=0)  # ARS, rounded
    stock = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=True, default=True)  # NULL counts as active

    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )


class CheckoutQuote(Base):
    __tablename__ = "checkout_quotes"
    __table_args__ = (
        Index(
            "ix_checkout_quotes_sweep",
            "released_at",
            "used_at",
            "expires_at",
        ),
        CheckConstraint(
            "used_at IS NULL OR released_at IS NULL",
            name="ck_checkout_quotes_single_terminal_state",
        ),
    )

    quote_id = Column(String(64), primary_key=True)
    payload_json = Column(Text, nullable=False)
    total = Column(Integer, nullable=False)
    request_fingerprint = Column(String(128), nullable=False, index=True)

    expires_at = Column(DateTime, nullable=False, index=True)
    used_at = Column(DateTime, nullable=True)
    released_at = Column(DateTime, nullable=True)
    released_reason = Column(String(40), nullable=True)
    provider_transaction_id = Column(String(80), nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
