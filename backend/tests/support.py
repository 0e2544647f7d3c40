import sys
import tempfile
import uuid
from datetime import timedelta
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from storefront.db.models import Base, CheckoutQuote, Product
from storefront.db.session import build_session_factory
from storefront.services.quote_store_s import (
    _utc_now,
    build_quote_fingerprint,
    serialize_quote_payload,
)


class SqliteDatabase:
    """File-backed SQLite database whose transactions start with BEGIN IMMEDIATE.

    Writers queue on the database lock instead of failing with
    ``database is locked`` when test threads race each other.
    """

    def __init__(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        path = Path(self._tmpdir.name) / "storefront.db"
        self.engine = create_engine(
            f"sqlite:///{path}",
            connect_args={"timeout": 30, "check_same_thread": False},
        )

        @event.listens_for(self.engine, "connect")
        def _disable_driver_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(self.engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        self.session_factory: sessionmaker = build_session_factory(self.engine)

    def reset(self) -> None:
        Base.metadata.drop_all(bind=self.engine)
        Base.metadata.create_all(bind=self.engine)

    def dispose(self) -> None:
        self.engine.dispose()
        self._tmpdir.cleanup()

    def add_product(
        self,
        *,
        stock: int,
        price: int = 100,
        active: bool | None = True,
        name: str = "Mouse inalambrico",
        category: str = "Accesorios",
    ) -> int:
        session = self.session_factory()
        try:
            product = Product(
                name=name,
                category=category,
                price=price,
                stock=stock,
                active=active,
            )
            session.add(product)
            session.commit()
            return int(product.id)
        finally:
            session.close()

    def add_quote(
        self,
        *,
        items: list[tuple[int, int]],
        expires_in: timedelta = timedelta(minutes=20),
        used: bool = False,
        payload_json: str | None = None,
    ) -> str:
        """Insert a quote row directly, without touching product stock."""
        now = _utc_now()
        payload = {
            "currency": "ARS",
            "items": [
                {
                    "product_id": product_id,
                    "title": f"Product {product_id}",
                    "category": "Accesorios",
                    "quantity": quantity,
                    "unit_price": 100,
                    "currency_id": "ARS",
                }
                for product_id, quantity in items
            ],
            "shipping": {"zone": "CABA", "cost": 0, "free": False, "tier": "small"},
            "subtotal": 0,
            "total": 0,
        }
        quote_id = str(uuid.uuid4())
        session = self.session_factory()
        try:
            session.add(
                CheckoutQuote(
                    quote_id=quote_id,
                    payload_json=payload_json or serialize_quote_payload(payload),
                    total=0,
                    request_fingerprint=build_quote_fingerprint(payload),
                    expires_at=now + expires_in,
                    used_at=now if used else None,
                    created_at=now,
                )
            )
            session.commit()
        finally:
            session.close()
        return quote_id

    def stock_of(self, product_id: int) -> int:
        session = self.session_factory()
        try:
            return int(session.query(Product.stock).filter(Product.id == product_id).scalar())
        finally:
            session.close()

    def quote(self, quote_id: str) -> CheckoutQuote | None:
        session = self.session_factory()
        try:
            return session.query(CheckoutQuote).filter(CheckoutQuote.quote_id == quote_id).first()
        finally:
            session.close()

    def expire_quote(self, quote_id: str, *, ago: timedelta = timedelta(minutes=1)) -> None:
        session = self.session_factory()
        try:
            session.query(CheckoutQuote).filter(CheckoutQuote.quote_id == quote_id).update(
                {CheckoutQuote.expires_at: _utc_now() - ago},
                synchronize_session=False,
            )
            session.commit()
        finally:
            session.close()
