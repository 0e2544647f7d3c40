from __future__ import annotations

from storefront.db.models import Base
from storefront.db.session import build_engine


def init_db() -> None:
    engine = build_engine()
    try:
        Base.metadata.create_all(bind=engine)
    finally:
        engine.dispose()


if __name__ == "__main__":
    init_db()
    print("Database tables initialized.")
