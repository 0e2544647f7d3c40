import logging

from fastapi import FastAPI

from storefront.db.config import get_log_level
from storefront.routes.checkout_r import router as checkout_router

logging.basicConfig(
    level=get_log_level(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = FastAPI(
    title="Storefront Checkout API",
    version="0.1.0",
    description="Checkout quotes, stock reservations and MercadoPago preferences.",
)
app.include_router(checkout_router)


@app.get("/health")
def health_check():
    return {"status": "ok"}
