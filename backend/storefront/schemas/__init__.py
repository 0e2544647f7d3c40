from storefront.schemas.checkout_s import (
    BuyerRequest,
    CreatePreferenceRequest,
    CreateQuoteRequest,
)

__all__ = [
    "BuyerRequest",
    "CreatePreferenceRequest",
    "CreateQuoteRequest",
]
