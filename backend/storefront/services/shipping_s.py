from __future__ import annotations

from dataclasses import dataclass
import re
import unicodedata

FREE_SHIPPING_THRESHOLD = 50000

ZONE_CABA = "CABA"
ZONE_GBA = "GBA"
ZONE_INTERIOR = "interior"

ZONE_COSTS = {
    ZONE_CABA: {"small": 2990, "medium": 4990, "large": 9990},
    ZONE_GBA: {"small": 3990, "medium": 6990, "large": 12990},
    ZONE_INTERIOR: {"small": 5990, "medium": 9990, "large": 18990},
}
ZONE_LABELS = {
    ZONE_CABA: "CABA",
    ZONE_GBA: "Gran Buenos Aires",
    ZONE_INTERIOR: "Interior",
}

TIER_ORDER = ["small", "medium", "large"]
TIER_NO_SHIP = "noship"

NO_SHIP_PATTERNS = [
    re.compile(r"SERVIDOR"),
    re.compile(r"DESKTOP"),
    re.compile(r"GABINETE"),
    re.compile(r"RACK"),
]
LARGE_PATTERNS = [
    re.compile(r"MONITOR"),
    re.compile(r"PANTALLA"),
    re.compile(r"TABLET"),
    re.compile(r"IMPRESORA"),
    re.compile(r"NOTEBOOK"),
    re.compile(r"ALL[\s-]?IN[\s-]?ONE"),
]
MEDIUM_PATTERNS = [
    re.compile(r"AUDIO"),
    re.compile(r"PERIFER"),
    re.compile(r"VIDEO"),
    re.compile(r"GPU"),
    re.compile(r"PROCESADOR"),
    re.compile(r"MOTHER"),
    re.compile(r"FUENTE"),
]


@dataclass(frozen=True)
class ShippingQuote:
    shippable: bool
    cost: int
    tier: str | None
    free: bool
    subtotal: int
    zone: str | None = None
    reason: str | None = None


def normalize_zone(zone: object) -> str:
    raw = str(zone or "").strip()
    if raw == ZONE_CABA:
        return ZONE_CABA
    if raw == ZONE_GBA:
        return ZONE_GBA
    return ZONE_INTERIOR


def _normalize_category(category: object) -> str:
    decomposed = unicodedata.normalize("NFD", str(category or ""))
    stripped = "".join(char for char in decomposed if not unicodedata.combining(char))
    return stripped.upper()


def category_tier(category: object) -> str:
    normalized = _normalize_category(category)
    if any(pattern.search(normalized) for pattern in NO_SHIP_PATTERNS):
        return TIER_NO_SHIP
    if any(pattern.search(normalized) for pattern in LARGE_PATTERNS):
        return "large"
    if any(pattern.search(normalized) for pattern in MEDIUM_PATTERNS):
        return "medium"
    return "small"


def _line_amount(item: dict) -> float:
    try:
        quantity = max(1, int(item.get("quantity") or 1))
    except (TypeError, ValueError):
        quantity = 1
    try:
        unit_price = max(0.0, float(item.get("unit_price") or 0))
    except (TypeError, ValueError):
        unit_price = 0.0
    return quantity * unit_price


def compute_shipping(items: list[dict], zone: object) -> ShippingQuote:
    if not items:
        return ShippingQuote(
            shippable=False,
            cost=0,
            tier=None,
            free=False,
            subtotal=0,
            reason="cart_empty",
        )

    subtotal = 0.0
    max_tier_idx = 0
    for item in items:
        subtotal += _line_amount(item)
        tier = category_tier(item.get("category"))
        if tier == TIER_NO_SHIP:
            title = str(item.get("title") or "Product")
            return ShippingQuote(
                shippable=False,
                cost=0,
                tier=TIER_NO_SHIP,
                free=False,
                subtotal=round(subtotal),
                reason=f'"{title}" requires a special shipping quote.',
            )
        max_tier_idx = max(max_tier_idx, TIER_ORDER.index(tier))

    tier = TIER_ORDER[max_tier_idx]
    normalized_zone = normalize_zone(zone)
    if subtotal >= FREE_SHIPPING_THRESHOLD and tier != "large":
        return ShippingQuote(
            shippable=True,
            cost=0,
            tier=tier,
            free=True,
            subtotal=round(subtotal),
            zone=normalized_zone,
        )

    return ShippingQuote(
        shippable=True,
        cost=ZONE_COSTS[normalized_zone][tier],
        tier=tier,
        free=False,
        subtotal=round(subtotal),
        zone=normalized_zone,
    )
