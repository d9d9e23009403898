"""
Sale-aware pricing.

The same rules serve catalog display and order placement. Orders call these
with a sale read inside their own transaction, never with a cached one.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple


def _now(now: Optional[datetime] = None) -> datetime:
    return _as_utc(now) if now is not None else datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # pymongo hands back naive datetimes unless the client is tz_aware
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def money(value: float) -> float:
    return round(float(value), 2)


def active_sale_filter(now: Optional[datetime] = None) -> Dict[str, Any]:
    now = _now(now)
    return {"is_active": True, "start_date": {"$lte": now}, "end_date": {"$gte": now}}


def sale_is_active(sale: Optional[dict], now: Optional[datetime] = None) -> bool:
    if not sale or not sale.get("is_active"):
        return False
    start, end = sale.get("start_date"), sale.get("end_date")
    if start is None or end is None:
        return False
    now = _now(now)
    return _as_utc(start) <= now <= _as_utc(end)


def sale_applies_to(sale: dict, product: Optional[dict]) -> bool:
    if product is None:
        return True
    products = sale.get("applicable_products") or []
    if products and product.get("_id") not in products:
        return False
    categories = sale.get("applicable_categories") or []
    if categories and product.get("category") not in categories:
        return False
    return True


def _applicable(sale, now, product) -> bool:
    return sale_is_active(sale, now) and sale_applies_to(sale, product)


def discounted_price(retail_price: float, sale: dict) -> float:
    """Unrounded price after applying ``sale``, no window checks."""
    value = float(sale.get("discount_value") or 0)
    if sale.get("discount_type") == "fixed_amount":
        return max(0.0, retail_price - value)
    return max(0.0, retail_price * (1 - value / 100))


def effective_price(retail_price: float, sale: Optional[dict] = None, now: Optional[datetime] = None,
                    product: Optional[dict] = None) -> float:
    retail_price = float(retail_price)
    if not _applicable(sale, now, product):
        return money(retail_price)
    return money(discounted_price(retail_price, sale))


def line_total(retail_price: float, sale: Optional[dict], quantity: int, now: Optional[datetime] = None,
               product: Optional[dict] = None) -> Tuple[float, float]:
    """Unit and line price for ``quantity`` units, rounded once each."""
    retail_price = float(retail_price)
    unit = discounted_price(retail_price, sale) if _applicable(sale, now, product) else retail_price
    return money(unit), money(unit * quantity)


def price_summary(product: dict, sale: Optional[dict] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
    original = float(product.get("retail_price") or 0)
    if not _applicable(sale, now, product):
        return {
            "original_price": money(original),
            "sale_price": money(original),
            "discount": 0.0,
            "discount_percentage": 0,
            "is_on_sale": False,
            "current_sale": None,
        }

    sale_price = discounted_price(original, sale)
    discount = original - sale_price
    if sale.get("discount_type") == "percentage":
        percentage = sale.get("discount_value")
    else:
        percentage = round(discount / original * 100) if original > 0 else 0

    return {
        "original_price": money(original),
        "sale_price": money(sale_price),
        "discount": money(discount),
        "discount_percentage": percentage,
        "is_on_sale": True,
        "current_sale": {
            "id": str(sale.get("_id")) if sale.get("_id") is not None else None,
            "name": sale.get("name"),
            "color": sale.get("color"),
            "banner": sale.get("banner"),
            "discount_type": sale.get("discount_type"),
            "discount_value": sale.get("discount_value"),
        },
    }
