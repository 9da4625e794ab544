# storefront/utils/checkout.py
from typing import Optional

# Promo codes accepted at checkout, as a fraction of the cart total
COUPONS = {"ONE10": 0.10}


class InvalidCoupon(ValueError):
    pass


def normalize_coupon(code: Optional[str]) -> Optional[str]:
    code = (code or "").strip().upper()
    return code or None


def discount_for(total: float, coupon: Optional[str]) -> float:
    """Discount in currency units, rounded to a whole amount."""
    code = normalize_coupon(coupon)
    if code is None:
        return 0
    if code not in COUPONS:
        raise InvalidCoupon(code)
    return round(total * COUPONS[code])


def grand_total(total: float, coupon: Optional[str]) -> float:
    return max(total - discount_for(total, coupon), 0)
