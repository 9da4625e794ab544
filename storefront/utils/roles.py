# storefront/utils/roles.py
from typing import Optional

CUSTOMER = "customer"
ADMIN = "admin"
SUPER_ADMIN = "super_admin"

ROLES = (CUSTOMER, ADMIN, SUPER_ADMIN)
ADMIN_ROLES = (ADMIN, SUPER_ADMIN)


def normalize_role(role: Optional[str]) -> str:
    """Unknown or missing roles fall back to customer."""
    role = (role or "").strip().lower()
    return role if role in ROLES else CUSTOMER


def permissions_for(role: Optional[str]) -> dict:
    """Admin shell permissions; admins manage the shop, super admins manage people."""
    role = normalize_role(role)
    is_admin = role in ADMIN_ROLES
    is_super_admin = role == SUPER_ADMIN
    return {
        "role": role,
        "is_admin": is_admin,
        "is_super_admin": is_super_admin,
        "is_customer": role == CUSTOMER,
        "can_manage_products": is_admin,
        "can_manage_stock": is_admin,
        "can_view_all_orders": is_admin,
        "can_manage_orders": is_admin,
        "can_manage_promo_codes": is_admin,
        "can_view_analytics": is_admin,
        "can_manage_users": is_super_admin,
        "can_manage_roles": is_super_admin,
        "can_access_system_config": is_super_admin,
    }
