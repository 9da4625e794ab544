# storefront/routes/checkout.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.routes.cart import get_refreshed_device
from storefront.utils.audit import write_log
from storefront.utils.checkout import InvalidCoupon, discount_for, grand_total, normalize_coupon
from storefront.utils.devices import DeviceSession
from storefront.utils.payments_client import PaymentError, PaymentsClient, payments_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/checkout", tags=["Checkout"])

class CheckoutRequest(BaseModel):
    coupon: Optional[str] = None

class CheckoutSummary(BaseModel):
    item_count: int
    total: float
    coupon: Optional[str] = None
    discount: float
    grand_total: float

class CheckoutRedirect(BaseModel):
    redirect_url: str
    summary: CheckoutSummary

def get_payments_client() -> PaymentsClient:
    return payments_client

def _summary(device: DeviceSession, coupon: Optional[str]) -> CheckoutSummary:
    code = normalize_coupon(coupon)
    total = device.engine.total
    try:
        discount = discount_for(total, code)
    except InvalidCoupon:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid coupon")
    return CheckoutSummary(
        item_count=device.engine.item_count,
        total=round(total, 2),
        coupon=code,
        discount=discount,
        grand_total=round(grand_total(total, code), 2),
    )

# Totals of the caller's cart, with an optional coupon applied
@router.get("/summary", response_model=CheckoutSummary)
async def checkout_summary(coupon: Optional[str] = None, device: DeviceSession = Depends(get_refreshed_device)):
    return _summary(device, coupon)

# Start the payment: the caller is sent to the provider's checkout page
@router.post("", response_model=CheckoutRedirect)
async def start_checkout(
    payload: CheckoutRequest,
    request: Request,
    device: DeviceSession = Depends(get_refreshed_device),
    db: Session = Depends(get_db),
    client: PaymentsClient = Depends(get_payments_client),
):
    identity = device.session.identity
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Sign in to pay")
    if device.engine.item_count == 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cart is empty")

    summary = _summary(device, payload.coupon)
    try:
        redirect_url = await client.create_preference(
            identity.user_id, getattr(request.state, "access_token", None), summary.coupon
        )
    except PaymentError as e:
        await run_in_threadpool(
            write_log, db, user_id=identity.user_id, device_id=device.device_id, action="CHECKOUT",
            resource="payment", status="FAIL", ip=request.client.host if request.client else None,
            meta={"total": summary.grand_total, "error": str(e)},
        )
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    await run_in_threadpool(
        write_log, db, user_id=identity.user_id, device_id=device.device_id, action="CHECKOUT",
        resource="payment", status="SUCCESS", ip=request.client.host if request.client else None,
        meta={"total": summary.grand_total, "coupon": summary.coupon, "items": summary.item_count},
    )
    logger.info("Checkout started for user %s, total %s", identity.user_id, summary.grand_total)
    return CheckoutRedirect(redirect_url=redirect_url, summary=summary)
