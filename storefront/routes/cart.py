# storefront/routes/cart.py
import uuid
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.schemas.cart import CartAddItem, CartItemOut, CartOut, CartSnapshot, CartUpdateItem
from storefront.schemas.user import Identity
from storefront.utils.audit import write_log
from storefront.utils.cart_engine import CartNotReady
from storefront.utils.cart_store import CartError, StoreTimeout
from storefront.utils.devices import DeviceSession
from storefront.utils.tokenJWT import get_optional_identity

router = APIRouter(prefix="/cart", tags=["Cart"])

DEVICE_COOKIE = "device_id"
DEVICE_HEADER = "X-Device-Id"
DEVICE_COOKIE_MAX_AGE = 365 * 24 * 3600  # 1 year

def cart_http_error(e: CartError) -> HTTPException:
    # Map engine failures onto gateway style statuses
    if isinstance(e, StoreTimeout):
        return HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail="Cart store timed out")
    if isinstance(e, CartNotReady):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Cart is not ready")
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Cart store unavailable")

def _parse_device_id(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        return str(uuid.UUID(value))
    except ValueError:
        return None

# Device session of the caller, synced with the caller's identity
async def get_device(
    request: Request,
    response: Response,
    identity: Optional[Identity] = Depends(get_optional_identity),
) -> AsyncIterator[DeviceSession]:
    device_id = _parse_device_id(request.headers.get(DEVICE_HEADER) or request.cookies.get(DEVICE_COOKIE))
    if device_id is None:
        device_id = str(uuid.uuid4())
        response.set_cookie(
            DEVICE_COOKIE,
            device_id,
            max_age=DEVICE_COOKIE_MAX_AGE,
            httponly=True,
            samesite="lax",
        )

    registry = request.app.state.devices
    # Held until the response is sent so the device is not evicted mid-request
    async with registry.lease(device_id) as device:
        try:
            await registry.sync_identity(device, identity, getattr(request.state, "access_token", None))
        except CartError as e:
            raise cart_http_error(e)
        yield device

# Device whose cart was re-read from its store; each page load sees other devices' writes
async def get_refreshed_device(device: DeviceSession = Depends(get_device)) -> DeviceSession:
    try:
        await device.engine.refresh()
    except CartError as e:
        raise cart_http_error(e)
    return device

def _cart_to_out(snapshot: CartSnapshot) -> CartOut:
    items_out = []
    for line in snapshot.items:
        price = line.unit_price
        items_out.append(CartItemOut(
            variant_id=line.variant_id,
            product_slug=line.product.slug if line.product else "",
            title=line.product.title if line.product else "Product",
            color=line.variant.color if line.variant else "",
            size=line.variant.size if line.variant else "",
            price=price,
            quantity=line.quantity,
            line_total=round(price * line.quantity, 2),
            image=line.product.image_url if line.product else None,
            available=line.variant is not None,
        ))

    return CartOut(
        loading=snapshot.loading,
        state=snapshot.state,
        items=items_out,
        total=round(snapshot.total, 2),
        item_count=snapshot.item_count,
    )

async def _audit(db: Session, request: Request, device: DeviceSession, action: str, status_: str, meta: dict):
    identity = device.session.identity
    await run_in_threadpool(
        write_log,
        db,
        user_id=identity.user_id if identity else None,
        device_id=device.device_id,
        action=action,
        resource="cart",
        status=status_,
        ip=request.client.host if request.client else None,
        meta=meta,
    )

@router.get("", response_model=CartOut)
async def get_cart(device: DeviceSession = Depends(get_refreshed_device)):
    return _cart_to_out(device.engine.snapshot())

@router.post("/items", response_model=CartOut, status_code=status.HTTP_200_OK)
async def add_to_cart(
    payload: CartAddItem,
    request: Request,
    device: DeviceSession = Depends(get_device),
    db: Session = Depends(get_db),
):
    try:
        await device.engine.add_item(payload.variant_id, payload.quantity)
    except CartError as e:
        await _audit(db, request, device, "CART_ADD", "FAIL", {"variant_id": payload.variant_id, "error": str(e)})
        raise cart_http_error(e)

    out = _cart_to_out(device.engine.snapshot())
    await _audit(db, request, device, "CART_ADD", "SUCCESS", {
        "variant_id": payload.variant_id, "qty": payload.quantity,
        "cart_items": len(out.items), "total": out.total,
    })
    return out

@router.put("/items/{variant_id}", response_model=CartOut)
async def update_cart_item(
    variant_id: str,
    payload: CartUpdateItem,
    request: Request,
    device: DeviceSession = Depends(get_device),
    db: Session = Depends(get_db),
):
    try:
        await device.engine.update_quantity(variant_id, payload.quantity)
    except CartError as e:
        await _audit(db, request, device, "CART_UPDATE", "FAIL", {"variant_id": variant_id, "error": str(e)})
        raise cart_http_error(e)

    out = _cart_to_out(device.engine.snapshot())
    await _audit(db, request, device, "CART_UPDATE", "SUCCESS", {
        "variant_id": variant_id, "qty": payload.quantity, "total": out.total,
    })
    return out

@router.delete("/items/{variant_id}", response_model=CartOut)
async def delete_cart_item(
    variant_id: str,
    request: Request,
    device: DeviceSession = Depends(get_device),
    db: Session = Depends(get_db),
):
    try:
        await device.engine.remove_item(variant_id)
    except CartError as e:
        await _audit(db, request, device, "CART_DELETE", "FAIL", {"variant_id": variant_id, "error": str(e)})
        raise cart_http_error(e)

    out = _cart_to_out(device.engine.snapshot())
    await _audit(db, request, device, "CART_DELETE", "SUCCESS", {
        "variant_id": variant_id, "cart_items": len(out.items), "total": out.total,
    })
    return out

@router.delete("", response_model=CartOut)
async def clear_cart(
    request: Request,
    device: DeviceSession = Depends(get_device),
    db: Session = Depends(get_db),
):
    try:
        await device.engine.clear_cart()
    except CartError as e:
        await _audit(db, request, device, "CART_CLEAR", "FAIL", {"error": str(e)})
        raise cart_http_error(e)

    await _audit(db, request, device, "CART_CLEAR", "SUCCESS", {})
    return _cart_to_out(device.engine.snapshot())
