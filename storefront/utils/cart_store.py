# storefront/utils/cart_store.py
import logging
from typing import Callable, List, Optional, Protocol, Sequence, TypeVar

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, sessionmaker

from storefront.models.cart import Cart, CartItem
from storefront.models.catalog import Product, Variant
from storefront.schemas.cart import CartLine
from storefront.schemas.store import CartItemRow, VariantRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CartError(Exception):
    """Raised for cart failures."""


class CartStoreError(CartError):
    """A Catalog/Cart Store call failed (network, permission, constraint)."""


class StoreTimeout(CartStoreError):
    """A Catalog/Cart Store call did not answer in time."""


class CartStore(Protocol):
    """Remote, table-oriented store holding server carts and the catalog."""

    async def find_cart_by_user(self, user_id: str) -> Optional[str]: ...

    async def create_cart(self, user_id: str) -> str: ...

    async def list_cart_items(self, cart_id: str) -> List[CartLine]: ...

    async def find_cart_item(self, cart_id: str, variant_id: str) -> Optional[CartItemRow]: ...

    async def insert_cart_item(self, cart_id: str, variant_id: str, quantity: int) -> None: ...

    async def update_cart_item_quantity(self, row_id, quantity: int) -> None: ...

    async def delete_cart_item(self, cart_id: str, variant_id: str) -> None: ...

    async def delete_all_cart_items(self, cart_id: str) -> None: ...

    async def fetch_variants_with_product(self, variant_ids: Sequence[str]) -> List[VariantRecord]: ...


class SqlCartStore:
    """CartStore over the SQLAlchemy tables of this service.

    Every call opens its own session and runs in the threadpool, so the
    engine never blocks the event loop on database I/O.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _run(self, fn: Callable[[Session], T]) -> T:
        db = self.session_factory()
        try:
            return fn(db)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Cart store query failed: %s", e)
            raise CartStoreError(str(e)) from e
        finally:
            db.close()

    async def _call(self, fn: Callable[[Session], T]) -> T:
        return await run_in_threadpool(self._run, fn)

    async def find_cart_by_user(self, user_id: str) -> Optional[str]:
        def query(db: Session):
            return db.execute(select(Cart.id).where(Cart.user_id == user_id)).scalar_one_or_none()
        return await self._call(query)

    async def create_cart(self, user_id: str) -> str:
        def insert(db: Session):
            cart = Cart(user_id=user_id)
            db.add(cart)
            try:
                db.commit()
            except IntegrityError:
                # Another request created it first; one cart per user
                db.rollback()
                return db.execute(select(Cart.id).where(Cart.user_id == user_id)).scalar_one()
            return cart.id
        return await self._call(insert)

    async def list_cart_items(self, cart_id: str) -> List[CartLine]:
        def query(db: Session):
            rows = db.execute(
                select(CartItem.variant_id, CartItem.qty)
                .where(CartItem.cart_id == cart_id)
                .order_by(CartItem.id)
            ).all()
            return [CartLine(variant_id=r.variant_id, quantity=r.qty) for r in rows]
        return await self._call(query)

    async def find_cart_item(self, cart_id: str, variant_id: str) -> Optional[CartItemRow]:
        def query(db: Session):
            item = db.execute(
                select(CartItem).where(CartItem.cart_id == cart_id, CartItem.variant_id == variant_id)
            ).scalar_one_or_none()
            if item is None:
                return None
            return CartItemRow(row_id=item.id, quantity=item.qty)
        return await self._call(query)

    async def insert_cart_item(self, cart_id: str, variant_id: str, quantity: int) -> None:
        if quantity <= 0:
            raise CartStoreError("Quantity must be positive")

        def insert(db: Session):
            db.add(CartItem(cart_id=cart_id, variant_id=variant_id, qty=quantity))
            db.commit()
        await self._call(insert)

    async def update_cart_item_quantity(self, row_id, quantity: int) -> None:
        if quantity <= 0:
            raise CartStoreError("Quantity must be positive")

        def update(db: Session):
            item = db.get(CartItem, row_id)
            if item is None:
                raise CartStoreError(f"Cart item {row_id} not found")
            item.qty = quantity
            db.commit()
        await self._call(update)

    async def delete_cart_item(self, cart_id: str, variant_id: str) -> None:
        def remove(db: Session):
            db.execute(delete(CartItem).where(CartItem.cart_id == cart_id, CartItem.variant_id == variant_id))
            db.commit()
        await self._call(remove)

    async def delete_all_cart_items(self, cart_id: str) -> None:
        def remove(db: Session):
            db.execute(delete(CartItem).where(CartItem.cart_id == cart_id))
            db.commit()
        await self._call(remove)

    async def fetch_variants_with_product(self, variant_ids: Sequence[str]) -> List[VariantRecord]:
        ids = list(dict.fromkeys(variant_ids))
        if not ids:
            return []

        def query(db: Session):
            variants = (
                db.execute(
                    select(Variant)
                    .where(Variant.id.in_(ids))
                    .options(joinedload(Variant.product).joinedload(Product.images))
                )
                .unique()
                .scalars()
                .all()
            )
            records = []
            for v in variants:
                product = None
                if v.product is not None:
                    product = {
                        "slug": v.product.slug,
                        "title": v.product.title,
                        "images": [{"url": img.url, "sort": img.sort} for img in v.product.images],
                    }
                records.append(VariantRecord.model_validate({
                    "id": v.id,
                    "color": v.color,
                    "size": v.size,
                    "price": v.price,
                    "sale_price": v.sale_price,
                    "stock": v.stock,
                    "product": product,
                }))
            return records
        return await self._call(query)
