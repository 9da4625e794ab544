# storefront/utils/cart_engine.py
"""Cart reconciliation for one device.

The engine keeps a single logical cart that lives in the device's local
storage while the session is anonymous and in the Catalog/Cart Store once an
identity is present. When a guest signs in, the guest lines are folded into
the user's server cart once (Merge-then-Load) and local storage is cleared.
"""
import asyncio
import enum
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar

from storefront.config import settings
from storefront.schemas.cart import CartLine, CartSnapshot, EnrichedLine, ProductSummary, VariantDetail
from storefront.schemas.store import VariantRecord
from storefront.schemas.user import Identity
from storefront.utils.cart_store import CartError, CartStore, CartStoreError, StoreTimeout
from storefront.utils.local_storage import LocalStorage, read_guest_lines, write_guest_lines
from storefront.utils.session import SessionProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CartNotReady(CartError):
    """The session never settled, or binding the server cart failed."""


class CartState(str, enum.Enum):
    SETTLING = "settling"
    GUEST = "guest"
    BOUND = "bound"


@dataclass
class MergeResult:
    cart_id: str
    merged: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


def enrich_line(line: CartLine, record: Optional[VariantRecord]) -> EnrichedLine:
    """Attach display attributes; a missing record keeps the line undetailed."""
    if record is None:
        return EnrichedLine(variant_id=line.variant_id, quantity=line.quantity)
    product = None
    if record.product is not None:
        product = ProductSummary(
            slug=record.product.slug,
            title=record.product.title,
            image_url=record.product.primary_image(),
        )
    return EnrichedLine(
        variant_id=line.variant_id,
        quantity=line.quantity,
        variant=VariantDetail(
            id=record.id,
            color=record.color,
            size=record.size,
            price=record.price,
            sale_price=record.sale_price,
            stock=record.stock,
        ),
        product=product,
    )


def cart_total(lines: List[EnrichedLine]) -> float:
    return sum(line.unit_price * line.quantity for line in lines)


def cart_item_count(lines: List[EnrichedLine]) -> int:
    return sum(line.quantity for line in lines)


class CartEngine:
    def __init__(
        self,
        store: CartStore,
        storage: LocalStorage,
        *,
        storage_key: str = None,
        call_timeout: float = None,
        settle_timeout: float = None,
    ):
        self.store = store
        self.storage = storage
        self.storage_key = storage_key or settings.CART_STORAGE_KEY
        self.call_timeout = call_timeout if call_timeout is not None else settings.STORE_CALL_TIMEOUT
        self.settle_timeout = settle_timeout if settle_timeout is not None else settings.CART_SETTLE_TIMEOUT

        self.state = CartState.SETTLING
        self.user_id: Optional[str] = None
        self.cart_id: Optional[str] = None
        self._lines: List[EnrichedLine] = []
        self._busy = False

        # Session transitions and mutations never interleave
        self._lock = asyncio.Lock()
        self._settled = asyncio.Event()

    # Published API

    @property
    def busy(self) -> bool:
        """A transition or mutation is running or queued on this engine."""
        return self._busy or self._lock.locked()

    @property
    def loading(self) -> bool:
        return self.state is CartState.SETTLING or self._busy

    @property
    def items(self) -> List[EnrichedLine]:
        return list(self._lines)

    @property
    def total(self) -> float:
        return cart_total(self._lines)

    @property
    def item_count(self) -> int:
        return cart_item_count(self._lines)

    def snapshot(self) -> CartSnapshot:
        lines = list(self._lines)
        return CartSnapshot(
            loading=self.loading,
            state=self.state.value,
            items=lines,
            total=cart_total(lines),
            item_count=cart_item_count(lines),
        )

    async def bind(self, session: SessionProvider) -> Callable[[], None]:
        """Follow `session`; returns the unsubscribe callable."""
        unsubscribe = session.subscribe(self.handle_session_change)
        if not session.loading:
            await self.handle_session_change(session.identity)
        return unsubscribe

    async def handle_session_change(self, identity: Optional[Identity]) -> None:
        async with self._lock:
            self._busy = True
            try:
                if identity is None:
                    await self._enter_guest()
                else:
                    await self._enter_bound(identity.user_id)
            finally:
                self._busy = False
                self._settled.set()

    async def add_item(self, variant_id: str, quantity: int = 1) -> None:
        if not variant_id or quantity is None or quantity <= 0:
            return
        async with self._mutation():
            if self.state is CartState.BOUND:
                existing = await self._call(self.store.find_cart_item(self.cart_id, variant_id))
                if existing is not None:
                    await self._call(
                        self.store.update_cart_item_quantity(existing.row_id, existing.quantity + quantity)
                    )
                else:
                    await self._call(self.store.insert_cart_item(self.cart_id, variant_id, quantity))
                await self._reload_server()
            else:
                lines = read_guest_lines(self.storage, self.storage_key)
                for i, line in enumerate(lines):
                    if line.variant_id == variant_id:
                        lines[i] = CartLine(variant_id=variant_id, quantity=line.quantity + quantity)
                        break
                else:
                    lines.append(CartLine(variant_id=variant_id, quantity=quantity))
                write_guest_lines(self.storage, self.storage_key, lines)
                await self._reload_guest(lines)
        logger.info("cart.item_added variant=%s quantity=%s state=%s", variant_id, quantity, self.state.value)

    async def update_quantity(self, variant_id: str, quantity: int) -> None:
        if quantity <= 0:
            await self.remove_item(variant_id)
            return
        async with self._mutation():
            if self.state is CartState.BOUND:
                existing = await self._call(self.store.find_cart_item(self.cart_id, variant_id))
                if existing is not None:
                    await self._call(self.store.update_cart_item_quantity(existing.row_id, quantity))
                await self._reload_server()
            else:
                lines = [
                    CartLine(variant_id=line.variant_id, quantity=quantity) if line.variant_id == variant_id else line
                    for line in read_guest_lines(self.storage, self.storage_key)
                ]
                write_guest_lines(self.storage, self.storage_key, lines)
                await self._reload_guest(lines)
        logger.info("cart.item_updated variant=%s quantity=%s state=%s", variant_id, quantity, self.state.value)

    async def remove_item(self, variant_id: str) -> None:
        async with self._mutation():
            if self.state is CartState.BOUND:
                await self._call(self.store.delete_cart_item(self.cart_id, variant_id))
                await self._reload_server()
            else:
                lines = [
                    line for line in read_guest_lines(self.storage, self.storage_key)
                    if line.variant_id != variant_id
                ]
                write_guest_lines(self.storage, self.storage_key, lines)
                await self._reload_guest(lines)
        logger.info("cart.item_removed variant=%s state=%s", variant_id, self.state.value)

    async def clear_cart(self) -> None:
        async with self._mutation():
            if self.state is CartState.BOUND:
                await self._call(self.store.delete_all_cart_items(self.cart_id))
                await self._reload_server()
            else:
                write_guest_lines(self.storage, self.storage_key, [])
                self._lines = []
        logger.info("cart.cleared state=%s", self.state.value)

    async def refresh(self) -> None:
        """Re-read the active cart so writes from other devices show up."""
        async with self._mutation():
            if self.state is CartState.BOUND:
                await self._reload_server()
            else:
                await self._reload_guest(read_guest_lines(self.storage, self.storage_key))

    # Session transitions

    async def _enter_guest(self) -> None:
        # Server lines are never copied back into local storage
        self.user_id = None
        self.cart_id = None
        self.state = CartState.GUEST
        lines = read_guest_lines(self.storage, self.storage_key)
        try:
            self._lines = await self._enrich(lines)
        except CartStoreError:
            logger.exception("Could not enrich guest cart, publishing bare lines")
            self._lines = [EnrichedLine(variant_id=l.variant_id, quantity=l.quantity) for l in lines]

    async def _enter_bound(self, user_id: str) -> None:
        try:
            result = await self.merge_guest_cart(user_id)
            lines = await self._call(self.store.list_cart_items(result.cart_id))
            enriched = await self._enrich(lines)
        except CartStoreError:
            logger.exception("Binding cart for user %s failed", user_id)
            self.state = CartState.SETTLING
            self.user_id = None
            self.cart_id = None
            raise
        self.user_id = user_id
        self.cart_id = result.cart_id
        self._lines = enriched
        self.state = CartState.BOUND

    async def merge_guest_cart(self, user_id: str) -> MergeResult:
        """Fold the local guest cart into the user's server cart.

        Quantities accumulate onto existing rows. A line that fails is logged
        and skipped; the guest store is cleared once the loop is done, whether
        or not every line made it.
        """
        guest = read_guest_lines(self.storage, self.storage_key)
        cart_id = await self._resolve_cart(user_id)
        result = MergeResult(cart_id=cart_id)

        for line in guest:
            try:
                existing = await self._call(self.store.find_cart_item(cart_id, line.variant_id))
                if existing is not None:
                    await self._call(
                        self.store.update_cart_item_quantity(existing.row_id, existing.quantity + line.quantity)
                    )
                else:
                    await self._call(self.store.insert_cart_item(cart_id, line.variant_id, line.quantity))
            except CartStoreError:
                logger.exception("Merging variant %s into cart %s failed", line.variant_id, cart_id)
                result.failed.append(line.variant_id)
            else:
                result.merged.append(line.variant_id)

        self.storage.remove_item(self.storage_key)
        if guest:
            logger.info(
                "cart.merged cart=%s user=%s merged=%s failed=%s",
                cart_id, user_id, len(result.merged), len(result.failed),
            )
        return result

    async def _resolve_cart(self, user_id: str) -> str:
        cart_id = await self._call(self.store.find_cart_by_user(user_id))
        if cart_id is None:
            cart_id = await self._call(self.store.create_cart(user_id))
            logger.info("cart.created cart=%s user=%s", cart_id, user_id)
        return cart_id

    # Helpers

    @asynccontextmanager
    async def _mutation(self):
        if not self._settled.is_set():
            try:
                await asyncio.wait_for(self._settled.wait(), self.settle_timeout)
            except asyncio.TimeoutError:
                raise CartNotReady("Session did not settle in time") from None
        async with self._lock:
            if self.state is CartState.SETTLING:
                raise CartNotReady("Cart is not bound to a session")
            self._busy = True
            try:
                yield
            finally:
                self._busy = False

    async def _reload_server(self) -> None:
        lines = await self._call(self.store.list_cart_items(self.cart_id))
        self._lines = await self._enrich(lines)

    async def _reload_guest(self, lines: List[CartLine]) -> None:
        self._lines = await self._enrich(lines)

    async def _enrich(self, lines: List[CartLine]) -> List[EnrichedLine]:
        if not lines:
            return []
        records = await self._call(self.store.fetch_variants_with_product([l.variant_id for l in lines]))
        by_id: Dict[str, VariantRecord] = {r.id: r for r in records}
        return [enrich_line(line, by_id.get(line.variant_id)) for line in lines]

    async def _call(self, call: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(call, self.call_timeout)
        except asyncio.TimeoutError:
            raise StoreTimeout(f"Store call exceeded {self.call_timeout}s") from None
