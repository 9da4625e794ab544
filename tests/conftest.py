"""Shared fixtures: in-memory databases, a fake cart store and an API client."""
import asyncio
import os
import uuid

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.database import Base, get_db
from storefront.models.catalog import Category, Collection, Product, ProductImage, Variant
from storefront.models.users import User
import storefront.models.cart  # noqa: F401
import storefront.models.log  # noqa: F401
import storefront.models.wishlist  # noqa: F401
from storefront.schemas.cart import CartLine
from storefront.schemas.store import CartItemRow, ImageRecord, ProductRecord, VariantRecord
from storefront.schemas.user import Identity
from storefront.utils.cart_engine import CartEngine
from storefront.utils.cart_store import CartStoreError, SqlCartStore
from storefront.utils.devices import DeviceRegistry
from storefront.utils.local_storage import MemoryLocalStorage
from storefront.utils.tokenJWT import create_access_token

STORAGE_KEY = "ot_cart_v1"

V_SALE = "11111111-1111-1111-1111-111111111111"   # price 100, sale 80
V_PLAIN = "22222222-2222-2222-2222-222222222222"  # price 50, no sale
V_OTHER = "33333333-3333-3333-3333-333333333333"  # price 20, no sale
V_GONE = "99999999-9999-9999-9999-999999999999"   # not in the catalog


class FakeCartStore:
    """In-memory CartStore with failure and hang injection."""

    def __init__(self, variants=None):
        self.carts = {}
        self.rows = {}
        self.variants = {v.id: v for v in (variants or [])}
        self.fail = {}
        self.hang = set()
        self.calls = []
        self._next_row = 1

    async def _enter(self, op, variant_id=None):
        self.calls.append(op)
        if op in self.hang:
            await asyncio.sleep(3600)
        if op in self.fail:
            targets = self.fail[op]
            if targets is None or variant_id in targets:
                raise CartStoreError(f"{op} failed")

    def lines(self, cart_id):
        return {r["variant_id"]: r["quantity"] for r in self.rows.values() if r["cart_id"] == cart_id}

    def cart_of(self, user_id):
        return next((cid for cid, uid in self.carts.items() if uid == user_id), None)

    async def find_cart_by_user(self, user_id):
        await self._enter("find_cart_by_user")
        return self.cart_of(user_id)

    async def create_cart(self, user_id):
        await self._enter("create_cart")
        cart_id = f"cart-{len(self.carts) + 1}"
        self.carts[cart_id] = user_id
        return cart_id

    async def list_cart_items(self, cart_id):
        await self._enter("list_cart_items")
        return [
            CartLine(variant_id=r["variant_id"], quantity=r["quantity"])
            for _, r in sorted(self.rows.items()) if r["cart_id"] == cart_id
        ]

    async def find_cart_item(self, cart_id, variant_id):
        await self._enter("find_cart_item", variant_id)
        for row_id, r in self.rows.items():
            if r["cart_id"] == cart_id and r["variant_id"] == variant_id:
                return CartItemRow(row_id=row_id, quantity=r["quantity"])
        return None

    async def insert_cart_item(self, cart_id, variant_id, quantity):
        await self._enter("insert_cart_item", variant_id)
        if variant_id in self.lines(cart_id):
            raise CartStoreError("duplicate key value violates unique constraint")
        self.rows[self._next_row] = {"cart_id": cart_id, "variant_id": variant_id, "quantity": quantity}
        self._next_row += 1

    async def update_cart_item_quantity(self, row_id, quantity):
        await self._enter("update_cart_item_quantity", self.rows[row_id]["variant_id"])
        assert quantity > 0
        self.rows[row_id]["quantity"] = quantity

    async def delete_cart_item(self, cart_id, variant_id):
        await self._enter("delete_cart_item", variant_id)
        self.rows = {
            k: r for k, r in self.rows.items()
            if not (r["cart_id"] == cart_id and r["variant_id"] == variant_id)
        }

    async def delete_all_cart_items(self, cart_id):
        await self._enter("delete_all_cart_items")
        self.rows = {k: r for k, r in self.rows.items() if r["cart_id"] != cart_id}

    async def fetch_variants_with_product(self, variant_ids):
        await self._enter("fetch_variants_with_product")
        return [self.variants[v] for v in dict.fromkeys(variant_ids) if v in self.variants]


def make_variant(variant_id, price, sale_price=None, slug="tee", title="Tee"):
    return VariantRecord(
        id=variant_id, color="navy", size="M", price=price, sale_price=sale_price, stock=5,
        product=ProductRecord(
            slug=slug, title=title,
            images=[ImageRecord(url=f"/img/{slug}-2.jpg", sort=2), ImageRecord(url=f"/img/{slug}-1.jpg", sort=1)],
        ),
    )


@pytest.fixture
def fake_store() -> FakeCartStore:
    return FakeCartStore([
        make_variant(V_SALE, 100, 80, slug="hoodie", title="Hoodie"),
        make_variant(V_PLAIN, 50, None, slug="tee", title="Tee"),
        make_variant(V_OTHER, 20, None, slug="cap", title="Cap"),
    ])


@pytest.fixture
def storage() -> MemoryLocalStorage:
    return MemoryLocalStorage()


@pytest.fixture
def engine(fake_store, storage) -> CartEngine:
    return CartEngine(fake_store, storage, storage_key=STORAGE_KEY, call_timeout=1.0, settle_timeout=0.2)


@pytest.fixture
def alice() -> Identity:
    return Identity(user_id="aaaaaaaa-0000-0000-0000-000000000001", email="alice@example.com")


# ==================== Database fixtures ====================

@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture
def catalog(db_session):
    """Two active products and one inactive, with known variant ids."""
    essentials = Collection(name="Essentials", slug="essentials")
    winter = Collection(name="Winter", slug="winter")
    tees = Category(name="T-shirts", slug="remeras")
    hoodies = Category(name="Hoodies", slug="hoodies")
    db_session.add_all([essentials, winter, tees, hoodies])
    db_session.flush()

    hoodie = Product(title="Red Hoodie", slug="hoodie-red", collection_id=winter.id, category_id=hoodies.id)
    tee = Product(title="Navy Tee", slug="tshirt-navy", collection_id=essentials.id, category_id=tees.id)
    hidden = Product(title="Old Tee", slug="tshirt-old", active=False, collection_id=essentials.id,
                     category_id=tees.id)
    db_session.add_all([hoodie, tee, hidden])
    db_session.flush()

    db_session.add_all([
        ProductImage(product_id=hoodie.id, url="/products/hoodie-red-2.jpg", sort=2),
        ProductImage(product_id=hoodie.id, url="/products/hoodie-red-1.jpg", sort=1),
        ProductImage(product_id=tee.id, url="/products/tshirt-navy-1.jpg", sort=0),
        Variant(id=V_SALE, product_id=hoodie.id, color="red", size="M", sku="HOODIE-RED-M",
                price=100, sale_price=80, stock=4),
        Variant(id=V_PLAIN, product_id=tee.id, color="navy", size="L", sku="TEE-NAVY-L",
                price=50, sale_price=None, stock=10),
        Variant(id=V_OTHER, product_id=hidden.id, color="white", size="S", sku="TEE-OLD-S",
                price=20, sale_price=None, stock=1),
    ])
    db_session.commit()
    return {"hoodie": hoodie.slug, "tee": tee.slug, "hidden": hidden.slug}


@pytest.fixture
def sql_store(session_factory) -> SqlCartStore:
    return SqlCartStore(session_factory)


# ==================== API fixtures ====================

@pytest.fixture
def device_storages():
    """Local storage of every device created through the API, by device id."""
    return {}


@pytest.fixture
def app(session_factory, sql_store, device_storages):
    from storefront.main import create_app

    def storage_for(device_id):
        return device_storages.setdefault(device_id, MemoryLocalStorage())

    registry = DeviceRegistry(lambda: sql_store, storage_factory=storage_for, max_devices=10)
    test_app = create_app(registry)

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    test_app.dependency_overrides[get_db] = override_get_db
    return test_app


@pytest.fixture
def device_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
async def client(app, device_id) -> AsyncClient:
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-Device-Id": device_id},
    ) as c:
        yield c


def bearer(user_id: str, role: str = "customer", email: str = None) -> dict:
    token = create_access_token({"sub": user_id, "role": role, "email": email or f"{user_id[:8]}@example.com"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_profile(db_session):
    def _make(user_id: str, role: str = "customer", email: str = None) -> User:
        user = User(id=user_id, email=email or f"{user_id[:8]}@example.com", role=role)
        db_session.add(user)
        db_session.commit()
        return user
    return _make
