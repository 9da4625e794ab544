"""SQL-backed cart store against an in-memory SQLite database."""
import pytest

from conftest import STORAGE_KEY, V_GONE, V_OTHER, V_PLAIN, V_SALE
from storefront.schemas.cart import CartLine
from storefront.utils.cart_engine import CartEngine, CartState
from storefront.utils.cart_store import CartStoreError
from storefront.utils.local_storage import MemoryLocalStorage, read_guest_lines, write_guest_lines

USER = "aaaaaaaa-0000-0000-0000-000000000001"


class TestCarts:
    async def test_find_missing_cart_returns_none(self, sql_store):
        assert await sql_store.find_cart_by_user(USER) is None

    async def test_create_then_find(self, sql_store):
        cart_id = await sql_store.create_cart(USER)

        assert await sql_store.find_cart_by_user(USER) == cart_id

    async def test_second_create_returns_existing_cart(self, sql_store):
        first = await sql_store.create_cart(USER)
        second = await sql_store.create_cart(USER)

        assert first == second


class TestCartItems:
    @pytest.fixture
    async def cart_id(self, sql_store):
        return await sql_store.create_cart(USER)

    async def test_insert_find_and_list(self, sql_store, cart_id):
        await sql_store.insert_cart_item(cart_id, V_PLAIN, 2)
        await sql_store.insert_cart_item(cart_id, V_SALE, 1)

        row = await sql_store.find_cart_item(cart_id, V_PLAIN)
        assert row.quantity == 2
        assert await sql_store.find_cart_item(cart_id, V_OTHER) is None
        assert await sql_store.list_cart_items(cart_id) == [
            CartLine(variant_id=V_PLAIN, quantity=2),
            CartLine(variant_id=V_SALE, quantity=1),
        ]

    async def test_update_quantity_by_row_id(self, sql_store, cart_id):
        await sql_store.insert_cart_item(cart_id, V_PLAIN, 2)
        row = await sql_store.find_cart_item(cart_id, V_PLAIN)

        await sql_store.update_cart_item_quantity(row.row_id, 9)

        assert (await sql_store.find_cart_item(cart_id, V_PLAIN)).quantity == 9

    async def test_duplicate_variant_violates_unique_constraint(self, sql_store, cart_id):
        await sql_store.insert_cart_item(cart_id, V_PLAIN, 1)

        with pytest.raises(CartStoreError):
            await sql_store.insert_cart_item(cart_id, V_PLAIN, 1)

        assert await sql_store.list_cart_items(cart_id) == [CartLine(variant_id=V_PLAIN, quantity=1)]

    @pytest.mark.parametrize("quantity", [0, -2])
    async def test_non_positive_quantities_are_rejected(self, sql_store, cart_id, quantity):
        await sql_store.insert_cart_item(cart_id, V_PLAIN, 1)
        row = await sql_store.find_cart_item(cart_id, V_PLAIN)

        with pytest.raises(CartStoreError):
            await sql_store.insert_cart_item(cart_id, V_SALE, quantity)
        with pytest.raises(CartStoreError):
            await sql_store.update_cart_item_quantity(row.row_id, quantity)

    async def test_update_of_missing_row_fails(self, sql_store, cart_id):
        with pytest.raises(CartStoreError):
            await sql_store.update_cart_item_quantity(424242, 1)

    async def test_delete_one_and_all(self, sql_store, cart_id):
        other_cart = await sql_store.create_cart("bbbbbbbb-0000-0000-0000-000000000002")
        for variant_id in (V_PLAIN, V_SALE, V_OTHER):
            await sql_store.insert_cart_item(cart_id, variant_id, 1)
        await sql_store.insert_cart_item(other_cart, V_PLAIN, 1)

        await sql_store.delete_cart_item(cart_id, V_SALE)
        assert [l.variant_id for l in await sql_store.list_cart_items(cart_id)] == [V_PLAIN, V_OTHER]

        await sql_store.delete_all_cart_items(cart_id)
        assert await sql_store.list_cart_items(cart_id) == []
        assert await sql_store.list_cart_items(other_cart) == [CartLine(variant_id=V_PLAIN, quantity=1)]


class TestVariantLookup:
    async def test_variants_come_with_product_and_primary_image(self, sql_store, catalog):
        records = await sql_store.fetch_variants_with_product([V_SALE, V_PLAIN, V_SALE])

        by_id = {r.id: r for r in records}
        assert set(by_id) == {V_SALE, V_PLAIN}
        hoodie = by_id[V_SALE]
        assert hoodie.price == 100
        assert hoodie.sale_price == 80
        assert hoodie.product.slug == "hoodie-red"
        assert hoodie.product.primary_image() == "/products/hoodie-red-1.jpg"
        assert by_id[V_PLAIN].sale_price is None

    async def test_unknown_ids_are_omitted(self, sql_store, catalog):
        records = await sql_store.fetch_variants_with_product([V_GONE, V_PLAIN])

        assert [r.id for r in records] == [V_PLAIN]

    async def test_empty_lookup_skips_the_query(self, sql_store):
        assert await sql_store.fetch_variants_with_product([]) == []


class TestEngineOverSql:
    async def test_guest_lines_merge_into_database_cart(self, sql_store, catalog):
        storage = MemoryLocalStorage()
        write_guest_lines(storage, STORAGE_KEY, [
            CartLine(variant_id=V_PLAIN, quantity=2),
            CartLine(variant_id=V_SALE, quantity=1),
        ])
        cart_id = await sql_store.create_cart(USER)
        await sql_store.insert_cart_item(cart_id, V_PLAIN, 1)
        engine = CartEngine(sql_store, storage, storage_key=STORAGE_KEY)

        await engine.handle_session_change(None)
        assert engine.total == 180

        from storefront.schemas.user import Identity
        await engine.handle_session_change(Identity(user_id=USER))

        assert engine.state is CartState.BOUND
        assert engine.cart_id == cart_id
        assert {l.variant_id: l.quantity for l in engine.items} == {V_PLAIN: 3, V_SALE: 1}
        assert engine.total == 3 * 50 + 80
        assert read_guest_lines(storage, STORAGE_KEY) == []
