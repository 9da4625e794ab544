"""REST store and payments client against httpx mock transports."""
import json

import httpx
import pytest

from storefront.utils.cart_store import CartStoreError, StoreTimeout
from storefront.utils.payments_client import PaymentError, PaymentsClient
from storefront.utils.rest_store import VARIANT_SELECT, RestCartStore

BASE = "http://backend.test"


class Recorder:
    """Mock transport handler answering from a queue of responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def make_store():
    def _make(*responses, token=None):
        recorder = Recorder(*responses)
        store = RestCartStore(BASE, "anon-key", access_token=token, transport=httpx.MockTransport(recorder))
        return store, recorder

    return _make


class TestRestCartStore:
    async def test_find_cart_filters_by_user(self, make_store):
        store, rec = make_store(httpx.Response(200, json=[{"id": "c1"}]))

        assert await store.find_cart_by_user("u1") == "c1"

        request = rec.requests[0]
        assert request.method == "GET"
        assert request.url.path == "/rest/v1/carts"
        assert request.url.params["user_id"] == "eq.u1"
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["Authorization"] == "Bearer anon-key"
        await store.aclose()

    async def test_user_token_is_sent_once_set(self, make_store):
        store, rec = make_store(httpx.Response(200, json=[]))
        store.set_access_token("user-jwt")

        assert await store.find_cart_by_user("u1") is None
        assert rec.requests[0].headers["Authorization"] == "Bearer user-jwt"
        await store.aclose()

    async def test_create_cart_asks_for_representation(self, make_store):
        store, rec = make_store(httpx.Response(201, json=[{"id": "c9", "user_id": "u1"}]))

        assert await store.create_cart("u1") == "c9"

        request = rec.requests[0]
        assert request.method == "POST"
        assert request.headers["Prefer"] == "return=representation"
        assert json.loads(request.content) == {"user_id": "u1"}
        await store.aclose()

    async def test_list_and_find_items(self, make_store):
        store, rec = make_store(
            httpx.Response(200, json=[{"variant_id": "v1", "qty": 2}, {"variant_id": "v2", "qty": 1}]),
            httpx.Response(200, json=[{"id": 17, "qty": 2}]),
        )

        lines = await store.list_cart_items("c1")
        row = await store.find_cart_item("c1", "v1")

        assert [(l.variant_id, l.quantity) for l in lines] == [("v1", 2), ("v2", 1)]
        assert row.row_id == 17 and row.quantity == 2
        assert rec.requests[1].url.params["variant_id"] == "eq.v1"
        await store.aclose()

    async def test_item_writes(self, make_store):
        store, rec = make_store(httpx.Response(201), httpx.Response(204), httpx.Response(204), httpx.Response(204))

        await store.insert_cart_item("c1", "v1", 3)
        await store.update_cart_item_quantity(17, 5)
        await store.delete_cart_item("c1", "v1")
        await store.delete_all_cart_items("c1")

        insert, update, delete_one, delete_all = rec.requests
        assert json.loads(insert.content) == {"cart_id": "c1", "variant_id": "v1", "qty": 3}
        assert update.method == "PATCH" and update.url.params["id"] == "eq.17"
        assert json.loads(update.content) == {"qty": 5}
        assert delete_one.url.params["variant_id"] == "eq.v1"
        assert dict(delete_all.url.params) == {"cart_id": "eq.c1"}
        await store.aclose()

    async def test_variant_lookup_uses_nested_select(self, make_store):
        store, rec = make_store(httpx.Response(200, json=[{
            "id": "v1", "color": "red", "size": "M", "price": 100, "sale_price": 80, "stock": 2,
            "product": {"slug": "hoodie", "title": "Hoodie", "images": [
                {"url": "/b.jpg", "sort": 3}, {"url": "/a.jpg", "sort": None},
            ]},
        }]))

        records = await store.fetch_variants_with_product(["v1", "v2", "v1"])

        params = rec.requests[0].url.params
        assert params["select"] == VARIANT_SELECT
        assert params["id"] == 'in.("v1","v2")'
        assert records[0].product.primary_image() == "/a.jpg"
        await store.aclose()

    async def test_http_error_becomes_store_error(self, make_store):
        store, _ = make_store(httpx.Response(403, json={"message": "permission denied"}))

        with pytest.raises(CartStoreError):
            await store.find_cart_by_user("u1")
        await store.aclose()

    async def test_timeout_becomes_store_timeout(self, make_store):
        store, _ = make_store(httpx.ReadTimeout("slow backend"))

        with pytest.raises(StoreTimeout):
            await store.list_cart_items("c1")
        await store.aclose()

    async def test_malformed_rows_are_rejected(self, make_store):
        store, _ = make_store(httpx.Response(200, json=[{"variant_id": "v1", "qty": 0}]))

        with pytest.raises(CartStoreError):
            await store.list_cart_items("c1")
        await store.aclose()

    async def test_non_positive_quantity_never_reaches_backend(self, make_store):
        store, rec = make_store()

        with pytest.raises(CartStoreError):
            await store.insert_cart_item("c1", "v1", 0)
        assert rec.requests == []
        await store.aclose()


class TestPaymentsClient:
    async def test_returns_init_point(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"init_point": "https://pay.test/checkout/1"})

        client = PaymentsClient(BASE, "anon-key", transport=httpx.MockTransport(handler))
        url = await client.create_preference("u1", access_token="user-jwt", coupon="ONE10")

        assert url == "https://pay.test/checkout/1"
        assert seen[0].url.path == "/functions/v1/create-preference"
        assert seen[0].headers["Authorization"] == "Bearer user-jwt"
        assert json.loads(seen[0].content) == {"userId": "u1", "coupon": "ONE10"}

    @pytest.mark.parametrize("response", [
        httpx.Response(500, text="boom"),
        httpx.Response(200, json={"id": "pref-1"}),
        httpx.Response(200, text="not json"),
    ])
    async def test_failures_raise_payment_error(self, response):
        client = PaymentsClient(BASE, "anon-key", transport=httpx.MockTransport(lambda request: response))

        with pytest.raises(PaymentError):
            await client.create_preference("u1")
