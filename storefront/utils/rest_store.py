# storefront/utils/rest_store.py
import httpx
import logging
from typing import Any, List, Optional, Sequence
from urllib.parse import urljoin

from pydantic import ValidationError

from storefront.config import settings
from storefront.schemas.cart import CartLine
from storefront.schemas.store import CartItemRow, VariantRecord
from storefront.utils.cart_store import CartStoreError, StoreTimeout

logger = logging.getLogger(__name__)

VARIANT_SELECT = (
    "id,color,size,price,sale_price,stock,"
    "product:products(slug,title,images:product_images(url,sort))"
)


class RestCartStore:
    """CartStore backed by the hosted backend's REST tables (PostgREST dialect).

    Row-level security on the backend scopes carts to the caller, so the
    user's access token is sent when one is set; the anon key otherwise.
    """

    def __init__(
        self,
        base_url: str = None,
        api_key: str = None,
        access_token: Optional[str] = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.rest_url = urljoin(base_url or settings.BACKEND_URL, "/rest/v1/")
        self.api_key = api_key if api_key is not None else settings.BACKEND_ANON_KEY
        self.access_token = access_token
        self.client = httpx.AsyncClient(
            base_url=self.rest_url,
            timeout=timeout or settings.STORE_CALL_TIMEOUT,
            transport=transport,
        )

    def set_access_token(self, token: Optional[str]) -> None:
        self.access_token = token

    async def aclose(self) -> None:
        await self.client.aclose()

    def _headers(self, prefer: Optional[str] = None) -> dict:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token or self.api_key}",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(self, method: str, table: str, *, params=None, json=None, prefer=None) -> Any:
        try:
            response = await self.client.request(
                method, table, params=params, json=json, headers=self._headers(prefer)
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.error("Backend %s %s timed out", method, table)
            raise StoreTimeout(f"{method} {table} timed out") from e
        except (httpx.RequestError, httpx.HTTPStatusError) as e:
            # Log detailed error information before re-raising
            try:
                resp_text = e.response.text if hasattr(e, "response") and e.response is not None else str(e)
            except Exception:
                resp_text = str(e)
            logger.error("Backend %s %s failed: %s", method, table, resp_text)
            raise CartStoreError(f"{method} {table} failed") from e

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise CartStoreError(f"{method} {table} returned invalid JSON") from e

    async def find_cart_by_user(self, user_id: str) -> Optional[str]:
        rows = await self._request("GET", "carts", params={"select": "id", "user_id": f"eq.{user_id}"})
        return rows[0]["id"] if rows else None

    async def create_cart(self, user_id: str) -> str:
        rows = await self._request(
            "POST", "carts", json={"user_id": user_id}, prefer="return=representation"
        )
        if not rows:
            raise CartStoreError("Cart insert returned no row")
        return rows[0]["id"]

    async def list_cart_items(self, cart_id: str) -> List[CartLine]:
        rows = await self._request(
            "GET", "cart_items",
            params={"select": "variant_id,qty", "cart_id": f"eq.{cart_id}", "order": "id"},
        )
        try:
            return [CartLine(variant_id=r["variant_id"], quantity=r["qty"]) for r in rows or []]
        except (KeyError, TypeError, ValidationError) as e:
            raise CartStoreError("Malformed cart_items rows") from e

    async def find_cart_item(self, cart_id: str, variant_id: str) -> Optional[CartItemRow]:
        rows = await self._request(
            "GET", "cart_items",
            params={"select": "id,qty", "cart_id": f"eq.{cart_id}", "variant_id": f"eq.{variant_id}"},
        )
        if not rows:
            return None
        try:
            return CartItemRow(row_id=rows[0]["id"], quantity=rows[0]["qty"])
        except (KeyError, ValidationError) as e:
            raise CartStoreError("Malformed cart_items row") from e

    async def insert_cart_item(self, cart_id: str, variant_id: str, quantity: int) -> None:
        if quantity <= 0:
            raise CartStoreError("Quantity must be positive")
        await self._request(
            "POST", "cart_items",
            json={"cart_id": cart_id, "variant_id": variant_id, "qty": quantity},
            prefer="return=minimal",
        )

    async def update_cart_item_quantity(self, row_id, quantity: int) -> None:
        if quantity <= 0:
            raise CartStoreError("Quantity must be positive")
        await self._request(
            "PATCH", "cart_items", params={"id": f"eq.{row_id}"}, json={"qty": quantity},
            prefer="return=minimal",
        )

    async def delete_cart_item(self, cart_id: str, variant_id: str) -> None:
        await self._request(
            "DELETE", "cart_items", params={"cart_id": f"eq.{cart_id}", "variant_id": f"eq.{variant_id}"}
        )

    async def delete_all_cart_items(self, cart_id: str) -> None:
        await self._request("DELETE", "cart_items", params={"cart_id": f"eq.{cart_id}"})

    async def fetch_variants_with_product(self, variant_ids: Sequence[str]) -> List[VariantRecord]:
        ids = list(dict.fromkeys(variant_ids))
        if not ids:
            return []
        in_list = ",".join(f'"{vid}"' for vid in ids)
        rows = await self._request(
            "GET", "variants", params={"select": VARIANT_SELECT, "id": f"in.({in_list})"}
        )
        try:
            return [VariantRecord.model_validate(r) for r in rows or []]
        except ValidationError as e:
            raise CartStoreError("Malformed variants rows") from e
