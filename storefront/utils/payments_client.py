# storefront/utils/payments_client.py
import httpx
import logging
from typing import Optional
from urllib.parse import urljoin
from storefront.config import settings

logger = logging.getLogger(__name__)


class PaymentError(Exception):
    """The payment preference could not be created."""


class PaymentsClient:
    def __init__(self, base_url: str = None, api_key: str = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        # Serverless function that talks to the payment provider
        self.functions_url = urljoin(base_url or settings.BACKEND_URL, "/functions/v1/")
        self.api_key = api_key if api_key is not None else settings.BACKEND_ANON_KEY
        self.transport = transport

    async def create_preference(self, user_id: str, access_token: Optional[str] = None,
                                coupon: Optional[str] = None) -> str:
        """Create a checkout preference for the user's cart; returns the redirect URL."""
        url = urljoin(self.functions_url, "create-preference")
        headers = {
            "Content-Type": "application/json",
            "apikey": self.api_key,
            "Authorization": f"Bearer {access_token or self.api_key}",
        }
        body = {"userId": user_id}
        if coupon:
            body["coupon"] = coupon

        async with httpx.AsyncClient(transport=self.transport, timeout=settings.STORE_CALL_TIMEOUT) as client:
            try:
                response = await client.post(url, json=body, headers=headers)
                response.raise_for_status()
                data = response.json()
            except (httpx.RequestError, httpx.HTTPStatusError, ValueError) as e:
                # Log detailed error information before re-raising
                try:
                    resp_text = e.response.text if hasattr(e, "response") and e.response is not None else str(e)
                except Exception:
                    resp_text = str(e)
                logger.error(f"create-preference error: {resp_text}")
                raise PaymentError("Could not start the payment") from e

        init_point = data.get("init_point") if isinstance(data, dict) else None
        if not init_point:
            logger.error("create-preference answered without init_point: %s", data)
            raise PaymentError("Could not start the payment")
        return init_point


payments_client = PaymentsClient()
