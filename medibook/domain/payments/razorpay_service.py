"""Razorpay service - Orders API and checkout signature verification"""

import logging
from typing import Optional

import httpx

from ...config import (
    GATEWAY_TIMEOUT_SECONDS,
    RAZORPAY_API_URL,
    RAZORPAY_KEY_ID,
    RAZORPAY_KEY_SECRET,
)
from ...errors import UpstreamError
from ...webhook_security import verify_razorpay_signature

logger = logging.getLogger(__name__)


class RazorpayService:
    """Service for Razorpay API operations"""

    def __init__(
        self,
        key_id: Optional[str] = RAZORPAY_KEY_ID,
        key_secret: Optional[str] = RAZORPAY_KEY_SECRET,
        api_url: str = RAZORPAY_API_URL,
        timeout: float = GATEWAY_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.key_id = key_id
        self.key_secret = key_secret
        self.api_url = api_url
        self.timeout = timeout
        self.transport = transport

        if not self.key_id or not self.key_secret:
            logger.warning("RAZORPAY_KEY_ID/RAZORPAY_KEY_SECRET not set; Razorpay payments disabled")

    def is_available(self) -> bool:
        return bool(self.key_id and self.key_secret)

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        if not self.is_available():
            raise UpstreamError("Razorpay is not configured", status_code=503)

        try:
            async with httpx.AsyncClient(
                base_url=self.api_url,
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"⏱️ Razorpay {method} {path} timed out")
            raise UpstreamError("Payment gateway timed out, please retry", status_code=504) from e
        except httpx.HTTPError as e:
            logger.error(f"❌ Razorpay {method} {path} failed: {e}")
            raise UpstreamError("Payment gateway unavailable, please retry") from e

        if response.status_code >= 400:
            logger.error(f"❌ Razorpay {method} {path} returned {response.status_code}: {response.text}")
            raise UpstreamError("Payment gateway rejected the request")

        return response.json()

    async def create_order(self, amount: int, currency: str, receipt: str) -> dict:
        """Create an order; ``amount`` is in minor currency units"""
        order = await self._request(
            "POST",
            "/orders",
            json={"amount": amount, "currency": currency, "receipt": receipt},
        )
        logger.info(f"✅ Created Razorpay order {order.get('id')} for receipt {receipt}")
        return order

    async def fetch_order(self, order_id: str) -> dict:
        return await self._request("GET", f"/orders/{order_id}")

    def verify_signature(self, order_id: Optional[str], payment_id: Optional[str], signature: Optional[str]) -> bool:
        return verify_razorpay_signature(self.key_secret, order_id, payment_id, signature)


# Singleton instance
razorpay_service = RazorpayService()
