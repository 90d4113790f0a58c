"""Stripe service - Hosted checkout sessions"""

import logging
from typing import Optional

import httpx

from ...config import GATEWAY_TIMEOUT_SECONDS, STRIPE_API_URL, STRIPE_SECRET_KEY
from ...errors import UpstreamError

logger = logging.getLogger(__name__)


class StripeService:
    """Service for Stripe API operations"""

    def __init__(
        self,
        secret_key: Optional[str] = STRIPE_SECRET_KEY,
        api_url: str = STRIPE_API_URL,
        timeout: float = GATEWAY_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_key = secret_key
        self.api_url = api_url
        self.timeout = timeout
        self.transport = transport

        if not self.secret_key:
            logger.warning("STRIPE_SECRET_KEY not set; Stripe payments disabled")

    def is_available(self) -> bool:
        return bool(self.secret_key)

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        if not self.is_available():
            raise UpstreamError("Stripe is not configured", status_code=503)

        try:
            async with httpx.AsyncClient(
                base_url=self.api_url,
                headers={"Authorization": f"Bearer {self.secret_key}"},
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"⏱️ Stripe {method} {path} timed out")
            raise UpstreamError("Payment gateway timed out, please retry", status_code=504) from e
        except httpx.HTTPError as e:
            logger.error(f"❌ Stripe {method} {path} failed: {e}")
            raise UpstreamError("Payment gateway unavailable, please retry") from e

        if response.status_code >= 400:
            logger.error(f"❌ Stripe {method} {path} returned {response.status_code}: {response.text}")
            raise UpstreamError("Payment gateway rejected the request")

        return response.json()

    async def create_checkout_session(
        self,
        amount: int,
        currency: str,
        success_url: str,
        cancel_url: str,
        appointment_id: str,
        product_name: str = "Appointment Fees",
    ) -> dict:
        """Create a one-item checkout session; ``amount`` is in minor currency units"""
        # Stripe takes form-encoded bodies with bracketed keys for nested objects
        form = {
            "mode": "payment",
            "success_url": success_url,
            "cancel_url": cancel_url,
            "client_reference_id": appointment_id,
            "metadata[appointment_id]": appointment_id,
            "line_items[0][price_data][currency]": currency,
            "line_items[0][price_data][product_data][name]": product_name,
            "line_items[0][price_data][unit_amount]": str(amount),
            "line_items[0][quantity]": "1",
        }
        session = await self._request("POST", "/checkout/sessions", data=form)
        logger.info(f"✅ Created Stripe checkout session {session.get('id')} for appointment {appointment_id}")
        return session

    async def retrieve_checkout_session(self, session_id: str) -> dict:
        return await self._request("GET", f"/checkout/sessions/{session_id}")


# Singleton instance
stripe_service = StripeService()
