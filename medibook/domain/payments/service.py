"""
Payment service - Bridge between appointments and the payment gateways

An appointment is only marked paid after the gateway itself confirms it:
Razorpay callbacks must carry a valid HMAC signature AND the order fetched
from Razorpay must be paid; Stripe sessions are re-fetched server-side (or
arrive through a signed webhook). ``payment`` is a one-way latch and the
slot index is never touched here.
"""

import json
import logging
from typing import Optional

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import CURRENCY, FRONTEND_URL, STRIPE_WEBHOOK_SECRET
from ...errors import (
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    UpstreamError,
    ValidationError,
)
from ...models import Appointment, User
from ...shared.validators import validate_uuid
from ...webhook_security import verify_stripe_webhook
from ..appointments.repository import AppointmentRepository
from .razorpay_service import RazorpayService, razorpay_service
from .stripe_service import StripeService, stripe_service

logger = logging.getLogger(__name__)


def to_minor_units(amount: float) -> int:
    """Currency amount to the smallest unit (paise, cents)"""
    return int(round(float(amount) * 100))


class PaymentService:
    """Service for creating and verifying appointment payments"""

    def __init__(
        self,
        db: Session,
        razorpay: Optional[RazorpayService] = None,
        stripe: Optional[StripeService] = None,
        stripe_webhook_secret: Optional[str] = None,
    ):
        self.db = db
        self.repo = AppointmentRepository()
        self.razorpay = razorpay or razorpay_service
        self.stripe = stripe or stripe_service
        self.stripe_webhook_secret = stripe_webhook_secret or STRIPE_WEBHOOK_SECRET

    # ------------------------------------------------------------------
    # Shared checks
    # ------------------------------------------------------------------

    def _get_owned_appointment(self, user: User, appointment_id: Optional[str]) -> Appointment:
        if not validate_uuid(appointment_id):
            raise ValidationError("Invalid appointment ID")

        appointment = self.repo.get_appointment_by_id(self.db, appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found")
        if appointment.user_id != user.id:
            logger.warning(f"🚫 User {user.id} tried to pay for appointment {appointment_id}")
            raise UnauthorizedError("Unauthorized action")
        return appointment

    def _get_payable_appointment(self, user: User, appointment_id: Optional[str]) -> Appointment:
        appointment = self._get_owned_appointment(user, appointment_id)
        if appointment.cancelled:
            raise ConflictError("Appointment Cancelled")
        if appointment.payment:
            raise ConflictError("Appointment already paid")
        return appointment

    def _store_reference(self, appointment: Appointment, reference: Optional[str]) -> None:
        if not reference:
            raise UpstreamError("Payment gateway returned no identifier")
        try:
            self.repo.set_payment_reference(self.db, appointment, reference)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Could not store payment reference for {appointment.id}: {e}")
            raise UpstreamError("Could not start payment, please retry") from e

    def _mark_paid(self, appointment_id: str) -> Appointment:
        try:
            appointment = self.repo.mark_paid(self.db, appointment_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Verified payment could not be recorded for {appointment_id}: {e}")
            raise UpstreamError("Payment received but not recorded yet, please retry verification") from e

        if appointment is None:
            raise NotFoundError("Appointment not found")
        logger.info(f"💰 Appointment {appointment_id} marked paid")
        return appointment

    # ------------------------------------------------------------------
    # Razorpay
    # ------------------------------------------------------------------

    async def create_razorpay_order(self, user: User, appointment_id: Optional[str]) -> dict:
        appointment = self._get_payable_appointment(user, appointment_id)

        order = await self.razorpay.create_order(
            amount=to_minor_units(appointment.amount),
            currency=CURRENCY,
            receipt=appointment.id,
        )
        self._store_reference(appointment, order.get("id"))
        return order

    async def verify_razorpay(
        self,
        user: User,
        order_id: Optional[str],
        payment_id: Optional[str],
        signature: Optional[str],
    ) -> Appointment:
        """Check the callback signature, then the order status reported by Razorpay"""
        if not self.razorpay.is_available():
            raise UpstreamError("Razorpay is not configured", status_code=503)

        if not self.razorpay.verify_signature(order_id, payment_id, signature):
            raise ValidationError("Payment verification failed")

        order = await self.razorpay.fetch_order(order_id)
        if order.get("status") != "paid":
            logger.info(f"ℹ️ Razorpay order {order_id} not paid yet (status={order.get('status')})")
            raise ValidationError("Payment Failed")

        appointment = self._get_owned_appointment(user, order.get("receipt"))
        if order.get("amount") is not None and int(order["amount"]) != to_minor_units(appointment.amount):
            logger.error(
                f"❗ Razorpay order {order_id} amount {order['amount']} does not match appointment {appointment.id}"
            )
            raise ValidationError("Payment verification failed")

        return self._mark_paid(appointment.id)

    # ------------------------------------------------------------------
    # Stripe
    # ------------------------------------------------------------------

    async def create_stripe_session(
        self, user: User, appointment_id: Optional[str], origin: Optional[str] = None
    ) -> str:
        appointment = self._get_payable_appointment(user, appointment_id)

        base_url = (origin or FRONTEND_URL).rstrip("/")
        session = await self.stripe.create_checkout_session(
            amount=to_minor_units(appointment.amount),
            currency=CURRENCY.lower(),
            success_url=f"{base_url}/verify?success=true&appointmentId={appointment.id}",
            cancel_url=f"{base_url}/verify?success=false&appointmentId={appointment.id}",
            appointment_id=appointment.id,
        )
        self._store_reference(appointment, session.get("id"))

        session_url = session.get("url")
        if not session_url:
            raise UpstreamError("Payment gateway returned no checkout URL")
        return session_url

    async def verify_stripe(self, user: User, appointment_id: Optional[str], success=None) -> Appointment:
        """
        Confirm a checkout by fetching its session from Stripe.

        ``success`` is the redirect flag from the browser; a negative flag ends
        the check early, a positive one is never enough on its own.
        """
        appointment = self._get_owned_appointment(user, appointment_id)
        if appointment.payment:
            return appointment

        if str(success).lower() == "false":
            raise ValidationError("Payment Cancelled")

        if not appointment.payment_reference:
            raise ValidationError("No checkout session found for this appointment")

        session = await self.stripe.retrieve_checkout_session(appointment.payment_reference)
        if session.get("payment_status") != "paid" or not self._session_matches(session, appointment.id):
            logger.info(
                f"ℹ️ Stripe session {appointment.payment_reference} not paid "
                f"(payment_status={session.get('payment_status')})"
            )
            raise ValidationError("Payment Failed or Not Completed")

        return self._mark_paid(appointment.id)

    async def handle_stripe_webhook(self, request: Request) -> Optional[Appointment]:
        """Mark an appointment paid from a signed ``checkout.session.completed`` event"""
        if not self.stripe_webhook_secret:
            raise UpstreamError("Stripe webhooks are not configured", status_code=503)

        raw_body = await verify_stripe_webhook(request, self.stripe_webhook_secret)
        try:
            event = json.loads(raw_body)
        except ValueError as e:
            raise ValidationError("Invalid webhook payload") from e
        if not isinstance(event, dict):
            raise ValidationError("Invalid webhook payload")

        if event.get("type") != "checkout.session.completed":
            logger.debug(f"Ignoring Stripe event {event.get('type')}")
            return None

        data = event.get("data")
        session = data.get("object") if isinstance(data, dict) else None
        if not isinstance(session, dict):
            raise ValidationError("Invalid webhook payload")
        appointment_id = session.get("client_reference_id")
        if session.get("payment_status") != "paid" or not validate_uuid(appointment_id):
            logger.info(f"ℹ️ Stripe session {session.get('id')} completed without payment")
            return None
        if not self._session_matches(session, appointment_id):
            logger.warning(f"🚫 Stripe session {session.get('id')} metadata does not match {appointment_id}")
            return None

        return self._mark_paid(appointment_id)

    @staticmethod
    def _session_matches(session: dict, appointment_id: str) -> bool:
        metadata = session.get("metadata")
        if not isinstance(metadata, dict):
            metadata = {}
        return appointment_id in (session.get("client_reference_id"), metadata.get("appointment_id"))
