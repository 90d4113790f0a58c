"""Payment router - FastAPI endpoints for Razorpay and Stripe payments"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from .schemas import (
    PaymentMessageResponse,
    PaymentRequest,
    RazorpayOrderResponse,
    RazorpayVerifyRequest,
    StripeSessionResponse,
    StripeVerifyRequest,
)
from .service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["Payments"])


def get_payment_service(db: Session = Depends(get_db)) -> PaymentService:
    """Dependency injection for PaymentService"""
    return PaymentService(db)


# ============================================================================
# RAZORPAY
# ============================================================================


@router.post("/payment-razorpay", response_model=RazorpayOrderResponse)
async def payment_razorpay(
    data: PaymentRequest,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    order = await service.create_razorpay_order(current_user, data.appointmentId)
    return {"success": True, "order": order}


@router.post("/verify-razorpay", response_model=PaymentMessageResponse)
async def verify_razorpay(
    data: RazorpayVerifyRequest,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    await service.verify_razorpay(
        current_user, data.razorpay_order_id, data.razorpay_payment_id, data.razorpay_signature
    )
    return {"success": True, "message": "Payment Successful"}


# ============================================================================
# STRIPE
# ============================================================================


@router.post("/payment-stripe", response_model=StripeSessionResponse)
async def payment_stripe(
    data: PaymentRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    session_url = await service.create_stripe_session(
        current_user, data.appointmentId, origin=request.headers.get("origin")
    )
    return {"success": True, "session_url": session_url}


@router.post("/verify-stripe", response_model=PaymentMessageResponse)
async def verify_stripe(
    data: StripeVerifyRequest,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    await service.verify_stripe(current_user, data.appointmentId, data.success)
    return {"success": True, "message": "Payment Successful"}


@router.post("/stripe-webhook", response_model=PaymentMessageResponse)
async def stripe_webhook(request: Request, service: PaymentService = Depends(get_payment_service)):
    """Signed Stripe events; the signature replaces user authentication here"""
    appointment = await service.handle_stripe_webhook(request)
    message = "Payment recorded" if appointment else "Event ignored"
    return {"success": True, "message": message}
