"""Payment domain schemas - Pydantic models for validation"""

from typing import Any, Optional, Union

from pydantic import BaseModel


class PaymentRequest(BaseModel):
    """Schema for starting a payment for an appointment"""

    appointmentId: Optional[str] = None


class RazorpayVerifyRequest(BaseModel):
    """Fields Razorpay Checkout hands back to the client after payment"""

    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None


class StripeVerifyRequest(BaseModel):
    appointmentId: Optional[str] = None
    # Redirect flag from the checkout page; informational only
    success: Optional[Union[bool, str]] = None


class RazorpayOrderResponse(BaseModel):
    success: bool = True
    order: dict[str, Any]


class StripeSessionResponse(BaseModel):
    success: bool = True
    session_url: str


class PaymentMessageResponse(BaseModel):
    success: bool = True
    message: str
