import asyncio
import json
import time
from urllib.parse import parse_qs

import httpx
import pytest

from conftest import SLOT_DATE, SLOT_TIME, auth_headers, make_user, stripe_signature_header
from medibook.domain.appointments.service import AppointmentService
from medibook.domain.payments.razorpay_service import RazorpayService
from medibook.domain.payments.router import get_payment_service
from medibook.domain.payments.service import PaymentService
from medibook.domain.payments.stripe_service import StripeService
from medibook.errors import ConflictError, UnauthorizedError, UpstreamError, ValidationError
from medibook.main import app
from medibook.webhook_security import razorpay_payment_signature, stripe_signature

KEY_SECRET = "rzp_test_secret"
WEBHOOK_SECRET = "whsec_test"


class FakeRazorpay:
    """In-memory Orders API behind an httpx.MockTransport"""

    def __init__(self):
        self.orders = {}
        self.status = "paid"
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "POST" and path.endswith("/orders"):
            body = json.loads(request.content)
            order = {"id": f"order_{len(self.orders) + 1}", "status": "created", **body}
            self.orders[order["id"]] = order
            return httpx.Response(200, json=order)
        if request.method == "GET" and "/orders/" in path:
            order = self.orders.get(path.rsplit("/", 1)[-1])
            if order is None:
                return httpx.Response(404, json={"error": {"description": "not found"}})
            return httpx.Response(200, json={**order, "status": self.status})
        return httpx.Response(400)

    def service(self):
        return RazorpayService(
            key_id="rzp_test_key",
            key_secret=KEY_SECRET,
            api_url="https://api.razorpay.test/v1",
            transport=httpx.MockTransport(self.handler),
        )


class FakeStripe:
    """In-memory Checkout Sessions API behind an httpx.MockTransport"""

    def __init__(self):
        self.sessions = {}
        self.payment_status = "paid"
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "POST" and path.endswith("/checkout/sessions"):
            form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
            session_id = f"cs_test_{len(self.sessions) + 1}"
            session = {
                "id": session_id,
                "url": f"https://checkout.stripe.test/{session_id}",
                "client_reference_id": form["client_reference_id"],
                "metadata": {"appointment_id": form["metadata[appointment_id]"]},
                "amount_total": int(form["line_items[0][price_data][unit_amount]"]),
                "currency": form["line_items[0][price_data][currency]"],
                "success_url": form["success_url"],
                "payment_status": "unpaid",
            }
            self.sessions[session_id] = session
            return httpx.Response(200, json=session)
        if request.method == "GET" and "/checkout/sessions/" in path:
            session = self.sessions.get(path.rsplit("/", 1)[-1])
            if session is None:
                return httpx.Response(404, json={"error": {"message": "No such session"}})
            return httpx.Response(200, json={**session, "payment_status": self.payment_status})
        return httpx.Response(400)

    def service(self):
        return StripeService(
            secret_key="sk_test",
            api_url="https://api.stripe.test/v1",
            transport=httpx.MockTransport(self.handler),
        )


@pytest.fixture
def razorpay():
    return FakeRazorpay()


@pytest.fixture
def stripe():
    return FakeStripe()


@pytest.fixture
def payments(db, razorpay, stripe):
    return PaymentService(
        db, razorpay=razorpay.service(), stripe=stripe.service(), stripe_webhook_secret=WEBHOOK_SECRET
    )


@pytest.fixture
def appointment(db, user, doctor):
    return AppointmentService(db).book_appointment(user.id, doctor.id, SLOT_DATE, SLOT_TIME)


# ----------------------------------------------------------------------------
# Razorpay
# ----------------------------------------------------------------------------


def test_razorpay_order_uses_minor_units(db, user, appointment, payments, razorpay):
    order = asyncio.run(payments.create_razorpay_order(user, appointment.id))

    assert order["amount"] == 5000
    assert order["currency"] == "INR"
    assert order["receipt"] == appointment.id
    db.refresh(appointment)
    assert appointment.payment_reference == order["id"]


def test_razorpay_verify_marks_paid(db, user, appointment, payments):
    order = asyncio.run(payments.create_razorpay_order(user, appointment.id))
    signature = razorpay_payment_signature(KEY_SECRET, order["id"], "pay_1")

    paid = asyncio.run(payments.verify_razorpay(user, order["id"], "pay_1", signature))

    assert paid.id == appointment.id
    assert paid.payment is True


def test_tampered_signature_is_rejected(db, user, appointment, payments, razorpay):
    order = asyncio.run(payments.create_razorpay_order(user, appointment.id))
    signature = razorpay_payment_signature(KEY_SECRET, order["id"], "pay_1")
    calls_before = len(razorpay.requests)

    with pytest.raises(ValidationError) as exc:
        asyncio.run(payments.verify_razorpay(user, order["id"], "pay_2", signature))

    assert exc.value.message == "Payment verification failed"
    assert len(razorpay.requests) == calls_before
    db.refresh(appointment)
    assert appointment.payment is False


def test_unpaid_order_does_not_mark_paid(db, user, appointment, payments, razorpay):
    order = asyncio.run(payments.create_razorpay_order(user, appointment.id))
    razorpay.status = "attempted"
    signature = razorpay_payment_signature(KEY_SECRET, order["id"], "pay_1")

    with pytest.raises(ValidationError):
        asyncio.run(payments.verify_razorpay(user, order["id"], "pay_1", signature))

    db.refresh(appointment)
    assert appointment.payment is False


def test_payment_never_reverts(db, user, appointment, payments, razorpay):
    order = asyncio.run(payments.create_razorpay_order(user, appointment.id))
    signature = razorpay_payment_signature(KEY_SECRET, order["id"], "pay_1")
    asyncio.run(payments.verify_razorpay(user, order["id"], "pay_1", signature))

    # A later failed or repeated verification leaves the latch set
    razorpay.status = "attempted"
    with pytest.raises(ValidationError):
        asyncio.run(payments.verify_razorpay(user, order["id"], "pay_1", signature))
    razorpay.status = "paid"
    asyncio.run(payments.verify_razorpay(user, order["id"], "pay_1", signature))

    db.refresh(appointment)
    assert appointment.payment is True

    with pytest.raises(ConflictError):
        asyncio.run(payments.create_razorpay_order(user, appointment.id))


def test_payment_does_not_touch_slots(db, user, doctor, appointment, payments):
    order = asyncio.run(payments.create_razorpay_order(user, appointment.id))
    signature = razorpay_payment_signature(KEY_SECRET, order["id"], "pay_1")
    asyncio.run(payments.verify_razorpay(user, order["id"], "pay_1", signature))

    db.refresh(doctor)
    assert doctor.slots_booked == {SLOT_DATE: [SLOT_TIME]}


def test_cancelled_appointment_cannot_be_paid(db, user, appointment, payments):
    AppointmentService(db).cancel_appointment(user.id, appointment.id)

    with pytest.raises(ConflictError) as exc:
        asyncio.run(payments.create_razorpay_order(user, appointment.id))
    assert exc.value.message == "Appointment Cancelled"


def test_other_users_appointment_cannot_be_paid(db, appointment, payments):
    intruder = make_user(db, "Mallory")

    with pytest.raises(UnauthorizedError):
        asyncio.run(payments.create_razorpay_order(intruder, appointment.id))


def test_gateway_failure_is_upstream_error(db, user, appointment):
    def broken(request):
        raise httpx.ConnectError("connection refused", request=request)

    gateway = RazorpayService(
        key_id="rzp_test_key", key_secret=KEY_SECRET, transport=httpx.MockTransport(broken)
    )
    service = PaymentService(db, razorpay=gateway)

    with pytest.raises(UpstreamError):
        asyncio.run(service.create_razorpay_order(user, appointment.id))
    db.refresh(appointment)
    assert appointment.payment_reference is None


def test_unconfigured_gateway_is_unavailable(db, user, appointment):
    service = PaymentService(db, razorpay=RazorpayService(key_id=None, key_secret=None))

    with pytest.raises(UpstreamError) as exc:
        asyncio.run(service.create_razorpay_order(user, appointment.id))
    assert exc.value.status_code == 503


# ----------------------------------------------------------------------------
# Stripe
# ----------------------------------------------------------------------------


def test_stripe_session_urls_and_reference(db, user, appointment, payments, stripe):
    url = asyncio.run(payments.create_stripe_session(user, appointment.id, origin="https://app.example"))

    session = next(iter(stripe.sessions.values()))
    assert url == session["url"]
    assert session["amount_total"] == 5000
    assert session["currency"] == "inr"
    assert session["success_url"] == f"https://app.example/verify?success=true&appointmentId={appointment.id}"
    db.refresh(appointment)
    assert appointment.payment_reference == session["id"]


def test_stripe_verify_fetches_stored_session(db, user, appointment, payments, stripe):
    asyncio.run(payments.create_stripe_session(user, appointment.id, origin="https://app.example"))

    paid = asyncio.run(payments.verify_stripe(user, appointment.id, success="true"))

    assert paid.payment is True
    assert stripe.requests[-1].method == "GET"


def test_stripe_success_flag_alone_is_not_enough(db, user, appointment, payments, stripe):
    asyncio.run(payments.create_stripe_session(user, appointment.id, origin="https://app.example"))
    stripe.payment_status = "unpaid"

    with pytest.raises(ValidationError):
        asyncio.run(payments.verify_stripe(user, appointment.id, success=True))

    db.refresh(appointment)
    assert appointment.payment is False


def test_stripe_cancelled_checkout_skips_gateway(db, user, appointment, payments, stripe):
    asyncio.run(payments.create_stripe_session(user, appointment.id, origin="https://app.example"))
    calls_before = len(stripe.requests)

    with pytest.raises(ValidationError):
        asyncio.run(payments.verify_stripe(user, appointment.id, success="false"))

    assert len(stripe.requests) == calls_before


def test_stripe_webhook_marks_paid(client, db, appointment, payments):
    app.dependency_overrides[get_payment_service] = lambda: payments
    event = {
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_test_hook",
                "payment_status": "paid",
                "client_reference_id": appointment.id,
                "metadata": {"appointment_id": appointment.id},
            }
        },
    }
    body = json.dumps(event).encode()

    response = client.post(
        "/api/user/stripe-webhook",
        content=body,
        headers={
            "Stripe-Signature": stripe_signature_header(WEBHOOK_SECRET, body),
            "Content-Type": "application/json",
        },
    )

    assert response.json() == {"success": True, "message": "Payment recorded"}
    db.refresh(appointment)
    assert appointment.payment is True


def test_stripe_webhook_rejects_bad_signature(client, db, appointment, payments):
    app.dependency_overrides[get_payment_service] = lambda: payments
    body = json.dumps({"type": "checkout.session.completed"}).encode()

    response = client.post(
        "/api/user/stripe-webhook",
        content=body,
        headers={"Stripe-Signature": stripe_signature_header("wrong", body)},
    )

    assert response.status_code == 401
    db.refresh(appointment)
    assert appointment.payment is False


def test_stripe_webhook_rejects_undecodable_body(client, db, appointment, payments):
    app.dependency_overrides[get_payment_service] = lambda: payments
    body = b'{"type": "x\xff"}'

    response = client.post(
        "/api/user/stripe-webhook",
        content=body,
        headers={"Stripe-Signature": f"t={int(time.time())},v1=deadbeef"},
    )

    assert response.status_code == 401
    assert response.json()["kind"] == "unauthorized"


@pytest.mark.parametrize(
    "body",
    [
        b'{"type": "x\xff"}',
        b'["checkout.session.completed"]',
        b"42",
        b'{"type": "checkout.session.completed", "data": []}',
        b'{"type": "checkout.session.completed", "data": {"object": "cs_test"}}',
    ],
)
def test_signed_webhook_with_unusable_payload(client, db, appointment, payments, body):
    app.dependency_overrides[get_payment_service] = lambda: payments

    response = client.post(
        "/api/user/stripe-webhook",
        content=body,
        headers={"Stripe-Signature": stripe_signature_header(WEBHOOK_SECRET, body)},
    )

    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Invalid webhook payload", "kind": "validation"}
    db.refresh(appointment)
    assert appointment.payment is False


def test_stripe_webhook_accepts_any_rotated_signature(client, db, appointment, payments):
    app.dependency_overrides[get_payment_service] = lambda: payments
    event = {
        "type": "checkout.session.completed",
        "data": {"object": {"id": "cs_test_rotated", "payment_status": "paid", "client_reference_id": appointment.id}},
    }
    body = json.dumps(event).encode()
    timestamp = str(int(time.time()))
    old = stripe_signature("whsec_old", timestamp, body)
    current = stripe_signature(WEBHOOK_SECRET, timestamp, body)

    response = client.post(
        "/api/user/stripe-webhook",
        content=body,
        headers={"Stripe-Signature": f"t={timestamp},v1={old},v1={current}"},
    )

    assert response.json() == {"success": True, "message": "Payment recorded"}
    db.refresh(appointment)
    assert appointment.payment is True


# ----------------------------------------------------------------------------
# HTTP surface
# ----------------------------------------------------------------------------


def test_razorpay_flow_over_http(client, db, user, appointment, payments):
    app.dependency_overrides[get_payment_service] = lambda: payments
    headers = auth_headers(user)

    created = client.post("/api/user/payment-razorpay", json={"appointmentId": appointment.id}, headers=headers)
    order = created.json()["order"]
    tampered = client.post(
        "/api/user/verify-razorpay",
        json={
            "razorpay_order_id": order["id"],
            "razorpay_payment_id": "pay_1",
            "razorpay_signature": "0" * 64,
        },
        headers=headers,
    )
    verified = client.post(
        "/api/user/verify-razorpay",
        json={
            "razorpay_order_id": order["id"],
            "razorpay_payment_id": "pay_1",
            "razorpay_signature": razorpay_payment_signature(KEY_SECRET, order["id"], "pay_1"),
        },
        headers=headers,
    )

    assert created.status_code == 200
    assert tampered.status_code == 400
    assert tampered.json()["kind"] == "validation"
    assert verified.json() == {"success": True, "message": "Payment Successful"}
