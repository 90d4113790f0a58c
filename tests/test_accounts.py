import json
from datetime import timedelta

import pytest

from conftest import auth_headers, make_doctor
from medibook.domain.accounts.service import AccountService
from medibook.errors import ConflictError, NotFoundError, UnauthorizedError, UpstreamError, ValidationError
from medibook.models import User
from medibook.security_utils import create_access_token, verify_access_token
from medibook.services import image_storage


def test_register_returns_token_for_new_user(db):
    token = AccountService(db).register("Carol", "Carol@Example.com ", "password123")

    payload = verify_access_token(token)
    user = db.query(User).filter(User.email == "carol@example.com").one()
    assert payload["id"] == user.id
    assert user.password != "password123"
    assert user.gender == "Not Selected"
    assert user.phone == "0000000000"


@pytest.mark.parametrize(
    "name,email,password,message",
    [
        ("", "a@example.com", "password123", "Missing Details"),
        ("Carol", "not-an-email", "password123", "Please enter a valid email"),
        ("Carol", "carol@example.com", "short", "Please enter a strong password"),
    ],
)
def test_register_rejects_bad_input(db, name, email, password, message):
    with pytest.raises(ValidationError) as exc:
        AccountService(db).register(name, email, password)
    assert exc.value.message == message


def test_register_duplicate_email_conflicts(db, user):
    with pytest.raises(ConflictError):
        AccountService(db).register("Another", user.email, "password123")


def test_login(db, user):
    service = AccountService(db)

    assert verify_access_token(service.login(user.email, "password123"))["id"] == user.id
    with pytest.raises(UnauthorizedError):
        service.login(user.email, "wrong-password")
    with pytest.raises(NotFoundError):
        service.login("nobody@example.com", "password123")


def test_register_and_login_over_http(client):
    registered = client.post(
        "/api/user/register",
        json={"name": "Dan", "email": "dan@example.com", "password": "password123"},
    )
    duplicate = client.post(
        "/api/user/register",
        json={"name": "Dan", "email": "dan@example.com", "password": "password123"},
    )
    logged_in = client.post("/api/user/login", json={"email": "dan@example.com", "password": "password123"})
    wrong = client.post("/api/user/login", json={"email": "dan@example.com", "password": "nope-nope"})

    assert registered.json()["success"] is True
    assert duplicate.status_code == 409
    assert logged_in.json()["token"]
    assert wrong.status_code == 401
    assert wrong.json() == {"success": False, "message": "Invalid credentials", "kind": "unauthorized"}


def test_expired_token_is_rejected(client, user):
    token = create_access_token(user.id, expires_delta=timedelta(seconds=-5))

    response = client.get("/api/user/get-profile", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


def test_get_profile_hides_password(client, user):
    response = client.get("/api/user/get-profile", headers=auth_headers(user))

    data = response.json()["userData"]
    assert data["email"] == user.email
    assert "password" not in data
    assert data["address"] == {"line1": "", "line2": ""}


def test_update_profile_merges_fields(client, db, user):
    response = client.post(
        "/api/user/update-profile",
        data={
            "name": "Alice B",
            "phone": "+91 98765 43210",
            "address": json.dumps({"line1": "12 MG Road", "line2": "Bengaluru"}),
            "dob": "1990-01-01",
            "gender": "Female",
        },
        headers=auth_headers(user),
    )

    assert response.json() == {"success": True, "message": "Profile Updated"}
    db.refresh(user)
    assert user.name == "Alice B"
    assert user.phone == "+919876543210"
    assert user.address == {"line1": "12 MG Road", "line2": "Bengaluru"}


def test_update_profile_requires_fields(db, user):
    with pytest.raises(ValidationError) as exc:
        AccountService(db).update_profile(user.id, name="Alice", phone=None, address=None, dob="x", gender="y")
    assert exc.value.message == "Data Missing"


def test_update_profile_rejects_bad_address(db, user):
    with pytest.raises(ValidationError):
        AccountService(db).update_profile(
            user.id, name="Alice", phone="9876543210", address="{not json", dob="x", gender="y"
        )


def test_image_failure_keeps_profile_update(client, db, user, monkeypatch):
    def failing_upload(user_id, contents, content_type):
        raise UpstreamError("Image upload failed")

    monkeypatch.setattr(image_storage, "upload_profile_image", failing_upload)

    response = client.post(
        "/api/user/update-profile",
        data={"name": "Alice C", "phone": "9876543210", "dob": "1990-01-01", "gender": "Female"},
        files={"image": ("avatar.png", b"\x89PNG fake", "image/png")},
        headers=auth_headers(user),
    )

    assert response.json() == {
        "success": True,
        "message": "Profile Updated",
        "image_updated": False,
        "image_message": "Image upload failed",
    }
    db.refresh(user)
    assert user.name == "Alice C"
    assert user.image is None


def test_image_upload_stores_key(db, user, monkeypatch):
    monkeypatch.setattr(
        image_storage, "upload_profile_image", lambda user_id, contents, content_type: f"profile-pictures/{user_id}/a.png"
    )

    result = AccountService(db).update_profile(
        user.id, name="Alice", phone="9876543210", address=None, dob="x", gender="y",
        image=b"png-bytes", image_content_type="image/png",
    )

    assert result["image_updated"] is True
    db.refresh(user)
    assert user.image == f"profile-pictures/{user.id}/a.png"


def test_upload_rejects_unsupported_type():
    with pytest.raises(ValidationError):
        image_storage.upload_profile_image("user-1", b"data", "application/pdf")


def test_doctor_list_hides_credentials(client, db):
    make_doctor(db, "Dr. Rao")

    doctors = client.get("/api/doctor/list").json()["doctors"]

    assert len(doctors) == 1
    assert "password" not in doctors[0]
    assert "email" not in doctors[0]
    assert doctors[0]["slots_booked"] == {}


def test_error_responses_carry_security_headers(client):
    response = client.post("/api/user/login", json={"email": "x@example.com", "password": "whatever1"})

    assert response.status_code == 404
    assert response.headers["X-Content-Type-Options"] == "nosniff"
