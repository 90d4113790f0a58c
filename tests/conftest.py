import os
import time

# Configure before the application modules read their settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("SECURITY_HEADERS_ENABLED", "true")
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")

import pytest
from fastapi.testclient import TestClient

from medibook import models  # noqa: F401
from medibook.database import Base, SessionLocal, engine, get_db
from medibook.domain.accounts.repository import UserRepository
from medibook.domain.accounts.router import rate_limit_auth
from medibook.domain.doctors.repository import DoctorRepository
from medibook.main import app
from medibook.security_utils import create_access_token, hash_password_bcrypt
from medibook.webhook_security import stripe_signature

SLOT_DATE = "2024-06-01"
SLOT_TIME = "10:00"


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    async def no_rate_limit():
        return None

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[rate_limit_auth] = no_rate_limit
    # No context manager: the lifespan would create tables on the shared engine
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(db, name="Alice", email=None, password="password123"):
    email = email or f"{name.lower()}@example.com"
    return UserRepository.create_user(
        db, name=name, email=email, password=hash_password_bcrypt(password)
    )


def make_doctor(db, name="Dr. Rao", **overrides):
    data = {
        "name": name,
        "email": f"{name.lower().replace(' ', '').replace('.', '')}@clinic.example",
        "password": hash_password_bcrypt("doctorpass"),
        "speciality": "General physician",
        "degree": "MBBS",
        "experience": "4 Years",
        "about": "Primary care",
        "fees": 50.0,
        "available": True,
    }
    data.update(overrides)
    return DoctorRepository.create_doctor(db, **data)


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


def stripe_signature_header(secret, body, timestamp=None):
    """``Stripe-Signature`` value the way Stripe builds it"""
    timestamp = str(timestamp or int(time.time()))
    return f"t={timestamp},v1={stripe_signature(secret, timestamp, body)}"


@pytest.fixture
def user(db):
    return make_user(db)


@pytest.fixture
def doctor(db):
    return make_doctor(db)
