import time
import uuid

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    String,
    Text,
)
from sqlalchemy.sql import func

from .database import Base


def generate_id():
    """Generate a unique identifier for a record"""
    return str(uuid.uuid4())


def epoch_millis():
    return int(time.time() * 1000)


DEFAULT_ADDRESS = {"line1": "", "line2": ""}


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password = Column(String(255), nullable=False)  # bcrypt hash, never returned
    image = Column(String(500), nullable=True)  # R2 key for profile picture
    address = Column(JSON, default=lambda: dict(DEFAULT_ADDRESS), nullable=False)
    gender = Column(String(50), default="Not Selected", nullable=False)
    dob = Column(String(50), default="Not Selected", nullable=False)
    phone = Column(String(50), default="0000000000", nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_profile(self) -> dict:
        """Profile fields without the password hash"""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "image": self.image,
            "address": dict(self.address or DEFAULT_ADDRESS),
            "gender": self.gender,
            "dob": self.dob,
            "phone": self.phone,
        }


class Doctor(Base):
    __tablename__ = "doctors"
    __table_args__ = (CheckConstraint("fees >= 0", name="ck_doctors_fees_non_negative"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password = Column(String(255), nullable=False)
    image = Column(String(500), nullable=True)
    speciality = Column(String(100), nullable=False)
    degree = Column(String(100), nullable=True)
    experience = Column(String(50), nullable=True)
    about = Column(Text, nullable=True)
    available = Column(Boolean, default=True, nullable=False)
    fees = Column(Float, nullable=False)
    address = Column(JSON, default=lambda: dict(DEFAULT_ADDRESS), nullable=False)
    # {"2024-06-01": ["10:00", "10:30"]} - derived from non-cancelled appointments
    slots_booked = Column(JSON, default=dict, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_public(self) -> dict:
        """Directory listing: no password, no email"""
        return {
            "id": self.id,
            "name": self.name,
            "image": self.image,
            "speciality": self.speciality,
            "degree": self.degree,
            "experience": self.experience,
            "about": self.about,
            "available": self.available,
            "fees": self.fees,
            "address": dict(self.address or DEFAULT_ADDRESS),
            "slots_booked": {day: list(times) for day, times in (self.slots_booked or {}).items()},
        }

    def to_snapshot(self) -> dict:
        """Copy stored on an appointment; the live slot map is left out"""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "image": self.image,
            "speciality": self.speciality,
            "degree": self.degree,
            "experience": self.experience,
            "about": self.about,
            "available": self.available,
            "fees": self.fees,
            "address": dict(self.address or DEFAULT_ADDRESS),
        }


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (CheckConstraint("amount >= 0", name="ck_appointments_amount_non_negative"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)
    doc_id = Column(String(36), ForeignKey("doctors.id"), index=True, nullable=False)
    slot_date = Column(String(20), nullable=False)
    slot_time = Column(String(20), nullable=False)
    user_data = Column(JSON, nullable=False)  # Profile snapshot at booking time
    doc_data = Column(JSON, nullable=False)  # Doctor snapshot at booking time
    amount = Column(Float, nullable=False)
    date = Column(BigInteger, default=epoch_millis, nullable=False)  # Booking timestamp (ms)
    cancelled = Column(Boolean, default=False, nullable=False)
    payment = Column(Boolean, default=False, nullable=False)
    is_completed = Column(Boolean, default=False, nullable=False)
    # Last gateway order/session created for this appointment
    payment_reference = Column(String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "docId": self.doc_id,
            "slotDate": self.slot_date,
            "slotTime": self.slot_time,
            "userData": self.user_data,
            "docData": self.doc_data,
            "amount": self.amount,
            "date": self.date,
            "cancelled": self.cancelled,
            "payment": self.payment,
            "isCompleted": self.is_completed,
        }
