"""Doctor repository - Database operations for the doctor directory"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Doctor


class DoctorRepository:
    """Repository for doctor database operations"""

    @staticmethod
    def list_doctors(db: Session) -> list[Doctor]:
        return db.query(Doctor).order_by(Doctor.created_at.asc(), Doctor.name.asc()).all()

    @staticmethod
    def list_doctor_ids(db: Session) -> list[str]:
        return [row[0] for row in db.query(Doctor.id).all()]

    @staticmethod
    def get_doctor_for_update(db: Session, doctor_id: str) -> Optional[Doctor]:
        """
        Load a doctor and lock its row until the transaction ends.

        populate_existing refreshes a copy already held by the session so the
        slot map read is the committed one.
        """
        return (
            db.query(Doctor)
            .filter(Doctor.id == doctor_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    @staticmethod
    def create_doctor(db: Session, **doctor_data) -> Doctor:
        """Create a new doctor"""
        doctor = Doctor(**doctor_data)
        db.add(doctor)
        db.commit()
        db.refresh(doctor)
        return doctor

    @staticmethod
    def set_slots_booked(doctor: Doctor, slots_booked: dict[str, list[str]]) -> None:
        """
        Stage a new slot map on the doctor (no commit).

        The JSON column only tracks reassignment, so callers pass a fresh dict.
        """
        doctor.slots_booked = {day: list(times) for day, times in slots_booked.items()}

    @staticmethod
    def set_availability(db: Session, doctor: Doctor, available: bool) -> Doctor:
        doctor.available = available
        db.commit()
        db.refresh(doctor)
        return doctor
