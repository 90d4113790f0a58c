"""Appointment repository - Database operations for the appointment ledger"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Appointment


class AppointmentRepository:
    """Repository for appointment database operations"""

    @staticmethod
    def get_appointment_by_id(db: Session, appointment_id: str) -> Optional[Appointment]:
        return db.query(Appointment).filter(Appointment.id == appointment_id).first()

    @staticmethod
    def get_appointment_for_update(db: Session, appointment_id: str) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.id == appointment_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    @staticmethod
    def get_user_appointments(db: Session, user_id: str) -> list[Appointment]:
        """All appointments of a user, oldest booking first"""
        return (
            db.query(Appointment)
            .filter(Appointment.user_id == user_id)
            .order_by(Appointment.date.asc())
            .all()
        )

    @staticmethod
    def get_active_appointments_for_doctor(db: Session, doctor_id: str) -> list[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.doc_id == doctor_id, Appointment.cancelled.is_(False))
            .order_by(Appointment.date.asc())
            .all()
        )

    @staticmethod
    def add_appointment(db: Session, **appointment_data) -> Appointment:
        """Stage a new appointment in the current transaction (no commit)"""
        appointment = Appointment(**appointment_data)
        db.add(appointment)
        return appointment

    @staticmethod
    def set_payment_reference(db: Session, appointment: Appointment, reference: str) -> Appointment:
        appointment.payment_reference = reference
        db.commit()
        db.refresh(appointment)
        return appointment

    @staticmethod
    def mark_paid(db: Session, appointment_id: str) -> Optional[Appointment]:
        """
        Latch payment to True. Never writes False.

        Returns the appointment, or None when the id references nothing.
        """
        appointment = AppointmentRepository.get_appointment_for_update(db, appointment_id)
        if appointment is None:
            db.rollback()
            return None
        if not appointment.payment:
            appointment.payment = True
        db.commit()
        db.refresh(appointment)
        return appointment
