"""
Appointment service - Slot booking engine

Booking and cancellation both change two records: the appointment ledger
row and the doctor's ``slots_booked`` index. Each operation runs under
``doctor_lock`` (one process) and a row lock on the doctor record (all
processes), and stages both writes in a single transaction so they commit
or roll back together.
"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import (
    AppError,
    ConflictError,
    IntegrityError,
    NotFoundError,
    UnauthorizedError,
    UpstreamError,
    ValidationError,
)
from ...models import Appointment, Doctor, epoch_millis
from ...shared.validators import validate_uuid
from ..accounts.repository import UserRepository
from ..doctors.repository import DoctorRepository
from .locks import doctor_lock
from .repository import AppointmentRepository

logger = logging.getLogger(__name__)

LOCK_TIMEOUT_SECONDS = 30.0


def copy_slots(slots_booked: Optional[dict]) -> dict[str, list[str]]:
    return {day: list(times) for day, times in (slots_booked or {}).items()}


class AppointmentService:
    """Service layer for booking, cancelling and listing appointments"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AppointmentRepository()
        self.doctors = DoctorRepository()
        self.users = UserRepository()

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    def book_appointment(
        self, user_id: str, doctor_id: Optional[str], slot_date: Optional[str], slot_time: Optional[str]
    ) -> Appointment:
        """Reserve ``slot_time`` on ``slot_date`` with a doctor and record the appointment"""
        if not validate_uuid(user_id) or not validate_uuid(doctor_id):
            raise ValidationError("Invalid user or doctor ID")
        if not slot_date or not slot_time:
            raise ValidationError("Missing slot date or time")

        try:
            with doctor_lock(doctor_id, timeout=LOCK_TIMEOUT_SECONDS):
                appointment = self._book_locked(user_id, doctor_id, slot_date, slot_time)
        except TimeoutError as e:
            logger.error(f"⏱️ Booking lock timeout for doctor {doctor_id}")
            raise UpstreamError("Booking service is busy, please retry") from e

        logger.info(
            f"✅ Booked appointment {appointment.id}: doctor={doctor_id} {slot_date} {slot_time} user={user_id}"
        )
        return appointment

    def _book_locked(self, user_id: str, doctor_id: str, slot_date: str, slot_time: str) -> Appointment:
        try:
            doctor = self.doctors.get_doctor_for_update(self.db, doctor_id)
            if not doctor:
                raise NotFoundError("Doctor not found")
            if not doctor.available:
                raise ConflictError("Doctor Not Available")

            user = self.users.get_user_by_id(self.db, user_id)
            if not user:
                raise NotFoundError("User not found")

            slots_booked = copy_slots(doctor.slots_booked)
            if slot_time in slots_booked.get(slot_date, []):
                raise ConflictError("Slot Not Available")
            slots_booked.setdefault(slot_date, []).append(slot_time)

            appointment = self.repo.add_appointment(
                self.db,
                user_id=user.id,
                doc_id=doctor.id,
                slot_date=slot_date,
                slot_time=slot_time,
                user_data=user.to_profile(),
                doc_data=doctor.to_snapshot(),
                amount=doctor.fees,
                date=epoch_millis(),
                cancelled=False,
                payment=False,
            )
            self.doctors.set_slots_booked(doctor, slots_booked)
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self._rollback("book appointment")
            logger.error(f"❌ Booking failed for doctor {doctor_id}: {e}")
            raise UpstreamError("Could not book appointment, please retry") from e

        self._commit("book appointment", f"doctor={doctor_id} slot={slot_date} {slot_time}")
        self.db.refresh(appointment)
        return appointment

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel_appointment(self, user_id: str, appointment_id: Optional[str]) -> bool:
        """
        Cancel an appointment owned by ``user_id`` and free its slot.

        Returns True when the appointment was already cancelled; the slot
        index is left alone in that case.
        """
        if not validate_uuid(user_id) or not validate_uuid(appointment_id):
            raise ValidationError("Invalid user or appointment ID")

        appointment = self.repo.get_appointment_by_id(self.db, appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found")
        if appointment.user_id != user_id:
            logger.warning(
                f"🚫 User {user_id} tried to cancel appointment {appointment_id} owned by {appointment.user_id}"
            )
            raise UnauthorizedError("Unauthorized action")

        doctor_id = appointment.doc_id
        try:
            with doctor_lock(doctor_id, timeout=LOCK_TIMEOUT_SECONDS):
                already_cancelled = self._cancel_locked(appointment_id, doctor_id)
        except TimeoutError as e:
            logger.error(f"⏱️ Cancellation lock timeout for doctor {doctor_id}")
            raise UpstreamError("Booking service is busy, please retry") from e

        if already_cancelled:
            logger.info(f"ℹ️ Appointment {appointment_id} was already cancelled")
        else:
            logger.info(f"✅ Cancelled appointment {appointment_id} for doctor {doctor_id}")
        return already_cancelled

    def _cancel_locked(self, appointment_id: str, doctor_id: str) -> bool:
        try:
            appointment = self.repo.get_appointment_for_update(self.db, appointment_id)
            if not appointment:
                raise NotFoundError("Appointment not found")
            if appointment.cancelled:
                self.db.rollback()
                return True

            appointment.cancelled = True

            doctor = self.doctors.get_doctor_for_update(self.db, doctor_id)
            if doctor is None:
                logger.error(
                    f"❗ Doctor {doctor_id} missing while cancelling appointment {appointment_id}; "
                    "recording cancellation only"
                )
            else:
                self._release_slot(doctor, appointment.slot_date, appointment.slot_time)
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self._rollback("cancel appointment")
            logger.error(f"❌ Cancellation failed for appointment {appointment_id}: {e}")
            raise UpstreamError("Could not cancel appointment, please retry") from e

        self._commit("cancel appointment", f"appointment={appointment_id}")
        return False

    def _release_slot(self, doctor: Doctor, slot_date: str, slot_time: str) -> None:
        slots_booked = copy_slots(doctor.slots_booked)
        times = slots_booked.get(slot_date, [])
        if slot_time not in times:
            # Removing an absent entry is a no-op
            logger.warning(
                f"⚠️ Slot {slot_date} {slot_time} was not in doctor {doctor.id}'s index while cancelling"
            )
            return

        remaining = [t for t in times if t != slot_time]
        if remaining:
            slots_booked[slot_date] = remaining
        else:
            del slots_booked[slot_date]
        self.doctors.set_slots_booked(doctor, slots_booked)

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_appointments(self, user_id: str) -> list[Appointment]:
        """All appointments of a user, cancelled ones included"""
        if not validate_uuid(user_id):
            raise ValidationError("Invalid user ID")
        return self.repo.get_user_appointments(self.db, user_id)

    # ------------------------------------------------------------------
    # Slot index reconciliation
    # ------------------------------------------------------------------

    def reconcile_slots(self, doctor_id: Optional[str] = None, dry_run: bool = False) -> dict:
        """
        Rebuild ``slots_booked`` from the non-cancelled appointments.

        Returns a report per doctor whose index drifted:
        ``missing`` slots held by an appointment but absent from the index,
        ``stale`` slots in the index with no appointment behind them, and
        ``duplicates`` slots held by more than one active appointment.
        """
        if doctor_id is not None and not validate_uuid(doctor_id):
            raise ValidationError("Invalid doctor ID")

        doctor_ids = [doctor_id] if doctor_id else self.doctors.list_doctor_ids(self.db)
        self.db.rollback()

        report = {}
        for current_id in doctor_ids:
            try:
                with doctor_lock(current_id, timeout=LOCK_TIMEOUT_SECONDS):
                    drift = self._reconcile_locked(current_id, dry_run)
            except TimeoutError as e:
                raise UpstreamError(f"Timed out waiting for doctor {current_id}") from e
            if drift:
                report[current_id] = drift
        return report

    def _reconcile_locked(self, doctor_id: str, dry_run: bool) -> Optional[dict]:
        try:
            doctor = self.doctors.get_doctor_for_update(self.db, doctor_id)
            if doctor is None:
                raise NotFoundError("Doctor not found")

            expected: dict[str, list[str]] = {}
            duplicates = []
            for appointment in self.repo.get_active_appointments_for_doctor(self.db, doctor_id):
                times = expected.setdefault(appointment.slot_date, [])
                if appointment.slot_time in times:
                    duplicates.append(f"{appointment.slot_date} {appointment.slot_time}")
                else:
                    times.append(appointment.slot_time)

            current = copy_slots(doctor.slots_booked)
            expected_pairs = {(day, t) for day, times in expected.items() for t in times}
            current_pairs = {(day, t) for day, times in current.items() for t in times}
            missing = sorted(f"{day} {t}" for day, t in expected_pairs - current_pairs)
            stale = sorted(f"{day} {t}" for day, t in current_pairs - expected_pairs)

            if not missing and not stale and not duplicates:
                self.db.rollback()
                return None

            if duplicates:
                logger.critical(f"🚨 Doctor {doctor_id} has double-booked slots: {duplicates}")
            logger.warning(f"⚠️ Slot index drift for doctor {doctor_id}: missing={missing} stale={stale}")

            if dry_run:
                self.db.rollback()
            else:
                self.doctors.set_slots_booked(doctor, expected)
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self._rollback("reconcile slots")
            raise UpstreamError(f"Could not reconcile doctor {doctor_id}") from e

        if not dry_run:
            self._commit("reconcile slots", f"doctor={doctor_id}")
        return {"missing": missing, "stale": stale, "duplicates": duplicates}

    # ------------------------------------------------------------------
    # Transaction helpers
    # ------------------------------------------------------------------

    def _commit(self, action: str, context: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"❌ Commit failed ({action}, {context}): {e}")
            self._rollback(action)
            raise UpstreamError(f"Could not {action}, please retry") from e

    def _rollback(self, action: str) -> None:
        """Roll back; a failed rollback leaves ledger and slot index in doubt"""
        try:
            self.db.rollback()
        except SQLAlchemyError as e:
            logger.critical(f"🚨 Rollback failed during '{action}'; run reconcile_slots.py: {e}")
            raise IntegrityError(
                "The booking could not be confirmed. Our team has been alerted."
            ) from e
