"""Appointment router - FastAPI endpoints for booking and cancellation"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from .schemas import (
    AppointmentListResponse,
    BookAppointmentRequest,
    BookAppointmentResponse,
    CancelAppointmentRequest,
    MessageResponse,
)
from .service import AppointmentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["Appointments"])


def get_appointment_service(db: Session = Depends(get_db)) -> AppointmentService:
    """Dependency injection for AppointmentService"""
    return AppointmentService(db)


@router.post("/book-appointment", response_model=BookAppointmentResponse)
def book_appointment(
    data: BookAppointmentRequest,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.book_appointment(current_user.id, data.docId, data.slotDate, data.slotTime)
    return {"success": True, "message": "Appointment Booked", "appointment": appointment.to_dict()}


@router.get("/appointments", response_model=AppointmentListResponse)
def list_appointments(
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Every appointment of the current user, cancelled ones included"""
    appointments = service.list_appointments(current_user.id)
    return {"success": True, "appointments": [a.to_dict() for a in appointments]}


@router.post("/cancel-appointment", response_model=MessageResponse)
def cancel_appointment(
    data: CancelAppointmentRequest,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    already_cancelled = service.cancel_appointment(current_user.id, data.appointmentId)
    message = "Appointment already cancelled" if already_cancelled else "Appointment Cancelled"
    return {"success": True, "message": message}
