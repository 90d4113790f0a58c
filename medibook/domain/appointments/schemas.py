"""Appointment domain schemas - Pydantic models for validation"""

from typing import Any, Optional

from pydantic import BaseModel, field_validator


class BookAppointmentRequest(BaseModel):
    """Schema for booking a slot with a doctor"""

    docId: Optional[str] = None
    slotDate: Optional[str] = None
    slotTime: Optional[str] = None

    @field_validator("slotDate", "slotTime")
    @classmethod
    def strip_labels(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if isinstance(v, str) else v


class CancelAppointmentRequest(BaseModel):
    appointmentId: Optional[str] = None


class AppointmentResponse(BaseModel):
    id: str
    userId: str
    docId: str
    slotDate: str
    slotTime: str
    userData: dict[str, Any]
    docData: dict[str, Any]
    amount: float
    date: int
    cancelled: bool
    payment: bool
    isCompleted: bool


class BookAppointmentResponse(BaseModel):
    success: bool = True
    message: str
    appointment: AppointmentResponse


class AppointmentListResponse(BaseModel):
    success: bool = True
    appointments: list[AppointmentResponse]


class MessageResponse(BaseModel):
    success: bool = True
    message: str
