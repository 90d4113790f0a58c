"""Doctor domain schemas - Pydantic models for responses"""

from typing import Optional

from pydantic import BaseModel


class DoctorAddress(BaseModel):
    line1: str = ""
    line2: str = ""


class DoctorResponse(BaseModel):
    """Directory entry; password and email are never exposed"""

    id: str
    name: str
    image: Optional[str] = None
    speciality: str
    degree: Optional[str] = None
    experience: Optional[str] = None
    about: Optional[str] = None
    available: bool
    fees: float
    address: DoctorAddress
    slots_booked: dict[str, list[str]]


class DoctorListResponse(BaseModel):
    success: bool = True
    doctors: list[DoctorResponse]
