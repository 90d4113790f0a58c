"""Doctor router - Public doctor directory"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_db
from ...services.image_storage import resolve_image_url
from .repository import DoctorRepository
from .schemas import DoctorListResponse

router = APIRouter(prefix="/doctor", tags=["Doctors"])


@router.get("/list", response_model=DoctorListResponse)
def list_doctors(db: Session = Depends(get_db)):
    """All doctors with their booked slots, for the booking screen"""
    doctors = []
    for doctor in DoctorRepository.list_doctors(db):
        entry = doctor.to_public()
        entry["image"] = resolve_image_url(entry["image"])
        doctors.append(entry)
    return {"success": True, "doctors": doctors}
