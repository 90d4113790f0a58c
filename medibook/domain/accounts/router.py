"""Account router - FastAPI endpoints for registration, login and profile"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...config import AUTH_RATE_LIMIT, AUTH_RATE_WINDOW_SECONDS
from ...database import get_db
from ...models import User
from ...rate_limiter import create_rate_limiter
from .schemas import (
    LoginRequest,
    ProfileResponse,
    ProfileUpdateResponse,
    RegisterRequest,
    TokenResponse,
)
from .service import AccountService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["User"])

rate_limit_auth = create_rate_limiter(
    limit=AUTH_RATE_LIMIT, window_seconds=AUTH_RATE_WINDOW_SECONDS, key_prefix="auth"
)


def get_account_service(db: Session = Depends(get_db)) -> AccountService:
    """Dependency injection for AccountService"""
    return AccountService(db)


@router.post("/register", response_model=TokenResponse)
def register_user(
    data: RegisterRequest,
    _: None = Depends(rate_limit_auth),
    service: AccountService = Depends(get_account_service),
):
    token = service.register(data.name, data.email, data.password)
    return TokenResponse(token=token)


@router.post("/login", response_model=TokenResponse)
def login_user(
    data: LoginRequest,
    _: None = Depends(rate_limit_auth),
    service: AccountService = Depends(get_account_service),
):
    token = service.login(data.email, data.password)
    return TokenResponse(token=token)


@router.get("/get-profile", response_model=ProfileResponse)
def get_profile(
    current_user: User = Depends(get_current_user),
    service: AccountService = Depends(get_account_service),
):
    """Profile of the authenticated user"""
    return {"success": True, "userData": service.get_profile(current_user.id)}


@router.post("/update-profile", response_model=ProfileUpdateResponse, response_model_exclude_none=True)
async def update_profile(
    name: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    dob: Optional[str] = Form(None),
    gender: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    service: AccountService = Depends(get_account_service),
):
    """Update profile fields; the image is stored after the profile is saved"""
    contents = None
    content_type = None
    if image is not None and image.filename:
        contents = await image.read()
        content_type = image.content_type

    return service.update_profile(
        current_user.id,
        name=name,
        phone=phone,
        address=address,
        dob=dob,
        gender=gender,
        image=contents,
        image_content_type=content_type,
    )
