"""Account domain schemas - Pydantic models for validation"""

from typing import Optional

from pydantic import BaseModel


class RegisterRequest(BaseModel):
    """Schema for registering a new user"""

    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class TokenResponse(BaseModel):
    success: bool = True
    token: str


class Address(BaseModel):
    line1: str = ""
    line2: str = ""


class UserProfile(BaseModel):
    id: str
    name: str
    email: str
    image: Optional[str] = None
    address: Address
    gender: str
    dob: str
    phone: str


class ProfileResponse(BaseModel):
    success: bool = True
    userData: UserProfile


class ProfileUpdateResponse(BaseModel):
    """The profile write and the image upload are reported separately"""

    success: bool = True
    message: str
    image_updated: Optional[bool] = None
    image_message: Optional[str] = None
