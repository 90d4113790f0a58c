"""Account service - Registration, login and profile management"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError as DBIntegrityError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import MIN_PASSWORD_LENGTH
from ...errors import (
    AppError,
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    UpstreamError,
    ValidationError,
)
from ...models import User
from ...security_utils import create_access_token, hash_password_bcrypt, verify_password_bcrypt
from ...services import image_storage
from ...shared.validators import (
    parse_address,
    validate_email,
    validate_password,
    validate_phone,
    validate_uuid,
)
from .repository import UserRepository

logger = logging.getLogger(__name__)


class AccountService:
    """Service layer for credentials and profiles"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = UserRepository()

    def register(self, name: Optional[str], email: Optional[str], password: Optional[str]) -> str:
        """Create a user and return an access token"""
        if not name or not email or not password:
            raise ValidationError("Missing Details")

        try:
            email = validate_email(email)
            validate_password(password, MIN_PASSWORD_LENGTH)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        if self.repo.get_user_by_email(self.db, email):
            raise ConflictError("Email already in use")

        try:
            user = self.repo.create_user(
                self.db,
                name=name.strip(),
                email=email,
                password=hash_password_bcrypt(password),
            )
        except DBIntegrityError as e:
            # Lost a race with a concurrent registration for the same email
            self.db.rollback()
            raise ConflictError("Email already in use") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to create user {email}: {e}")
            raise UpstreamError("Could not create account, please retry") from e

        logger.info(f"✅ Registered user {user.id}")
        return create_access_token(user.id)

    def login(self, email: Optional[str], password: Optional[str]) -> str:
        if not email or not password:
            raise ValidationError("Missing Details")

        user = self.repo.get_user_by_email(self.db, email.strip().lower())
        if not user:
            raise NotFoundError("User does not exist")

        if not verify_password_bcrypt(password, user.password):
            logger.warning(f"🚫 Invalid password for user {user.id}")
            raise UnauthorizedError("Invalid credentials", status_code=401)

        return create_access_token(user.id)

    def get_user(self, user_id: str) -> User:
        if not validate_uuid(user_id):
            raise ValidationError("Invalid user ID")

        user = self.repo.get_user_by_id(self.db, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def get_profile(self, user_id: str) -> dict:
        """Profile without the password hash; stored image keys become presigned URLs"""
        profile = self.get_user(user_id).to_profile()
        profile["image"] = image_storage.resolve_image_url(profile["image"])
        return profile

    def update_profile(
        self,
        user_id: str,
        name: Optional[str],
        phone: Optional[str],
        address,
        dob: Optional[str],
        gender: Optional[str],
        image: Optional[bytes] = None,
        image_content_type: Optional[str] = None,
    ) -> dict:
        """
        Merge profile fields, then store the optional image.

        The two writes are independent: a failed image upload leaves the
        committed profile in place and is reported in the result.
        """
        if not name or not phone or not dob or not gender:
            raise ValidationError("Data Missing")

        user = self.get_user(user_id)

        try:
            phone = validate_phone(phone.strip())
            parsed_address = parse_address(address) if address is not None else None
        except ValueError as e:
            raise ValidationError(str(e)) from e

        try:
            self.repo.update_user(
                self.db,
                user,
                name=name.strip(),
                phone=phone,
                address=parsed_address,
                dob=dob,
                gender=gender,
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Profile update failed for user {user_id}: {e}")
            raise UpstreamError("Profile update failed, please retry") from e

        result = {"success": True, "message": "Profile Updated"}
        if image is None:
            return result

        try:
            key = image_storage.upload_profile_image(user.id, image, image_content_type)
            self.repo.update_user(self.db, user, image=key)
            result["image_updated"] = True
            result["image_message"] = "Image Updated"
        except AppError as e:
            logger.warning(f"⚠️ Profile saved but image not stored for user {user_id}: {e.message}")
            result["image_updated"] = False
            result["image_message"] = e.message
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Image reference not saved for user {user_id}: {e}")
            result["image_updated"] = False
            result["image_message"] = "Image uploaded but could not be saved to the profile"

        return result
