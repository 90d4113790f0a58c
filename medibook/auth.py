import logging

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .database import get_db
from .errors import UnauthorizedError
from .models import User
from .security_utils import verify_access_token
from .shared.validators import validate_uuid

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the authenticated user from the Bearer access token"""
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Not Authorized. Login Again", status_code=401)

    payload = verify_access_token(credentials.credentials)
    if not payload:
        raise UnauthorizedError("Session expired or invalid. Login Again", status_code=401)

    user_id = payload.get("id")
    if not validate_uuid(user_id):
        logger.warning("🚫 Token carried a malformed user id")
        raise UnauthorizedError("Not Authorized. Login Again", status_code=401)

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        logger.warning(f"🚫 Token for unknown user {user_id}")
        raise UnauthorizedError("Not Authorized. Login Again", status_code=401)

    return user
