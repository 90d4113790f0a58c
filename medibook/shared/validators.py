"""Shared validation utilities"""

import json
import re
import uuid
from typing import Any, Optional


def validate_uuid(value: Any) -> bool:
    """Validate UUID format"""
    if not isinstance(value, str):
        return False
    try:
        uuid.UUID(value)
        return True
    except (ValueError, AttributeError, TypeError):
        return False


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    # Basic email validation pattern
    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Please enter a valid email")

    return email


def validate_password(password: str, min_length: int) -> str:
    """Reject passwords shorter than min_length"""
    if len(password) < min_length:
        raise ValueError("Please enter a strong password")
    return password


def validate_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate an international phone number.

    Keeps a leading + and the digits; 7 to 15 digits (E.164 range).

    Raises:
        ValueError: If phone number is invalid
    """
    if not phone:
        return phone

    digits = re.sub(r"\D", "", phone)
    if not 7 <= len(digits) <= 15:
        raise ValueError("Please enter a valid phone number")

    prefix = "+" if phone.strip().startswith("+") else ""
    return f"{prefix}{digits}"


def parse_address(address: Any) -> dict:
    """
    Accept an address as a dict or a JSON object string (multipart forms send strings).

    Raises:
        ValueError: If the value is not a JSON object
    """
    if address is None or address == "":
        return {"line1": "", "line2": ""}

    if isinstance(address, str):
        try:
            address = json.loads(address)
        except json.JSONDecodeError as e:
            raise ValueError("Address must be a JSON object") from e

    if not isinstance(address, dict):
        raise ValueError("Address must be a JSON object")

    return {
        "line1": str(address.get("line1") or ""),
        "line2": str(address.get("line2") or ""),
    }
