"""Profile image storage on Cloudflare R2 (S3 API)"""

import logging
import uuid

import boto3
from botocore.config import Config

from ..config import (
    GATEWAY_TIMEOUT_SECONDS,
    R2_ACCESS_KEY_ID,
    R2_ACCOUNT_ID,
    R2_BUCKET_NAME,
    R2_SECRET_ACCESS_KEY,
)
from ..errors import UpstreamError, ValidationError

logger = logging.getLogger(__name__)

# Presigned URL expiration time (1 hour)
PRESIGNED_URL_EXPIRATION = 3600

MAX_IMAGE_SIZE = 5 * 1024 * 1024  # 5MB

# Allowed image types for profile pictures
ALLOWED_IMAGE_TYPES = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}


def get_r2_client():
    """Create and return an R2 client."""
    return boto3.client(
        "s3",
        endpoint_url=f"https://{R2_ACCOUNT_ID}.r2.cloudflarestorage.com",
        aws_access_key_id=R2_ACCESS_KEY_ID,
        aws_secret_access_key=R2_SECRET_ACCESS_KEY,
        config=Config(
            signature_version="s3v4",
            connect_timeout=GATEWAY_TIMEOUT_SECONDS,
            read_timeout=GATEWAY_TIMEOUT_SECONDS,
            retries={"max_attempts": 2},
        ),
    )


def generate_presigned_url(key: str, expiration: int = PRESIGNED_URL_EXPIRATION) -> str:
    """Generate a presigned URL for accessing a private object in R2."""
    r2 = get_r2_client()
    return r2.generate_presigned_url(
        "get_object",
        Params={"Bucket": R2_BUCKET_NAME, "Key": key, "ResponseContentDisposition": "inline"},
        ExpiresIn=expiration,
    )


def resolve_image_url(image: str | None) -> str | None:
    """Turn a stored image reference into something a browser can load"""
    if not image or image.startswith("http"):
        return image
    try:
        return generate_presigned_url(image)
    except Exception as e:
        logger.error(f"❌ Failed to generate presigned URL for key {image}: {e}")
        return None


def upload_profile_image(user_id: str, contents: bytes, content_type: str | None) -> str:
    """
    Store a profile picture and return its storage key.

    Raises:
        ValidationError: unsupported type or oversized file
        UpstreamError: the storage call failed
    """
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError("Invalid file type. Only PNG, JPEG, WebP and GIF images are allowed.")

    if not contents:
        raise ValidationError("Uploaded image is empty")

    if len(contents) > MAX_IMAGE_SIZE:
        raise ValidationError(
            f"File size exceeds 5MB limit. Your file is {len(contents) / (1024 * 1024):.2f}MB."
        )

    key = f"profile-pictures/{user_id}/{uuid.uuid4()}.{ALLOWED_IMAGE_TYPES[content_type]}"

    try:
        r2 = get_r2_client()
        r2.put_object(
            Bucket=R2_BUCKET_NAME,
            Key=key,
            Body=contents,
            ContentType=content_type,
        )
    except Exception as e:
        logger.error(f"❌ Profile image upload failed for user {user_id}: {e}")
        raise UpstreamError("Image upload failed") from e

    logger.info(f"✅ Uploaded profile image for user {user_id}: {key}")
    return key
