"""
utils/file_storage.py

Saves uploaded images (property photos and user avatars) to local disk under
MEDIA_ROOT and serves them through the /media static mount. Swap the internals for S3 / Cloudinary
without touching router code.
"""

import logging
import uuid
from pathlib import Path

import aiofiles
from fastapi import UploadFile, HTTPException, status

from app.core.config import settings

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/webp"}
MAX_IMAGE_SIZE_MB = 10
MAX_IMAGE_SIZE_BYTES = MAX_IMAGE_SIZE_MB * 1024 * 1024

_EXT_TO_CONTENT_TYPE = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
}

_CONTENT_TYPE_TO_EXT = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


PROPERTY_IMAGES = "properties"
USER_AVATARS = "users"


def media_dir(kind: str) -> Path:
    return Path(settings.MEDIA_ROOT) / kind


def property_images_dir() -> Path:
    return media_dir(PROPERTY_IMAGES)


def user_avatars_dir() -> Path:
    return media_dir(USER_AVATARS)


def _resolve_extension(file: UploadFile) -> str:
    """
    Pick the stored extension from the MIME type, falling back to the filename
    because some mobile clients send 'application/octet-stream'.
    """
    content_type = (file.content_type or "").lower()
    if content_type in ALLOWED_IMAGE_TYPES:
        return _CONTENT_TYPE_TO_EXT[content_type]

    filename = file.filename or ""
    ext = Path(filename).suffix.lower()
    if ext in _EXT_TO_CONTENT_TYPE:
        return _CONTENT_TYPE_TO_EXT[_EXT_TO_CONTENT_TYPE[ext]]

    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=f"Unsupported image '{filename}'. Please upload a JPEG, PNG, or WebP image.",
    )


async def _save_image(file: UploadFile, kind: str) -> str:
    """Validate and store one image under MEDIA_ROOT/<kind>; returns its public URL."""
    ext = _resolve_extension(file)

    contents = await file.read()
    if len(contents) > MAX_IMAGE_SIZE_BYTES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Image '{file.filename}' exceeds {MAX_IMAGE_SIZE_MB}MB limit.",
        )

    target_dir = media_dir(kind)
    target_dir.mkdir(parents=True, exist_ok=True)
    filename = f"{uuid.uuid4().hex}{ext}"

    async with aiofiles.open(target_dir / filename, "wb") as out:
        await out.write(contents)

    return f"{settings.BASE_URL.rstrip('/')}/media/{kind}/{filename}"


async def save_property_image(file: UploadFile) -> str:
    return await _save_image(file, PROPERTY_IMAGES)


async def save_user_avatar(file: UploadFile) -> str:
    return await _save_image(file, USER_AVATARS)


async def save_property_images(files: list[UploadFile]) -> list[str]:
    """Save multiple images and return their URLs in order."""
    urls = []
    for f in files:
        urls.append(await save_property_image(f))
    return urls


def _delete_image(image_url: str, kind: str) -> None:
    filename = image_url.rstrip("/").split("/")[-1]
    file_path = media_dir(kind) / filename
    try:
        file_path.unlink(missing_ok=True)
    except OSError:
        logger.warning("Failed to unlink image file %s", file_path, exc_info=True)


def delete_property_image(image_url: str) -> None:
    """Remove the file behind `image_url`. Missing files are ignored."""
    _delete_image(image_url, PROPERTY_IMAGES)


def delete_user_avatar(avatar_url: str) -> None:
    # Avatars set through the profile endpoint may point anywhere
    if f"/media/{USER_AVATARS}/" not in avatar_url:
        return
    _delete_image(avatar_url, USER_AVATARS)
