"""
ImgBB image hosting.

Uploaded files are validated here and forwarded base64-encoded; the host
returns a public URL and a deletion URL.
"""
import os
import base64
import logging
from typing import Dict, Optional

import requests

logger = logging.getLogger(__name__)

IMAGE_BB_API_KEY = os.getenv("IMAGE_BB_API_KEY")
IMAGE_HOST_URL = os.getenv("IMAGE_HOST_URL", "https://api.imgbb.com/1/upload")
MAX_UPLOAD_SIZE_MB = int(os.getenv("MAX_UPLOAD_SIZE_MB", "32"))
MAX_UPLOAD_BYTES = MAX_UPLOAD_SIZE_MB * 1024 * 1024
REQUEST_TIMEOUT = 60


class ImageValidationError(ValueError):
    pass


class ImageHostError(Exception):
    pass


def validate_image(filename: Optional[str], content_type: Optional[str], size: int):
    if not filename:
        raise ImageValidationError("No file provided")
    if not content_type or not content_type.startswith("image/"):
        raise ImageValidationError("File must be an image")
    if size <= 0:
        raise ImageValidationError("File is empty")
    if size > MAX_UPLOAD_BYTES:
        raise ImageValidationError(f"File size must be less than {MAX_UPLOAD_SIZE_MB}MB")


def read_capped(fileobj) -> bytes:
    """Read at most one byte past the ceiling so oversized files fail validation."""
    return fileobj.read(MAX_UPLOAD_BYTES + 1)


def upload_image(content: bytes, filename: str) -> Dict[str, str]:
    """Forward one image to the host and return its url and delete_url."""
    if not IMAGE_BB_API_KEY:
        raise ImageHostError("Image host is not configured")

    encoded = base64.b64encode(content).decode("ascii")
    try:
        response = requests.post(IMAGE_HOST_URL, params={"key": IMAGE_BB_API_KEY},
                                 data={"image": encoded, "name": filename}, timeout=REQUEST_TIMEOUT)
    except requests.RequestException as exc:
        logger.error("Image host error for %s: %s", filename, exc)
        raise ImageHostError("Failed to upload to image host") from exc

    if not response.ok:
        logger.error("Image host rejected %s (%s): %s", filename, response.status_code, response.text[:200])
        raise ImageHostError("Failed to upload to image host")

    try:
        payload = response.json()
    except ValueError as exc:
        logger.error("Image host sent a non-JSON reply for %s: %s", filename, response.text[:200])
        raise ImageHostError("Image host returned an unreadable response") from exc
    if not payload.get("success"):
        message = (payload.get("error") or {}).get("message") or "Image host upload failed"
        raise ImageHostError(message)

    data = payload.get("data") or {}
    return {"url": data.get("url"), "delete_url": data.get("delete_url")}
