"""Image storage for secondary verification photos using Cloudinary's upload API."""

import asyncio
import hashlib
import logging
import time

import httpx

from src.core.config import constants, settings
from src.core.errors import UploadFailedError


logger = logging.getLogger(__name__)

DATA_URI_PREFIX = "data:image/"

# HTTP status code constants for error handling
HTTP_CLIENT_ERROR_START = 400
HTTP_CLIENT_ERROR_END = 500


def is_image_data_uri(value: str | None) -> bool:
    return bool(value) and value.startswith(DATA_URI_PREFIX)


def sign_params(params: dict[str, str], api_secret: str) -> str:
    """Cloudinary signature: SHA-1 of the sorted ``key=value`` pairs followed by the secret."""
    to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params))
    return hashlib.sha1((to_sign + api_secret).encode()).hexdigest()  # noqa: S324 - required by Cloudinary


async def store_image(raw_image_data: str, *, max_retries: int = 3, retry_delay: float = 1.0) -> str:
    """Upload a data-URI image and return its HTTPS URL.

    Raises:
        UploadFailedError: Missing credentials, client errors, or server/transport
            errors that persist after retries
    """
    try:
        cloud_name = settings.require_credential("cloudinary_cloud_name", "Cloudinary")
        api_key = settings.require_credential("cloudinary_api_key", "Cloudinary")
        api_secret = settings.require_credential("cloudinary_api_secret", "Cloudinary")
    except ValueError as e:
        raise UploadFailedError(str(e)) from e

    url = f"https://api.cloudinary.com/v1_1/{cloud_name}/image/upload"
    params = {"folder": settings.cloudinary_folder, "timestamp": str(int(time.time()))}
    form = {**params, "api_key": api_key, "signature": sign_params(params, api_secret), "file": raw_image_data}

    last_error = "unknown error"
    for attempt in range(max_retries):
        try:
            async with httpx.AsyncClient(timeout=constants.BLOB_UPLOAD_TIMEOUT_SECONDS) as client:
                response = await client.post(url, data=form)

            if response.is_success:
                secure_url = response.json().get("secure_url")
                if not secure_url:
                    raise UploadFailedError("Image store returned no URL")
                logger.info("Stored image", extra={"url": secure_url})
                return secure_url

            if HTTP_CLIENT_ERROR_START <= response.status_code < HTTP_CLIENT_ERROR_END:
                logger.error("Image upload rejected", extra={"status": response.status_code})
                msg = f"Image store rejected the upload ({response.status_code})"
                raise UploadFailedError(msg)

            last_error = f"server error {response.status_code}"
        except httpx.HTTPError as e:
            last_error = str(e)

        if attempt < max_retries - 1:
            await asyncio.sleep(retry_delay * (2**attempt))

    logger.error("Image upload failed after retries", extra={"error": last_error})
    msg = f"Image upload failed after {max_retries} attempts: {last_error}"
    raise UploadFailedError(msg)
