# storage.py
"""
Template image I/O: downloading rendered mockups and, when Cloudinary is
configured, re-hosting them. Printful mockup URLs are temporary, so a stored
vendor URL eventually stops resolving.
"""

import asyncio
import logging
from typing import Optional

import cloudinary
import cloudinary.uploader
import cloudinary.utils
import httpx

from settings import settings

log = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT = 60  # Seconds


class TemplateStorageError(Exception):
    """A template image could not be downloaded or re-hosted."""


async def download_image(url: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> bytes:
    """Fetches a rendered template image."""
    try:
        async with httpx.AsyncClient(timeout=DOWNLOAD_TIMEOUT, transport=transport) as client:
            response = await client.get(url, follow_redirects=True)
            response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise TemplateStorageError(
            f"Failed to fetch mockup image ({e.response.status_code}): {url}"
        ) from e
    except httpx.RequestError as e:
        raise TemplateStorageError(f"Network error fetching mockup image {url}: {e}") from e
    return response.content


def cloudinary_enabled() -> bool:
    return bool(
        settings.CLOUDINARY_CLOUD_NAME
        and settings.CLOUDINARY_API_KEY
        and settings.CLOUDINARY_API_SECRET
    )


def configure_cloudinary() -> None:
    cloudinary.config(
        cloud_name=settings.CLOUDINARY_CLOUD_NAME,
        api_key=settings.CLOUDINARY_API_KEY,
        api_secret=settings.CLOUDINARY_API_SECRET,
        secure=True,  # Always use HTTPS URLs
    )


async def rehost_template(source_url: str, variant_id: int) -> str:
    """
    Uploads a vendor template (by URL) to Cloudinary and returns its secure URL.

    The public id is stable per variant, so a regenerated template replaces
    the previous one.
    """
    public_id = f"variant_{variant_id}"

    def sync_upload():
        return cloudinary.uploader.upload(
            source_url,
            folder=settings.CLOUDINARY_MOCKUP_FOLDER,
            public_id=public_id,
            resource_type="image",
            overwrite=True,
            unique_filename=False,
        )

    try:
        upload_result = await asyncio.to_thread(sync_upload)
    except Exception as e:
        # The SDK raises its own Error type as well as transport errors.
        raise TemplateStorageError(f"Cloudinary upload failed for variant {variant_id}: {e}") from e

    secure_url = upload_result.get("secure_url")
    if not secure_url and upload_result.get("public_id"):
        log.warning(f"Cloudinary response missing 'secure_url'. Constructing it. Result: {upload_result}")
        secure_url = cloudinary.utils.cloudinary_url(
            upload_result["public_id"],
            resource_type=upload_result.get("resource_type", "image"),
            version=upload_result.get("version"),
            secure=True,
        )[0]
    if not secure_url:
        raise TemplateStorageError(f"Cloudinary returned no URL for variant {variant_id}")

    log.info(f"Template for variant {variant_id} persisted to {secure_url}")
    return secure_url


class TemplateStore:
    """Decides where a rendered template URL is kept."""

    def __init__(self, rehost: Optional[bool] = None):
        self.rehost = cloudinary_enabled() if rehost is None else rehost
        if self.rehost:
            configure_cloudinary()

    async def persist(self, vendor_url: str, variant_id: int) -> str:
        if not self.rehost:
            return vendor_url
        try:
            return await rehost_template(vendor_url, variant_id)
        except TemplateStorageError as e:
            log.warning(f"{e}. Keeping the vendor URL.")
            return vendor_url
