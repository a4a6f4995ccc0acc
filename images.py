"""
Cloudinary-hosted product images.

Uploads happen client-side (the API only receives the hosted URL); this
module only removes images that a product no longer references. Deletes are
best effort: a failure is logged and reported as ``False``, never raised.
"""
import re
from typing import Callable, Iterable, Optional, Protocol
from urllib.parse import urlparse

import cloudinary
import cloudinary.uploader

from logger import get_logger

logger = get_logger("images")

_VERSIONED_PATH = re.compile(r"/v\d+/(.+)\.[A-Za-z0-9]+$")


def extract_public_id(url: Optional[str]) -> Optional[str]:
    """Return the Cloudinary public id for a delivery URL, or None."""
    if not url:
        return None
    path = urlparse(url).path
    match = _VERSIONED_PATH.search(path)
    if match:
        return match.group(1)
    filename = path.rstrip("/").split("/")[-1]
    if filename:
        return filename.split(".")[0]
    return None


class ImageStore(Protocol):
    enabled: bool

    def delete(self, url: str) -> bool: ...

    def delete_many(self, urls: Iterable[str]) -> bool: ...


class CloudinaryImageStore:
    def __init__(self, cloudinary_url: str = "", destroy: Optional[Callable[[str], dict]] = None):
        self._destroy = destroy
        if destroy is None and cloudinary_url:
            parsed = urlparse(cloudinary_url)
            cloudinary.config(
                cloud_name=parsed.hostname,
                api_key=parsed.username,
                api_secret=parsed.password,
                secure=True,
            )
            self._destroy = cloudinary.uploader.destroy

    @property
    def enabled(self) -> bool:
        return self._destroy is not None

    def delete(self, url: str) -> bool:
        if not self.enabled:
            logger.debug("Cloudinary not configured, skipping delete of %s", url)
            return False
        public_id = extract_public_id(url)
        if not public_id:
            return False
        try:
            result = self._destroy(public_id)
            logger.info("Image %s deleted from Cloudinary: %s", public_id, result)
            return True
        except Exception as e:
            logger.error("Error deleting image %s from Cloudinary: %s", public_id, e)
            return False

    def delete_many(self, urls: Iterable[str]) -> bool:
        results = [self.delete(url) for url in urls]
        return all(results)
