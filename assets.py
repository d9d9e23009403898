"""
Hosted images and icons (Cloudinary).

Uploads are outside any database transaction, so callers pair every
successful upload with a compensating delete.
"""
import io
import logging
import re
import secrets
from typing import Optional

import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError
from pydantic import BaseModel

import config
from schemas import AssetFile

logger = logging.getLogger(__name__)

SVG_CONTENT_TYPE = "image/svg+xml"


class UploadedAsset(BaseModel):
    public_id: str
    secure_url: str
    resource_type: str = "image"


def desired_public_id(file: AssetFile, prefix: Optional[str] = None) -> str:
    """Readable id from ``prefix`` (or the file name) plus a short random suffix."""
    suffix = secrets.token_hex(3)
    if prefix:
        sanitized = re.sub(r"[^a-z0-9_-]", "", re.sub(r"\s+", "_", prefix.strip().lower()))
        if sanitized:
            return f"{sanitized}_{suffix}"
    stem = file.filename.rsplit(".", 1)[0] if "." in file.filename else file.filename
    return f"{stem}_{suffix}"


class CloudinaryAssetStore:
    def __init__(self, root_folder: str = config.ASSET_ROOT_FOLDER):
        self.root_folder = root_folder
        # CLOUDINARY_URL in the environment configures the SDK on import
        if not cloudinary.config().cloud_name:
            logger.warning("Cloudinary is not configured; uploads will fail")

    def _folder(self, folder: str) -> str:
        return f"{self.root_folder}/{folder}" if folder else self.root_folder

    def upload(self, file: AssetFile, folder: str, desired_id: Optional[str] = None,
               resource_type: str = "image") -> Optional[UploadedAsset]:
        options = {"folder": self._folder(folder), "resource_type": resource_type}
        if desired_id is not None:
            options["public_id"] = desired_public_id(file, desired_id)
            options["overwrite"] = False
        if resource_type == "raw":
            # raw keeps SVG icons byte-for-byte
            if file.content_type != SVG_CONTENT_TYPE:
                logger.error("Icon %s is not an SVG (got %s)", file.filename, file.content_type)
                return None
            options["format"] = "svg"
        try:
            result = cloudinary.uploader.upload(io.BytesIO(file.data), **options)
        except CloudinaryError:
            logger.exception("Error uploading %s", file.filename)
            return None
        return UploadedAsset(
            public_id=result["public_id"],
            secure_url=result["secure_url"],
            resource_type=resource_type,
        )

    def delete(self, public_id: str, resource_type: str = "image") -> bool:
        if not public_id or not public_id.strip():
            logger.error("No public_id provided for deletion")
            return False
        try:
            result = cloudinary.uploader.destroy(public_id, resource_type=resource_type)
        except CloudinaryError:
            logger.exception("Error deleting %s", public_id)
            return False
        outcome = result.get("result")
        if outcome == "ok":
            logger.info("Deleted asset %s", public_id)
            return True
        if outcome == "not found":
            logger.info("Asset %s not found, nothing to delete", public_id)
            return True
        logger.warning("Failed to delete %s: %s", public_id, outcome)
        return False
