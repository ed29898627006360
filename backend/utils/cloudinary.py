import logging

import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError

from config.env import (
    CLOUDINARY_CLOUD_NAME,
    CLOUDINARY_API_KEY,
    CLOUDINARY_API_SECRET,
    REFUND_EVIDENCE_FOLDER,
)

logger = logging.getLogger(__name__)

cloudinary.config(
    cloud_name=CLOUDINARY_CLOUD_NAME,
    api_key=CLOUDINARY_API_KEY,
    api_secret=CLOUDINARY_API_SECRET,
    secure=True,
)


def upload_evidence_image(file, order_id: str) -> dict | None:
    """
    Upload one refund evidence image under the order's folder.
    Returns {"url", "public_id"}, or None when the upload is rejected.
    """
    try:
        result = cloudinary.uploader.upload(
            file,
            folder=f"{REFUND_EVIDENCE_FOLDER}/{order_id}",
            resource_type="image",
        )
    except CloudinaryError:
        logger.exception("EVIDENCE_UPLOAD_FAILED order=%s", order_id)
        return None

    return {"url": result.get("secure_url"), "public_id": result.get("public_id")}


def delete_evidence_images(public_ids: list[str]) -> None:
    """Best-effort removal of images uploaded for an aborted request."""
    for public_id in public_ids:
        try:
            cloudinary.uploader.destroy(public_id, resource_type="image")
        except CloudinaryError:
            logger.exception("EVIDENCE_DELETE_FAILED public_id=%s", public_id)
