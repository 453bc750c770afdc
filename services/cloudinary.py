import logging
from typing import Optional, Tuple

import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError

from core.config import settings

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 5 * 1024 * 1024


class CloudinaryService:
    def __init__(self):
        cloudinary.config(
            cloud_name=settings.CLOUDINARY_CLOUD_NAME,
            api_key=settings.CLOUDINARY_API_KEY,
            api_secret=settings.CLOUDINARY_API_SECRET,
            secure=True,
        )

    def _upload(self, file_data: bytes, public_id: str, folder: str, **options) -> Tuple[bool, Optional[str], Optional[str]]:
        try:
            result = cloudinary.uploader.upload(
                file_data,
                public_id=public_id,
                folder=folder,
                overwrite=True,
                resource_type="image",
                quality="auto",
                fetch_format="auto",
                **options,
            )
            return True, result.get("secure_url"), None
        except CloudinaryError as e:
            logger.warning("Cloudinary upload of %s/%s failed: %s", folder, public_id, e)
            return False, None, str(e)

    def _destroy(self, public_id: str) -> Tuple[bool, Optional[str]]:
        try:
            result = cloudinary.uploader.destroy(public_id)
        except CloudinaryError as e:
            logger.warning("Cloudinary delete of %s failed: %s", public_id, e)
            return False, str(e)
        # "not found" means it is already gone
        if result.get("result") in ("ok", "not found"):
            return True, None
        return False, f"Failed to delete: {result.get('result')}"

    def upload_profile_picture(self, file_data: bytes, user_id: int) -> Tuple[bool, Optional[str], Optional[str]]:
        """
        Upload a square, face-cropped avatar.

        Returns:
            Tuple of (success, url, error)
        """
        return self._upload(
            file_data,
            public_id=f"user_{user_id}_profile",
            folder="profile_pictures",
            width=300,
            height=300,
            crop="fill",
            gravity="face",
        )

    def delete_profile_picture(self, user_id: int) -> Tuple[bool, Optional[str]]:
        return self._destroy(f"profile_pictures/user_{user_id}_profile")

    def upload_product_image(self, file_data: bytes, product_id: int, index: int) -> Tuple[bool, Optional[str], Optional[str]]:
        return self._upload(
            file_data,
            public_id=f"product_{product_id}_{index}",
            folder="products",
            width=800,
            height=800,
            crop="limit",
        )

    def delete_product_image(self, product_id: int, index: int) -> Tuple[bool, Optional[str]]:
        return self._destroy(f"products/product_{product_id}_{index}")


cloudinary_service = CloudinaryService()
