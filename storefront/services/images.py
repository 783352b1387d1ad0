# storefront/services/images.py
import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError
from flask import current_app

from ..errors import UpstreamError

ALLOWED_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp"}


def allowed_image(filename: str) -> bool:
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_EXTENSIONS


class ImageStore:
    """Uploads product images to Cloudinary and deletes them by public id."""

    folder = "storefront/products"

    def __init__(self, cloud_name, api_key, api_secret):
        self.configured = bool(cloud_name and api_key and api_secret)
        if self.configured:
            cloudinary.config(cloud_name=cloud_name, api_key=api_key, api_secret=api_secret, secure=True)

    @classmethod
    def from_config(cls, config):
        return cls(
            config.get("CLOUDINARY_CLOUD_NAME"),
            config.get("CLOUDINARY_API_KEY"),
            config.get("CLOUDINARY_API_SECRET"),
        )

    def upload(self, file_storage):
        """Returns (secure_url, public_id)."""
        if not self.configured:
            raise UpstreamError("Image store is not configured")
        try:
            result = cloudinary.uploader.upload(file_storage.stream, resource_type="image", folder=self.folder)
        except CloudinaryError as e:
            current_app.logger.error("Image upload failed: %s", e)
            raise UpstreamError("Image upload failed")
        current_app.logger.debug("Uploaded image %s", result.get("public_id"))
        return result["secure_url"], result["public_id"]

    def delete(self, public_id):
        if not self.configured or not public_id:
            return
        try:
            cloudinary.uploader.destroy(public_id)
        except CloudinaryError as e:
            current_app.logger.error("Image delete failed for %s: %s", public_id, e)
            raise UpstreamError("Image delete failed")


def get_images() -> ImageStore:
    return current_app.extensions["images"]
