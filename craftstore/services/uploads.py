import logging
from pathlib import Path
from uuid import uuid4

from fastapi import UploadFile

from craftstore.core.config import get_settings
from craftstore.core.errors import ValidationError
from craftstore.schemas import UploadedImage

logger = logging.getLogger("craftstore.uploads")

ALLOWED_IMAGE_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
}
PUBLIC_PREFIX = "/uploads"


def upload_root() -> Path:
    root = Path(get_settings().upload_dir)
    root.mkdir(parents=True, exist_ok=True)
    return root


async def store_image(upload: UploadFile) -> UploadedImage:
    """Persist an uploaded product image under a random name and return its public URL."""
    settings = get_settings()
    if not upload or not upload.filename:
        raise ValidationError("No image file provided")

    suffix = Path(upload.filename).suffix.lower()
    if suffix not in ALLOWED_IMAGE_TYPES:
        await upload.close()
        raise ValidationError(
            "Unsupported image type. Upload JPG, PNG, or WebP files.", context={"filename": upload.filename}
        )

    data = await upload.read(settings.upload_max_bytes + 1)
    await upload.close()
    if not data:
        raise ValidationError("Uploaded image is empty")
    if len(data) > settings.upload_max_bytes:
        raise ValidationError("Uploaded image is too large", context={"max_bytes": settings.upload_max_bytes})

    filename = f"{uuid4().hex}{suffix}"
    destination = upload_root() / filename
    destination.write_bytes(data)
    logger.info("product_image_uploaded", extra={"stored_as": filename, "size": len(data)})

    return UploadedImage(
        url=f"{PUBLIC_PREFIX}/{filename}",
        filename=filename,
        size=len(data),
        content_type=ALLOWED_IMAGE_TYPES[suffix],
    )
