"""Validation helpers for uploaded image attachments."""

from fastapi import HTTPException, UploadFile

ALLOWED_IMAGE_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/svg+xml",
    "image/heic",
}
ALLOWED_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".heic")
MAX_UPLOAD_BYTES = 20 * 1024 * 1024


def validate_image_file(image_file: UploadFile) -> None:
    """Validate that the uploaded file is an image the upstream composer accepts.

    The content type is checked when present; otherwise the filename
    extension must be a known image extension.
    """
    if not image_file.filename:
        raise HTTPException(status_code=400, detail="Uploaded file must have a filename.")
    if image_file.content_type:
        content_type = image_file.content_type.lower().split(";", 1)[0].strip()
        if content_type not in ALLOWED_IMAGE_TYPES:
            raise HTTPException(status_code=415, detail=f"Unsupported image content type: {image_file.content_type}")
    elif not image_file.filename.lower().endswith(ALLOWED_IMAGE_EXTENSIONS):
        raise HTTPException(status_code=415, detail="Unsupported or missing image content type.")


async def read_image_bytes(image_file: UploadFile) -> bytes:
    """Read validated image bytes, ensuring the upload is neither empty nor oversized."""
    validate_image_file(image_file)
    image_bytes = await image_file.read()
    if not image_bytes:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")
    if len(image_bytes) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="Uploaded file is too large.")
    return image_bytes
