import os
import re
import uuid
from typing import Dict, Optional

import errors

# Leading bytes of each accepted image format, as hex
IMAGE_SIGNATURES = {
    "jpg": ("ffd8ffe0", "ffd8ffe1", "ffd8ffe2", "ffd8ffe3", "ffd8ffe8"),
    "png": ("89504e47",),
    "gif": ("47494638",),
    "webp": ("52494646",),
    "bmp": ("424d",),
}


def detect_image_type(head: bytes) -> Optional[str]:
    hex_head = head[:8].hex()
    for image_type, signatures in IMAGE_SIGNATURES.items():
        if any(hex_head.startswith(sig) for sig in signatures):
            return image_type
    return None


def sanitize_filename(filename: str) -> str:
    name = re.sub(r"[^a-zA-Z0-9._-]", "_", filename or "")
    name = re.sub(r"\.{2,}", "_", name)
    return name.lower() or "upload"


def read_upload(stream, max_size_mb: int) -> bytes:
    """Read an upload, never buffering more than one byte past the limit."""
    max_bytes = max_size_mb * 1024 * 1024
    content = stream.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise errors.PayloadTooLarge(details={"max_size_mb": max_size_mb})
    return content


def save_image(content: bytes, filename: str, upload_dir: str, max_size_mb: int) -> Dict[str, str]:
    """Validate an uploaded image and write it under ``upload_dir/images``."""
    if len(content) > max_size_mb * 1024 * 1024:
        raise errors.PayloadTooLarge(details={"max_size_mb": max_size_mb})
    image_type = detect_image_type(content)
    if image_type is None:
        raise errors.ValidationError(code="UNSUPPORTED_FILE_TYPE")

    target_dir = os.path.join(upload_dir, "images")
    os.makedirs(target_dir, exist_ok=True)
    stored_name = f"{uuid.uuid4().hex}-{sanitize_filename(filename)}"
    with open(os.path.join(target_dir, stored_name), "wb") as fh:
        fh.write(content)
    return {"url": f"/uploads/images/{stored_name}", "filename": stored_name, "type": image_type}
