"""
Resident photo/document storage on the local filesystem.

Files are written under settings.upload_dir and served back from /uploads.
Deleting is best-effort: failures are logged and never reach the caller.
"""

import logging
import os
import secrets
import time
from typing import Optional

from fastapi import UploadFile

from config import Settings
from errors import ValidationError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024

DOCUMENT_TYPES = {
    "application/pdf",
    "image/jpeg",
    "image/png",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
}


def check_content_type(field: str, content_type: Optional[str]) -> None:
    content_type = (content_type or "").lower()
    if field == "photo":
        if not content_type.startswith("image/"):
            raise ValidationError("Only image files (JPEG, PNG, etc.) are allowed for resident photos")
    elif field == "document":
        if content_type not in DOCUMENT_TYPES:
            raise ValidationError("Only PDF, Word, text, or image documents are allowed")
    else:
        raise ValidationError("Unexpected file field")


def unique_filename(original: Optional[str]) -> str:
    ext = os.path.splitext(original or "")[1].lower()
    return f"{int(time.time() * 1000)}-{secrets.randbelow(10 ** 9)}{ext}"


def save_upload(file: UploadFile, field: str, settings: Settings) -> str:
    check_content_type(field, file.content_type)
    os.makedirs(settings.upload_dir, exist_ok=True)
    name = unique_filename(file.filename)
    path = os.path.join(settings.upload_dir, name)
    written = 0
    with open(path, "wb") as out:
        while True:
            chunk = file.file.read(CHUNK_SIZE)
            if not chunk:
                break
            written += len(chunk)
            if written > settings.max_upload_bytes:
                break
            out.write(chunk)
    if written > settings.max_upload_bytes:
        delete_upload(name, settings)
        raise ValidationError(f"File too large: {field} exceeds {settings.max_upload_bytes} bytes")
    logger.info("Stored %s upload as %s (%d bytes)", field, name, written)
    return name


def delete_upload(name: Optional[str], settings: Settings) -> None:
    if not name:
        return
    path = os.path.join(settings.upload_dir, os.path.basename(name))
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not delete upload %s: %s", path, e)
