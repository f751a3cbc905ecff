import logging
import os
import re
import secrets
import time
from dataclasses import dataclass
from pathlib import Path

from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool

from agency_backend.core.config import settings
from agency_backend.core.exceptions import ValidationFailed

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {
    "application/pdf": {".pdf"},
    "image/jpeg": {".jpg", ".jpeg"},
    "image/png": {".png"},
    "image/gif": {".gif"},
    "image/webp": {".webp"},
}


@dataclass(frozen=True)
class StoredFile:
    file_name: str
    original_name: str
    relative_path: str
    mime_type: str
    size: int


def upload_root() -> Path:
    return Path(settings.UPLOAD_DIR).resolve()


def sanitize_filename(name: str) -> str:
    stem = Path(name or "document").stem
    cleaned = re.sub(r"[^A-Za-z0-9_-]+", "-", stem).strip("-")
    return cleaned[:50] or "document"


async def read_validated(upload: UploadFile) -> bytes:
    """Read an upload, enforcing the type whitelist and the size cap."""
    mime_type = (upload.content_type or "").lower()
    extension = Path(upload.filename or "").suffix.lower()
    allowed_extensions = ALLOWED_MIME_TYPES.get(mime_type)
    if allowed_extensions is None or (extension and extension not in allowed_extensions):
        raise ValidationFailed(
            f"Invalid file type for '{upload.filename}'. Only PDF, JPEG, PNG, GIF and WebP files are allowed",
            code="INVALID_FILE_TYPE",
        )
    content = await upload.read(settings.MAX_UPLOAD_SIZE + 1)
    if len(content) > settings.MAX_UPLOAD_SIZE:
        limit_mb = settings.MAX_UPLOAD_SIZE // (1024 * 1024)
        raise ValidationFailed(f"File '{upload.filename}' is too large. Maximum size is {limit_mb}MB",
                               code="FILE_TOO_LARGE")
    if not content:
        raise ValidationFailed(f"File '{upload.filename}' is empty", code="EMPTY_FILE")
    return content


def _write_file(folder: Path, file_name: str, content: bytes) -> None:
    folder.mkdir(parents=True, exist_ok=True)
    (folder / file_name).write_bytes(content)


async def save_bytes(application_id: str, original_name: str, mime_type: str, content: bytes) -> StoredFile:
    """Write a file to ``<UPLOAD_DIR>/<application_id>/<name>-<millis>-<random><ext>`` off the event loop."""
    folder = upload_root() / str(application_id)
    extension = Path(original_name or "").suffix.lower() or sorted(ALLOWED_MIME_TYPES.get(mime_type, {""}))[0]
    file_name = f"{sanitize_filename(original_name)}-{int(time.time() * 1000)}-{secrets.token_hex(4)}{extension}"
    await run_in_threadpool(_write_file, folder, file_name, content)
    return StoredFile(
        file_name=file_name,
        original_name=original_name or file_name,
        relative_path=f"{application_id}/{file_name}",
        mime_type=mime_type,
        size=len(content),
    )


def resolve_path(relative_path: str) -> Path:
    root = upload_root()
    path = (root / relative_path).resolve()
    if root not in path.parents:
        raise ValidationFailed("Invalid file path")
    return path


def remove_file(relative_path: str) -> bool:
    try:
        path = resolve_path(relative_path)
        if path.exists():
            os.remove(path)
            return True
    except (OSError, ValidationFailed) as e:
        logger.warning("Could not remove stored file %s: %s", relative_path, e)
    return False


def remove_application_folder(application_id: str) -> None:
    folder = upload_root() / str(application_id)
    if not folder.is_dir():
        return
    for child in folder.iterdir():
        try:
            child.unlink()
        except OSError as e:
            logger.warning("Could not remove %s: %s", child, e)
    try:
        folder.rmdir()
    except OSError as e:
        logger.warning("Could not remove folder %s: %s", folder, e)
