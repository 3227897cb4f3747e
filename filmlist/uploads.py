import asyncio
import secrets
import uuid
from pathlib import Path

from fastapi import APIRouter, HTTPException, UploadFile
from fastapi.responses import FileResponse

from . import config

ALLOWED_PHOTO_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}

router = APIRouter(prefix="/uploads", tags=["uploads"])


def _upload_dir() -> Path:
    return Path(config.UPLOAD_DIR)


def _write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


async def save_photo(film_id: uuid.UUID, photo: UploadFile) -> str:
    """Persist an uploaded photo and return its reference (the stored filename)."""
    suffix = Path(photo.filename or "").suffix.lower()
    if suffix not in ALLOWED_PHOTO_EXTENSIONS:
        raise HTTPException(status_code=400, detail="Unsupported photo type")
    # One byte past the limit is enough to reject without buffering the rest.
    data = await photo.read(config.MAX_UPLOAD_BYTES + 1)
    if not data:
        raise HTTPException(status_code=400, detail="Photo is empty")
    if len(data) > config.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="Photo is too large")

    filename = f"{film_id}_{secrets.token_hex(8)}{suffix}"
    await asyncio.to_thread(_write_bytes, _upload_dir() / filename, data)
    return filename


async def remove_photo(photo_ref: str | None) -> None:
    if not photo_ref:
        return
    path = _upload_dir() / Path(photo_ref).name
    await asyncio.to_thread(path.unlink, missing_ok=True)


def photo_url(photo_ref: str | None) -> str | None:
    if not photo_ref:
        return None
    return f"{router.prefix}/{photo_ref}"


@router.get("/{filename}")
async def get_upload(filename: str):
    safe_name = Path(filename).name
    path = _upload_dir() / safe_name
    if safe_name != filename or not path.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(path)
