from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter
from fastapi.responses import FileResponse

from .deps import SettingsDep
from .errors import NotFound, ValidationError
from .settings import Settings

router = APIRouter(prefix="/files", tags=["files"])


@router.get("/media/{key}")
async def get_media_file(key: str, settings: Settings = SettingsDep):
    if ".." in key or "/" in key:
        raise ValidationError("Invalid filename")
    if settings.storage_backend != "local":
        raise NotFound("Media is served from object storage")
    path = Path(settings.media_dir) / key
    if not path.exists() or not path.is_file():
        raise NotFound("File not found")
    return FileResponse(path)
