"""File API Routes - Signed downloads

The token in the path is the only credential: it names the storage key
and expires after the configured TTL.
"""
from pathlib import PurePosixPath
from fastapi import APIRouter
from fastapi.responses import FileResponse

from ...services.storage_service import StorageService
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()

MEDIA_TYPES = {
    ".pdf": "application/pdf",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
}


@router.get("/files/{token}")
async def download_file(token: str):
    """Serve a stored object through a signed URL"""
    storage = StorageService()
    key = storage.key_from_token(token)
    path = storage.local_path(key)

    filename = PurePosixPath(key).name
    logger.info(f"Serving signed download: {key}")
    return FileResponse(
        path,
        media_type=MEDIA_TYPES.get(path.suffix.lower(), "application/octet-stream"),
        filename=filename,
        headers={"Cache-Control": "no-cache"},
    )
