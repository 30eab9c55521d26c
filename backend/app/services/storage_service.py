"""Storage Service - Local object storage with signed, expiring download URLs"""
import os
from pathlib import Path
from typing import Optional

from ..config.settings import settings
from ..domain.errors import NotFoundError, ValidationError
from ..utils.jwt import create_storage_token, verify_storage_token
from ..utils.logger import get_logger

logger = get_logger(__name__)

DOWNLOAD_ROUTE = "/api/v1/files"


class StorageService:
    """Stores objects under a base directory, addressed by slash-separated keys"""

    def __init__(self, base_path: Optional[str] = None):
        self.base_path = Path(base_path or settings.storage_base_path).resolve()

    def _resolve(self, key: str) -> Path:
        path = (self.base_path / key).resolve()
        if self.base_path not in path.parents:
            raise ValidationError(f"Invalid storage key: {key}")
        return path

    def save(self, key: str, data: bytes) -> str:
        """Write data at key, replacing anything already there"""
        path = self._resolve(key)
        path.parent.mkdir(parents=True, exist_ok=True)

        # Write then rename so readers never see a half-written file
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_bytes(data)
        os.replace(tmp_path, path)

        logger.info(f"Stored object: {key} ({len(data)} bytes)")
        return key

    def exists(self, key: str) -> bool:
        return self._resolve(key).is_file()

    def read(self, key: str) -> bytes:
        path = self._resolve(key)
        if not path.is_file():
            raise NotFoundError(f"File {key} not found")
        return path.read_bytes()

    def local_path(self, key: str) -> Path:
        path = self._resolve(key)
        if not path.is_file():
            raise NotFoundError(f"File {key} not found")
        return path

    def signed_url(self, key: str, ttl_seconds: Optional[int] = None) -> str:
        """Relative URL that grants time-limited read access to key"""
        return f"{DOWNLOAD_ROUTE}/{create_storage_token(key, ttl_seconds)}"

    def key_from_token(self, token: str) -> str:
        return verify_storage_token(token)
