"""Disk storage for images attached to booking requests."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from pathlib import Path

from starlette.datastructures import UploadFile

logger = logging.getLogger(__name__)

MAX_FILE_BYTES = 5 * 1024 * 1024
MAX_FILES = 5
_CHUNK = 64 * 1024


class UploadRejectedError(Exception):
    """An attachment violated the type, size or count limits."""


@dataclass
class StoredImage:
    path: Path
    url: str


class ImageStorage:
    """Writes accepted images under ``upload_dir`` with unique names."""

    def __init__(
        self,
        upload_dir: str,
        url_prefix: str = "/uploads",
        max_file_bytes: int = MAX_FILE_BYTES,
        max_files: int = MAX_FILES,
    ) -> None:
        self.upload_dir = Path(upload_dir)
        self._url_prefix = url_prefix.rstrip("/")
        self._max_file_bytes = max_file_bytes
        self.max_files = max_files

    def _filename(self, original: str | None) -> str:
        suffix = Path(original or "").suffix.lower()
        unique = f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}"
        return f"repair-{unique}{suffix}"

    async def save_all(self, uploads: list[UploadFile]) -> list[StoredImage]:
        """Store every upload; on any failure remove what was already written."""
        if len(uploads) > self.max_files:
            raise UploadRejectedError(f"At most {self.max_files} images are allowed")

        stored: list[StoredImage] = []
        try:
            for upload in uploads:
                stored.append(await self.save(upload))
        except Exception:
            self.discard(stored)
            raise
        return stored

    async def save(self, upload: UploadFile) -> StoredImage:
        content_type = upload.content_type or ""
        if not content_type.startswith("image/"):
            raise UploadRejectedError("Only image files are allowed!")

        self.upload_dir.mkdir(parents=True, exist_ok=True)
        path = self.upload_dir / self._filename(upload.filename)
        written = 0
        try:
            with open(path, "wb") as f:
                while chunk := await upload.read(_CHUNK):
                    written += len(chunk)
                    if written > self._max_file_bytes:
                        raise UploadRejectedError(
                            f"Image exceeds {self._max_file_bytes // (1024 * 1024)}MB limit"
                        )
                    f.write(chunk)
        except Exception:
            path.unlink(missing_ok=True)
            raise
        return StoredImage(path=path, url=f"{self._url_prefix}/{path.name}")

    def discard(self, images: list[StoredImage]) -> None:
        for image in images:
            try:
                image.path.unlink(missing_ok=True)
            except OSError:
                logger.exception("Error deleting file %s", image.path)
