"""
Local file store for uploaded reference images and production photos.

Files live flat in one upload directory, which the API also serves read-only
under /uploads. Stored names are always generated here, never taken from the
client, so a name coming back from the database or a URL can be checked with
``path_for`` before touching the filesystem.

Deletion is a companion side effect of a database write: failures are logged
and reported as False, never raised.
"""

from __future__ import annotations

import logging
import secrets
import time
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

from starlette.datastructures import UploadFile

from .errors import PayloadTooLargeError, ValidationError
from .utils import ensure_directory, safe_extension

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class FileStore:
    def __init__(self, root: Path, max_upload_bytes: int = 500 * 1024) -> None:
        self.root = ensure_directory(Path(root)).resolve()
        self.max_upload_bytes = max_upload_bytes

    def generate_name(self, original_filename: str | None) -> str:
        extension = safe_extension(original_filename)
        while True:
            name = f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{extension}"
            if not (self.root / name).exists():
                return name

    def path_for(self, name: str) -> Path:
        """Resolve a stored filename inside the upload directory."""
        if not name or name in {".", ".."} or "/" in name or "\\" in name or "\x00" in name:
            raise ValidationError("Invalid file name")
        path = (self.root / name).resolve()
        if path.parent != self.root:
            raise ValidationError("Invalid file name")
        return path

    async def _read_image(self, upload: UploadFile) -> bytes:
        buffer = bytearray()
        try:
            if not (upload.content_type or "").startswith("image/"):
                raise ValidationError("Only image files are allowed")
            while chunk := await upload.read(CHUNK_SIZE):
                buffer.extend(chunk)
                if len(buffer) > self.max_upload_bytes:
                    raise PayloadTooLargeError(
                        f"File exceeds the {self.max_upload_bytes // 1024} KB limit"
                    )
        finally:
            await upload.close()
        return bytes(buffer)

    async def save_uploads(self, uploads: Sequence[UploadFile]) -> List[str]:
        """
        Validate and store uploaded images.

        Every file is checked (image content type, size cap) before any of
        them is written, so a rejected request leaves nothing behind.

        Returns:
            Generated filenames in the same order as ``uploads``
        """
        payloads: List[Tuple[str | None, bytes]] = []
        for upload in uploads:
            payloads.append((upload.filename, await self._read_image(upload)))

        names: List[str] = []
        try:
            for original, data in payloads:
                name = self.generate_name(original)
                (self.root / name).write_bytes(data)
                names.append(name)
        except OSError:
            self.delete_many(names)
            raise
        logger.info(f"Stored {len(names)} upload(s) in {self.root}")
        return names

    async def save_upload(self, upload: UploadFile) -> str:
        names = await self.save_uploads([upload])
        return names[0]

    def delete(self, name: str | None) -> bool:
        """Remove a stored file. Failures are logged, never raised."""
        if not name:
            return False
        try:
            self.path_for(name).unlink()
        except (OSError, ValidationError) as exc:
            logger.warning(f"Error deleting stored file {name!r}: {exc}")
            return False
        logger.info(f"Deleted stored file {name}")
        return True

    def delete_many(self, names: Iterable[str | None]) -> None:
        for name in names:
            self.delete(name)
