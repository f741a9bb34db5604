"""
Object Storage

Stores uploaded files and returns a public URL for them. The default
backend writes to a local directory that main.py serves under /files.
"""

import asyncio
import logging
import mimetypes
import re
import uuid
from pathlib import Path

from school_portal.core.config import settings

logger = logging.getLogger(__name__)

_SAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


def _safe_filename(filename: str | None, content_type: str | None) -> str:
    name = _SAFE_NAME.sub("_", Path(filename or "").name).strip("._") or "upload"
    if not Path(name).suffix and content_type:
        name += mimetypes.guess_extension(content_type) or ""
    return name[:120]


class LocalObjectStorage:
    """Writes objects under a base directory; URLs are rooted at public_url."""

    def __init__(self, base_dir: str | Path, public_url: str):
        self.base_dir = Path(base_dir)
        self.public_url = public_url.rstrip("/")

    def ensure_ready(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)

    async def put(
        self,
        folder: str,
        data: bytes,
        filename: str | None = None,
        content_type: str | None = None,
    ) -> str:
        """
        Store data and return its public URL.

        Args:
            folder: Logical folder (e.g. "applicants/<id>")
            data: File content
            filename: Original filename, sanitised
            content_type: MIME type used when the name has no extension
        """
        key = f"{folder.strip('/')}/{uuid.uuid4().hex}-{_safe_filename(filename, content_type)}"
        path = self.base_dir / key
        path.parent.mkdir(parents=True, exist_ok=True)

        # File I/O in a worker thread to keep the event loop free
        await asyncio.to_thread(path.write_bytes, data)

        logger.info(f"Stored object {key} ({len(data)} bytes)")
        return f"{self.public_url}/{key}"


storage = LocalObjectStorage(settings.upload_dir, settings.public_files_url)


def get_storage() -> LocalObjectStorage:
    """FastAPI dependency returning the object storage backend."""
    return storage
