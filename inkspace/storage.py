"""Object storage for uploaded binaries, addressed by bucket and path."""
from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)

PORTFOLIOS = "portfolios"
BOOKING_REFERENCES = "booking-references"
MESSAGE_ATTACHMENTS = "message_attachments"


def file_extension(filename: str) -> str:
    name = secure_filename(filename or "")
    if "." not in name:
        return "bin"
    return name.rsplit(".", 1)[1].lower()


def timestamped_path(owner_id: str, filename: str) -> str:
    """``{ownerId}/{timestamp}.{ext}`` with a millisecond timestamp."""
    return f"{owner_id}/{int(time.time() * 1000)}.{file_extension(filename)}"


class ObjectStorage:
    """Filesystem-backed buckets served under a public URL prefix."""

    def __init__(self, root: str, public_url: str) -> None:
        self.root = Path(root)
        self.public_url = public_url.rstrip("/")

    def _resolve(self, bucket: str, path: str) -> Path:
        target = (self.root / bucket / path).resolve()
        bucket_root = (self.root / bucket).resolve()
        if bucket_root not in target.parents:
            raise ValueError(f"path escapes bucket: {path}")
        return target

    def upload(self, bucket: str, path: str, content: bytes, *, upsert: bool = False) -> str:
        target = self._resolve(bucket, path)
        if target.exists() and not upsert:
            raise FileExistsError(f"{bucket}/{path} already exists")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        logger.info("Stored object %s/%s (%d bytes)", bucket, path, len(content))
        return self.get_public_url(bucket, path)

    def get_public_url(self, bucket: str, path: str) -> str:
        return f"{self.public_url}/{bucket}/{path}"

    def path_from_public_url(self, bucket: str, url: str) -> Optional[str]:
        marker = f"/{bucket}/"
        parsed = urlparse(url)
        if marker not in parsed.path:
            return None
        return parsed.path.split(marker, 1)[1] or None

    def read(self, bucket: str, path: str) -> bytes:
        return self._resolve(bucket, path).read_bytes()

    def remove(self, bucket: str, paths: list[str]) -> None:
        for path in paths:
            target = self._resolve(bucket, path)
            if target.exists():
                target.unlink()
