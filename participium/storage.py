"""
Local filesystem storage for report photos.

Files live under `STORAGE_DIR/reports/<report_id>/` and are served by the API
under the `/storage` mount, so the returned URL stays valid for the lifetime
of the file.
"""

from pathlib import Path
from typing import Optional
import logging
import uuid

from .config import get_settings
from .photo_utils import DecodedPhoto

logger = logging.getLogger("participium.storage")

STORAGE_URL_PREFIX = "/storage"


class LocalPhotoStorage:
    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or get_settings().storage_dir)

    def ensure_root(self) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root

    def save(self, report_id: int, photo: DecodedPhoto) -> str:
        """Write one photo and return its stable reference URL."""
        photo_id = uuid.uuid4().hex
        relative = Path("reports") / str(report_id) / f"{photo_id}.{photo.extension}"
        target = self.ensure_root() / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(photo.data)
        logger.info("Stored photo for report %s at %s", report_id, target)
        return f"{STORAGE_URL_PREFIX}/{relative.as_posix()}"

    def path_for(self, url: str) -> Path:
        if not url.startswith(STORAGE_URL_PREFIX + "/"):
            raise ValueError(f"Not a local storage URL: {url}")
        return self.root / url[len(STORAGE_URL_PREFIX) + 1:]

    def delete(self, url: str) -> bool:
        path = self.path_for(url)
        if path.exists():
            path.unlink()
            return True
        return False


__all__ = ["LocalPhotoStorage", "STORAGE_URL_PREFIX"]
