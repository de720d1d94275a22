"""
CityPulse Media Store

Keeps the original upload under a bucket-style directory tree on local
disk. Keys follow `raw/<epoch_ms>-<name>`.
"""

import json
import logging
import os
import time
from pathlib import Path
from typing import Optional

from citypulse.config import CityPulseConfig, DEFAULT_CONFIG
from citypulse.errors import UpstreamServiceError
from citypulse.schemas import StorageLocation

logger = logging.getLogger(__name__)


RAW_PREFIX = "raw"


class MediaStore:
    """
    Object-style storage for uploaded media.

    Layout:
        <storage_root>/<bucket>/raw/<epoch_ms>-<name>
        <storage_root>/<bucket>/raw/<epoch_ms>-<name>.meta.json
    """

    def __init__(self, root: str = "data/media", bucket: str = "citypulse-media"):
        self.root = Path(root)
        self.bucket = bucket

    def object_path(self, key: str) -> Path:
        return self.root / self.bucket / key

    def store(self, data: bytes, name: str, mime_type: str) -> StorageLocation:
        """
        Store media bytes and return their location.

        Args:
            data: File contents
            name: Original file name (directory parts are dropped)
            mime_type: Content type recorded alongside the object

        Returns:
            StorageLocation with bucket and key

        Raises:
            UpstreamServiceError: the object could not be written
        """
        safe_name = Path(name or "upload").name or "upload"
        key = f"{RAW_PREFIX}/{int(time.time() * 1000)}-{safe_name}"
        path = self.object_path(key)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)
            with open(f"{path}.meta.json", "w", encoding="utf-8") as f:
                json.dump({"content_type": mime_type, "size": len(data)}, f)
        except OSError as e:
            raise UpstreamServiceError("storage", f"Failed to store {key}: {e}") from e

        logger.info("Stored %d bytes at %s/%s", len(data), self.bucket, key)
        return StorageLocation(bucket=self.bucket, key=key)

    def store_file(self, path: str, name: str, mime_type: str) -> StorageLocation:
        """Store the contents of a local file"""
        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError as e:
            raise UpstreamServiceError("storage", f"Cannot read {path}: {e}") from e
        return self.store(data, name, mime_type)

    def exists(self, key: str) -> bool:
        return os.path.isfile(self.object_path(key))


def get_media_store(config: Optional[CityPulseConfig] = None) -> MediaStore:
    """Create a media store from config"""
    if config is None:
        config = DEFAULT_CONFIG
    return MediaStore(root=config.storage_root, bucket=config.storage_bucket)
