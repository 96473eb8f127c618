"""
Object store implementations for cached image bytes.
"""
import asyncio
import hashlib
import json
import logging
import os
import uuid
from pathlib import Path
from typing import Dict, Optional, Tuple

from random_image_cache.clients.interfaces import IObjectStore, StoredObject
from random_image_cache.utils.errors import StoreReadError, StoreWriteError

logger = logging.getLogger("random_image_cache")


def _tmp_path(path: Path) -> Path:
    return path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")


class InMemoryObjectStore(IObjectStore):
    """In-memory blob store."""

    def __init__(self):
        self._objects: Dict[str, Tuple[bytes, str]] = {}  # key -> (body, content_type)

    async def get(self, key: str) -> Optional[StoredObject]:
        entry = self._objects.get(key)
        if entry is None:
            return None
        body, content_type = entry
        return StoredObject(body=body, content_type=content_type)

    async def put(self, key: str, body: bytes, content_type: str) -> None:
        self._objects[key] = (body, content_type)
        logger.debug(f"ObjectPut key={key} sizeBytes={len(body)} contentType={content_type}")

    async def delete(self, key: str) -> None:
        self._objects.pop(key, None)
        logger.debug(f"ObjectDelete key={key}")

    def __contains__(self, key: str) -> bool:
        return key in self._objects

    def __len__(self) -> int:
        return len(self._objects)


class FileObjectStore(IObjectStore):
    """
    Blob store on the local filesystem.

    Layout:
    root/
    └── objects/
        ├── 3f9a...e1.bin    image bytes
        ├── 3f9a...e1.json   {"key": "...", "contentType": "image/jpeg"}
        └── ...
    """

    def __init__(self, root: str):
        self.dir = Path(root) / "objects"
        self.dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"FileObjectStore dir={self.dir}")

    def _paths(self, key: str) -> Tuple[Path, Path]:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.dir / f"{digest}.bin", self.dir / f"{digest}.json"

    def _read(self, key: str) -> Optional[StoredObject]:
        blob_path, meta_path = self._paths(key)
        if not blob_path.exists():
            return None
        content_type = None
        if meta_path.exists():
            with open(meta_path, "r", encoding="utf-8") as f:
                content_type = json.load(f).get("contentType")
        return StoredObject(body=blob_path.read_bytes(), content_type=content_type)

    def _write(self, key: str, body: bytes, content_type: str) -> None:
        blob_path, meta_path = self._paths(key)
        tmp_path = _tmp_path(blob_path)
        tmp_path.write_bytes(body)
        os.replace(tmp_path, blob_path)
        tmp_meta_path = _tmp_path(meta_path)
        with open(tmp_meta_path, "w", encoding="utf-8") as f:
            json.dump({"key": key, "contentType": content_type}, f)
        os.replace(tmp_meta_path, meta_path)

    def _delete(self, key: str) -> None:
        for path in self._paths(key):
            path.unlink(missing_ok=True)

    async def get(self, key: str) -> Optional[StoredObject]:
        try:
            return await asyncio.to_thread(self._read, key)
        except (OSError, ValueError) as e:
            raise StoreReadError(f"Object read failed for {key}: {type(e).__name__}")

    async def put(self, key: str, body: bytes, content_type: str) -> None:
        try:
            await asyncio.to_thread(self._write, key, body, content_type)
        except OSError as e:
            raise StoreWriteError(f"Object write failed for {key}: {type(e).__name__}")

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._delete, key)
        except OSError as e:
            raise StoreWriteError(f"Object delete failed for {key}: {type(e).__name__}")
