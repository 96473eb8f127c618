"""
Metadata store implementations: in-memory and local filesystem.

Both behave like an eventually consistent key-value store with last-writer-wins
puts; neither offers conditional writes.
"""
import asyncio
import hashlib
import json
import logging
import os
import uuid
from pathlib import Path
from typing import Dict, List, Optional

from random_image_cache.clients.interfaces import IMetadataStore, KeyPage
from random_image_cache.utils.errors import StoreReadError, StoreWriteError

logger = logging.getLogger("random_image_cache")


def _tmp_path(path: Path) -> Path:
    """Unique temp file next to the target."""
    return path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")


class InMemoryMetadataStore(IMetadataStore):
    """Process-local metadata store."""

    def __init__(self):
        self._values: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    async def put(self, key: str, value: str) -> None:
        self._values[key] = value
        logger.debug(f"MetadataPut key={key} sizeBytes={len(value)}")

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)
        logger.debug(f"MetadataDelete key={key}")

    async def list_keys(self, cursor: Optional[str] = None, limit: int = 1000) -> KeyPage:
        keys = sorted(self._values)
        start = int(cursor) if cursor else 0
        page = keys[start:start + limit]
        end = start + len(page)
        complete = end >= len(keys)
        return KeyPage(keys=page, cursor=None if complete else str(end), complete=complete)


class FileMetadataStore(IMetadataStore):
    """
    Metadata store backed by one JSON file per key.

    Cache keys contain `&`, `=` and `,`, so files are named by the SHA-256 of
    the key and the key itself is stored inside the file.

    Layout:
    root/
    └── metadata/
        ├── 3f9a...e1.json   {"key": "...", "value": "..."}
        └── ...
    """

    def __init__(self, root: str):
        self.dir = Path(root) / "metadata"
        self.dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"FileMetadataStore dir={self.dir}")

    def _path(self, key: str) -> Path:
        return self.dir / f"{hashlib.sha256(key.encode('utf-8')).hexdigest()}.json"

    def _read(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)["value"]

    def _write(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_path = _tmp_path(path)
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump({"key": key, "value": value}, f)
        os.replace(tmp_path, path)

    def _list(self) -> List[str]:
        keys = []
        for path in self.dir.glob("*.json"):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    keys.append(json.load(f)["key"])
            except (OSError, ValueError, KeyError) as e:
                logger.warning(f"Skipping unreadable metadata file {path.name}: {type(e).__name__}")
        return sorted(keys)

    async def get(self, key: str) -> Optional[str]:
        try:
            return await asyncio.to_thread(self._read, key)
        except (OSError, ValueError, KeyError) as e:
            raise StoreReadError(f"Metadata read failed for {key}: {type(e).__name__}")

    async def put(self, key: str, value: str) -> None:
        try:
            await asyncio.to_thread(self._write, key, value)
        except OSError as e:
            raise StoreWriteError(f"Metadata write failed for {key}: {type(e).__name__}")

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._path(key).unlink, missing_ok=True)
        except OSError as e:
            raise StoreWriteError(f"Metadata delete failed for {key}: {type(e).__name__}")

    async def list_keys(self, cursor: Optional[str] = None, limit: int = 1000) -> KeyPage:
        try:
            keys = await asyncio.to_thread(self._list)
        except OSError as e:
            raise StoreReadError(f"Metadata listing failed: {type(e).__name__}")
        start = int(cursor) if cursor else 0
        page = keys[start:start + limit]
        end = start + len(page)
        complete = end >= len(keys)
        return KeyPage(keys=page, cursor=None if complete else str(end), complete=complete)
