"""Local-disk FileStore for deal and KYC uploads.

Files land in ``<upload_dir>/<category>/<uuid><suffix>`` and are addressed
by the URL ``/uploads/<category>/<name>``. Disk I/O runs in a worker thread
so the event loop never blocks on it.
"""

from __future__ import annotations

import asyncio
import re
import uuid
from pathlib import Path

from safe_transfer.domain.exceptions import FileStoreError
from safe_transfer.domain.ports import FileMetadata
from safe_transfer.logging_config import get_logger

logger = get_logger(__name__)

URL_PREFIX = "/uploads/"
_SAFE_PART = re.compile(r"[^A-Za-z0-9_-]")


class LocalFileStore:
    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    def _path_for(self, url: str) -> Path | None:
        if not url.startswith(URL_PREFIX):
            return None
        path = (self._root / url[len(URL_PREFIX):]).resolve()
        if self._root.resolve() not in path.parents:
            return None
        return path

    async def store(self, data: bytes, metadata: FileMetadata) -> str:
        category = _SAFE_PART.sub("", metadata.category or "misc") or "misc"
        suffix = Path(metadata.filename).suffix.lower()
        if not re.fullmatch(r"\.[a-z0-9]{1,8}", suffix):
            suffix = ""
        name = f"{uuid.uuid4().hex}{suffix}"
        path = self._root / category / name

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            logger.error("file_store.write_failed", path=str(path), error=str(exc))
            raise FileStoreError(f"Could not store {metadata.filename}") from exc

        url = f"{URL_PREFIX}{category}/{name}"
        logger.info("file_store.stored", url=url, size=len(data), owner_id=metadata.owner_id)
        return url

    async def delete(self, url: str) -> bool:
        path = self._path_for(url)
        if path is None:
            logger.warning("file_store.unknown_url", url=url)
            return False

        def _unlink() -> bool:
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            return True

        try:
            removed = await asyncio.to_thread(_unlink)
        except OSError as exc:
            raise FileStoreError(f"Could not delete {url}") from exc
        logger.info("file_store.deleted", url=url, removed=removed)
        return removed
