"""Large-object store for full thread JSON."""

from __future__ import annotations

from pathlib import Path
from urllib.parse import quote

import structlog

logger = structlog.get_logger()


def thread_blob_key(connection_id: str, thread_id: str) -> str:
    """Key of a thread blob: ``"{connection_id}/{thread_id}.json"``."""

    return f"{connection_id}/{thread_id}.json"


class FileSystemBlobStore:
    """Blob store backed by a local directory.

    Key segments are percent-encoded on disk, so thread ids containing
    ``/`` or ``@`` (IMAP Message-IDs) map to a single file.
    """

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    def put(self, key: str, data: str) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(data, encoding="utf-8")
        tmp.replace(path)
        logger.debug("blob_written", key=key, size=len(data))

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def delete(self, key: str) -> bool:
        path = self._path(key)
        if not path.exists():
            return False
        path.unlink()
        return True

    def _path(self, key: str) -> Path:
        connection_id, _, name = key.partition("/")
        return self._root / quote(connection_id, safe="") / quote(name, safe=".")
