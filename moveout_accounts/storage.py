"""Filesystem-backed object storage holding user uploads and label designs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .domain.contracts import StorageUsage

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StoredObject:
    key: str
    size_bytes: int


class LocalObjectStore:
    """Objects live under ``<root>/<prefix>/<owner_id>/...`` for each configured prefix."""

    def __init__(self, root: str | Path, prefixes: tuple[str, ...]) -> None:
        self._root = Path(root)
        self._prefixes = prefixes

    def _owner_dirs(self, owner_id: str) -> list[Path]:
        if not owner_id or "/" in owner_id or owner_id in (".", ".."):
            raise ValueError(f"invalid owner id: {owner_id!r}")
        return [self._root / prefix / owner_id for prefix in self._prefixes]

    def list_objects(self, owner_id: str) -> list[StoredObject]:
        """Return every object stored for ``owner_id`` across all prefixes."""
        objects: list[StoredObject] = []
        for directory in self._owner_dirs(owner_id):
            if not directory.is_dir():
                continue
            for path in sorted(directory.rglob("*")):
                if path.is_file():
                    objects.append(
                        StoredObject(
                            key=path.relative_to(self._root).as_posix(),
                            size_bytes=path.stat().st_size,
                        )
                    )
        return objects

    def delete_object(self, key: str) -> None:
        """Remove a single object; raises ``OSError`` when it cannot be deleted."""
        path = (self._root / key).resolve()
        if self._root.resolve() not in path.parents:
            raise ValueError(f"object key escapes storage root: {key!r}")
        path.unlink()

    def prune_empty_dirs(self, owner_id: str) -> None:
        """Drop the owner's directories that no longer hold any object."""
        for directory in self._owner_dirs(owner_id):
            if not directory.is_dir():
                continue
            subdirs = sorted((p for p in directory.rglob("*") if p.is_dir()), key=lambda p: len(p.parts), reverse=True)
            for path in [*subdirs, directory]:
                try:
                    path.rmdir()
                except OSError:
                    logger.debug("keeping non-empty directory %s", path)

    def usage(self, owner_id: str) -> StorageUsage:
        """Total bytes for ``owner_id`` plus a per-prefix breakdown (every prefix listed)."""
        objects = self.list_objects(owner_id)
        by_prefix = dict.fromkeys(self._prefixes, 0)
        for obj in objects:
            prefix = obj.key.split("/", 1)[0]
            by_prefix[prefix] += obj.size_bytes
        return StorageUsage(
            total_bytes=sum(obj.size_bytes for obj in objects),
            file_count=len(objects),
            bytes_by_prefix=by_prefix,
        )
