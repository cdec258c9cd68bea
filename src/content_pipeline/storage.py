"""Vault storage: the file-system seam of the engine.

The engine only talks to the ``Storage`` protocol. ``VaultStorage`` is
the concrete adapter over a local directory. All paths crossing this
boundary are vault-relative POSIX strings and are checked with
``paths.validate_path`` before touching the disk.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from content_pipeline import paths
from content_pipeline.errors import FileSystemError
from content_pipeline.models import FileInfo

_log = logging.getLogger("content_pipeline")


@dataclass(frozen=True)
class FileStat:
    size: int
    mtime_ms: float


@runtime_checkable
class Storage(Protocol):
    async def list_files(self, directory: str, recursive: bool = True) -> list[str]: ...

    async def read_file(self, path: str) -> str: ...

    async def read_bytes(self, path: str) -> bytes: ...

    async def write_file(
        self,
        path: str,
        text: str,
        *,
        create_directories: bool = True,
        overwrite: bool = True,
    ) -> str: ...

    async def move_file(self, path: str, dest_path: str) -> str: ...

    async def exists(self, path: str) -> bool: ...

    async def stat(self, path: str) -> FileStat: ...

    async def file_info(self, path: str) -> FileInfo: ...


class VaultStorage:
    """Storage rooted at a directory on the local file system."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _resolve(self, path: str, context: str = "path") -> Path:
        return self.root / paths.normalize_path(paths.validate_path(path, context))

    def _relative(self, absolute: Path) -> str:
        return absolute.relative_to(self.root).as_posix()

    async def list_files(self, directory: str, recursive: bool = True) -> list[str]:
        """List files under *directory*. A missing directory yields ``[]``."""
        base = self._resolve(directory, "directory")
        if not base.is_dir():
            return []
        found = base.rglob("*") if recursive else base.iterdir()
        return sorted(self._relative(p) for p in found if p.is_file())

    async def read_file(self, path: str) -> str:
        target = self._resolve(path, "file path")
        self._require_file(target, path)
        try:
            return target.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise FileSystemError(f"Failed to read {path}: {e}") from e

    async def read_bytes(self, path: str) -> bytes:
        target = self._resolve(path, "file path")
        self._require_file(target, path)
        try:
            return target.read_bytes()
        except OSError as e:
            raise FileSystemError(f"Failed to read {path}: {e}") from e

    async def write_file(
        self,
        path: str,
        text: str,
        *,
        create_directories: bool = True,
        overwrite: bool = True,
    ) -> str:
        target = self._resolve(path, "file path")
        if target.is_dir():
            raise FileSystemError(f"Cannot write {path}: path is a directory")
        if target.exists() and not overwrite:
            raise FileSystemError(f"Cannot write {path}: file already exists")
        if not target.parent.is_dir():
            if not create_directories:
                raise FileSystemError(f"Cannot write {path}: parent directory missing")
            self._make_dirs(target.parent)
        try:
            target.write_text(text, encoding="utf-8")
        except OSError as e:
            raise FileSystemError(f"Failed to write {path}: {e}") from e
        return self._relative(target)

    async def move_file(self, path: str, dest_path: str) -> str:
        source = self._resolve(path, "file path")
        dest = self._resolve(dest_path, "destination path")
        self._require_file(source, path)
        if dest.exists():
            raise FileSystemError(f"Cannot move {path}: {dest_path} already exists")
        self._make_dirs(dest.parent)
        try:
            shutil.move(str(source), str(dest))
        except OSError as e:
            raise FileSystemError(f"Failed to move {path} to {dest_path}: {e}") from e
        _log.debug("Moved %s -> %s", path, dest_path)
        return self._relative(dest)

    async def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    async def stat(self, path: str) -> FileStat:
        target = self._resolve(path, "file path")
        self._require_file(target, path)
        st = target.stat()
        return FileStat(size=st.st_size, mtime_ms=st.st_mtime * 1000)

    async def file_info(self, path: str) -> FileInfo:
        st = await self.stat(path)
        return FileInfo.build(paths.normalize_path(path), st.size, st.mtime_ms)

    def _require_file(self, target: Path, path: str) -> None:
        if not target.exists():
            raise FileSystemError(f"File not found: {path}")
        if not target.is_file():
            raise FileSystemError(f"Not a file: {path}")

    def _make_dirs(self, directory: Path) -> None:
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as e:
            raise FileSystemError(
                f"Failed to create directory {self._relative(directory)}: {e}"
            ) from e


async def unique_path(
    storage: Storage,
    path: str,
    taken: set[str] | None = None,
    *,
    avoid_existing: bool = True,
) -> str:
    """Return *path*, or ``name-1.ext``, ``name-2.ext``... if it is in use.

    A path is in use when it is in *taken* or, with *avoid_existing*,
    already exists in storage.
    """
    taken = taken or set()
    candidate = path
    counter = 0
    while candidate in taken or (avoid_existing and await storage.exists(candidate)):
        counter += 1
        candidate = paths.numbered(path, counter)
    return candidate
