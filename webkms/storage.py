"""
Key-value persistence for locally cached state.

A store maps string keys to string values. Two backends are provided:

- MemoryStore: process-local dict, used in tests and short-lived processes
- FileStore: one file per key under a directory (default ``~/.webkms``)

Any object with async ``get``/``set``/``delete`` methods satisfies the
KeyValueStore protocol and can be injected instead.
"""

import asyncio
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from webkms.config import get_settings


@runtime_checkable
class KeyValueStore(Protocol):
    """Persistence capability injected into SeedCache."""

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class MemoryStore:
    """Dict-backed store. Contents live as long as the instance."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)


class FileStore:
    """
    Durable store keeping each key in its own file.

    Files are created with 0600 permissions. Each write goes to its own
    temporary file and is moved into place, so a reader never sees a partial
    value and concurrent writers of one key resolve to last-write-wins.
    Blocking file I/O runs in a worker thread.
    """

    def __init__(self, directory: str | os.PathLike | None = None):
        """
        Args:
            directory: Where files are kept (defaults to the
                ``seed_cache_dir`` setting)
        """
        if directory is None:
            directory = get_settings().seed_cache_dir
        self.directory = Path(directory).expanduser()

    def _path(self, key: str) -> Path:
        # Sanitize key for filename
        safe_key = key.replace("/", "_").replace("\\", "_").replace(":", "_")
        return self.directory / safe_key

    async def get(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._read, self._path(key))

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write, self._path(key), value)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._path(key).unlink, missing_ok=True)

    @staticmethod
    def _read(path: Path) -> Optional[str]:
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def _write(self, path: Path, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        # mkstemp creates the file 0600 with a name unique to this write
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f"{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
