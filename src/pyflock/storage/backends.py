"""Synchronous key/value backing stores.

A backing store holds raw text per key and nothing else: no parsing, no
schema.  :class:`MemoryStorage` models an origin shared by several contexts
(think browser tabs on one origin): each context opens its own
:class:`StorageArea`, and a write through one area fires a storage-changed
signal on every *other* area.  :class:`FileStorage` persists across restarts
but emits no signals of its own.
"""

from __future__ import annotations

import contextlib
import errno
import logging
import os
import tempfile
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable
from urllib.parse import quote, unquote

from pyflock.exceptions import StorageError, StorageQuotaExceededError, StorageWriteError

_logger = logging.getLogger(__name__)

_FILE_SUFFIX = ".json"


@dataclass(frozen=True)
class StorageSignal:
    """Platform notification that another context mutated a key.

    ``new_value`` is ``None`` when the key was removed.
    """

    key: str
    old_value: str | None
    new_value: str | None


StorageListener = Callable[[StorageSignal], None]


@runtime_checkable
class Storage(Protocol):
    """Backing store contract used by :class:`~pyflock.storage.DurableStore`."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class MemoryStorage:
    """In-memory origin shared by any number of :class:`StorageArea` views.

    Parameters
    ----------
    quota_bytes : int or None
        Upper bound on the summed size of keys and values.  Writes that
        would exceed it raise :class:`StorageQuotaExceededError`.
    """

    def __init__(self, *, quota_bytes: int | None = None) -> None:
        self._data: dict[str, str] = {}
        self._areas: list[StorageArea] = []
        self._quota_bytes = quota_bytes
        self._lock = threading.RLock()

    def open_area(self) -> StorageArea:
        """Open a new context's view of this origin."""
        area = StorageArea(self)
        with self._lock:
            self._areas.append(area)
        return area

    def _close_area(self, area: StorageArea) -> None:
        with self._lock:
            if area in self._areas:
                self._areas.remove(area)

    def _size_with(self, key: str, value: str) -> int:
        total = 0
        for existing_key, existing_value in self._data.items():
            if existing_key == key:
                continue
            total += len(existing_key) + len(existing_value)
        return total + len(key) + len(value)

    def _read(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def _write(self, writer: StorageArea, key: str, value: str) -> None:
        with self._lock:
            if self._quota_bytes is not None and self._size_with(key, value) > self._quota_bytes:
                raise StorageQuotaExceededError(
                    f"Writing {len(value)} chars to {key!r} exceeds quota of {self._quota_bytes}",
                    key=key,
                )
            old_value = self._data.get(key)
            self._data[key] = value
            others = [area for area in self._areas if area is not writer]
        self._broadcast(others, StorageSignal(key=key, old_value=old_value, new_value=value))

    def _remove(self, writer: StorageArea, key: str) -> None:
        with self._lock:
            if key not in self._data:
                return
            old_value = self._data.pop(key)
            others = [area for area in self._areas if area is not writer]
        self._broadcast(others, StorageSignal(key=key, old_value=old_value, new_value=None))

    def _keys(self) -> list[str]:
        with self._lock:
            return list(self._data)

    @staticmethod
    def _broadcast(areas: list[StorageArea], signal: StorageSignal) -> None:
        for area in areas:
            area._deliver(signal)  # noqa: SLF001


class StorageArea:
    """One context's view of a :class:`MemoryStorage` origin."""

    def __init__(self, origin: MemoryStorage) -> None:
        self._origin = origin
        self._listeners: list[StorageListener] = []

    def get_item(self, key: str) -> str | None:
        return self._origin._read(key)  # noqa: SLF001

    def set_item(self, key: str, value: str) -> None:
        self._origin._write(self, key, value)  # noqa: SLF001

    def remove_item(self, key: str) -> None:
        self._origin._remove(self, key)  # noqa: SLF001

    def keys(self) -> list[str]:
        return self._origin._keys()  # noqa: SLF001

    def add_storage_listener(self, listener: StorageListener) -> Callable[[], None]:
        """Register for writes made by other areas of the same origin."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def close(self) -> None:
        """Detach from the origin.  Stored values are left in place."""
        self._listeners.clear()
        self._origin._close_area(self)  # noqa: SLF001

    def _deliver(self, signal: StorageSignal) -> None:
        for listener in list(self._listeners):
            try:
                listener(signal)
            except Exception:
                _logger.exception("Storage listener failed for key=%s", signal.key)


class FileStorage:
    """Directory-backed store: one text file per key, replaced atomically."""

    def __init__(self, directory: Path | str) -> None:
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)

    @property
    def directory(self) -> Path:
        return self._dir

    def _path(self, key: str) -> Path:
        return self._dir / f"{quote(key, safe='')}{_FILE_SUFFIX}"

    def get_item(self, key: str) -> str | None:
        try:
            return self._path(key).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as exc:
            raise StorageError(f"Stored value for {key!r} is not UTF-8 text", key=key) from exc

    def set_item(self, key: str, value: str) -> None:
        target = self._path(key)
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self._dir, prefix=".tmp-", suffix=_FILE_SUFFIX)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(value)
                os.replace(tmp_name, target)
            except BaseException:
                with contextlib.suppress(FileNotFoundError):
                    os.unlink(tmp_name)
                raise
        except OSError as exc:
            if exc.errno in (errno.ENOSPC, errno.EDQUOT):
                raise StorageQuotaExceededError(f"No space left writing {key!r}", key=key) from exc
            raise StorageWriteError(f"Failed writing {key!r}: {exc}", key=key) from exc

    def remove_item(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StorageWriteError(f"Failed removing {key!r}: {exc}", key=key) from exc

    def keys(self) -> list[str]:
        return sorted(self._iter_keys())

    def _iter_keys(self) -> Iterator[str]:
        for path in self._dir.glob(f"*{_FILE_SUFFIX}"):
            if path.name.startswith(".tmp-"):
                continue
            yield unquote(path.name[: -len(_FILE_SUFFIX)])

