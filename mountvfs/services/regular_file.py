from __future__ import annotations

import logging
import os
import stat
import threading
import time
from typing import BinaryIO, Protocol

from ..schemas import FileInfo, FileType, PermissionString, Perms

logger = logging.getLogger(__name__)

_READ_BITS = stat.S_IRUSR | stat.S_IRGRP | stat.S_IROTH
_GRANT_BITS = {
    Perms.READ: _READ_BITS,
    Perms.WRITE: stat.S_IWUSR,
    Perms.RW: stat.S_IWUSR | _READ_BITS,
}


class FileHandle(Protocol):
    def write(self, data: bytes, offset: int = 0, size: int | None = None) -> int:
        ...

    def read(self, size: int, offset: int = 0) -> bytes:
        ...

    def read_all(self) -> bytes:
        ...

    def close(self) -> None:
        ...

    def info(self) -> FileInfo | None:
        ...

    def size(self) -> int:
        ...

    def filename(self) -> str:
        ...

    def permission(self) -> PermissionString:
        ...

    def set_permission(self, mode: Perms) -> None:
        ...

    def disable_write(self) -> None:
        ...

    def disable_read(self) -> None:
        ...

    def disable_all(self) -> None:
        ...


def _open_reader(path: str) -> BinaryIO | None:
    try:
        return open(path, 'rb', buffering=0)
    except OSError as exc:
        logger.debug('Read stream unavailable for %s: %s', path, exc)
        return None


def _open_writer(path: str) -> BinaryIO | None:
    # O_WRONLY without O_TRUNC; the fd-backed stream never truncates
    try:
        fd = os.open(path, os.O_WRONLY)
    except OSError as exc:
        logger.debug('Write stream unavailable for %s: %s', path, exc)
        return None
    writer = open(fd, 'wb', buffering=0)
    writer.seek(0, os.SEEK_END)
    return writer


def _mode_bits(path: str) -> int:
    try:
        return stat.S_IMODE(os.stat(path).st_mode)
    except OSError:
        return 0


class SynchronizedFile:
    """One open regular file shared between threads.

    A write holds the in-progress flag for its whole host transfer, which
    keeps other writes and new reads out. Reads wait for that flag only, so
    several reads may run side by side; they share one read cursor.
    """

    def __init__(self, path: str):
        self._path = path
        self._perms = _mode_bits(path)
        self._reader = _open_reader(path)
        self._writer = _open_writer(path)
        self._access = os.path.exists(path) and (self._reader is not None or self._writer is not None)
        self._closed = False
        self._writing = False
        self._readers = 0
        self._lock = threading.Lock()
        self._cv = threading.Condition(self._lock)

    def __enter__(self) -> SynchronizedFile:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __repr__(self) -> str:
        return f'SynchronizedFile({self._path!r}, {self.permission().value})'

    @property
    def accessible(self) -> bool:
        return self._access

    def _can_write(self) -> bool:
        return self._access and self._writer is not None and bool(self._perms & stat.S_IWUSR)

    def _can_read(self) -> bool:
        return self._access and self._reader is not None and bool(self._perms & stat.S_IRUSR)

    def write(self, data: bytes, offset: int = 0, size: int | None = None) -> int:
        """Write ``size`` bytes of ``data`` and return how many reached the file.

        ``offset == 0`` continues at the write cursor, which starts at end of
        file. A non-zero offset is measured from the start of the file and the
        cursor goes back to end of file afterwards, so the next offset-less
        write appends.
        """
        count = len(data) if size is None else max(0, min(size, len(data)))
        with self._cv:
            if not self._can_write():
                return 0
            self._cv.wait_for(lambda: not self._writing and self._readers == 0)
            if not self._can_write():
                return 0
            writer = self._writer
            self._writing = True

        written = 0
        try:
            if offset > 0:
                writer.seek(offset, os.SEEK_SET)
            written = writer.write(bytes(data[:count])) or 0
            if offset > 0:
                writer.seek(0, os.SEEK_END)
        except (OSError, ValueError) as exc:
            logger.warning('Write to %s failed: %s', self._path, exc)
        finally:
            with self._cv:
                self._writing = False
                self._cv.notify_all()
        return written

    def read(self, size: int, offset: int = 0) -> bytes:
        with self._cv:
            if not self._can_read():
                return b''
            self._cv.wait_for(lambda: not self._writing)
            # close() or disable_all() may have happened while waiting
            if not self._can_read():
                return b''
            total = self.size()
            if offset > total:
                return b''
            count = max(0, min(size, total))
            reader = self._reader
            self._readers += 1

        try:
            reader.seek(offset, os.SEEK_SET)
            return reader.read(count) or b''
        except (OSError, ValueError) as exc:
            logger.warning('Read from %s failed: %s', self._path, exc)
            return b''
        finally:
            with self._cv:
                self._readers -= 1
                self._cv.notify_all()

    def read_all(self) -> bytes:
        with self._lock:
            total = self.size()
        return self.read(total, 0)

    def close(self) -> None:
        with self._cv:
            if self._closed:
                return
            # refuse new transfers, then let the ones in flight finish
            self._access = False
            self._cv.wait_for(lambda: not self._writing and self._readers == 0)
            for stream in (self._writer, self._reader):
                if stream is None:
                    continue
                try:
                    stream.flush()
                    stream.close()
                except OSError as exc:
                    logger.warning('Closing %s failed: %s', self._path, exc)
            self._writer = None
            self._reader = None
            self._access = False
            self._closed = True

    def info(self) -> FileInfo | None:
        try:
            mtime = os.stat(self._path).st_mtime
        except OSError:
            return None
        return FileInfo(
            type=FileType.REGULAR,
            permissions=self.permission(),
            size=self.size(),
            modified_time=time.ctime(mtime),
            name=self._path,
        )

    def size(self) -> int:
        try:
            return os.path.getsize(self._path)
        except OSError:
            return 0

    def filename(self) -> str:
        return self._path

    def permission(self) -> PermissionString:
        readable = bool(self._perms & stat.S_IRUSR)
        writable = bool(self._perms & stat.S_IWUSR)
        if readable and writable:
            return PermissionString.RW
        if readable:
            return PermissionString.READ
        if writable:
            return PermissionString.WRITE
        return PermissionString.NONE

    def _persist(self) -> None:
        try:
            os.chmod(self._path, self._perms)
        except OSError as exc:
            logger.warning('chmod %s to %o failed: %s', self._path, self._perms, exc)

    def set_permission(self, mode: Perms) -> None:
        with self._cv:
            self._perms |= _GRANT_BITS[Perms(mode)]
            self._persist()
            if self._closed:
                return
            if self._reader is None:
                self._reader = _open_reader(self._path)
            if self._writer is None:
                self._writer = _open_writer(self._path)
            self._access = True

    def disable_write(self) -> None:
        with self._cv:
            self._perms &= ~stat.S_IWUSR
            self._persist()

    def disable_read(self) -> None:
        with self._cv:
            self._perms &= ~stat.S_IRUSR
            self._persist()

    def disable_all(self) -> None:
        with self._cv:
            self._access = False


class MockFile:
    def __init__(self, name: str = 'mock', data: bytes = b'', permissions: PermissionString = PermissionString.RW):
        self.name = name
        self.data = bytearray(data)
        self.permissions = permissions
        self.accessible = True
        self.calls: list[dict] = []

    def _record(self, op: str, **kwargs) -> None:
        self.calls.append({'op': op, **kwargs})

    def write(self, data: bytes, offset: int = 0, size: int | None = None) -> int:
        self._record('write', offset=offset, size=size)
        if not self.accessible or 'w' not in self.permissions.value:
            return 0
        chunk = bytes(data if size is None else data[:size])
        start = offset if offset > 0 else len(self.data)
        self.data[start:start + len(chunk)] = chunk
        return len(chunk)

    def read(self, size: int, offset: int = 0) -> bytes:
        self._record('read', offset=offset, size=size)
        if not self.accessible or 'r' not in self.permissions.value or offset > len(self.data):
            return b''
        return bytes(self.data[offset:offset + min(size, len(self.data))])

    def read_all(self) -> bytes:
        return self.read(len(self.data), 0)

    def close(self) -> None:
        self._record('close')
        self.accessible = False

    def info(self) -> FileInfo | None:
        return FileInfo(permissions=self.permissions, size=len(self.data), modified_time='', name=self.name)

    def size(self) -> int:
        return len(self.data)

    def filename(self) -> str:
        return self.name

    def permission(self) -> PermissionString:
        return self.permissions

    def set_permission(self, mode: Perms) -> None:
        self._record('set_permission', mode=mode)
        current = self.permissions.value
        readable = 'r' in current or mode in (Perms.READ, Perms.RW)
        writable = 'w' in current or mode in (Perms.WRITE, Perms.RW)
        self.permissions = PermissionString(('r' if readable else '-') + ('w' if writable else '-'))
        self.accessible = True

    def disable_write(self) -> None:
        self._record('disable_write')
        self.permissions = PermissionString(self.permissions.value[0] + '-')

    def disable_read(self) -> None:
        self._record('disable_read')
        self.permissions = PermissionString('-' + self.permissions.value[1])

    def disable_all(self) -> None:
        self._record('disable_all')
        self.accessible = False
