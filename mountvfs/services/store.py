from __future__ import annotations

import logging
import os
import shutil
import stat
import threading
from typing import Protocol

from ..config import settings
from ..schemas import NOT_FOUND, FileType, Perms, StoreUsage
from .path_guard import PathGuard
from .regular_file import FileHandle, MockFile, SynchronizedFile
from .usage import volume_usage

logger = logging.getLogger(__name__)


class Store(Protocol):
    def path(self) -> str:
        ...

    def is_mounted(self) -> bool:
        ...

    def mount(self, path: str) -> bool:
        ...

    def unmount(self) -> bool:
        ...

    def open(self, path: str, mode: Perms = Perms.RW) -> FileHandle | None:
        ...

    def touch_file(self, path: str) -> bool:
        ...

    def make_dir(self, path: str) -> bool:
        ...

    def remove(self, path: str) -> bool:
        ...

    def move_to(self, src: str, dst: str, other: Store | None = None) -> bool:
        ...

    def list(self, directory: str = '.') -> list[str]:
        ...

    def contain(self, path: str) -> bool:
        ...

    def search(self, path: str) -> str:
        ...

    def copy(self, src: str, dst: str) -> bool:
        ...

    def file_type(self, path: str) -> FileType:
        ...

    def usage(self) -> StoreUsage | None:
        ...


def _with_separator(path: str) -> str:
    path = os.path.abspath(path)
    return path if path.endswith(os.sep) else path + os.sep


def _classify(mode: int) -> FileType:
    if stat.S_ISFIFO(mode):
        return FileType.PIPE
    if stat.S_ISSOCK(mode):
        return FileType.SOCKET
    if stat.S_ISLNK(mode):
        return FileType.SYMLINK
    if stat.S_ISDIR(mode):
        return FileType.DIRECTORY
    if stat.S_ISREG(mode):
        return FileType.REGULAR
    if stat.S_ISBLK(mode):
        return FileType.BLOCK
    return FileType.IMPLEMENTATION_DEFINED


def _owner_rw(target: str) -> bool:
    mode = os.stat(target).st_mode
    return bool(mode & stat.S_IRUSR) and bool(mode & stat.S_IWUSR)


class MountedStore:
    """A directory tree of the host exposed through relative paths only.

    Every public operation except ``path`` and ``is_mounted`` holds the store
    lock from start to finish and reports failure through its return value.
    A path rejected by the guard looks exactly like a missing one.
    """

    def __init__(self, root: str | None = None, strict: bool | None = None):
        self._root = ''
        self._mounted = False
        self._strict = settings.strict_confinement if strict is None else strict
        self._guard = PathGuard('', self._strict)
        self._lock = threading.Lock()
        self.mount(settings.vfs_root if root is None else root)

    def __enter__(self) -> MountedStore:
        return self

    def __exit__(self, *exc) -> None:
        self.unmount()

    def __repr__(self) -> str:
        return f'MountedStore({self._root!r}, mounted={self._mounted})'

    def path(self) -> str:
        return self._root

    def is_mounted(self) -> bool:
        return self._mounted

    def mount(self, path: str) -> bool:
        with self._lock:
            if self._mounted:
                return False
            if not path or not os.path.isdir(path):
                logger.warning('Cannot mount %r: not an existing directory', path)
                self._root = ''
                return False
            self._root = _with_separator(path)
            self._guard = PathGuard(self._root, self._strict)
            self._mounted = True
            logger.info('Mounted %s', self._root)
            return True

    def unmount(self) -> bool:
        with self._lock:
            if not self._mounted:
                return False
            logger.info('Unmounted %s', self._root)
            self._mounted = False
            self._root = ''
            self._guard = PathGuard('', self._strict)
            return True

    def _resolve(self, rel: str) -> str | None:
        if not self._guard.validate(rel):
            logger.debug('Rejected path %r', rel)
            return None
        return self._guard.resolve(rel)

    def open(self, path: str, mode: Perms = Perms.RW) -> SynchronizedFile | None:
        try:
            mode = Perms(mode)
        except ValueError:
            logger.debug('Unknown open mode %r', mode)
            return None
        with self._lock:
            if not self._mounted:
                return None
            target = self._resolve(path)
            if target is None or not os.path.exists(target) or os.path.isdir(target):
                return None
            try:
                # only exclusive-mode requests are gated, and on both owner bits
                if mode is not Perms.RW and not _owner_rw(target):
                    logger.debug('Open of %r as %s denied', path, mode.name)
                    return None
            except OSError as exc:
                logger.warning('Cannot stat %s: %s', target, exc)
                return None
            return SynchronizedFile(target)

    def touch_file(self, path: str) -> bool:
        with self._lock:
            if not self._mounted:
                return False
            target = self._resolve(path)
            if target is None or os.path.lexists(target):
                return False
            try:
                fd = os.open(target, os.O_CREAT | os.O_EXCL | os.O_WRONLY, settings.new_file_mode)
            except OSError as exc:
                logger.warning('Creating file %s failed: %s', target, exc)
                return False
            os.close(fd)
            return True

    def make_dir(self, path: str) -> bool:
        with self._lock:
            if not self._mounted:
                return False
            target = self._resolve(path)
            if target is None or os.path.lexists(target):
                return False
            try:
                os.mkdir(target, settings.new_dir_mode)
            except OSError as exc:
                logger.warning('Creating directory %s failed: %s', target, exc)
                return False
            return True

    def remove(self, path: str) -> bool:
        with self._lock:
            if not self._mounted:
                return False
            target = self._resolve(path)
            if target is None or not os.path.lexists(target):
                return False
            try:
                if os.path.isdir(target) and not os.path.islink(target):
                    shutil.rmtree(target)
                else:
                    os.remove(target)
            except OSError as exc:
                logger.warning('Removing %s failed: %s', target, exc)
                return False
            return True

    def move_to(self, src: str, dst: str, other: Store | None = None) -> bool:
        """Rename ``src`` to ``dst`` inside this store, or into ``other``.

        A move into another store is a plain host rename, so it only succeeds
        when both roots live on the same volume.
        """
        with self._lock:
            if not self._mounted:
                return False
            if other is not None and not other.is_mounted():
                return False
            guard = self._guard if other is None else PathGuard(other.path(), self._strict)
            source = self._resolve(src)
            destination = guard.resolve(dst) if guard.validate(dst) else None
            if source is None or destination is None:
                return False
            if not os.path.lexists(source) or os.path.lexists(destination):
                return False
            try:
                os.rename(source, destination)
            except OSError as exc:
                logger.warning('Moving %s to %s failed: %s', source, destination, exc)
                return False
            return True

    def _list(self, directory: str) -> list[str]:
        target = self._resolve(directory)
        if target is None or not os.path.isdir(target):
            return []

        entries: list[str] = []

        def walk(current: str, shown: str):
            try:
                with os.scandir(current) as it:
                    children = sorted(it, key=lambda e: e.name)
            except OSError as exc:
                logger.warning('Listing %s failed: %s', current, exc)
                return
            for child in children:
                child_shown = os.path.join(shown, child.name)
                entries.append(child_shown)
                if child.is_dir(follow_symlinks=False):
                    walk(child.path, child_shown)

        walk(target, directory)
        return entries

    def list(self, directory: str = '.') -> list[str]:
        with self._lock:
            if not self._mounted:
                return []
            return self._list(directory)

    def _search(self, path: str) -> str:
        if not self._guard.validate(path):
            return NOT_FOUND
        for entry in self._list('.'):
            if path in entry:
                return entry
        return NOT_FOUND

    def search(self, path: str) -> str:
        with self._lock:
            if not self._mounted:
                return NOT_FOUND
            return self._search(path)

    def contain(self, path: str) -> bool:
        with self._lock:
            if not self._mounted:
                return False
            return self._search(path) != NOT_FOUND

    def copy(self, src: str, dst: str) -> bool:
        with self._lock:
            if not self._mounted:
                return False
            source = self._resolve(src)
            destination = self._resolve(dst)
            if source is None or destination is None:
                return False
            if not os.path.lexists(source) or os.path.lexists(destination):
                return False
            try:
                shutil.copyfile(source, destination)
            except OSError as exc:
                logger.warning('Copying %s to %s failed: %s', source, destination, exc)
                return False
            return True

    def file_type(self, path: str) -> FileType:
        with self._lock:
            if not self._mounted:
                return FileType.NOT_FOUND
            target = self._resolve(path)
            if target is None:
                return FileType.NOT_FOUND
            try:
                return _classify(os.lstat(target).st_mode)
            except FileNotFoundError:
                return FileType.NOT_FOUND
            except OSError as exc:
                logger.debug('Cannot classify %s: %s', target, exc)
                return FileType.UNKNOWN

    def usage(self) -> StoreUsage | None:
        with self._lock:
            if not self._mounted:
                return None
            return volume_usage(self._root)


class MockStore:
    """In-memory stand-in for a store; records every call it receives."""

    def __init__(self, root: str = '/mock/', mounted: bool = True):
        self.root = root if mounted else ''
        self.mounted = mounted
        self.entries: list[str] = []
        self.files: dict[str, MockFile] = {}
        self.calls: list[dict] = []

    def _record(self, op: str, *args) -> None:
        self.calls.append({'op': op, 'args': args})

    def path(self) -> str:
        return self.root

    def is_mounted(self) -> bool:
        return self.mounted

    def mount(self, path: str) -> bool:
        self._record('mount', path)
        if self.mounted:
            return False
        self.root = path if path.endswith('/') else path + '/'
        self.mounted = True
        return True

    def unmount(self) -> bool:
        self._record('unmount')
        if not self.mounted:
            return False
        self.root = ''
        self.mounted = False
        return True

    def open(self, path: str, mode: Perms = Perms.RW) -> MockFile | None:
        self._record('open', path, mode)
        return self.files.get(path) if self.mounted else None

    def touch_file(self, path: str) -> bool:
        self._record('touch_file', path)
        if not self.mounted or path in self.entries:
            return False
        self.entries.append(path)
        self.files[path] = MockFile(self.root + path)
        return True

    def make_dir(self, path: str) -> bool:
        self._record('make_dir', path)
        if not self.mounted or path in self.entries:
            return False
        self.entries.append(path)
        return True

    def remove(self, path: str) -> bool:
        self._record('remove', path)
        if not self.mounted or path not in self.entries:
            return False
        self.entries.remove(path)
        self.files.pop(path, None)
        return True

    def move_to(self, src: str, dst: str, other: Store | None = None) -> bool:
        self._record('move_to', src, dst, other)
        if not self.mounted or src not in self.entries or dst in self.entries:
            return False
        self.entries.remove(src)
        self.files.pop(src, None)
        if other is None:
            self.entries.append(dst)
            return True
        return other.touch_file(dst)

    def list(self, directory: str = '.') -> list[str]:
        self._record('list', directory)
        return list(self.entries) if self.mounted else []

    def contain(self, path: str) -> bool:
        self._record('contain', path)
        return self.search(path) != NOT_FOUND

    def search(self, path: str) -> str:
        self._record('search', path)
        if not self.mounted:
            return NOT_FOUND
        return next((e for e in self.entries if path in e), NOT_FOUND)

    def copy(self, src: str, dst: str) -> bool:
        self._record('copy', src, dst)
        if not self.mounted or src not in self.entries or dst in self.entries:
            return False
        self.entries.append(dst)
        if src in self.files:
            self.files[dst] = MockFile(self.root + dst, bytes(self.files[src].data))
        return True

    def file_type(self, path: str) -> FileType:
        self._record('file_type', path)
        if not self.mounted or path not in self.entries:
            return FileType.NOT_FOUND
        return FileType.REGULAR if path in self.files else FileType.DIRECTORY

    def usage(self) -> StoreUsage | None:
        self._record('usage')
        return None
