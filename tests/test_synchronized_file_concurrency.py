from __future__ import annotations

import threading
import time

from mountvfs.services.regular_file import SynchronizedFile


class _SlowWriter:
    def __init__(self, inner, started: threading.Event, delay: float = 0.2):
        self.inner = inner
        self.started = started
        self.delay = delay

    def write(self, data: bytes) -> int:
        self.started.set()
        half = len(data) // 2
        written = self.inner.write(data[:half])
        time.sleep(self.delay)
        return written + self.inner.write(data[half:])

    def seek(self, *args):
        return self.inner.seek(*args)

    def flush(self):
        return self.inner.flush()

    def close(self):
        return self.inner.close()


class _OverlapReader:
    def __init__(self, inner, parties: int):
        self.inner = inner
        self.barrier = threading.Barrier(parties, timeout=2)
        self.overlapped = 0
        self._lock = threading.Lock()

    def seek(self, *args):
        return self.inner.seek(*args)

    def read(self, size: int) -> bytes:
        self.barrier.wait()
        with self._lock:
            self.overlapped += 1
        return b'x' * size

    def flush(self):
        return self.inner.flush()

    def close(self):
        return self.inner.close()


def test_disjoint_writers_never_interleave(tmp_path):
    path = tmp_path / 'shared.bin'
    path.write_bytes(b'.' * 2001)
    handle = SynchronizedFile(str(path))

    def _writer(fill: bytes, offset: int):
        for _ in range(50):
            assert handle.write(fill * 1000, offset=offset) == 1000

    threads = [
        threading.Thread(target=_writer, args=(b'a', 1)),
        threading.Thread(target=_writer, args=(b'b', 1001)),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert handle.read_all() == b'.' + b'a' * 1000 + b'b' * 1000
    handle.close()


def test_reader_waits_for_write_in_progress(tmp_path, monkeypatch):
    path = tmp_path / 'slow.bin'
    path.write_bytes(b'')
    handle = SynchronizedFile(str(path))
    started = threading.Event()
    monkeypatch.setattr(handle, '_writer', _SlowWriter(handle._writer, started))
    result: dict[str, bytes] = {}

    writer = threading.Thread(target=lambda: handle.write(b'x' * 100))
    writer.start()
    started.wait(timeout=2)
    reader = threading.Thread(target=lambda: result.setdefault('data', handle.read(100)))
    reader.start()
    writer.join()
    reader.join()

    assert result['data'] == b'x' * 100
    handle.close()


def test_concurrent_readers_do_not_block_each_other(tmp_path, monkeypatch):
    path = tmp_path / 'readers.bin'
    path.write_bytes(b'0123456789')
    handle = SynchronizedFile(str(path))
    overlap = _OverlapReader(handle._reader, parties=2)
    monkeypatch.setattr(handle, '_reader', overlap)
    results: list[bytes] = []

    def _read():
        results.append(handle.read(4))

    readers = [threading.Thread(target=_read) for _ in range(2)]
    for reader in readers:
        reader.start()
    for reader in readers:
        reader.join()

    assert overlap.overlapped == 2
    assert results == [b'xxxx', b'xxxx']
    handle.close()


def test_disable_all_while_reader_waits(tmp_path, monkeypatch):
    path = tmp_path / 'revoked.bin'
    path.write_bytes(b'')
    handle = SynchronizedFile(str(path))
    started = threading.Event()
    monkeypatch.setattr(handle, '_writer', _SlowWriter(handle._writer, started, delay=0.3))
    result: dict[str, bytes] = {}

    writer = threading.Thread(target=lambda: handle.write(b'y' * 10))
    writer.start()
    started.wait(timeout=2)
    reader = threading.Thread(target=lambda: result.setdefault('data', handle.read(10)))
    reader.start()
    time.sleep(0.05)
    handle.disable_all()
    writer.join()
    reader.join()

    assert result['data'] == b''
    assert path.read_bytes() == b'y' * 10


class _PausedReader:
    def __init__(self, inner):
        self.inner = inner
        self.entered = threading.Event()
        self.release = threading.Event()

    def seek(self, *args):
        self.entered.set()
        self.release.wait(timeout=2)
        return self.inner.seek(*args)

    def read(self, size: int) -> bytes:
        return self.inner.read(size)

    def flush(self):
        return self.inner.flush()

    def close(self):
        return self.inner.close()


def test_close_waits_for_read_in_flight(tmp_path, monkeypatch):
    path = tmp_path / 'closing.bin'
    path.write_bytes(b'payload')
    handle = SynchronizedFile(str(path))
    paused = _PausedReader(handle._reader)
    monkeypatch.setattr(handle, '_reader', paused)
    result: dict[str, object] = {}

    def _read():
        try:
            result['data'] = handle.read(7)
        except Exception as exc:
            result['error'] = exc

    reader = threading.Thread(target=_read)
    reader.start()
    assert paused.entered.wait(timeout=2)

    closer = threading.Thread(target=handle.close)
    closer.start()
    closer.join(timeout=0.2)
    assert closer.is_alive()
    assert handle.read(1) == b''

    paused.release.set()
    reader.join(timeout=2)
    closer.join(timeout=2)

    assert 'error' not in result
    assert result['data'] == b'payload'
    assert not closer.is_alive()
    assert not handle.accessible
