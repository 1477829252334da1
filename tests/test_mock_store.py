from __future__ import annotations

from mountvfs.schemas import NOT_FOUND, FileType
from mountvfs.services.store import MockStore, MountedStore


def test_mock_store_records_calls_and_tracks_entries():
    store = MockStore()

    assert store.touch_file('a.txt')
    assert not store.touch_file('a.txt')
    assert store.make_dir('dir')

    assert store.file_type('a.txt') == FileType.REGULAR
    assert store.file_type('dir') == FileType.DIRECTORY
    assert store.search('a.') == 'a.txt'
    assert store.search('zzz') == NOT_FOUND
    assert [c['op'] for c in store.calls[:3]] == ['touch_file', 'touch_file', 'make_dir']


def test_mock_store_open_returns_mock_file():
    store = MockStore()
    store.touch_file('a.txt')

    handle = store.open('a.txt')

    assert handle.write(b'abc') == 3
    assert store.open('a.txt').read_all() == b'abc'
    assert store.open('b.txt') is None


def test_mock_store_mount_lifecycle():
    store = MockStore(mounted=False)

    assert store.list() == []
    assert store.mount('/tenant')
    assert store.path() == '/tenant/'
    assert not store.mount('/tenant')
    assert store.unmount()
    assert not store.unmount()


def test_mock_store_accepts_moves_from_real_store(tmp_path):
    real = MountedStore(str(tmp_path))
    real.touch_file('a.txt')
    mock = MockStore()
    mock.touch_file('a.txt')
    target = MockStore()

    assert mock.move_to('a.txt', 'b.txt', other=target)
    assert target.contain('b.txt')
    assert not mock.contain('a.txt')
    # a real rename into a mock root cannot succeed
    assert not real.move_to('a.txt', 'b.txt', other=target)
    assert real.contain('a.txt')


def test_mock_store_records_contain():
    store = MockStore()
    store.make_dir('dir')

    assert store.contain('di')
    assert [c['op'] for c in store.calls[-2:]] == ['contain', 'search']
