import errno
import io
import os
import stat

import pytest

from ouichefs.fileio import File, get_block, open_file, read, write
from ouichefs.layout import BLOCK_SIZE, INDEX_ENTRIES, MAX_FILESIZE
from ouichefs.mkfs import format_image
from ouichefs.namei import create, lookup, mkdir
from ouichefs.volume import Volume

SIZE = 200 * BLOCK_SIZE


@pytest.fixture
def stream():
    buf = io.BytesIO(bytes(SIZE))
    format_image(buf, SIZE)
    return buf


@pytest.fixture
def volume(stream):
    return Volume(stream)


@pytest.fixture
def inode(volume):
    return create(volume, volume.root(), "data", stat.S_IFREG | 0o644)


def test_write_then_read_round_trip(volume, inode):
    payload = b"hello ouichefs"
    assert write(volume, inode, 0, payload) == len(payload)
    assert inode.size == len(payload)
    assert read(volume, inode, 0, len(payload)) == payload


def test_read_at_or_beyond_end_is_empty(volume, inode):
    write(volume, inode, 0, b"abc")
    assert read(volume, inode, 3, 10) == b""
    assert read(volume, inode, 100, 10) == b""


def test_read_is_limited_to_file_size(volume, inode):
    write(volume, inode, 0, b"abcdef")
    assert read(volume, inode, 2, 1000) == b"cdef"


def test_write_across_blocks_updates_block_count(volume, inode):
    payload = bytes(range(256)) * (BLOCK_SIZE // 128)
    write(volume, inode, BLOCK_SIZE - 5, payload)
    assert inode.size == BLOCK_SIZE - 5 + len(payload)
    assert inode.blocks == -(-inode.size // BLOCK_SIZE) + 1
    assert read(volume, inode, BLOCK_SIZE - 5, len(payload)) == payload


def test_sparse_write_reads_hole_as_zeros(volume, inode):
    write(volume, inode, 3 * BLOCK_SIZE, b"tail")
    assert get_block(volume, inode, 0, False) is None
    assert read(volume, inode, 0, BLOCK_SIZE) == bytes(BLOCK_SIZE)
    assert read(volume, inode, 3 * BLOCK_SIZE, 4) == b"tail"


def test_gap_is_zeroed_over_stale_data(volume, inode):
    write(volume, inode, 0, b"Z" * 20)
    open_file(volume, inode, os.O_WRONLY | os.O_TRUNC)
    write(volume, inode, 0, b"abc")
    write(volume, inode, 10, b"x")
    assert read(volume, inode, 0, 11) == b"abc" + bytes(7) + b"x"


def test_get_block_allocates_once(volume, inode):
    before = volume.superblock.nr_free_blocks
    bno = get_block(volume, inode, 2, True)
    assert volume.superblock.nr_free_blocks == before - 1
    assert get_block(volume, inode, 2, True) == bno
    assert get_block(volume, inode, 2, False) == bno
    assert volume.superblock.nr_free_blocks == before - 1


def test_get_block_out_of_range(volume, inode):
    with pytest.raises(OSError) as info:
        get_block(volume, inode, INDEX_ENTRIES, True)
    assert info.value.errno == errno.EFBIG


def test_write_at_size_limit_fails(volume, inode):
    with pytest.raises(OSError) as info:
        write(volume, inode, MAX_FILESIZE, b"x")
    assert info.value.errno == errno.ENOSPC


def test_write_without_enough_space_changes_nothing(volume, inode):
    before = volume.superblock.nr_free_blocks
    with pytest.raises(OSError) as info:
        write(volume, inode, 0, bytes(SIZE))
    assert info.value.errno == errno.ENOSPC
    assert volume.superblock.nr_free_blocks == before
    assert inode.size == 0


def test_truncating_open_frees_blocks(volume, inode):
    before = volume.superblock.nr_free_blocks
    write(volume, inode, 0, b"q" * (2 * BLOCK_SIZE + 1))
    assert volume.superblock.nr_free_blocks < before
    handle = open_file(volume, inode, os.O_RDWR | os.O_TRUNC)
    assert volume.superblock.nr_free_blocks == before
    assert inode.size == 0
    assert inode.blocks == 1
    assert handle.read() == b""


def test_read_only_open_keeps_content(volume, inode):
    write(volume, inode, 0, b"keep")
    handle = open_file(volume, inode, os.O_RDONLY | os.O_TRUNC)
    assert handle.read() == b"keep"


def test_open_directory_fails(volume):
    sub = mkdir(volume, volume.root(), "sub", 0o755)
    with pytest.raises(OSError) as info:
        open_file(volume, sub, os.O_RDONLY)
    assert info.value.errno == errno.EISDIR


def test_file_object_positions(volume, inode):
    handle = open_file(volume, inode, os.O_RDWR)
    assert handle.write(b"0123456789") == 10
    assert handle.tell() == 10
    assert handle.seek(2) == 2
    assert handle.read(3) == b"234"
    assert handle.tell() == 5
    assert handle.seek(-2, os.SEEK_END) == 8
    assert handle.read() == b"89"
    assert handle.seek(-4, os.SEEK_CUR) == 6
    assert handle.read(1) == b"6"


def test_seek_rejects_invalid_positions(volume, inode):
    handle = File(volume, inode, os.O_RDONLY)
    with pytest.raises(OSError) as info:
        handle.seek(-1)
    assert info.value.errno == errno.EINVAL
    with pytest.raises(OSError) as info:
        handle.seek(MAX_FILESIZE + 1)
    assert info.value.errno == errno.EINVAL


def test_access_mode_is_enforced(volume, inode):
    reader = open_file(volume, inode, os.O_RDONLY)
    with pytest.raises(OSError) as info:
        reader.write(b"x")
    assert info.value.errno == errno.EBADF
    writer = open_file(volume, inode, os.O_WRONLY)
    with pytest.raises(OSError) as info:
        writer.read()
    assert info.value.errno == errno.EBADF


def test_content_survives_remount(stream, volume, inode):
    payload = b"persisted" * 600
    write(volume, inode, 0, payload)
    volume.close()
    again = Volume(stream)
    found = lookup(again, again.root(), "data")
    assert found.size == len(payload)
    assert read(again, found, 0, len(payload)) == payload
    assert again.superblock.nr_free_blocks == volume.superblock.nr_free_blocks