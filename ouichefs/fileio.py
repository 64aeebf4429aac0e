"""Reading and writing the content of regular ouichefs files."""

from __future__ import annotations

import errno
import os
import time

from .layout import (
    BLOCK_SIZE,
    INDEX_ENTRIES,
    MAX_FILESIZE,
    build_index_block,
    parse_index_block,
)
from .volume import Inode, Volume


def _now() -> tuple[int, int]:
    return divmod(time.time_ns(), 1_000_000_000)


def _div_ceil(a: int, b: int) -> int:
    return -(-a // b)


def _access_mode(flags: int) -> int:
    return flags & (os.O_RDONLY | os.O_WRONLY | os.O_RDWR)


def get_block(volume: Volume, inode: Inode, iblock: int, create: bool = False) -> int | None:
    """Return the physical block backing block iblock of the file.

    An unallocated block gives None, unless create is true, in which case a
    new block is allocated and recorded in the file's index block.
    """
    if iblock < 0 or iblock >= INDEX_ENTRIES:
        raise OSError(errno.EFBIG, f"block {iblock} beyond the file size limit")
    blocks = parse_index_block(volume.read_block(inode.index_block))
    bno = blocks[iblock]
    if bno:
        return bno
    if not create:
        return None
    bno = volume.alloc_block()
    blocks[iblock] = bno
    volume.write_block(inode.index_block, build_index_block(blocks))
    return bno


def _truncate(volume: Volume, inode: Inode) -> None:
    blocks = parse_index_block(volume.read_block(inode.index_block))
    for i, bno in enumerate(blocks):
        if not bno:
            break
        volume.free_block(bno)
        blocks[i] = 0
    inode.size = 0
    inode.blocks = 1
    volume.write_block(inode.index_block, build_index_block(blocks))
    volume.write_inode(inode)


def read(volume: Volume, inode: Inode, pos: int, count: int) -> bytes:
    """Return up to count bytes of the file starting at pos.

    Holes read as zeros; nothing is returned at or beyond the end of file.
    """
    if pos < 0 or count < 0:
        raise OSError(errno.EINVAL, "negative position or count")
    if pos >= inode.size:
        return b""
    count = min(count, inode.size - pos)
    if count == 0:
        return b""

    blocks = parse_index_block(volume.read_block(inode.index_block))
    chunks = []
    while count > 0:
        block_idx, offset = divmod(pos, BLOCK_SIZE)
        to_read = min(count, BLOCK_SIZE - offset)
        if block_idx >= INDEX_ENTRIES:
            raise OSError(errno.EFBIG, "read beyond the file size limit")
        bno = blocks[block_idx]
        if bno:
            chunks.append(volume.read_block(bno)[offset:offset + to_read])
        else:
            chunks.append(bytes(to_read))
        pos += to_read
        count -= to_read
    return b"".join(chunks)


def write(volume: Volume, inode: Inode, pos: int, data: bytes) -> int:
    """Write data into the file at pos and return the number of bytes written.

    Writes are cut short at the file size limit; a write that would need
    more free blocks than the volume has fails before touching anything.
    """
    if pos < 0:
        raise OSError(errno.EINVAL, "negative position")
    data = bytes(data)
    count = len(data)
    if pos + count > MAX_FILESIZE:
        count = MAX_FILESIZE - pos
        if count <= 0:
            raise OSError(errno.ENOSPC, "file size limit reached")
        data = data[:count]

    new_size = max(pos + count, inode.size)
    nr_allocs = _div_ceil(new_size, BLOCK_SIZE)
    if nr_allocs > inode.blocks - 1:
        needed = nr_allocs - (inode.blocks - 1)
        if needed > volume.superblock.nr_free_blocks:
            raise OSError(errno.ENOSPC, "not enough free blocks")

    blocks = parse_index_block(volume.read_block(inode.index_block))
    index_dirty = False
    copied = 0
    try:
        while count > 0:
            block_idx, offset = divmod(pos, BLOCK_SIZE)
            to_write = min(count, BLOCK_SIZE - offset)
            if block_idx >= INDEX_ENTRIES:
                raise OSError(errno.EFBIG, "write beyond the file size limit")

            bno = blocks[block_idx]
            if not bno:
                bno = volume.alloc_block()
                blocks[block_idx] = bno
                index_dirty = True

            block = bytearray(volume.read_block(bno))
            if pos > inode.size:
                gap_start = inode.size
                if gap_start // BLOCK_SIZE == block_idx:
                    gap_offset = gap_start % BLOCK_SIZE
                    gap_size = min(pos - gap_start, BLOCK_SIZE - gap_offset)
                    block[gap_offset:gap_offset + gap_size] = bytes(gap_size)

            block[offset:offset + to_write] = data[copied:copied + to_write]
            volume.write_block(bno, bytes(block))

            pos += to_write
            count -= to_write
            copied += to_write
    finally:
        if index_dirty:
            volume.write_block(inode.index_block, build_index_block(blocks))

    if pos > inode.size:
        inode.size = pos
    inode.blocks = _div_ceil(inode.size, BLOCK_SIZE) + 1
    sec, nsec = _now()
    inode.mtime = inode.ctime = sec
    inode.nmtime = inode.nctime = nsec
    volume.write_inode(inode)
    return copied


class File:
    """An open regular file with its own position."""

    def __init__(self, volume: Volume, inode: Inode, flags: int = os.O_RDONLY) -> None:
        self.volume = volume
        self.inode = inode
        self.flags = flags
        self._pos = 0

    def __repr__(self) -> str:
        return f"File(ino={self.inode.ino}, pos={self._pos})"

    def _readable(self) -> bool:
        return _access_mode(self.flags) != os.O_WRONLY

    def _writable(self) -> bool:
        return _access_mode(self.flags) in (os.O_WRONLY, os.O_RDWR)

    def read(self, size: int = -1) -> bytes:
        """Read up to size bytes from the current position, all if negative."""
        if not self._readable():
            raise OSError(errno.EBADF, "file not open for reading")
        if size < 0:
            size = max(self.inode.size - self._pos, 0)
        data = read(self.volume, self.inode, self._pos, size)
        self._pos += len(data)
        return data

    def write(self, data: bytes) -> int:
        """Write data at the current position and advance past it."""
        if not self._writable():
            raise OSError(errno.EBADF, "file not open for writing")
        written = write(self.volume, self.inode, self._pos, data)
        self._pos += written
        return written

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        """Move the position and return the new one."""
        if whence == os.SEEK_SET:
            target = offset
        elif whence == os.SEEK_CUR:
            target = self._pos + offset
        elif whence == os.SEEK_END:
            target = self.inode.size + offset
        else:
            raise OSError(errno.EINVAL, f"unsupported whence {whence}")
        if target < 0 or target > MAX_FILESIZE:
            raise OSError(errno.EINVAL, f"invalid position {target}")
        self._pos = target
        return target

    def tell(self) -> int:
        """Return the current position."""
        return self._pos


def open_file(volume: Volume, inode: Inode, flags: int = os.O_RDONLY) -> File:
    """Open a regular file; a writable open with O_TRUNC empties it."""
    if inode.is_dir:
        raise OSError(errno.EISDIR, f"inode {inode.ino} is a directory")
    writable = _access_mode(flags) in (os.O_WRONLY, os.O_RDWR)
    if writable and flags & os.O_TRUNC and inode.size != 0:
        _truncate(volume, inode)
    return File(volume, inode, flags)