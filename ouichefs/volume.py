"""A mounted ouichefs volume: superblock, free maps, inodes and blocks."""

from __future__ import annotations

import errno
import os
import stat
from dataclasses import asdict, dataclass, fields
from typing import BinaryIO

from .bitmap import FreeMap
from .layout import (
    BLOCK_SIZE,
    FILENAME_LEN,
    INODE_SIZE,
    MAGIC,
    MAX_FILESIZE,
    SB_BLOCK_NR,
    DiskInode,
    Superblock,
    inode_location,
)
from .mkfs import ROOT_INO

_U32 = 0xFFFFFFFF
_U64 = 0xFFFFFFFFFFFFFFFF
_WIDE_FIELDS = frozenset({"nctime", "natime", "nmtime"})


@dataclass(eq=False)
class Inode:
    """An in-memory inode; equality is identity, as with cached inodes."""

    ino: int
    mode: int = 0
    uid: int = 0
    gid: int = 0
    size: int = 0
    ctime: int = 0
    nctime: int = 0
    atime: int = 0
    natime: int = 0
    mtime: int = 0
    nmtime: int = 0
    blocks: int = 0
    nlink: int = 0
    index_block: int = 0

    @property
    def is_dir(self) -> bool:
        return stat.S_ISDIR(self.mode)

    @property
    def is_reg(self) -> bool:
        return stat.S_ISREG(self.mode)


@dataclass(frozen=True)
class StatFS:
    """Filesystem statistics as reported by statfs."""

    f_type: int
    f_bsize: int
    f_blocks: int
    f_bfree: int
    f_bavail: int
    f_files: int
    f_ffree: int
    f_namelen: int


def _current_ids() -> tuple[int, int]:
    if hasattr(os, "getuid") and hasattr(os, "getgid"):
        return os.getuid(), os.getgid()
    return 0, 0


def _to_disk(inode: Inode) -> DiskInode:
    values = {}
    for field in fields(DiskInode):
        mask = _U64 if field.name in _WIDE_FIELDS else _U32
        values[field.name] = getattr(inode, field.name) & mask
    return DiskInode(**values)


class Volume:
    """An ouichefs filesystem read from and written to a binary stream."""

    max_filesize = MAX_FILESIZE

    def __init__(self, stream: BinaryIO, *, owns_stream: bool = False) -> None:
        self._stream = stream
        self._owns_stream = owns_stream
        self._closed = False
        self._inodes: dict[int, Inode] = {}

        sb = Superblock.unpack(self._read_raw(SB_BLOCK_NR))
        if sb.magic != MAGIC:
            raise OSError(errno.EPERM, "Wrong magic number")
        self.superblock = sb

        ifree_start = sb.nr_istore_blocks + 1
        bfree_start = ifree_start + sb.nr_ifree_blocks
        self.inode_map = FreeMap.from_bytes(
            self._read_span(ifree_start, sb.nr_ifree_blocks), sb.nr_inodes
        )
        self.block_map = FreeMap.from_bytes(
            self._read_span(bfree_start, sb.nr_bfree_blocks), sb.nr_blocks
        )

        root = self.iget(ROOT_INO)
        root.uid, root.gid = _current_ids()

    @classmethod
    def open(cls, path: str | os.PathLike) -> "Volume":
        """Mount the image or device at path."""
        stream = open(path, "r+b")
        try:
            return cls(stream, owns_stream=True)
        except BaseException:
            stream.close()
            raise

    def __enter__(self) -> "Volume":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Flush the superblock and free maps, then release the stream."""
        if self._closed:
            return
        try:
            self.sync()
        finally:
            self._closed = True
            if self._owns_stream:
                self._stream.close()

    def _check_open(self) -> None:
        if self._closed:
            raise ValueError("I/O operation on closed volume")

    def _read_raw(self, bno: int) -> bytes:
        self._stream.seek(bno * BLOCK_SIZE)
        data = self._stream.read(BLOCK_SIZE)
        if data is None or len(data) != BLOCK_SIZE:
            raise OSError(errno.EIO, f"cannot read block {bno}")
        return data

    def _read_span(self, start: int, count: int) -> bytes:
        return b"".join(self.read_block(start + i) for i in range(count))

    def _check_bno(self, bno: int) -> None:
        if bno < 0 or bno >= self.superblock.nr_blocks:
            raise OSError(errno.EIO, f"block {bno} is outside the volume")

    def read_block(self, bno: int) -> bytes:
        """Return the content of block bno."""
        self._check_open()
        self._check_bno(bno)
        return self._read_raw(bno)

    def write_block(self, bno: int, data: bytes) -> None:
        """Replace the content of block bno with exactly one block of data."""
        self._check_open()
        if len(data) != BLOCK_SIZE:
            raise ValueError(f"a block is {BLOCK_SIZE} bytes, got {len(data)}")
        self._check_bno(bno)
        self._stream.seek(bno * BLOCK_SIZE)
        written = self._stream.write(bytes(data))
        if written is not None and written != BLOCK_SIZE:
            raise OSError(errno.EIO, f"short write on block {bno}")

    def _write_span(self, start: int, data: bytes) -> None:
        for offset in range(0, len(data), BLOCK_SIZE):
            self.write_block(start + offset // BLOCK_SIZE, data[offset:offset + BLOCK_SIZE])

    def sync(self) -> None:
        """Write the superblock and both free maps back to disk."""
        self._check_open()
        sb = self.superblock
        self.write_block(SB_BLOCK_NR, sb.pack())
        ifree_start = sb.nr_istore_blocks + 1
        bfree_start = ifree_start + sb.nr_ifree_blocks
        self._write_span(ifree_start, self.inode_map.to_bytes(sb.nr_ifree_blocks))
        self._write_span(bfree_start, self.block_map.to_bytes(sb.nr_bfree_blocks))
        self._stream.flush()

    def statfs(self) -> StatFS:
        """Report block and inode usage."""
        sb = self.superblock
        return StatFS(
            f_type=MAGIC,
            f_bsize=BLOCK_SIZE,
            f_blocks=sb.nr_blocks,
            f_bfree=sb.nr_free_blocks,
            f_bavail=sb.nr_free_blocks,
            f_files=sb.nr_inodes,
            f_ffree=sb.nr_free_inodes,
            f_namelen=FILENAME_LEN,
        )

    def iget(self, ino: int) -> Inode:
        """Return inode ino, reading it from disk unless it is cached."""
        self._check_open()
        if ino < 0 or ino >= self.superblock.nr_inodes:
            raise OSError(errno.EINVAL, f"inode {ino} out of range")
        cached = self._inodes.get(ino)
        if cached is not None:
            return cached
        block_no, slot = inode_location(ino)
        data = self.read_block(block_no)
        disk = DiskInode.unpack(data[slot * INODE_SIZE:])
        inode = Inode(ino=ino, **asdict(disk))
        self._inodes[ino] = inode
        return inode

    def write_inode(self, inode: Inode) -> None:
        """Store inode in the inode store right away."""
        if inode.ino >= self.superblock.nr_inodes:
            return
        block_no, slot = inode_location(inode.ino)
        block = bytearray(self.read_block(block_no))
        offset = slot * INODE_SIZE
        block[offset:offset + INODE_SIZE] = _to_disk(inode).pack()
        self.write_block(block_no, bytes(block))

    def alloc_inode(self) -> int:
        """Mark the first free inode used and return its number."""
        ino = self.inode_map.take_first()
        if not ino:
            raise OSError(errno.ENOSPC, "no free inode")
        self.superblock.nr_free_inodes -= 1
        return ino

    def alloc_block(self) -> int:
        """Mark the first free block used and return its number."""
        bno = self.block_map.take_first()
        if not bno:
            raise OSError(errno.ENOSPC, "no free block")
        self.superblock.nr_free_blocks -= 1
        return bno

    def free_inode(self, ino: int) -> None:
        """Mark inode ino unused; numbers beyond the map are ignored."""
        try:
            self.inode_map.release(ino)
        except IndexError:
            return
        self.superblock.nr_free_inodes += 1
        self._inodes.pop(ino, None)

    def free_block(self, bno: int) -> None:
        """Mark block bno unused; numbers beyond the map are ignored."""
        try:
            self.block_map.release(bno)
        except IndexError:
            return
        self.superblock.nr_free_blocks += 1

    def root(self) -> Inode:
        """Return the root directory inode."""
        return self.iget(ROOT_INO)