"""On-disk structures of an ouichefs volume.

Partition layout::

    +---------------+
    |  superblock   |  1 block
    +---------------+
    |  inode store  |  nr_istore_blocks blocks
    +---------------+
    | ifree bitmap  |  nr_ifree_blocks blocks
    +---------------+
    | bfree bitmap  |  nr_bfree_blocks blocks
    +---------------+
    |  data blocks  |  rest of the blocks
    +---------------+
"""

from __future__ import annotations

import struct
from dataclasses import astuple, dataclass
from typing import Iterable

MAGIC = 0x48434957
SB_BLOCK_NR = 0

BLOCK_SIZE = 1 << 12
MAX_FILESIZE = 1 << 22
FILENAME_LEN = 28
MAX_SUBFILES = 128
SLICE_SIZE = 128
INDEX_ENTRIES = BLOCK_SIZE >> 2

_SUPERBLOCK = struct.Struct("<8I")
# Fields follow natural C alignment: every 64-bit member sits on an
# 8-byte boundary and the whole record is padded to a multiple of 8.
_INODE = struct.Struct("<5I4xQI4xQI4xQ3I4x")
_DIR_ENTRY = struct.Struct(f"<I{FILENAME_LEN}s")
_INDEX = struct.Struct(f"<{INDEX_ENTRIES}I")

INODE_SIZE = _INODE.size
INODES_PER_BLOCK = BLOCK_SIZE // INODE_SIZE
DIR_ENTRY_SIZE = _DIR_ENTRY.size


def _require_length(data: bytes, length: int, what: str) -> None:
    if len(data) < length:
        raise ValueError(f"{what} needs {length} bytes, got {len(data)}")


@dataclass
class Superblock:
    """The superblock stored in block 0."""

    magic: int = MAGIC
    nr_blocks: int = 0
    nr_inodes: int = 0
    nr_istore_blocks: int = 0
    nr_ifree_blocks: int = 0
    nr_bfree_blocks: int = 0
    nr_free_inodes: int = 0
    nr_free_blocks: int = 0

    def pack(self) -> bytes:
        """Serialize to one full block, zero padded."""
        try:
            header = _SUPERBLOCK.pack(*astuple(self))
        except struct.error as exc:
            raise ValueError(f"superblock field out of range: {exc}") from exc
        return header.ljust(BLOCK_SIZE, b"\0")

    @classmethod
    def unpack(cls, data: bytes) -> "Superblock":
        """Parse the leading fields of a superblock block."""
        _require_length(data, _SUPERBLOCK.size, "superblock")
        return cls(*_SUPERBLOCK.unpack_from(data))


@dataclass
class DiskInode:
    """An inode as stored in the inode store."""

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

    def pack(self) -> bytes:
        """Serialize to INODE_SIZE bytes."""
        try:
            return _INODE.pack(*astuple(self))
        except struct.error as exc:
            raise ValueError(f"inode field out of range: {exc}") from exc

    @classmethod
    def unpack(cls, data: bytes) -> "DiskInode":
        """Parse an inode from the first INODE_SIZE bytes of data."""
        _require_length(data, INODE_SIZE, "inode")
        return cls(*_INODE.unpack_from(data))


@dataclass(frozen=True)
class DirEntry:
    """One entry of a directory block: an inode number and a name."""

    inode: int
    filename: str


def _encode_name(name: str) -> bytes:
    return name.encode("utf-8", "surrogateescape")


def _decode_name(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode("utf-8", "surrogateescape")


def parse_dir_block(data: bytes) -> list[DirEntry]:
    """Return the entries of a directory block up to the first free slot."""
    _require_length(data, BLOCK_SIZE, "directory block")
    entries = []
    for inode, raw in _DIR_ENTRY.iter_unpack(data[: MAX_SUBFILES * DIR_ENTRY_SIZE]):
        if inode == 0:
            break
        entries.append(DirEntry(inode, _decode_name(raw)))
    return entries


def build_dir_block(entries: Iterable[DirEntry]) -> bytes:
    """Serialize directory entries into one block, free slots zeroed."""
    entries = list(entries)
    if len(entries) > MAX_SUBFILES:
        raise ValueError(f"a directory holds at most {MAX_SUBFILES} entries")
    parts = []
    for entry in entries:
        if entry.inode <= 0:
            raise ValueError("directory entries need a non-zero inode number")
        name = _encode_name(entry.filename)
        if len(name) > FILENAME_LEN:
            raise ValueError(f"file name longer than {FILENAME_LEN} bytes")
        try:
            parts.append(_DIR_ENTRY.pack(entry.inode, name))
        except struct.error as exc:
            raise ValueError(f"inode number out of range: {exc}") from exc
    return b"".join(parts).ljust(BLOCK_SIZE, b"\0")


def parse_index_block(data: bytes) -> list[int]:
    """Return every block number of a file index block, zeros included."""
    _require_length(data, BLOCK_SIZE, "index block")
    return list(_INDEX.unpack_from(data))


def build_index_block(blocks: Iterable[int]) -> bytes:
    """Serialize block numbers into an index block, padded with zeros."""
    blocks = list(blocks)
    if len(blocks) > INDEX_ENTRIES:
        raise ValueError(f"an index block holds at most {INDEX_ENTRIES} entries")
    blocks.extend([0] * (INDEX_ENTRIES - len(blocks)))
    try:
        return _INDEX.pack(*blocks)
    except struct.error as exc:
        raise ValueError(f"block number out of range: {exc}") from exc


def inode_location(ino: int) -> tuple[int, int]:
    """Return the inode store block holding ino and its slot in that block."""
    if ino < 0:
        raise ValueError("inode numbers are not negative")
    return ino // INODES_PER_BLOCK + 1, ino % INODES_PER_BLOCK