"""Create an empty ouichefs filesystem on a disk image or block device."""

from __future__ import annotations

import errno
import os
import stat
import sys
from typing import BinaryIO

from .bitmap import FreeMap
from .layout import (
    BLOCK_SIZE,
    INODE_SIZE,
    INODES_PER_BLOCK,
    MAGIC,
    DiskInode,
    Superblock,
)

MIN_SIZE = 100 * BLOCK_SIZE
ROOT_INO = 1
ROOT_MODE = stat.S_IFDIR | 0o775
_BITS_PER_BLOCK = BLOCK_SIZE * 8
_PROG = "mkfs.ouichefs"


def _div_ceil(a: int, b: int) -> int:
    return -(-a // b)


def compute_geometry(partition_size: int) -> Superblock:
    """Work out the superblock of a fresh filesystem of the given size."""
    if partition_size < MIN_SIZE:
        raise ValueError(
            f"File is not large enough (size={partition_size}, min size={MIN_SIZE})"
        )
    nr_blocks = partition_size // BLOCK_SIZE
    if nr_blocks > 0xFFFFFFFF:
        raise ValueError("partition too large")
    nr_inodes = nr_blocks
    mod = nr_inodes % INODES_PER_BLOCK
    if mod:
        nr_inodes += mod
    nr_istore_blocks = _div_ceil(nr_inodes, INODES_PER_BLOCK)
    nr_ifree_blocks = _div_ceil(nr_inodes, _BITS_PER_BLOCK)
    nr_bfree_blocks = _div_ceil(nr_blocks, _BITS_PER_BLOCK)
    nr_data_blocks = (
        nr_blocks - 1 - nr_istore_blocks - nr_ifree_blocks - nr_bfree_blocks
    )
    return Superblock(
        magic=MAGIC,
        nr_blocks=nr_blocks,
        nr_inodes=nr_inodes,
        nr_istore_blocks=nr_istore_blocks,
        nr_ifree_blocks=nr_ifree_blocks,
        nr_bfree_blocks=nr_bfree_blocks,
        nr_free_inodes=nr_inodes - 1,
        nr_free_blocks=nr_data_blocks - 1,
    )


def _write(stream: BinaryIO, block: bytes) -> None:
    written = stream.write(block)
    if written is not None and written != len(block):
        raise OSError(errno.EIO, "short write")


def _first_data_block(sb: Superblock) -> int:
    return 1 + sb.nr_istore_blocks + sb.nr_ifree_blocks + sb.nr_bfree_blocks


def _write_inode_store(stream: BinaryIO, sb: Superblock) -> None:
    root = DiskInode(
        mode=ROOT_MODE,
        size=BLOCK_SIZE,
        blocks=1,
        nlink=2,
        index_block=_first_data_block(sb),
    )
    offset = ROOT_INO * INODE_SIZE
    block = bytearray(BLOCK_SIZE)
    block[offset:offset + INODE_SIZE] = root.pack()
    _write(stream, bytes(block))
    zero = bytes(BLOCK_SIZE)
    for _ in range(1, sb.nr_istore_blocks):
        _write(stream, zero)


def _write_ifree_blocks(stream: BinaryIO, sb: Superblock) -> None:
    # inode 0 is reserved and inode 1 is the root directory
    full = (1 << _BITS_PER_BLOCK) - 1
    first = FreeMap(_BITS_PER_BLOCK, full & ~0b11)
    _write(stream, first.to_bytes(1))
    ones = b"\xff" * BLOCK_SIZE
    for _ in range(1, sb.nr_ifree_blocks):
        _write(stream, ones)


def _write_bfree_blocks(stream: BinaryIO, sb: Superblock) -> None:
    # superblock, inode store, both bitmaps and the root index block
    nr_used = _first_data_block(sb) + 1
    total = sb.nr_bfree_blocks * _BITS_PER_BLOCK
    bits = ((1 << total) - 1) ^ ((1 << nr_used) - 1)
    data = FreeMap(total, bits).to_bytes(sb.nr_bfree_blocks)
    for start in range(0, len(data), BLOCK_SIZE):
        _write(stream, data[start:start + BLOCK_SIZE])


def format_image(stream: BinaryIO, partition_size: int) -> Superblock:
    """Write a fresh filesystem to stream and return its superblock."""
    sb = compute_geometry(partition_size)
    _write(stream, sb.pack())
    _write_inode_store(stream, sb)
    _write_ifree_blocks(stream, sb)
    _write_bfree_blocks(stream, sb)
    _write(stream, bytes(BLOCK_SIZE))
    stream.flush()
    return sb


def format_path(path: str | os.PathLike) -> Superblock:
    """Format the regular file or block device at path."""
    with open(path, "r+b") as stream:
        info = os.fstat(stream.fileno())
        if stat.S_ISBLK(info.st_mode):
            size = stream.seek(0, os.SEEK_END)
            stream.seek(0)
        else:
            size = info.st_size
        return format_image(stream, size)


def _report(sb: Superblock) -> str:
    return (
        f"Superblock: ({BLOCK_SIZE})\n"
        f"\tmagic={sb.magic:#x}\n"
        f"\tnr_blocks={sb.nr_blocks}\n"
        f"\tnr_inodes={sb.nr_inodes} (istore={sb.nr_istore_blocks} blocks)\n"
        f"\tnr_ifree_blocks={sb.nr_ifree_blocks}\n"
        f"\tnr_bfree_blocks={sb.nr_bfree_blocks}\n"
        f"\tnr_free_inodes={sb.nr_free_inodes}\n"
        f"\tnr_free_blocks={sb.nr_free_blocks}\n"
        f"Inode store: wrote {sb.nr_istore_blocks} blocks\n"
        f"\tinode size = {INODE_SIZE} B\n"
        f"Ifree blocks: wrote {sb.nr_ifree_blocks} blocks\n"
        f"Bfree blocks: wrote {sb.nr_bfree_blocks} blocks\n"
        "Root index block: wrote 1 block"
    )


def main(argv: list[str] | None = None) -> int:
    """Command-line entry point: format the disk named by the one argument."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) != 1 or args[0].startswith("-"):
        print(f"Usage:\n{_PROG} disk", file=sys.stderr)
        return 1
    try:
        sb = format_path(args[0])
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"{_PROG}: {exc}", file=sys.stderr)
        return 1
    print(_report(sb))
    return 0


if __name__ == "__main__":
    sys.exit(main())