"""Name operations on ouichefs directories: lookup, create, unlink, rename."""

from __future__ import annotations

import errno
import os
import stat
import time

from .layout import (
    BLOCK_SIZE,
    FILENAME_LEN,
    MAX_SUBFILES,
    DirEntry,
    build_dir_block,
    parse_dir_block,
    parse_index_block,
)
from .volume import Inode, Volume

RENAME_NOREPLACE = 1 << 0
RENAME_EXCHANGE = 1 << 1
RENAME_WHITEOUT = 1 << 2

_ZERO_BLOCK = bytes(BLOCK_SIZE)


def _now() -> tuple[int, int]:
    return divmod(time.time_ns(), 1_000_000_000)


def _current_ids() -> tuple[int, int]:
    if hasattr(os, "getuid") and hasattr(os, "getgid"):
        return os.getuid(), os.getgid()
    return 0, 0


def _encode(name: str) -> bytes:
    return name.encode("utf-8", "surrogateescape")


def _check_length(name: str) -> None:
    if len(_encode(name)) > FILENAME_LEN:
        raise OSError(errno.ENAMETOOLONG, f"file name longer than {FILENAME_LEN} bytes", name)


def _key(name: str) -> bytes:
    return _encode(name)[:FILENAME_LEN]


def _stored(name: str) -> str:
    # The name field keeps room for a terminating NUL byte.
    return _encode(name)[: FILENAME_LEN - 1].decode("utf-8", "surrogateescape")


def _require_dir(directory: Inode) -> None:
    if not directory.is_dir:
        raise OSError(errno.ENOTDIR, f"inode {directory.ino} is not a directory")


def _read_entries(volume: Volume, directory: Inode) -> list[DirEntry]:
    return parse_dir_block(volume.read_block(directory.index_block))


def _write_entries(volume: Volume, directory: Inode, entries: list[DirEntry]) -> None:
    volume.write_block(directory.index_block, build_dir_block(entries))


def _find(entries: list[DirEntry], name: str) -> int | None:
    key = _key(name)
    return next((i for i, entry in enumerate(entries) if _key(entry.filename) == key), None)


def _detach(entries: list[DirEntry], ino: int) -> list[DirEntry]:
    positions = [i for i, entry in enumerate(entries) if entry.inode == ino]
    if not positions:
        raise OSError(errno.ENOENT, f"inode {ino} is not in this directory")
    f_id = positions[-1]
    return entries[:f_id] + entries[f_id + 1:]


def lookup(volume: Volume, directory: Inode, name: str) -> Inode | None:
    """Return the inode named name in directory, or None if there is none."""
    _require_dir(directory)
    _check_length(name)
    index = _find(_read_entries(volume, directory), name)
    if index is None:
        return None
    return volume.iget(_read_entries(volume, directory)[index].inode)


def _new_inode(volume: Volume, directory: Inode, mode: int) -> Inode:
    if not (stat.S_ISDIR(mode) or stat.S_ISREG(mode)):
        raise OSError(
            errno.EINVAL,
            "File type not supported (only directory and regular files supported)",
        )
    sb = volume.superblock
    if sb.nr_free_inodes == 0 or sb.nr_free_blocks == 0:
        raise OSError(errno.ENOSPC, "no space left on volume")

    ino = volume.alloc_inode()
    try:
        inode = volume.iget(ino)
        bno = volume.alloc_block()
    except BaseException:
        volume.free_inode(ino)
        raise

    uid, gid = _current_ids()
    if directory.mode & stat.S_ISGID:
        gid = directory.gid
        if stat.S_ISDIR(mode):
            mode |= stat.S_ISGID
    sec, nsec = _now()

    inode.index_block = bno
    inode.mode = mode
    inode.uid = uid
    inode.gid = gid
    inode.blocks = 1
    inode.size = BLOCK_SIZE if stat.S_ISDIR(mode) else 0
    inode.nlink = 1
    inode.ctime = inode.atime = inode.mtime = sec
    inode.nctime = inode.natime = inode.nmtime = nsec
    return inode


def create(volume: Volume, directory: Inode, name: str, mode: int) -> Inode:
    """Create a regular file or directory named name in directory."""
    _require_dir(directory)
    _check_length(name)
    entries = _read_entries(volume, directory)
    if len(entries) >= MAX_SUBFILES:
        raise OSError(errno.EMLINK, "directory is full")
    if _find(entries, name) is not None:
        raise OSError(errno.EEXIST, "file exists", name)

    inode = _new_inode(volume, directory, mode)
    try:
        # Scrub the index block so that old content does not leak in.
        volume.write_block(inode.index_block, _ZERO_BLOCK)
    except BaseException:
        volume.free_block(inode.index_block)
        volume.free_inode(inode.ino)
        raise

    entries.append(DirEntry(inode.ino, _stored(name)))
    _write_entries(volume, directory, entries)

    volume.write_inode(inode)
    sec, nsec = _now()
    directory.mtime = directory.ctime = sec
    directory.nmtime = directory.nctime = nsec
    if inode.is_dir:
        directory.nlink += 1
    volume.write_inode(directory)
    return inode


def mkdir(volume: Volume, directory: Inode, name: str, mode: int) -> Inode:
    """Create a subdirectory named name in directory."""
    return create(volume, directory, name, mode | stat.S_IFDIR)


def _remove(volume: Volume, directory: Inode, inode: Inode) -> None:
    entries = _detach(_read_entries(volume, directory), inode.ino)
    _write_entries(volume, directory, entries)

    sec, nsec = _now()
    directory.mtime = directory.ctime = sec
    directory.nmtime = directory.nctime = nsec
    if inode.is_dir:
        directory.nlink -= 1
    volume.write_inode(directory)

    ino = inode.ino
    bno = inode.index_block
    if not inode.is_dir:
        blocks = parse_index_block(volume.read_block(bno))
        for data_bno in blocks[: max(inode.blocks - 1, 0)]:
            if not data_bno:
                continue
            try:
                volume.write_block(data_bno, _ZERO_BLOCK)
            except OSError:
                pass
            volume.free_block(data_bno)
    volume.write_block(bno, _ZERO_BLOCK)

    inode.blocks = 0
    inode.index_block = 0
    inode.size = 0
    inode.uid = inode.gid = 0
    inode.mode = 0
    inode.ctime = inode.mtime = inode.atime = 0
    inode.nctime = inode.nmtime = inode.natime = 0
    inode.nlink = max(inode.nlink - 1, 0)
    volume.write_inode(inode)

    volume.free_block(bno)
    volume.free_inode(ino)


def unlink(volume: Volume, directory: Inode, name: str) -> None:
    """Remove the file named name from directory and release its space."""
    inode = lookup(volume, directory, name)
    if inode is None:
        raise OSError(errno.ENOENT, "no such file", name)
    if inode.is_dir:
        raise OSError(errno.EISDIR, "is a directory", name)
    _remove(volume, directory, inode)


def rmdir(volume: Volume, directory: Inode, name: str) -> None:
    """Remove the empty subdirectory named name from directory."""
    inode = lookup(volume, directory, name)
    if inode is None:
        raise OSError(errno.ENOENT, "no such directory", name)
    if not inode.is_dir:
        raise OSError(errno.ENOTDIR, "not a directory", name)
    if inode.nlink > 2:
        raise OSError(errno.ENOTEMPTY, "directory not empty", name)
    if _read_entries(volume, inode):
        raise OSError(errno.ENOTEMPTY, "directory not empty", name)
    _remove(volume, directory, inode)


def rename(
    volume: Volume,
    old_dir: Inode,
    old_name: str,
    new_dir: Inode,
    new_name: str,
    flags: int = 0,
) -> None:
    """Move the entry old_name of old_dir to new_name in new_dir."""
    if flags & (RENAME_EXCHANGE | RENAME_WHITEOUT):
        raise OSError(errno.EINVAL, "unsupported rename flags")
    _require_dir(new_dir)
    _check_length(new_name)
    src = lookup(volume, old_dir, old_name)
    if src is None:
        raise OSError(errno.ENOENT, "no such file", old_name)

    new_entries = _read_entries(volume, new_dir)
    if _find(new_entries, new_name) is not None:
        raise OSError(errno.EEXIST, "file exists", new_name)

    if old_dir is new_dir:
        position = _find(new_entries, old_name)
        new_entries[position] = DirEntry(src.ino, _stored(new_name))
        _write_entries(volume, new_dir, new_entries)
        return

    if len(new_entries) >= MAX_SUBFILES:
        raise OSError(errno.EMLINK, "directory is full")

    new_entries.append(DirEntry(src.ino, _stored(new_name)))
    _write_entries(volume, new_dir, new_entries)

    sec, nsec = _now()
    new_dir.atime = new_dir.ctime = new_dir.mtime = sec
    new_dir.natime = new_dir.nctime = new_dir.nmtime = nsec
    if src.is_dir:
        new_dir.nlink += 1
    volume.write_inode(new_dir)

    old_entries = _detach(_read_entries(volume, old_dir), src.ino)
    _write_entries(volume, old_dir, old_entries)

    sec, nsec = _now()
    old_dir.ctime = old_dir.mtime = sec
    old_dir.nctime = old_dir.nmtime = nsec
    if src.is_dir:
        old_dir.nlink -= 1
    volume.write_inode(old_dir)