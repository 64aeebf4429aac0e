"""Listing the entries of an ouichefs directory."""

from __future__ import annotations

import errno
from collections import deque
from typing import Iterator

from .layout import MAX_SUBFILES, DirEntry, parse_dir_block
from .mkfs import ROOT_INO
from .volume import Inode, Volume


def _parent_ino(volume: Volume, directory: Inode) -> int:
    if directory.ino == ROOT_INO:
        return ROOT_INO
    seen = {ROOT_INO}
    queue = deque([volume.root()])
    while queue:
        current = queue.popleft()
        for entry in parse_dir_block(volume.read_block(current.index_block)):
            if entry.inode == directory.ino:
                return current.ino
            if entry.inode in seen:
                continue
            child = volume.iget(entry.inode)
            if child.is_dir:
                seen.add(entry.inode)
                queue.append(child)
    return directory.ino


def _entries(volume: Volume, directory: Inode, pos: int) -> Iterator[DirEntry]:
    if pos > MAX_SUBFILES + 2:
        return
    if pos == 0:
        yield DirEntry(directory.ino, ".")
        pos = 1
    if pos == 1:
        yield DirEntry(_parent_ino(volume, directory), "..")
        pos = 2
    entries = parse_dir_block(volume.read_block(directory.index_block))
    yield from entries[pos - 2:]


def iterate(volume: Volume, directory: Inode, pos: int = 0) -> Iterator[DirEntry]:
    """Yield the entries of directory from position pos on.

    Position 0 is ".", position 1 is "..", and the subfiles follow.
    """
    if not directory.is_dir:
        raise OSError(errno.ENOTDIR, f"inode {directory.ino} is not a directory")
    if pos < 0:
        raise ValueError("directory positions are not negative")
    return _entries(volume, directory, pos)