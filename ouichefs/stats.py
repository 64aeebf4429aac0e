"""Usage figures of a mounted volume."""

from __future__ import annotations

from .volume import Volume

# The usage figure is counted in 1 KiB units, not in filesystem blocks.
_USED_UNIT = 1 << 10


def free_blocks(volume: Volume) -> int:
    """Number of free blocks."""
    return volume.superblock.nr_free_blocks


def used_blocks(volume: Volume) -> int:
    """Number of blocks in use, metadata included."""
    sb = volume.superblock
    return sb.nr_blocks - sb.nr_free_blocks


def files(volume: Volume) -> int:
    """Number of inodes the volume can hold."""
    return volume.superblock.nr_inodes


def total_data_size(volume: Volume) -> int:
    """Sum of the sizes of the inodes numbered below the block count."""
    return sum(volume.iget(ino).size for ino in range(volume.superblock.nr_blocks))


def total_used_size(volume: Volume) -> int:
    """Size taken by the inode store, in bytes of 1 KiB units."""
    return volume.superblock.nr_istore_blocks * _USED_UNIT


def efficiency(volume: Volume) -> int:
    """Data size as a whole percentage of the used size."""
    return total_data_size(volume) * 100 // total_used_size(volume)


def report(volume: Volume) -> dict[str, str]:
    """All figures formatted as text, keyed by name."""
    return {
        "free_blocks": str(free_blocks(volume)),
        "used_blocks": str(used_blocks(volume)),
        "files": str(files(volume)),
        "total_data_size": str(total_data_size(volume)),
        "total_used_size": str(total_used_size(volume)),
        "efficiency": f"{efficiency(volume)}%",
    }