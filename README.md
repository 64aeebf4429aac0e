# ouichefs

A user-space toolkit for ouichefs, a small educational filesystem with a
4 KiB block size. It formats an image, opens it as a Python object, and
creates, reads, writes, renames and removes files and directories in it.

## Disk layout

An image holds these parts, in this order:

| Part | Size |
| --- | --- |
| superblock | 1 block |
| inode store | `nr_istore_blocks` blocks |
| inode free bitmap | `nr_ifree_blocks` blocks |
| block free bitmap | `nr_bfree_blocks` blocks |
| data blocks | the rest of the image |

Inode 1 is the root directory. Its index block is the first data block.

A directory holds at most 128 entries. A name holds at most 28 bytes. A file
grows to at most 4 MiB.

The structures and constants live in `ouichefs.layout` (`Superblock`,
`DiskInode`, `DirEntry`, `parse_dir_block`, `build_dir_block`,
`parse_index_block`, `build_index_block`, `inode_location`). The free
bitmaps are `ouichefs.bitmap.FreeMap` objects.

## Installing

```
pip install .
```

## Formatting an image

Create a file of at least 100 blocks (400 KiB), then format it:

```
truncate -s 50M test.img
mkfs-ouichefs test.img
```

The command takes exactly one argument, a regular file or a block device,
prints the new superblock and what it wrote, and exits with status 1 on a
usage error, a too small image or an I/O error.

You can also format an image from Python:

```python
from ouichefs.mkfs import compute_geometry, format_path

print(compute_geometry(50 * 1024 * 1024))
format_path("test.img")
```

`format_image(stream, partition_size)` does the same on any open binary
stream.

## Working with a volume

```python
import os

from ouichefs.volume import Volume
from ouichefs import namei, directory, fileio, stats

with Volume.open("test.img") as vol:
    root = vol.root()
    namei.mkdir(vol, root, "docs", 0o755)
    inode = namei.create(vol, root, "hello.txt", 0o100644)

    f = fileio.open_file(vol, inode, os.O_RDWR)
    f.write(b"hello, world\n")
    f.seek(0, os.SEEK_SET)
    print(f.read(100))

    for entry in directory.iterate(vol, vol.root(), 0):
        print(entry)

    namei.rename(vol, root, "hello.txt", vol.iget(namei.lookup(vol, root, "docs").ino), "hi.txt")

    print(vol.statfs())
    print(stats.report(vol))
```

- `ouichefs.volume.Volume` reads and writes blocks and inodes, hands out free
  inodes and blocks (`alloc_inode`, `alloc_block`, `free_inode`,
  `free_block`) and reports `statfs()`.
- `ouichefs.namei` has `lookup`, `create`, `mkdir`, `unlink`, `rmdir` and
  `rename`. `unlink` refuses directories; `rmdir` refuses non-empty ones.
- `ouichefs.directory.iterate` yields `.`, `..` and then the entries of a
  directory, starting at a given position.
- `ouichefs.fileio` has `open_file` and the `File` object (`read`, `write`,
  `seek`, `tell`), plus the lower level `read`, `write` and `get_block`.
  Opening for writing with `O_TRUNC` empties the file; holes read as zeros.
- `ouichefs.stats` gives `free_blocks`, `used_blocks`, `files`,
  `total_data_size`, `total_used_size`, `efficiency` and `report`.

Inodes and data blocks are written to the image as soon as they change.
The superblock and the free bitmaps go to disk when you call `Volume.sync()`
and when the `with` block exits (or `Volume.close()` is called).

Failures raise `OSError` with the matching `errno` value. For example, a full
directory gives `EMLINK`, a name that is too long gives `ENAMETOOLONG`, and a
full disk gives `ENOSPC`.

## What it does not do

- It does not mount an image into the operating system's file tree; images
  are used only through the Python API above.
- Files only hold regular data blocks: small files are not packed into
  shared slices of a block, and `stats` reports no slice figures.
- Hard links, symbolic links and special files are not supported;
  `create` accepts regular files and directories only.

## Running the tests

```
pip install ".[test]"
pytest
```