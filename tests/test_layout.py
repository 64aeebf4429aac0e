import pytest

from ouichefs.layout import (
    BLOCK_SIZE,
    FILENAME_LEN,
    INDEX_ENTRIES,
    INODE_SIZE,
    INODES_PER_BLOCK,
    MAGIC,
    MAX_SUBFILES,
    DirEntry,
    DiskInode,
    Superblock,
    build_dir_block,
    build_index_block,
    inode_location,
    parse_dir_block,
    parse_index_block,
)


def test_superblock_pack_is_one_block():
    sb = Superblock(nr_blocks=100, nr_inodes=149)
    data = sb.pack()
    assert len(data) == BLOCK_SIZE
    assert data[32:] == b"\0" * (BLOCK_SIZE - 32)


def test_superblock_magic_little_endian():
    assert Superblock().pack()[:4] == MAGIC.to_bytes(4, "little")
    assert Superblock().pack()[:4] == b"WICH"


def test_superblock_round_trip():
    sb = Superblock(MAGIC, 1000, 1020, 20, 1, 1, 1019, 976)
    assert Superblock.unpack(sb.pack()) == sb


def test_superblock_unpack_short_data():
    with pytest.raises(ValueError):
        Superblock.unpack(b"\0" * 10)


def test_superblock_out_of_range_field():
    with pytest.raises(ValueError):
        Superblock(nr_blocks=1 << 40).pack()


def test_inode_round_trip():
    inode = DiskInode(
        mode=0o40755, uid=7, gid=8, size=BLOCK_SIZE, ctime=11, nctime=12,
        atime=13, natime=14, mtime=15, nmtime=16, blocks=1, nlink=2,
        index_block=99,
    )
    data = inode.pack()
    assert len(data) == INODE_SIZE
    assert DiskInode.unpack(data) == inode


def test_inode_unpack_ignores_trailing_bytes():
    inode = DiskInode(mode=0o100644, size=5, index_block=42)
    assert DiskInode.unpack(inode.pack() + b"\xff" * 16) == inode


def test_inode_unpack_short_data():
    with pytest.raises(ValueError):
        DiskInode.unpack(b"\0" * (INODE_SIZE - 1))


def test_inodes_fit_in_block():
    packed = b"".join(
        DiskInode(index_block=i + 1).pack() for i in range(INODES_PER_BLOCK)
    )
    assert len(packed) <= BLOCK_SIZE
    assert len(packed) + len(DiskInode().pack()) > BLOCK_SIZE
    last = INODES_PER_BLOCK - 1
    assert inode_location(last) == (1, last)
    start = last * INODE_SIZE
    assert DiskInode.unpack(packed[start:]).index_block == INODES_PER_BLOCK


def test_dir_block_round_trip():
    entries = [DirEntry(2, "hello"), DirEntry(3, "world.txt")]
    data = build_dir_block(entries)
    assert len(data) == BLOCK_SIZE
    assert parse_dir_block(data) == entries


def test_dir_block_full_name_length():
    name = "n" * FILENAME_LEN
    assert parse_dir_block(build_dir_block([DirEntry(5, name)])) == [DirEntry(5, name)]


def test_dir_block_full_directory():
    entries = [DirEntry(i + 1, f"f{i}") for i in range(MAX_SUBFILES)]
    assert parse_dir_block(build_dir_block(entries)) == entries


def test_dir_block_too_many_entries():
    entries = [DirEntry(i + 1, f"f{i}") for i in range(MAX_SUBFILES + 1)]
    with pytest.raises(ValueError):
        build_dir_block(entries)


def test_dir_block_name_too_long():
    with pytest.raises(ValueError):
        build_dir_block([DirEntry(2, "x" * (FILENAME_LEN + 1))])


def test_dir_block_zero_inode_rejected():
    with pytest.raises(ValueError):
        build_dir_block([DirEntry(0, "a")])


def test_parse_dir_block_stops_at_free_slot():
    first = build_dir_block([DirEntry(4, "a")])
    tail = build_dir_block([DirEntry(9, "b")])
    # an entry after a free slot is not part of the directory
    data = first[:64] + tail[:32] + first[96:]
    assert parse_dir_block(data) == [DirEntry(4, "a")]


def test_parse_dir_block_empty():
    assert parse_dir_block(b"\0" * BLOCK_SIZE) == []


def test_index_block_round_trip():
    data = build_index_block([10, 11, 12])
    assert len(data) == BLOCK_SIZE
    blocks = parse_index_block(data)
    assert len(blocks) == INDEX_ENTRIES
    assert blocks[:3] == [10, 11, 12]
    assert set(blocks[3:]) == {0}


def test_index_block_too_many():
    with pytest.raises(ValueError):
        build_index_block([1] * (INDEX_ENTRIES + 1))


def test_index_block_short_data():
    with pytest.raises(ValueError):
        parse_index_block(b"\0" * 100)


def test_inode_location_root():
    assert inode_location(1) == (1, 1)


def test_inode_location_second_block():
    assert inode_location(INODES_PER_BLOCK) == (2, 0)


def test_inode_location_negative():
    with pytest.raises(ValueError):
        inode_location(-1)