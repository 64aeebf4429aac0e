"""Free-space bitmaps where a set bit marks a free inode or block."""

from __future__ import annotations

from .layout import BLOCK_SIZE


class FreeMap:
    """An in-memory free bitmap covering ``size`` inodes or blocks."""

    def __init__(self, size: int, bits: int = 0) -> None:
        if size < 0:
            raise ValueError("bitmap size cannot be negative")
        self.size = size
        self._bits = bits

    def __len__(self) -> int:
        return self.size

    def __repr__(self) -> str:
        return f"FreeMap(size={self.size}, free={self.count_free()})"

    @classmethod
    def from_bytes(cls, data: bytes, size: int) -> "FreeMap":
        """Load a bitmap stored as little-endian 64-bit words."""
        return cls(size, int.from_bytes(data, "little"))

    def to_bytes(self, nr_blocks: int) -> bytes:
        """Store the bitmap into nr_blocks blocks of little-endian words."""
        length = nr_blocks * BLOCK_SIZE
        mask = (1 << (length * 8)) - 1
        return (self._bits & mask).to_bytes(length, "little")

    def _mask(self) -> int:
        return (1 << self.size) - 1

    def take_first(self) -> int | None:
        """Mark the lowest free bit used and return it, or None if none is free."""
        free = self._bits & self._mask()
        if not free:
            return None
        index = (free & -free).bit_length() - 1
        self._bits &= ~(1 << index)
        return index

    def release(self, index: int) -> None:
        """Mark a bit free again."""
        if index < 0 or index > self.size:
            raise IndexError(f"bit {index} outside a bitmap of {self.size} bits")
        self._bits |= 1 << index

    def is_free(self, index: int) -> bool:
        """Tell whether a bit is marked free."""
        if index < 0:
            raise IndexError("bit indices are not negative")
        return bool(self._bits >> index & 1)

    def count_free(self) -> int:
        """Count the free bits within the bitmap size."""
        return bin(self._bits & self._mask()).count("1")