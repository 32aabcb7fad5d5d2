from __future__ import annotations

import struct

from dissect.hivedigger.exceptions import BoundsError


class ByteView:
    """Read-only, bounds-checked view over (a part of) a hive buffer.

    Every read is validated against the size of the view before any data is returned, and
    all integers are decoded as little-endian regardless of the host. A sub view keeps track of
    its absolute position so errors always point at the real file offset.
    """

    __slots__ = ("_buf", "base")

    def __init__(self, data: bytes | bytearray | memoryview, base: int = 0):
        self._buf = memoryview(data).toreadonly()
        self.base = base

    def __len__(self) -> int:
        return len(self._buf)

    def __repr__(self) -> str:
        return f"<ByteView base={self.base:#x} size={len(self._buf):#x}>"

    def _check(self, offset: int, length: int) -> None:
        if offset < 0 or length < 0 or offset + length > len(self._buf):
            raise BoundsError(self.base + offset, length, self.base + len(self._buf))

    def read(self, offset: int, length: int) -> bytes:
        self._check(offset, length)
        return self._buf[offset : offset + length].tobytes()

    def view(self, offset: int, length: int) -> ByteView:
        self._check(offset, length)
        return ByteView(self._buf[offset : offset + length], self.base + offset)

    def uint16(self, offset: int) -> int:
        return struct.unpack("<H", self.read(offset, 2))[0]

    def uint32(self, offset: int) -> int:
        return struct.unpack("<I", self.read(offset, 4))[0]

    def int32(self, offset: int) -> int:
        return struct.unpack("<i", self.read(offset, 4))[0]
