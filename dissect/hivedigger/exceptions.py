from __future__ import annotations


class Error(Exception):
    pass


class FormatError(Error):
    """The hive contains a structure that does not look like what we expected."""


class BadSignatureError(FormatError):
    def __init__(self, offset: int, expected: bytes, actual: bytes):
        self.offset = offset
        self.expected = expected
        self.actual = actual
        super().__init__(f"Invalid hive signature {actual!r} at offset {offset:#x}, expected {expected!r}")


class UnsupportedFormatError(FormatError):
    def __init__(self, fmt: int, expected: int):
        self.format = fmt
        self.expected = expected
        super().__init__(f"Unsupported hive format {fmt:#x}, expected {expected:#x} (direct memory load)")


class BadNodeSignatureError(FormatError):
    def __init__(self, offset: int, expected: bytes, actual: bytes, kind: str = "cell"):
        self.offset = offset
        self.expected = expected
        self.actual = actual
        self.kind = kind
        super().__init__(f"Invalid {kind} signature {actual!r} in cell {offset:#x}, expected {expected!r}")


class UnknownListTagError(FormatError):
    def __init__(self, offset: int, actual: bytes, expected: tuple[bytes, ...]):
        self.offset = offset
        self.actual = actual
        self.expected = expected
        expected_tags = ", ".join(repr(tag) for tag in expected)
        super().__init__(f"Unknown subkey list tag {actual!r} in cell {offset:#x}, expected one of {expected_tags}")


class BoundsError(Error):
    """A read falls outside of the loaded hive buffer."""

    def __init__(self, offset: int, length: int, size: int):
        self.offset = offset
        self.length = length
        self.size = size
        super().__init__(f"Read of {length} bytes at offset {offset:#x} exceeds buffer ending at {size:#x}")


class OffsetError(Error):
    """A cell offset can't be translated to a valid cell."""


class OutOfBoundsError(OffsetError):
    def __init__(self, offset: int, size: int, file_length: int):
        self.offset = offset
        self.size = size
        self.file_length = file_length
        super().__init__(f"Cell {offset:#x} with size {size:#x} extends past the end of the hive ({file_length:#x} bytes)")


class InvalidCellSizeError(OffsetError):
    def __init__(self, offset: int, size: int):
        self.offset = offset
        self.size = size
        super().__init__(f"Cell {offset:#x} has invalid size {size}")


class NotFoundError(Error, LookupError):
    pass


class RegistryKeyNotFoundError(NotFoundError):
    def __init__(self, name: str, depth: int | None = None):
        self.name = name
        self.depth = depth
        if depth is None:
            super().__init__(f"Registry key not found: {name!r}")
        else:
            super().__init__(f"Registry key not found: {name!r} at depth {depth}")


class RegistryValueNotFoundError(NotFoundError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Registry value not found: {name!r}")


class DataError(Error):
    """The data of a value can't be reconstructed."""


class TruncatedCellError(DataError):
    def __init__(self, offset: int, expected: int, actual: int):
        self.offset = offset
        self.expected = expected
        self.actual = actual
        super().__init__(f"Data cell {offset:#x} holds {actual} bytes, expected at least {expected}")


class SegmentOutOfBoundsError(DataError):
    def __init__(self, offset: int, index: int | None = None):
        self.offset = offset
        self.index = index
        if index is None:
            super().__init__(f"Big data segment list {offset:#x} can't be resolved")
        else:
            super().__init__(f"Big data segment {index} at {offset:#x} can't be resolved")


class InlineDataTooLargeError(DataError):
    def __init__(self, offset: int, length: int):
        self.offset = offset
        self.length = length
        super().__init__(f"Value {offset:#x} declares {length} bytes of inline data, at most 4 fit")


class InvalidClassNameError(DataError):
    def __init__(self, offset: int, length: int):
        self.offset = offset
        self.length = length
        super().__init__(f"Class name in cell {offset:#x} of {length} bytes is not valid UTF-16-LE")
