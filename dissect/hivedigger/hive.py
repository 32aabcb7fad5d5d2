from __future__ import annotations

import logging
import os
import struct
from enum import Enum
from functools import cached_property
from typing import TYPE_CHECKING, NamedTuple

from dissect.util.ts import wintimestamp

from dissect.hivedigger.c_hive import (
    BASE_BLOCK_FORMAT_MEMORY,
    BASE_BLOCK_SIGNATURE,
    BASE_BLOCK_SIZE,
    BIG_DATA_MIN_VERSION,
    BIG_DATA_SEGMENT_SIZE,
    CM_KEY_VALUE_BIG,
    DATA_INLINE_FLAG,
    DATA_INLINE_MAX,
    HCELL_NIL,
    KEY,
    VALUE,
    c_hive,
)
from dissect.hivedigger.exceptions import (
    BadNodeSignatureError,
    BadSignatureError,
    BoundsError,
    InlineDataTooLargeError,
    InvalidCellSizeError,
    InvalidClassNameError,
    OffsetError,
    OutOfBoundsError,
    RegistryKeyNotFoundError,
    RegistryValueNotFoundError,
    SegmentOutOfBoundsError,
    TruncatedCellError,
    UnknownListTagError,
    UnsupportedFormatError,
)
from dissect.hivedigger.util import decode_name, hashname, name_hint, names_equal, parse_value, upcase, xor32_crc
from dissect.hivedigger.view import ByteView

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence
    from datetime import datetime

log = logging.getLogger(__name__)
log.setLevel(os.getenv("DISSECT_LOG_HIVEDIGGER", "CRITICAL"))

STABLE = 0
VOLATILE = 1

DEFAULT_VALUE_NAME = "(Default)"

# Nesting depth of index roots, including the top level one
INDEX_ROOT_MAX_DEPTH = 4


class DataStorage(Enum):
    INLINE = "inline"
    CELL = "cell"
    BIG_DATA = "big data"


class CellSpan(NamedTuple):
    """A resolved cell: its relative offset, allocation state and body (without the size field)."""

    offset: int
    allocated: bool
    data: ByteView


class BaseBlock:
    """The 4096 byte header of a hive."""

    def __init__(self, header: c_hive._HBASE_BLOCK, checksum_valid: bool):
        self.header = header

        self.signature = header.Signature
        self.primary_sequence = header.Sequence1
        self.secondary_sequence = header.Sequence2
        self.major_version = header.Major
        self.minor_version = header.Minor
        self.file_type = header.Type
        self.format = header.Format
        self.root_cell_offset = header.RootCell
        self.hive_bins_data_size = header.Length
        self.clustering_factor = header.Cluster
        self.filename = header.FileName.rstrip("\x00")
        self.checksum = header.CheckSum
        self.checksum_valid = checksum_valid

    def __repr__(self) -> str:
        return f"<BaseBlock {self.filename!r} version={self.major_version}.{self.minor_version}>"

    @classmethod
    def decode(cls, view: ByteView) -> BaseBlock:
        if (signature := view.read(0, len(BASE_BLOCK_SIGNATURE))) != BASE_BLOCK_SIGNATURE:
            raise BadSignatureError(0, BASE_BLOCK_SIGNATURE, signature)

        data = view.read(0, BASE_BLOCK_SIZE)
        header = c_hive._HBASE_BLOCK(data)
        if header.Format != BASE_BLOCK_FORMAT_MEMORY:
            raise UnsupportedFormatError(header.Format, BASE_BLOCK_FORMAT_MEMORY)

        # The checksum is advisory only, a mismatch does not prevent reading the hive
        base_block = cls(header, xor32_crc(data[:508]) == header.CheckSum)
        if not base_block.checksum_valid:
            log.warning("Checksum of hive %r does not match, the base block may be corrupt", base_block.filename)

        if base_block.in_transaction:
            log.warning(
                "The hive %r is undergoing a transaction, may not be able to read keys and values properly",
                base_block.filename,
            )

        return base_block

    @cached_property
    def timestamp(self) -> datetime:
        return wintimestamp(self.header.TimeStamp)

    @property
    def in_transaction(self) -> bool:
        return self.primary_sequence != self.secondary_sequence


class RegistryHive:
    """Offline reader for a registry hive loaded in memory.

    Nothing is cached between calls: every lookup decodes the cells it needs from the
    underlying buffer again, starting at the root key.

    Args:
        data: The full contents of the hive file.
    """

    def __init__(self, data: bytes | bytearray | memoryview | ByteView):
        self.view = data if isinstance(data, ByteView) else ByteView(data)
        self.header = BaseBlock.decode(self.view)
        self.version = self.header.minor_version

    def __repr__(self) -> str:
        return f"<RegistryHive {self.header.filename!r}>"

    def root(self) -> KeyNode:
        return self.key(self.header.root_cell_offset)

    def cell_span(self, offset: int) -> CellSpan:
        """Translate a relative cell offset to the body of the cell it points to."""
        position = BASE_BLOCK_SIZE + offset
        file_length = len(self.view)

        if position + 4 > file_length:
            raise OutOfBoundsError(offset, 4, file_length)

        size = self.view.int32(position)
        allocated = size < 0
        size = abs(size)

        if size < 4:
            raise InvalidCellSizeError(offset, size)

        if position + size > file_length:
            raise OutOfBoundsError(offset, size, file_length)

        if not allocated:
            log.debug("Cell %#x is not allocated", offset)

        return CellSpan(offset, allocated, self.view.view(position + 4, size - 4))

    def key(self, offset: int) -> KeyNode:
        return KeyNode(self, self.cell_span(offset))

    def key_value(self, offset: int) -> KeyValue:
        return KeyValue(self, self.cell_span(offset))

    def subkey_list(self, offset: int) -> SubkeyList:
        return SubkeyList.decode(self, self.cell_span(offset))

    def open(self, path: str | Sequence[str]) -> KeyNode:
        """Walk from the root key along ``path``, a backslash separated string or a sequence of key names."""
        node = self.root()
        for depth, part in enumerate(split_path(path)):
            try:
                node = node.subkey(part)
            except RegistryKeyNotFoundError:
                raise RegistryKeyNotFoundError(part, depth) from None

        return node

    def lookup(self, path: str | Sequence[str], value_name: str) -> bytes:
        """Return the data of value ``value_name`` of the key at ``path``."""
        return self.value_data(self.open(path).value(value_name))

    def value_data(self, value: KeyValue) -> bytes:
        size = value.data_length

        if value.storage == DataStorage.INLINE:
            if size > DATA_INLINE_MAX:
                raise InlineDataTooLargeError(value.offset, size)
            return struct.pack("<I", value.data_offset)[:size]

        if size == 0:
            return b""

        span = self.cell_span(value.data_offset)
        if self.is_big_data(value, span):
            return BigData(self, span).read(size)

        if len(span.data) < size:
            raise TruncatedCellError(span.offset, size, len(span.data))

        return span.data.read(0, size)

    def data_storage(self, value: KeyValue) -> DataStorage:
        if value.storage == DataStorage.INLINE or not value.data_length:
            return value.storage

        if self.is_big_data(value, self.cell_span(value.data_offset)):
            return DataStorage.BIG_DATA

        return DataStorage.CELL

    def is_big_data(self, value: KeyValue, span: CellSpan) -> bool:
        return (
            self.version >= BIG_DATA_MIN_VERSION
            and value.data_length > CM_KEY_VALUE_BIG
            and len(span.data) >= 2
            and span.data.read(0, 2) == BigData.__signature__
        )


class Cell:
    __signature__ = b""
    __struct__ = None

    def __init__(self, hive: RegistryHive, span: CellSpan):
        self.hive = hive
        self.offset = span.offset
        self.body = span.data

        if (signature := span.data.read(0, 2)) != self.__signature__:
            raise BadNodeSignatureError(span.offset, self.__signature__, signature, self.__class__.__name__)

        self.cell = self.__struct__(span.data.read(0, self._struct_size()))

    def _struct_size(self) -> int:
        return len(self.__struct__)


class KeyNode(Cell):
    __signature__ = b"nk"
    __struct__ = c_hive._CM_KEY_NODE

    def __init__(self, hive: RegistryHive, span: CellSpan):
        super().__init__(hive, span)

        self.flags = self.cell.Flags
        self.parent_offset = self.cell.Parent
        self.subkey_count = self.cell.SubKeyCounts[STABLE]
        self.subkey_list_offset = self.cell.SubKeyLists[STABLE]
        self.volatile_subkey_count = self.cell.SubKeyCounts[VOLATILE]
        self.value_count = self.cell.ValueList.Count
        self.value_list_offset = self.cell.ValueList.List
        self.security_offset = self.cell.Security
        self.class_offset = self.cell.Class
        self.class_length = self.cell.ClassLength

        self.name_length = self.cell.NameLength
        name_blob = span.data.read(len(self.__struct__), self.name_length)
        self.name = decode_name(name_blob, bool(self.flags & KEY.COMP_NAME))

    def __repr__(self) -> str:
        return f"<KeyNode {self.name}>"

    @cached_property
    def timestamp(self) -> datetime:
        return wintimestamp(self.cell.LastWriteTime)

    @cached_property
    def class_name(self) -> str | None:
        if self.class_offset == HCELL_NIL or not self.class_length:
            return None

        span = self.hive.cell_span(self.class_offset)
        try:
            return span.data.read(0, self.class_length).decode("utf-16-le")
        except UnicodeDecodeError:
            raise InvalidClassNameError(self.class_offset, self.class_length) from None

    def subkey_list(self) -> SubkeyList | None:
        if not self.subkey_count or self.subkey_list_offset == HCELL_NIL:
            return None

        subkey_list = self.hive.subkey_list(self.subkey_list_offset)
        if self.subkey_count != subkey_list.count:
            log.debug(
                "KeyNode %s has %d subkeys, while the %s has %d elements",
                self.name,
                self.subkey_count,
                subkey_list.__class__.__name__,
                subkey_list.count,
            )

        return subkey_list

    def subkeys(self) -> Iterator[KeyNode]:
        if subkey_list := self.subkey_list():
            for offset in subkey_list.offsets():
                yield self.hive.key(offset)

    def subkey(self, name: str) -> KeyNode:
        if (subkey_list := self.subkey_list()) is None:
            raise RegistryKeyNotFoundError(name)

        return self.hive.key(subkey_list.resolve_child(name))

    def value_offsets(self) -> list[int]:
        if not (count := self.value_count) or self.value_list_offset == HCELL_NIL:
            return []

        data = self.hive.cell_span(self.value_list_offset).data
        if len(data) // 4 < count:
            log.debug(
                "Value list of key %r holds %d entries instead of %d, reading what is available",
                self.name,
                len(data) // 4,
                count,
            )
            count = len(data) // 4

        return read_offsets(data, count)

    def values(self) -> Iterator[KeyValue]:
        for offset in self.value_offsets():
            yield self.hive.key_value(offset)

    def value(self, name: str) -> KeyValue:
        name = name or DEFAULT_VALUE_NAME
        for value in self.values():
            if names_equal(value.name, name):
                return value

        raise RegistryValueNotFoundError(name)


class KeyValue(Cell):
    __signature__ = b"vk"
    __struct__ = c_hive._CM_KEY_VALUE

    def __init__(self, hive: RegistryHive, span: CellSpan):
        super().__init__(hive, span)

        self.type = self.cell.Type
        self.flags = self.cell.Flags
        self.raw_data_length = self.cell.DataLength
        self.data_length = self.raw_data_length & ~DATA_INLINE_FLAG
        self.data_offset = self.cell.Data

        if (name_length := self.cell.NameLength) == 0:
            self.name = DEFAULT_VALUE_NAME
        else:
            name_blob = span.data.read(len(self.__struct__), name_length)
            self.name = decode_name(name_blob, bool(self.flags & VALUE.COMP_NAME))

    def __repr__(self) -> str:
        return f"<KeyValue {self.name} type={self.type:#x} size={self.data_length}>"

    @property
    def storage(self) -> DataStorage:
        # Whether a cell holds big data is only known once the data cell is resolved
        return DataStorage.INLINE if self.raw_data_length & DATA_INLINE_FLAG else DataStorage.CELL

    @property
    def data(self) -> bytes:
        return self.hive.value_data(self)

    @property
    def value(self) -> int | str | list[str] | bytes:
        return parse_value(self.type, self.data)


class SubkeyList(Cell):
    """Base class of the four subkey index variants."""

    __entry_size__ = 4

    @classmethod
    def decode(cls, hive: RegistryHive, span: CellSpan) -> SubkeyList:
        tag = span.data.read(0, 2)
        if (list_cls := SUBKEY_LIST_CLASSES.get(tag)) is None:
            raise UnknownListTagError(span.offset, tag, tuple(SUBKEY_LIST_CLASSES))

        return list_cls(hive, span)

    def _struct_size(self) -> int:
        return 4 + self.body.uint16(2) * self.__entry_size__

    def __len__(self) -> int:
        return self.count

    @property
    def count(self) -> int:
        return self.cell.Count

    def offsets(self) -> Iterator[int]:
        raise NotImplementedError

    def resolve_child(self, name: str) -> int:
        """Return the offset of the key node called ``name`` or raise :class:`RegistryKeyNotFoundError`."""
        raise NotImplementedError

    def _confirm(self, offset: int, name: str) -> bool:
        return names_equal(self.hive.key(offset).name, name)


class IndexLeaf(SubkeyList):
    __signature__ = b"li"
    __struct__ = c_hive._CM_KEY_INDEX

    def offsets(self) -> Iterator[int]:
        yield from self.cell.List

    def resolve_child(self, name: str) -> int:
        for offset in self.cell.List:
            if self._confirm(offset, name):
                return offset

        raise RegistryKeyNotFoundError(name)


class FastLeaf(SubkeyList):
    __signature__ = b"lf"
    __struct__ = c_hive._CM_KEY_FAST_INDEX
    __entry_size__ = 8

    def offsets(self) -> Iterator[int]:
        for entry in self.cell.List:
            yield entry.Cell

    def resolve_child(self, name: str) -> int:
        hint = name_hint(name)

        # A hint mismatch is final, entries are never checked without a matching hint
        for entry in self.cell.List:
            if upcase(entry.NameHint.rstrip(b"\x00").decode("latin1")) == hint and self._confirm(entry.Cell, name):
                return entry.Cell

        raise RegistryKeyNotFoundError(name)


class HashLeaf(SubkeyList):
    __signature__ = b"lh"
    __struct__ = c_hive._CM_KEY_HASH_INDEX
    __entry_size__ = 8

    def offsets(self) -> Iterator[int]:
        for entry in self.cell.List:
            yield entry.Cell

    def resolve_child(self, name: str) -> int:
        name_hash = hashname(name)

        # Same as the fast leaf, a hash mismatch is final
        for entry in self.cell.List:
            if entry.HashKey == name_hash and self._confirm(entry.Cell, name):
                return entry.Cell

        raise RegistryKeyNotFoundError(name)


class IndexRoot(SubkeyList):
    __signature__ = b"ri"
    __struct__ = c_hive._CM_KEY_INDEX

    def _sublist(self, offset: int, depth: int) -> SubkeyList:
        sublist = self.hive.subkey_list(offset)
        if isinstance(sublist, IndexRoot) and depth >= INDEX_ROOT_MAX_DEPTH:
            raise UnknownListTagError(offset, sublist.__signature__, LEAF_SIGNATURES)
        return sublist

    def offsets(self, depth: int = 1) -> Iterator[int]:
        for entry in self.cell.List:
            sublist = self._sublist(entry, depth)
            if isinstance(sublist, IndexRoot):
                yield from sublist.offsets(depth + 1)
            else:
                yield from sublist.offsets()

    def resolve_child(self, name: str, depth: int = 1) -> int:
        for entry in self.cell.List:
            try:
                sublist = self._sublist(entry, depth)
                if isinstance(sublist, IndexRoot):
                    return sublist.resolve_child(name, depth + 1)
                return sublist.resolve_child(name)
            except RegistryKeyNotFoundError:
                continue
            except (BoundsError, OffsetError, UnknownListTagError) as e:
                log.warning("Skipping subkey list %#x of index root %#x: %s", entry, self.offset, e)

        raise RegistryKeyNotFoundError(name)


class BigData(Cell):
    __signature__ = b"db"
    __struct__ = c_hive._CM_BIG_DATA

    @property
    def count(self) -> int:
        return self.cell.Count

    def segment_offsets(self) -> list[int]:
        try:
            segment_list = self.hive.cell_span(self.cell.List)
            return read_offsets(segment_list.data, self.count)
        except (BoundsError, OffsetError) as e:
            raise SegmentOutOfBoundsError(self.cell.List) from e

    def segments(self) -> Iterator[bytes]:
        for index, offset in enumerate(self.segment_offsets()):
            try:
                segment = self.hive.cell_span(offset)
            except OffsetError as e:
                raise SegmentOutOfBoundsError(offset, index) from e

            yield segment.data.read(0, min(len(segment.data), BIG_DATA_SEGMENT_SIZE))

    def read(self, size: int) -> bytes:
        data = b"".join(self.segments())
        if len(data) < size:
            raise TruncatedCellError(self.offset, size, len(data))

        return data[:size]


SUBKEY_LIST_CLASSES = {
    IndexLeaf.__signature__: IndexLeaf,
    FastLeaf.__signature__: FastLeaf,
    HashLeaf.__signature__: HashLeaf,
    IndexRoot.__signature__: IndexRoot,
}

LEAF_SIGNATURES = (IndexLeaf.__signature__, FastLeaf.__signature__, HashLeaf.__signature__)


def read_offsets(view: ByteView, count: int) -> list[int]:
    if not count:
        return []

    return c_hive.uint32[count](view.read(0, count * 4))


def split_path(path: str | Sequence[str]) -> list[str]:
    if isinstance(path, str):
        path = path.strip("\\")
        return path.split("\\") if path else []

    return list(path)
