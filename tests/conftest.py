from __future__ import annotations

import struct
from typing import TYPE_CHECKING

import pytest

from dissect.hivedigger.c_hive import REG_BINARY, REG_DWORD
from dissect.hivedigger.util import hashname

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

HCELL_NIL = 0xFFFFFFFF
HBIN_HEADER_SIZE = 0x20


class HiveBuilder:
    """Build small hives in memory, cell by cell.

    Cells are appended to a single hive bin. Keys have to be built bottom-up, since a key
    node needs the offsets of its subkeys and values.
    """

    def __init__(self):
        self.body = bytearray(HBIN_HEADER_SIZE)
        self.names = {}

    def cell(self, payload: bytes, allocated: bool = True) -> int:
        offset = len(self.body)
        size = (len(payload) + 4 + 7) & ~7
        self.body += struct.pack("<i", -size if allocated else size)
        self.body += payload.ljust(size - 4, b"\x00")
        return offset

    def key_node(
        self,
        name: str,
        subkey_count: int = 0,
        subkey_list: int = HCELL_NIL,
        value_count: int = 0,
        value_list: int = HCELL_NIL,
        class_offset: int = HCELL_NIL,
        class_length: int = 0,
        comp_name: bool = True,
        signature: bytes = b"nk",
    ) -> int:
        blob = name.encode("latin1") if comp_name else name.encode("utf-16-le")
        payload = struct.pack(
            "<2sHQ15IHH",
            signature,
            0x0020 if comp_name else 0,
            0,
            0,
            0,
            subkey_count,
            0,
            subkey_list,
            HCELL_NIL,
            value_count,
            value_list,
            HCELL_NIL,
            class_offset,
            0,
            0,
            0,
            0,
            0,
            len(blob),
            class_length,
        )
        offset = self.cell(payload + blob)
        self.names[offset] = name
        return offset

    def key(
        self,
        name: str,
        subkeys: Sequence[int] = (),
        values: Sequence[int] = (),
        list_type: str = "lf",
        class_name: str | None = None,
        comp_name: bool = True,
    ) -> int:
        if not subkeys:
            subkey_list = HCELL_NIL
        elif list_type == "ri":
            subkey_list = self.index_root(subkeys)
        else:
            subkey_list = self.subkey_list(list_type, subkeys)
        value_list = self.offset_list(values) if values else HCELL_NIL

        class_offset, class_length = HCELL_NIL, 0
        if class_name is not None:
            blob = class_name.encode("utf-16-le")
            class_offset, class_length = self.cell(blob), len(blob)

        return self.key_node(
            name,
            len(subkeys),
            subkey_list,
            len(values),
            value_list,
            class_offset,
            class_length,
            comp_name,
        )

    def offset_list(self, offsets: Sequence[int]) -> int:
        return self.cell(struct.pack(f"<{len(offsets)}I", *offsets))

    def subkey_list(self, list_type: str, offsets: Sequence[int]) -> int:
        header = struct.pack("<2sH", list_type.encode(), len(offsets))

        if list_type in ("li", "ri"):
            entries = struct.pack(f"<{len(offsets)}I", *offsets)
        elif list_type == "lf":
            entries = b"".join(struct.pack("<I4s", o, self.names[o][:4].encode("latin1")) for o in offsets)
        elif list_type == "lh":
            entries = b"".join(struct.pack("<II", o, hashname(self.names[o])) for o in offsets)
        else:
            entries = struct.pack(f"<{len(offsets)}I", *offsets)

        return self.cell(header + entries)

    def index_root(self, offsets: Sequence[int]) -> int:
        """Spread ``offsets`` over two hash leaves below an index root."""
        half = (len(offsets) + 1) // 2
        leaves = [self.subkey_list("lh", offsets[:half]), self.subkey_list("lh", offsets[half:])]
        return self.subkey_list("ri", leaves)

    def value_node(
        self,
        name: str,
        data_length: int,
        data_offset: int,
        data_type: int = REG_BINARY,
        comp_name: bool = True,
        signature: bytes = b"vk",
    ) -> int:
        blob = name.encode("latin1") if comp_name else name.encode("utf-16-le")
        payload = struct.pack("<2sHIIIHH", signature, len(blob), data_length, data_offset, data_type, int(comp_name), 0)
        return self.cell(payload + blob)

    def inline_value(self, name: str, data: bytes, data_type: int = REG_BINARY) -> int:
        field = int.from_bytes(data.ljust(4, b"\x00"), "little")
        return self.value_node(name, len(data) | 0x80000000, field, data_type)

    def cell_value(self, name: str, data: bytes, data_type: int = REG_BINARY) -> int:
        return self.value_node(name, len(data), self.cell(data), data_type)

    def big_data_value(self, name: str, segments: Sequence[bytes], data_length: int | None = None) -> int:
        segment_list = self.offset_list([self.cell(segment) for segment in segments])
        big_data = self.cell(struct.pack("<2sHI", b"db", len(segments), segment_list))

        if data_length is None:
            data_length = sum(len(segment) for segment in segments)
        return self.value_node(name, data_length, big_data)

    def dword_value(self, name: str, value: int) -> int:
        return self.inline_value(name, struct.pack("<I", value), REG_DWORD)

    def build(
        self,
        root: int,
        minor: int = 5,
        signature: bytes = b"regf",
        fmt: int = 1,
        sequence: tuple[int, int] = (1, 1),
        filename: str = "SYSTEM",
    ) -> bytes:
        self.body[:HBIN_HEADER_SIZE] = struct.pack("<4sII8sQI", b"hbin", 0, len(self.body), b"", 0, 0)

        header = bytearray(4096)
        struct.pack_into(
            "<4sIIQIIIIIII",
            header,
            0,
            signature,
            sequence[0],
            sequence[1],
            0,
            1,
            minor,
            0,
            fmt,
            root,
            len(self.body),
            1,
        )
        struct.pack_into("<64s", header, 48, filename.encode("utf-16-le"))

        checksum = 0
        for (dword,) in struct.iter_unpack("<I", header[:508]):
            checksum ^= dword
        struct.pack_into("<I", header, 508, checksum)

        return bytes(header + self.body)


@pytest.fixture
def builder() -> HiveBuilder:
    return HiveBuilder()


LSA_CLASS_NAMES = {
    "JD": "cdebfed5",
    "Skew1": "7db4e11c",
    "GBG": "b185f3f2",
    "Data": "a282942c",
}


def build_system_hive(builder: HiveBuilder, control_set: str, jd_data: bytes) -> bytes:
    lsa_subkeys = [builder.key(name, class_name=class_name) for name, class_name in LSA_CLASS_NAMES.items()]
    lsa = builder.key("Lsa", lsa_subkeys, [builder.cell_value("JD", jd_data)], list_type="lh")
    control = builder.key("Control", [builder.key("Session Manager"), lsa], list_type="lf")
    controlset = builder.key(control_set, [control, builder.key("Services")], list_type="lh")
    select = builder.key("Select", values=[builder.dword_value("Current", 1), builder.dword_value("Default", 1)])
    root = builder.key("ROOT", [controlset, select, builder.key("Setup")], list_type="lf")
    return builder.build(root)


@pytest.fixture
def jd_data() -> bytes:
    return bytes(range(16))


@pytest.fixture
def system_hive(builder: HiveBuilder, jd_data: bytes) -> bytes:
    return build_system_hive(builder, "ControlSet001", jd_data)


@pytest.fixture
def live_system_hive(builder: HiveBuilder, jd_data: bytes) -> bytes:
    return build_system_hive(builder, "CurrentControlSet", jd_data)


@pytest.fixture
def make_hive(builder: HiveBuilder) -> Callable[..., bytes]:
    """Build a hive holding a single key ``Key`` below the root with the given values."""

    def _make_hive(values: Sequence[int], list_type: str = "lf", **kwargs) -> bytes:
        key = builder.key("Key", values=values)
        root = builder.key("ROOT", [key], list_type=list_type)
        return builder.build(root, **kwargs)

    return _make_hive
