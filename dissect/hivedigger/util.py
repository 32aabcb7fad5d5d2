from __future__ import annotations

import logging
import os
import struct

from dissect.hivedigger.c_hive import (
    REG_BINARY,
    REG_DWORD,
    REG_DWORD_BIG_ENDIAN,
    REG_EXPAND_SZ,
    REG_MULTI_SZ,
    REG_NONE,
    REG_QWORD,
    REG_SZ,
    c_hive,
)

log = logging.getLogger(__name__)
log.setLevel(os.getenv("DISSECT_LOG_HIVEDIGGER", "CRITICAL"))


def decode_name(blob: bytes, is_comp_name: bool) -> str:
    """Decode a key or value name.

    Compressed names are stored as one byte per character, other names as UTF-16-LE.
    """
    if is_comp_name:
        try:
            return blob.decode("ascii")
        except UnicodeDecodeError:
            return blob.decode("latin1")

    try:
        return blob[: len(blob) & ~1].decode("utf-16-le")
    except UnicodeDecodeError:
        return repr(blob)


def upcase(name: str) -> str:
    # Characters are upcased one by one, a mapping that changes the length (e.g. "ß") leaves the character as is
    return "".join(upper if len(upper := char.upper()) == 1 else char for char in name)


def names_equal(name: str, other: str) -> bool:
    # Key and value names are case insensitive
    return len(name) == len(other) and upcase(name) == upcase(other)


def hashname(name: str) -> int:
    # Hash used by the "lh" subkey list, computed over the upper case name
    name_hash = 0
    for char in upcase(name):
        name_hash = (name_hash * 37 + ord(char)) & 0xFFFFFFFF

    return name_hash


def name_hint(name: str) -> str:
    # "lf" lists store the first four characters of a name, NUL padded
    return upcase(name[:4])


def xor32_crc(data: bytes) -> int:
    crc = 0
    for dword in c_hive.uint32[len(data) // 4](data):
        crc ^= dword

    # 0 and -1 are reserved values
    if crc == 0xFFFFFFFF:
        crc = 0xFFFFFFFE
    elif crc == 0:
        crc = 1

    return crc


def try_decode_sz(data: bytes) -> str:
    if not data:
        return ""

    try:
        # Strings written by some tools are 8-bit instead of UTF-16-LE
        if (data.isascii() or data.endswith(b"\x00")) and data[1:2] != b"\x00":
            return data.split(b"\x00", 1)[0].decode("latin1")

        if len(data) % 2:
            data += b"\x00"

        # The terminator must start on a character boundary
        end = 0
        while end < len(data) and data[end : end + 2] != b"\x00\x00":
            end += 2

        return data[:end].decode("utf-16-le")
    except UnicodeDecodeError:
        return data.decode("utf-16-le", "ignore").strip("\x00")


def split_multi_sz(data: bytes) -> list[str]:
    # A list of NUL terminated strings, ended by an empty string
    strings = []
    for entry in data[: len(data) & ~1].decode("utf-16-le", "replace").split("\x00"):
        if not entry:
            break
        strings.append(entry)

    return strings


def parse_value(data_type: int, data: bytes) -> int | str | list[str] | bytes:
    if data_type == REG_DWORD:
        return c_hive.uint32(data[:4].ljust(4, b"\x00")) if data else 0

    if data_type == REG_DWORD_BIG_ENDIAN:
        return struct.unpack(">I", data[:4].ljust(4, b"\x00"))[0] if data else 0

    if data_type == REG_QWORD:
        return c_hive.uint64(data[:8].ljust(8, b"\x00")) if data else 0

    if data_type in (REG_SZ, REG_EXPAND_SZ):
        return try_decode_sz(data)

    if data_type == REG_MULTI_SZ:
        return split_multi_sz(data)

    if data_type not in (REG_BINARY, REG_NONE):
        log.warning("Data type 0x%x not supported, returning raw bytes", data_type)

    return data
