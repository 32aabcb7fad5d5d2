from dissect.hivedigger.exceptions import (
    BoundsError,
    DataError,
    Error,
    FormatError,
    NotFoundError,
    OffsetError,
    RegistryKeyNotFoundError,
    RegistryValueNotFoundError,
)
from dissect.hivedigger.hive import RegistryHive
from dissect.hivedigger.view import ByteView


__all__ = [
    "RegistryHive",
    "ByteView",
    "Error",
    "FormatError",
    "BoundsError",
    "OffsetError",
    "NotFoundError",
    "DataError",
    "RegistryKeyNotFoundError",
    "RegistryValueNotFoundError",
]
