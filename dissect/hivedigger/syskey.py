from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from dissect.hivedigger.c_hive import REG_DWORD
from dissect.hivedigger.exceptions import DataError, NotFoundError, RegistryKeyNotFoundError

if TYPE_CHECKING:
    from dissect.hivedigger.hive import RegistryHive

log = logging.getLogger(__name__)
log.setLevel(os.getenv("DISSECT_LOG_HIVEDIGGER", "CRITICAL"))

CURRENT_CONTROL_SET = "CurrentControlSet"
LSA_PATH = (CURRENT_CONTROL_SET, "Control", "Lsa")
JD_VALUE = "JD"

BOOT_KEY_CLASSES = ("JD", "Skew1", "GBG", "Data")
BOOT_KEY_PERMUTATION = (8, 5, 4, 2, 11, 9, 13, 3, 0, 6, 1, 12, 14, 10, 15, 7)


def current_control_set(hive: RegistryHive) -> str:
    """Return the name of the control set that ``Select\\Current`` points to, e.g. ``ControlSet001``."""
    current = hive.open("Select").value("Current")
    if current.type != REG_DWORD:
        raise DataError(f"Select\\Current has type {current.type:#x}, expected REG_DWORD")

    return f"ControlSet{current.value:03d}"


def lsa_path(hive: RegistryHive) -> tuple[str, ...]:
    """Return the path of the Lsa key in a SYSTEM hive.

    A live system exposes ``CurrentControlSet`` as a link, which is absent from hives on disk.
    In that case the control set selected by ``Select\\Current`` is used instead.
    """
    try:
        hive.open(LSA_PATH[:1])
    except RegistryKeyNotFoundError as e:
        try:
            control_set = current_control_set(hive)
        except NotFoundError:
            raise e from None

        log.debug("No %s key in hive, using %s", CURRENT_CONTROL_SET, control_set)
        return (control_set, *LSA_PATH[1:])

    return LSA_PATH


def read_jd(hive: RegistryHive) -> bytes:
    """Return the data of the ``JD`` value of the Lsa key."""
    return hive.lookup(lsa_path(hive), JD_VALUE)


def boot_key(hive: RegistryHive) -> bytes:
    """Assemble the boot key from the class names of the ``JD``, ``Skew1``, ``GBG`` and ``Data`` keys."""
    lsa = hive.open(lsa_path(hive))

    scrambled = b""
    for name in BOOT_KEY_CLASSES:
        class_name = lsa.subkey(name).class_name
        try:
            scrambled += bytes.fromhex(class_name[:8])
        except (TypeError, ValueError):
            raise DataError(f"Class name of Lsa\\{name} is not a hexadecimal string: {class_name!r}") from None

    if len(scrambled) != len(BOOT_KEY_PERMUTATION):
        raise DataError(f"Scrambled boot key is {len(scrambled)} bytes, expected {len(BOOT_KEY_PERMUTATION)}")

    return bytes(scrambled[index] for index in BOOT_KEY_PERMUTATION)
