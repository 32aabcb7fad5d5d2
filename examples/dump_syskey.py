import sys
from pathlib import Path

from dissect.hivedigger import RegistryHive, syskey


def main() -> None:
    hive = RegistryHive(Path(sys.argv[1]).read_bytes())

    print("JD:", syskey.read_jd(hive).hex())
    print("Boot key:", syskey.boot_key(hive).hex())


if __name__ == "__main__":
    main()
