from __future__ import annotations

from dissect.cstruct import cstruct

hive_def = """
typedef ULONG       HCELL_INDEX;
typedef ULONGLONG   LARGE_INTEGER;

#define HTYPE_COUNT 2

flag KEY : USHORT {
    IS_VOLATILE     = 0x0001,
    HIVE_EXIT       = 0x0002,
    HIVE_ENTRY      = 0x0004,
    NO_DELETE       = 0x0008,
    SYM_LINK        = 0x0010,
    COMP_NAME       = 0x0020,
    PREDEF_HANDLE   = 0x0040,
    VIRT_MIRRORED   = 0x0080,
    VIRT_TARGET     = 0x0100,
    VIRTUAL_STORE   = 0x0200,
};

flag VALUE : USHORT {
    COMP_NAME       = 0x0001,
    TOMBSTONE       = 0x0002,
};

typedef struct _HBASE_BLOCK {
    CHAR            Signature[4];
    ULONG           Sequence1;
    ULONG           Sequence2;
    LARGE_INTEGER   TimeStamp;
    ULONG           Major;
    ULONG           Minor;
    ULONG           Type;
    ULONG           Format;
    HCELL_INDEX     RootCell;
    ULONG           Length;
    ULONG           Cluster;
    WCHAR           FileName[32];
    ULONG           Reserved1[99];
    ULONG           CheckSum;
    ULONG           Reserved2[0x37e];
    ULONG           BootType;
    ULONG           BootRecover;
} HBASE_BLOCK;

typedef struct _CHILD_LIST {
    ULONG           Count;
    HCELL_INDEX     List;
} CHILD_LIST;

typedef struct _CM_KEY_NODE {
    CHAR            Signature[2];
    KEY             Flags;
    LARGE_INTEGER   LastWriteTime;
    ULONG           Spare;
    HCELL_INDEX     Parent;
    ULONG           SubKeyCounts[HTYPE_COUNT];
    ULONG           SubKeyLists[HTYPE_COUNT];
    CHILD_LIST      ValueList;
    HCELL_INDEX     Security;
    HCELL_INDEX     Class;
    ULONG           MaxNameLen;
    ULONG           MaxClassLen;
    ULONG           MaxValueNameLen;
    ULONG           MaxValueDataLen;
    ULONG           WorkVar;
    USHORT          NameLength;
    USHORT          ClassLength;
    // CHAR or WCHAR   Name[NameLength];
} CM_KEY_NODE;

typedef struct _CM_INDEX {
    HCELL_INDEX     Cell;
    CHAR            NameHint[4];
} CM_INDEX;

typedef struct _CM_HASH_INDEX {
    HCELL_INDEX     Cell;
    ULONG           HashKey;
} CM_HASH_INDEX;

typedef struct _CM_KEY_INDEX {
    CHAR            Signature[2];
    USHORT          Count;
    HCELL_INDEX     List[Count];
} CM_KEY_INDEX;

typedef struct _CM_KEY_FAST_INDEX {
    CHAR            Signature[2];
    USHORT          Count;
    CM_INDEX        List[Count];
} CM_KEY_FAST_INDEX;

typedef struct _CM_KEY_HASH_INDEX {
    CHAR            Signature[2];
    USHORT          Count;
    CM_HASH_INDEX   List[Count];
} CM_KEY_HASH_INDEX;

typedef struct _CM_KEY_VALUE {
    CHAR            Signature[2];
    USHORT          NameLength;
    ULONG           DataLength;
    HCELL_INDEX     Data;
    ULONG           Type;
    VALUE           Flags;
    USHORT          Spare;
    // CHAR or WCHAR   Name[NameLength];
} CM_KEY_VALUE;

typedef struct _CM_BIG_DATA {
    CHAR            Signature[2];
    USHORT          Count;
    HCELL_INDEX     List;
} CM_BIG_DATA;
"""

c_hive = cstruct().load(hive_def)

KEY = c_hive.KEY
VALUE = c_hive.VALUE

BASE_BLOCK_SIZE = len(c_hive._HBASE_BLOCK)
BASE_BLOCK_SIGNATURE = b"regf"
# HBASE_FORMAT_MEMORY, "direct memory load"
BASE_BLOCK_FORMAT_MEMORY = 1

HCELL_NIL = 0xFFFFFFFF

# HSYS_WHISTLER_BETA1, big data cells exist starting from hive version 1.4
BIG_DATA_MIN_VERSION = 4
# CM_KEY_VALUE_BIG
CM_KEY_VALUE_BIG = 0x3FD8
BIG_DATA_SEGMENT_SIZE = 0x4000

# CM_KEY_VALUE_SPECIAL_SIZE
DATA_INLINE_FLAG = 0x80000000
DATA_INLINE_MAX = 4

REG_NONE = 0x0
REG_SZ = 0x1
REG_EXPAND_SZ = 0x2
REG_BINARY = 0x3
REG_DWORD = 0x4
REG_DWORD_BIG_ENDIAN = 0x5
REG_LINK = 0x6
REG_MULTI_SZ = 0x7
REG_RESOURCE_LIST = 0x8
REG_FULL_RESOURCE_DESCRIPTOR = 0x9
REG_RESOURCE_REQUIREMENTS_LIST = 0xA
REG_QWORD = 0xB
