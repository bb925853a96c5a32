"""File-system limits, open flags and request operation codes."""

from enum import IntEnum, IntFlag

ROOT_DIR_INUM = 0

BLOCK_SIZE = 1024
DATA_BLOCKS = 1024
INODE_TABLE_SIZE = 50
MAX_OPEN_FILES = 20
MAX_FILE_NAME = 40
MAX_PIPE_NAME = 40

# Size in bytes of an integer stored on disk (block references, wire ints).
INT_SIZE = 4

# Number of direct block references held by each file i-node.
DIRECT_BLOCKS = 10
# Number of block references that fit in one indirect reference block.
INDIRECT_REFERENCES = BLOCK_SIZE // INT_SIZE

MAX_FILE_SIZE = (DIRECT_BLOCKS + INDIRECT_REFERENCES) * BLOCK_SIZE

# A directory entry is a fixed-width name followed by an i-number.
DIR_ENTRY_SIZE = MAX_FILE_NAME + INT_SIZE
MAX_DIR_ENTRIES = BLOCK_SIZE // DIR_ENTRY_SIZE


class OpenFlag(IntFlag):
    """Flags accepted when opening a file; they may be combined with ``|``."""

    NONE = 0
    CREAT = 0b001
    TRUNC = 0b010
    APPEND = 0b100


class OpCode(IntEnum):
    """Operation codes of client-server requests."""

    MOUNT = 1
    UNMOUNT = 2
    OPEN = 3
    CLOSE = 4
    WRITE = 5
    READ = 6
    SHUTDOWN_AFTER_ALL_CLOSED = 7