"""In-memory state of the file system: i-nodes, data blocks and open files."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from tecnicofs.config import (
    BLOCK_SIZE,
    DATA_BLOCKS,
    DIRECT_BLOCKS,
    INDIRECT_REFERENCES,
    INODE_TABLE_SIZE,
    MAX_DIR_ENTRIES,
    MAX_FILE_NAME,
    MAX_OPEN_FILES,
)


class TfsError(Exception):
    """Raised when a file-system operation cannot be carried out."""


class InodeType(Enum):
    FILE = 0
    DIRECTORY = 1


@dataclass
class Inode:
    """An i-node; directories keep their entries in fixed slots."""

    node_type: InodeType = InodeType.FILE
    size: int = 0
    data_block: int = -1
    direct: list[int] = field(default_factory=lambda: [-1] * DIRECT_BLOCKS)
    entries: list[Optional[tuple[str, int]]] = field(default_factory=list)
    lock: threading.RLock = field(
        default_factory=threading.RLock, repr=False, compare=False
    )


@dataclass
class OpenFileEntry:
    """An entry of the open file table."""

    inumber: int = -1
    offset: int = 0
    lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )


def _first_free(taken: list[bool]) -> Optional[int]:
    return next((index for index, used in enumerate(taken) if not used), None)


class FileSystemState:
    """I-node table, data blocks and open file table of one file system."""

    def __init__(self) -> None:
        self._inodes = [Inode() for _ in range(INODE_TABLE_SIZE)]
        self._inode_taken = [False] * INODE_TABLE_SIZE
        self._inode_table_lock = threading.RLock()

        self._data = bytearray(BLOCK_SIZE * DATA_BLOCKS)
        self._block_taken = [False] * DATA_BLOCKS
        self._data_table_lock = threading.Lock()

        self._open_files = [OpenFileEntry() for _ in range(MAX_OPEN_FILES)]
        self._open_taken = [False] * MAX_OPEN_FILES
        self._open_table_lock = threading.Lock()

    # i-nodes

    def inode_create(self, n_type: InodeType) -> int:
        """Take the first free i-node, initialise it and return its number."""
        with self._inode_table_lock:
            inumber = _first_free(self._inode_taken)
            if inumber is None:
                raise TfsError("i-node table is full")
            self._inode_taken[inumber] = True
            inode = self._inodes[inumber]
            inode.node_type = n_type
            inode.direct = [-1] * DIRECT_BLOCKS
            if n_type is InodeType.DIRECTORY:
                try:
                    block = self.data_block_alloc()
                except TfsError:
                    self._inode_taken[inumber] = False
                    raise
                inode.size = BLOCK_SIZE
                inode.data_block = block
                inode.entries = [None] * MAX_DIR_ENTRIES
            else:
                inode.size = 0
                inode.data_block = -1
                inode.entries = []
            return inumber

    def inode_delete(self, inumber: int) -> None:
        """Free an i-node and the data blocks it holds."""
        with self._inode_table_lock:
            if not self._valid_inumber(inumber) or not self._inode_taken[inumber]:
                raise TfsError(f"no i-node {inumber} to delete")
            self._inode_taken[inumber] = False
            inode = self._inodes[inumber]
            if inode.node_type is InodeType.DIRECTORY:
                for entry in inode.entries:
                    if entry is not None:
                        self.inode_delete(entry[1])
                if inode.size > 0:
                    self.data_block_free(inode.data_block)
            elif inode.size > 0:
                self._free_file_blocks(inode)

    def _free_file_blocks(self, inode: Inode) -> None:
        n_blocks = inode.size // BLOCK_SIZE
        for block in inode.direct[: min(DIRECT_BLOCKS, n_blocks)]:
            self.data_block_free(block)
        if n_blocks >= DIRECT_BLOCKS:
            remaining = n_blocks - DIRECT_BLOCKS
            references = self.data_block_get(inode.data_block).cast("i")
            for block in references[: min(INDIRECT_REFERENCES, remaining)]:
                self.data_block_free(block)
            self.data_block_free(inode.data_block)

    def inode_get(self, inumber: int) -> Inode:
        """Return the i-node with the given number."""
        if not self._valid_inumber(inumber):
            raise TfsError(f"invalid i-number {inumber}")
        return self._inodes[inumber]

    # directories

    def add_dir_entry(self, inumber: int, sub_inumber: int, sub_name: str) -> None:
        """Record ``sub_name`` -> ``sub_inumber`` in the first free slot of a directory."""
        if not self._valid_inumber(inumber) or not self._valid_inumber(sub_inumber):
            raise TfsError("invalid i-number")
        directory = self._inodes[inumber]
        with directory.lock:
            if directory.node_type is not InodeType.DIRECTORY:
                raise TfsError(f"i-node {inumber} is not a directory")
            if not sub_name:
                raise TfsError("empty entry name")
            slot = next(
                (i for i, entry in enumerate(directory.entries) if entry is None),
                None,
            )
            if slot is None:
                raise TfsError("directory is full")
            directory.entries[slot] = (sub_name[: MAX_FILE_NAME - 1], sub_inumber)

    def find_in_dir(self, inumber: int, sub_name: str) -> Optional[int]:
        """Return the i-number linked to ``sub_name``, or None if absent."""
        if (
            not self._valid_inumber(inumber)
            or self._inodes[inumber].node_type is not InodeType.DIRECTORY
        ):
            raise TfsError(f"i-node {inumber} is not a directory")
        directory = self._inodes[inumber]
        with directory.lock:
            return next(
                (
                    entry[1]
                    for entry in directory.entries
                    if entry is not None and entry[0] == sub_name
                ),
                None,
            )

    # data blocks

    def data_block_alloc(self) -> int:
        """Take the first free data block and return its index."""
        with self._data_table_lock:
            block = _first_free(self._block_taken)
            if block is None:
                raise TfsError("no free data blocks")
            self._block_taken[block] = True
            return block

    def data_block_free(self, block_number: int) -> None:
        """Mark a data block as free."""
        if not self._valid_block_number(block_number):
            raise TfsError(f"invalid block number {block_number}")
        with self._data_table_lock:
            self._block_taken[block_number] = False

    def data_block_get(self, block_number: int) -> memoryview:
        """Return a writable view of the contents of a data block."""
        if not self._valid_block_number(block_number):
            raise TfsError(f"invalid block number {block_number}")
        start = block_number * BLOCK_SIZE
        return memoryview(self._data)[start : start + BLOCK_SIZE]

    # open file table

    def add_to_open_file_table(self, inumber: int, offset: int) -> int:
        """Register an open file and return its handle."""
        with self._open_table_lock:
            handle = _first_free(self._open_taken)
            if handle is None:
                raise TfsError("open file table is full")
            self._open_taken[handle] = True
            entry = self._open_files[handle]
            entry.inumber = inumber
            entry.offset = offset
            return handle

    def remove_from_open_file_table(self, fhandle: int) -> None:
        """Release an open file handle."""
        with self._open_table_lock:
            if not self._valid_file_handle(fhandle) or not self._open_taken[fhandle]:
                raise TfsError(f"file handle {fhandle} is not open")
            self._open_taken[fhandle] = False

    def get_open_file_entry(self, fhandle: int) -> OpenFileEntry:
        """Return the open file table entry for a handle."""
        if not self._valid_file_handle(fhandle):
            raise TfsError(f"invalid file handle {fhandle}")
        return self._open_files[fhandle]

    # validation

    @staticmethod
    def _valid_inumber(inumber: int) -> bool:
        return 0 <= inumber < INODE_TABLE_SIZE

    @staticmethod
    def _valid_block_number(block_number: int) -> bool:
        return 0 <= block_number < DATA_BLOCKS

    @staticmethod
    def _valid_file_handle(fhandle: int) -> bool:
        return 0 <= fhandle < MAX_OPEN_FILES