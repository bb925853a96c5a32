"""File operations on a single-directory, in-memory file system."""

from __future__ import annotations

import math
import threading
from array import array
from pathlib import Path
from typing import Optional, Union

from tecnicofs.config import (
    BLOCK_SIZE,
    DIRECT_BLOCKS,
    INDIRECT_REFERENCES,
    MAX_FILE_SIZE,
    ROOT_DIR_INUM,
    OpenFlag,
)
from tecnicofs.state import FileSystemState, Inode, InodeType, TfsError

PathLike = Union[str, Path]


def _valid_pathname(name: object) -> bool:
    return isinstance(name, str) and len(name) > 1 and name.startswith("/")


class TecnicoFS:
    """A file system whose files all live in the root directory.

    Files hold up to ten direct data blocks plus one block of indirect
    references. Operations are safe to call from several threads.
    """

    def __init__(self) -> None:
        self._state = FileSystemState()
        self._all_closed = threading.Condition()
        self._open_count = 0
        self._shutting_down = False
        self._destroyed = False
        root = self._state.inode_create(InodeType.DIRECTORY)
        if root != ROOT_DIR_INUM:
            raise TfsError("root directory was not created at the root i-number")

    def __enter__(self) -> "TecnicoFS":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.destroy()

    # life cycle

    def destroy(self) -> None:
        """Tear the file system down; later operations raise TfsError."""
        with self._all_closed:
            self._destroyed = True
            self._all_closed.notify_all()

    def destroy_after_all_closed(self) -> None:
        """Refuse new opens, wait until every open file is closed, then destroy."""
        with self._all_closed:
            self._shutting_down = True
            self._all_closed.wait_for(lambda: self._open_count == 0)
        self.destroy()

    def _ensure_alive(self) -> None:
        if self._destroyed:
            raise TfsError("file system has been destroyed")

    # names

    def lookup(self, name: str) -> Optional[int]:
        """Return the i-number of the file ``name``, or None if it does not exist."""
        self._ensure_alive()
        if not _valid_pathname(name):
            raise TfsError(f"invalid path name {name!r}")
        return self._state.find_in_dir(ROOT_DIR_INUM, name[1:])

    # opening and closing

    def open(self, name: str, flags: int = OpenFlag.NONE) -> int:
        """Open ``name`` and return a file handle.

        ``flags`` combines OpenFlag.CREAT, OpenFlag.TRUNC and OpenFlag.APPEND.
        """
        flags = OpenFlag(flags)
        with self._all_closed:
            if self._shutting_down:
                raise TfsError("file system is shutting down")
            self._ensure_alive()
            handle = self._open_unsynchronized(name, flags)
            self._open_count += 1
        return handle

    def _open_unsynchronized(self, name: str, flags: OpenFlag) -> int:
        inumber = self.lookup(name)
        if inumber is not None:
            inode = self._state.inode_get(inumber)
            with inode.lock:
                if flags & OpenFlag.TRUNC and inode.size > 0:
                    self._truncate(inode)
                offset = inode.size if flags & OpenFlag.APPEND else 0
        elif flags & OpenFlag.CREAT:
            inumber = self._state.inode_create(InodeType.FILE)
            try:
                self._state.add_dir_entry(ROOT_DIR_INUM, inumber, name[1:])
            except TfsError:
                self._state.inode_delete(inumber)
                raise
            offset = 0
        else:
            raise TfsError(f"no such file {name!r}")
        return self._state.add_to_open_file_table(inumber, offset)

    def close(self, fhandle: int) -> None:
        """Close an open file handle."""
        with self._all_closed:
            self._ensure_alive()
            self._state.remove_from_open_file_table(fhandle)
            self._open_count -= 1
            self._all_closed.notify_all()

    # block bookkeeping

    def _truncate(self, inode: Inode) -> None:
        n_blocks = math.ceil(inode.size / BLOCK_SIZE)
        for block in inode.direct[: min(DIRECT_BLOCKS, n_blocks)]:
            if block != -1:
                self._state.data_block_free(block)
        if inode.data_block != -1:
            references = self._state.data_block_get(inode.data_block).cast("i")
            for block in references[: max(0, n_blocks - DIRECT_BLOCKS)]:
                if block != -1:
                    self._state.data_block_free(block)
            self._state.data_block_free(inode.data_block)
        inode.direct = [-1] * DIRECT_BLOCKS
        inode.data_block = -1
        inode.size = 0

    def _block_for(self, inode: Inode, index: int, allocate: bool) -> memoryview:
        """Return the contents of the ``index``-th block of a file."""
        if index < DIRECT_BLOCKS:
            reference = inode.direct[index]
            if reference == -1 and allocate:
                reference = self._state.data_block_alloc()
                inode.direct[index] = reference
            return self._state.data_block_get(reference)

        if inode.data_block == -1:
            if not allocate:
                raise TfsError("file has no indirect reference block")
            inode.data_block = self._state.data_block_alloc()
            references = self._state.data_block_get(inode.data_block).cast("i")
            references[:] = array("i", [-1] * INDIRECT_REFERENCES)
        references = self._state.data_block_get(inode.data_block).cast("i")
        slot = index - DIRECT_BLOCKS
        reference = references[slot]
        if reference == -1 and allocate:
            reference = self._state.data_block_alloc()
            references[slot] = reference
        return self._state.data_block_get(reference)

    # reading and writing

    def write(self, fhandle: int, data: bytes) -> int:
        """Write ``data`` at the handle's offset and return the bytes written.

        Fewer bytes than given are written when the maximum file size is reached.
        """
        self._ensure_alive()
        payload = bytes(data)
        entry = self._state.get_open_file_entry(fhandle)
        with entry.lock:
            inode = self._state.inode_get(entry.inumber)
            with inode.lock:
                to_write = max(0, min(len(payload), MAX_FILE_SIZE - entry.offset))
                written = 0
                while written < to_write:
                    index, within = divmod(entry.offset + written, BLOCK_SIZE)
                    block = self._block_for(inode, index, allocate=True)
                    chunk = min(BLOCK_SIZE - within, to_write - written)
                    block[within : within + chunk] = payload[written : written + chunk]
                    written += chunk
                entry.offset += to_write
                inode.size = max(inode.size, entry.offset)
        return to_write

    def read(self, fhandle: int, length: int) -> bytes:
        """Read up to ``length`` bytes from the handle's offset."""
        self._ensure_alive()
        if length < 0:
            raise TfsError("length must not be negative")
        entry = self._state.get_open_file_entry(fhandle)
        with entry.lock:
            inode = self._state.inode_get(entry.inumber)
            with inode.lock:
                to_read = max(0, min(length, inode.size - entry.offset))
                out = bytearray()
                while len(out) < to_read:
                    index, within = divmod(entry.offset + len(out), BLOCK_SIZE)
                    block = self._block_for(inode, index, allocate=False)
                    chunk = min(BLOCK_SIZE - within, to_read - len(out))
                    out += block[within : within + chunk]
                entry.offset += to_read
        return bytes(out)

    # export

    def copy_to_external_fs(self, source_path: str, dest_path: PathLike) -> None:
        """Copy a file of this file system to ``dest_path`` on the host, overwriting it."""
        inumber = self.lookup(source_path)
        if inumber is None:
            raise TfsError(f"no such file {source_path!r}")
        try:
            destination = Path(dest_path).open("wb")
        except OSError as error:
            raise TfsError(f"cannot open {dest_path!s}: {error}") from error
        with destination:
            handle = self.open(source_path, OpenFlag.NONE)
            try:
                contents = self.read(handle, self._state.inode_get(inumber).size)
            finally:
                self.close(handle)
            destination.write(contents)