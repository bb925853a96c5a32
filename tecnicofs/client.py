"""Client side of a session with a file-system server over named pipes."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Union

from tecnicofs.config import INT_SIZE, OpenFlag
from tecnicofs.protocol import (
    decode_int,
    encode_close,
    encode_mount,
    encode_open,
    encode_read,
    encode_shutdown,
    encode_unmount,
    encode_write,
)
from tecnicofs.state import TfsError

PathLike = Union[str, os.PathLike]


def _write_all(fd: int, data: bytes) -> None:
    view = memoryview(data)
    while view:
        view = view[os.write(fd, view):]


def _recv(fd: int, size: int) -> bytes:
    chunks = bytearray()
    while len(chunks) < size:
        chunk = os.read(fd, size - len(chunks))
        if not chunk:
            raise TfsError("server closed the connection")
        chunks += chunk
    return bytes(chunks)


class TfsClient:
    """A session with a server: requests go out through the server's pipe and
    replies come back through a pipe the client creates for itself."""

    def __init__(self) -> None:
        self._tx: Optional[int] = None
        self._rx: Optional[int] = None
        self._client_pipe: Optional[Path] = None
        self.session_id: Optional[int] = None

    def __enter__(self) -> "TfsClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self.session_id is not None:
            self.unmount()

    # session

    def mount(self, client_pipe_path: PathLike, server_pipe_path: PathLike) -> None:
        """Create the reply pipe and establish a session with the server."""
        if self.session_id is not None:
            raise TfsError("already mounted")
        message = encode_mount(client_pipe_path)
        pipe = Path(client_pipe_path)
        pipe.unlink(missing_ok=True)
        try:
            os.mkfifo(pipe, 0o666)
        except OSError as error:
            raise TfsError(f"cannot create pipe {pipe}: {error}") from error
        try:
            tx = os.open(server_pipe_path, os.O_WRONLY)
        except OSError as error:
            pipe.unlink(missing_ok=True)
            raise TfsError(f"cannot reach server at {server_pipe_path}: {error}") from error
        try:
            _write_all(tx, message)
            rx = os.open(pipe, os.O_RDONLY)
        except OSError as error:
            os.close(tx)
            pipe.unlink(missing_ok=True)
            raise TfsError(f"mount failed: {error}") from error
        try:
            session_id = decode_int(_recv(rx, INT_SIZE))
        except TfsError:
            session_id = -1
        if session_id < 0:
            os.close(tx)
            os.close(rx)
            pipe.unlink(missing_ok=True)
            raise TfsError("server refused the session")
        self._tx, self._rx, self._client_pipe = tx, rx, pipe
        self.session_id = session_id

    def unmount(self) -> None:
        """End the session, close both pipes and remove the reply pipe."""
        session_id = self._require_session()
        try:
            _write_all(self._tx, encode_unmount(session_id))
        except OSError as error:
            raise TfsError(f"unmount failed: {error}") from error
        os.close(self._tx)
        os.close(self._rx)
        self._client_pipe.unlink(missing_ok=True)
        self._tx = self._rx = self._client_pipe = None
        self.session_id = None

    def _require_session(self) -> int:
        if self.session_id is None:
            raise TfsError("not mounted")
        return self.session_id

    def _call(self, message: bytes) -> int:
        try:
            _write_all(self._tx, message)
        except OSError as error:
            raise TfsError(f"request failed: {error}") from error
        reply = decode_int(_recv(self._rx, INT_SIZE))
        if reply == -1:
            raise TfsError("server reported an error")
        return reply

    # file operations

    def open(self, name: str, flags: int = OpenFlag.NONE) -> int:
        """Open ``name`` on the server and return a file handle."""
        return self._call(encode_open(self._require_session(), name, flags))

    def close(self, fhandle: int) -> None:
        """Close a file handle."""
        self._call(encode_close(self._require_session(), fhandle))

    def write(self, fhandle: int, data: bytes) -> int:
        """Write ``data`` and return how many bytes the server wrote."""
        return self._call(encode_write(self._require_session(), fhandle, data))

    def read(self, fhandle: int, length: int) -> bytes:
        """Read up to ``length`` bytes from a file handle."""
        count = self._call(encode_read(self._require_session(), fhandle, length))
        return _recv(self._rx, count)

    def shutdown_after_all_closed(self) -> None:
        """Ask the server to stop once no file is open; wait until it does."""
        self._call(encode_shutdown(self._require_session()))