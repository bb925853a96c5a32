"""Wire format of the requests exchanged between clients and the server.

Every integer travels as a 4-byte little-endian signed value and every
length as an 8-byte little-endian unsigned value. Names travel in fixed-width
fields padded with NUL bytes.
"""

from __future__ import annotations

import os
import struct
from dataclasses import dataclass
from typing import BinaryIO, Optional, Union

from tecnicofs.config import INT_SIZE, MAX_FILE_NAME, MAX_PIPE_NAME, OpCode
from tecnicofs.state import TfsError

_INT = struct.Struct("<i")
_SIZE = struct.Struct("<Q")


@dataclass
class Request:
    """A decoded client request; only the fields of its operation are set."""

    op: OpCode
    session_id: int = -1
    client_pipe: str = ""
    name: str = ""
    flags: int = 0
    fhandle: int = -1
    data: bytes = b""
    length: int = 0


def encode_int(value: int) -> bytes:
    """Encode one wire integer."""
    try:
        return _INT.pack(value)
    except struct.error as error:
        raise TfsError(f"integer {value} does not fit the wire format") from error


def decode_int(data: bytes) -> int:
    """Decode one wire integer."""
    if len(data) != INT_SIZE:
        raise TfsError(f"expected {INT_SIZE} bytes, got {len(data)}")
    return _INT.unpack(data)[0]


def _encode_size(value: int) -> bytes:
    if value < 0:
        raise TfsError("length must not be negative")
    return _SIZE.pack(value)


def _encode_name(name: Union[str, os.PathLike], width: int) -> bytes:
    raw = os.fsencode(name)
    if len(raw) > width:
        raise TfsError(f"name {os.fsdecode(raw)!r} is longer than {width} bytes")
    return raw.ljust(width, b"\0")


def _decode_name(raw: bytes) -> str:
    return os.fsdecode(raw.split(b"\0", 1)[0])


def encode_mount(client_pipe_path: Union[str, os.PathLike]) -> bytes:
    """Request to open a session answered through ``client_pipe_path``."""
    return encode_int(OpCode.MOUNT) + _encode_name(client_pipe_path, MAX_PIPE_NAME)


def encode_unmount(session_id: int) -> bytes:
    """Request to end a session."""
    return encode_int(OpCode.UNMOUNT) + encode_int(session_id)


def encode_open(session_id: int, name: str, flags: int) -> bytes:
    """Request to open a file."""
    return (
        encode_int(OpCode.OPEN)
        + encode_int(session_id)
        + _encode_name(name, MAX_FILE_NAME)
        + encode_int(int(flags))
    )


def encode_close(session_id: int, fhandle: int) -> bytes:
    """Request to close a file handle."""
    return encode_int(OpCode.CLOSE) + encode_int(session_id) + encode_int(fhandle)


def encode_write(session_id: int, fhandle: int, data: bytes) -> bytes:
    """Request to write ``data`` through a file handle."""
    payload = bytes(data)
    return (
        encode_int(OpCode.WRITE)
        + encode_int(session_id)
        + encode_int(fhandle)
        + _encode_size(len(payload))
        + payload
    )


def encode_read(session_id: int, fhandle: int, length: int) -> bytes:
    """Request to read up to ``length`` bytes through a file handle."""
    return (
        encode_int(OpCode.READ)
        + encode_int(session_id)
        + encode_int(fhandle)
        + _encode_size(length)
    )


def encode_shutdown(session_id: int) -> bytes:
    """Request to shut the server down once every file is closed."""
    return encode_int(OpCode.SHUTDOWN_AFTER_ALL_CLOSED) + encode_int(session_id)


def _read_exact(stream: BinaryIO, size: int, allow_eof: bool = False) -> Optional[bytes]:
    chunks = bytearray()
    while len(chunks) < size:
        chunk = stream.read(size - len(chunks))
        if not chunk:
            if allow_eof and not chunks:
                return None
            raise TfsError("truncated request")
        chunks += chunk
    return bytes(chunks)


def _read_int(stream: BinaryIO) -> int:
    return decode_int(_read_exact(stream, INT_SIZE))


def read_request(stream: BinaryIO) -> Optional[Request]:
    """Read one request from ``stream``; return None at end of stream."""
    head = _read_exact(stream, INT_SIZE, allow_eof=True)
    if head is None:
        return None
    code = decode_int(head)
    try:
        op = OpCode(code)
    except ValueError as error:
        raise TfsError(f"unknown operation code {code}") from error

    if op is OpCode.MOUNT:
        return Request(op, client_pipe=_decode_name(_read_exact(stream, MAX_PIPE_NAME)))

    session_id = _read_int(stream)
    if op in (OpCode.UNMOUNT, OpCode.SHUTDOWN_AFTER_ALL_CLOSED):
        return Request(op, session_id=session_id)
    if op is OpCode.OPEN:
        name = _decode_name(_read_exact(stream, MAX_FILE_NAME))
        return Request(op, session_id=session_id, name=name, flags=_read_int(stream))

    fhandle = _read_int(stream)
    if op is OpCode.CLOSE:
        return Request(op, session_id=session_id, fhandle=fhandle)

    length = _SIZE.unpack(_read_exact(stream, _SIZE.size))[0]
    if op is OpCode.WRITE:
        data = _read_exact(stream, length)
        return Request(op, session_id=session_id, fhandle=fhandle, data=data, length=length)
    return Request(op, session_id=session_id, fhandle=fhandle, length=length)