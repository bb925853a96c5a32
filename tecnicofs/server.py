"""File-system server answering client sessions over named pipes."""

from __future__ import annotations

import contextlib
import os
import queue
import select
import sys
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from tecnicofs.config import OpCode
from tecnicofs.operations import TecnicoFS
from tecnicofs.protocol import Request, encode_int, read_request
from tecnicofs.state import TfsError

MAX_SESSIONS = 50
_POLL_INTERVAL = 0.1


def _write_all(fd: int, data: bytes) -> None:
    view = memoryview(data)
    while view:
        view = view[os.write(fd, view):]


@dataclass
class _Session:
    session_id: int
    tx: int
    requests: "queue.Queue[Optional[Request]]" = field(default_factory=queue.Queue)


class TfsServer:
    """Serves one file system to up to fifty sessions.

    Requests of a session run one at a time, in order; different sessions
    run concurrently.
    """

    def __init__(self, pipe_path: Union[str, os.PathLike], fs: Optional[TecnicoFS] = None) -> None:
        self.pipe_path = Path(pipe_path)
        self.fs = fs if fs is not None else TecnicoFS()
        self._sessions: dict[int, _Session] = {}
        self._sessions_lock = threading.Lock()
        self._stop = threading.Event()

    # main loop

    def serve_forever(self) -> None:
        """Create the server pipe and answer requests until shut down."""
        self.pipe_path.unlink(missing_ok=True)
        os.mkfifo(self.pipe_path, 0o666)
        read_fd = os.open(self.pipe_path, os.O_RDONLY | os.O_NONBLOCK)
        # Holding a writer open keeps reads from hitting end of file when
        # every client has gone.
        keepalive = os.open(self.pipe_path, os.O_WRONLY)
        os.set_blocking(read_fd, True)
        stream = os.fdopen(read_fd, "rb", buffering=0)
        try:
            while not self._stop.is_set():
                ready, _, _ = select.select([read_fd], [], [], _POLL_INTERVAL)
                if not ready:
                    continue
                try:
                    request = read_request(stream)
                except TfsError:
                    continue
                if request is not None:
                    self._dispatch(request)
        finally:
            stream.close()
            os.close(keepalive)
            self.pipe_path.unlink(missing_ok=True)
            self._close_sessions()

    def _dispatch(self, request: Request) -> None:
        if request.op is OpCode.MOUNT:
            self.handle(request)
            return
        with self._sessions_lock:
            session = self._sessions.get(request.session_id)
        if session is not None:
            session.requests.put(request)

    def _work(self, session: _Session) -> None:
        while (request := session.requests.get()) is not None:
            reply = self.handle(request)
            if request.op is OpCode.UNMOUNT:
                return
            with contextlib.suppress(OSError):
                _write_all(session.tx, reply)
            if request.op is OpCode.SHUTDOWN_AFTER_ALL_CLOSED:
                self._stop.set()
                return

    def _close_sessions(self) -> None:
        with self._sessions_lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.requests.put(None)
            with contextlib.suppress(OSError):
                os.close(session.tx)

    # requests

    def handle(self, request: Request) -> bytes:
        """Carry out one request and return the reply to send back."""
        op = request.op
        if op is OpCode.MOUNT:
            return self._mount(request.client_pipe)
        if op is OpCode.UNMOUNT:
            self._unmount(request.session_id)
            return b""
        try:
            if op is OpCode.OPEN:
                return encode_int(self.fs.open(request.name, request.flags))
            if op is OpCode.CLOSE:
                self.fs.close(request.fhandle)
                return encode_int(0)
            if op is OpCode.WRITE:
                return encode_int(self.fs.write(request.fhandle, request.data))
            if op is OpCode.READ:
                data = self.fs.read(request.fhandle, request.length)
                return encode_int(len(data)) + data
            if op is OpCode.SHUTDOWN_AFTER_ALL_CLOSED:
                self.fs.destroy_after_all_closed()
                return encode_int(0)
        except TfsError:
            return encode_int(-1)
        raise TfsError(f"unsupported operation {op!r}")

    def _mount(self, client_pipe: str) -> bytes:
        try:
            tx = os.open(client_pipe, os.O_WRONLY)
        except OSError:
            return encode_int(-1)
        with self._sessions_lock:
            session_id = next(
                (i for i in range(MAX_SESSIONS) if i not in self._sessions), None
            )
            if session_id is not None:
                session = _Session(session_id, tx)
                self._sessions[session_id] = session
        reply = encode_int(-1 if session_id is None else session_id)
        try:
            _write_all(tx, reply)
        except OSError:
            session_id = None
            with self._sessions_lock:
                self._sessions = {
                    key: value for key, value in self._sessions.items() if value.tx != tx
                }
        if session_id is None:
            os.close(tx)
            return encode_int(-1)
        threading.Thread(target=self._work, args=(session,), daemon=True).start()
        return reply

    def _unmount(self, session_id: int) -> None:
        with self._sessions_lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            session.requests.put(None)
            with contextlib.suppress(OSError):
                os.close(session.tx)


def main(argv: Optional[list[str]] = None) -> int:
    """Run a server on the pipe named by the first argument."""
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("Please specify the pathname of the server's pipe.")
        return 1
    print(f"Starting TecnicoFS server with pipe called {args[0]}")
    TfsServer(args[0]).serve_forever()
    return 0


if __name__ == "__main__":
    sys.exit(main())