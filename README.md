# tecnicofs

An in-memory file system with a flat namespace: every file sits in the root
directory. File contents are kept in 1024-byte blocks, with ten direct block
references per file and one block of indirect references. Operations can be
called from several threads at once.

It can be used in two ways:

- as a library, through `tecnicofs.operations.TecnicoFS`;
- over POSIX named pipes, with a server (`tecnicofs.server.TfsServer`, or the
  `tfs-server` command) and a client (`tecnicofs.client.TfsClient`).

## Installation

```
pip install .
```

For the test dependencies: `pip install .[test]`.

## Library use

```python
from tecnicofs.config import OpenFlag
from tecnicofs.operations import TecnicoFS

with TecnicoFS() as fs:
    fh = fs.open("/f1", OpenFlag.CREAT)
    fs.write(fh, b"AAA!")          # returns the number of bytes written
    fs.close(fh)

    fh = fs.open("/f1", 0)
    assert fs.read(fh, 39) == b"AAA!"
    fs.close(fh)

    fs.copy_to_external_fs("/f1", "external_file.txt")
```

- Path names must start with `/` and have at least one more character.
  Names are stored cut to 39 characters.
- `open(name, flags)` takes `OpenFlag.CREAT`, `OpenFlag.TRUNC` and
  `OpenFlag.APPEND`, combined with `|`, and returns an integer handle.
- `write(fhandle, data)` writes at the handle's offset. A write that would go
  past the largest file size is cut short; the count actually written is
  returned.
- `read(fhandle, length)` returns up to `length` bytes from the handle's
  offset.
- `lookup(name)` returns the file's i-number, or `None` if there is no such
  file.
- `copy_to_external_fs(source_path, dest_path)` writes a file's contents to a
  file on the host, creating or overwriting it.
- `destroy_after_all_closed()` refuses further opens, waits until every open
  handle has been closed, then destroys the file system. `destroy()` does so
  at once; leaving a `with` block calls it.

Failures raise `tecnicofs.state.TfsError`: an invalid path, opening a missing
file without `CREAT`, closing a handle that is not open, a full i-node table,
directory, block store or open file table, a destination file that cannot be
created, or any operation after the file system was destroyed.

The lower layer, `tecnicofs.state.FileSystemState`, manages the i-node table,
data blocks and open file table directly.

## Server

```
tfs-server /tmp/tfs_server
```

This creates the named pipe `/tmp/tfs_server` and answers client requests
until a client asks it to shut down. Up to 50 sessions are served at once;
the requests of one session run in order, different sessions run
concurrently. From Python:

```python
from tecnicofs.server import TfsServer

TfsServer("/tmp/tfs_server").serve_forever()
```

## Client

```python
from tecnicofs.client import TfsClient
from tecnicofs.config import OpenFlag

with TfsClient() as client:
    client.mount("/tmp/tfs_c1", "/tmp/tfs_server")
    fh = client.open("/f1", OpenFlag.CREAT)
    client.write(fh, b"AAAA!")
    client.close(fh)
    fh = client.open("/f1", 0)
    print(client.read(fh, 39))
    client.close(fh)
```

`mount` creates the client's reply pipe and opens a session; `unmount` (also
called when leaving the `with` block) ends it and removes the pipe.
`shutdown_after_all_closed()` asks the server to wait until every open file is
closed and then stop. An error reported by the server raises `TfsError`.

The wire format is in `tecnicofs.protocol`: `encode_*` functions build
requests, `read_request` decodes them into a `Request`. Integers travel as
4-byte little-endian values, lengths as 8-byte little-endian values, and
names in 40-byte NUL-padded fields.

## Limits

| Setting | Value |
|---|---|
| Block size | 1024 bytes |
| Data blocks | 1024 |
| I-nodes | 50 |
| Files in the root directory | 23 |
| Open files | 20 |
| Largest file | 272384 bytes |
| Name length | 39 stored, 40 on the wire |
| Concurrent sessions | 50 |

## What it does not do

- Nothing is written to disk: all contents are lost when the file system is
  destroyed or the process ends. Only `copy_to_external_fs` exports a file.
- There are no subdirectories, no file removal and no renaming.
- The server and client need POSIX named pipes (`os.mkfifo`); they do not run
  on Windows.