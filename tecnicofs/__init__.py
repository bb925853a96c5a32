"""An in-memory i-node file system with a named-pipe client and server."""

__version__ = "0.1.0"
__all__ = ["config", "state", "operations", "protocol", "client", "server"]