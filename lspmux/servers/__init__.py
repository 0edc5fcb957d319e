"""Language server process handles."""

from lspmux.servers.process import END_OF_STREAM, BackendProcess, BackendState

__all__ = ["END_OF_STREAM", "BackendProcess", "BackendState"]
