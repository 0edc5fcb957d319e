"""Exception hierarchy for the LSP multiplexer."""

from typing import Optional, Sequence


class LspMuxError(Exception):
    """Base class for all multiplexer errors."""


class ConfigError(LspMuxError):
    """The configuration file could not be read or is invalid."""


class FramingError(LspMuxError):
    """A byte stream did not contain a well-formed LSP frame."""


class MessageDecodeError(FramingError):
    """A frame body was not valid UTF-8 encoded JSON."""


class SerializationError(LspMuxError):
    """A message could not be encoded as JSON."""


class BackendSpawnError(LspMuxError):
    """A language server process could not be launched."""

    def __init__(self, name: str, command: Sequence[str], reason: Optional[BaseException] = None):
        self.name = name
        self.command = list(command)
        self.reason = reason
        message = f"Failed to start language server '{name}' with command: {' '.join(self.command)}"
        if reason is not None:
            message = f"{message} ({reason})"
        super().__init__(message)


class ChannelClosed(LspMuxError):
    """The broadcast channel is closed and holds nothing more for this subscriber."""


class Lagged(LspMuxError):
    """A subscriber fell behind the broadcast channel's retained history."""

    def __init__(self, missed: int):
        self.missed = missed
        super().__init__(f"Subscriber lagged behind and missed {missed} message(s)")
