r"""LSP wire framing.

A frame is a block of ``Name: value`` header lines terminated by an empty
line, followed by a JSON body whose size in bytes is given by the
``Content-Length`` header::

    Content-Length: 23\r\n
    \r\n
    {"id":1,"method":"foo"}

Only ``Content-Length`` and ``Content-Type`` are understood. The latter is
accepted and ignored.
"""

import json
from dataclasses import dataclass
from typing import Any, BinaryIO, NoReturn, Optional

from lspmux.exceptions import FramingError, MessageDecodeError, SerializationError

CONTENT_LENGTH = b"content-length"
CONTENT_TYPE = b"content-type"


@dataclass(frozen=True)
class Message:
    """One decoded frame. The payload is never inspected by the multiplexer."""

    payload: Any
    size: int


def _reject_constant(name: str) -> NoReturn:
    raise ValueError(f"invalid JSON constant: {name}")


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            raise FramingError(
                f"Stream closed after {size - remaining} of {size} body bytes"
            )
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_message(stream: BinaryIO) -> Optional[Message]:
    """Read one framed message from a byte stream.

    Args:
        stream: Binary stream positioned at the start of a frame.

    Returns:
        The decoded message, or None if the stream was closed before the
        first header byte.

    Raises:
        FramingError: If the header block is malformed or the stream closes
            in the middle of a frame.
        MessageDecodeError: If the body is not valid JSON.
    """
    content_length: Optional[int] = None
    at_frame_start = True

    while True:
        line = stream.readline()
        if not line:
            if at_frame_start:
                return None
            raise FramingError("Stream closed inside a header block")
        at_frame_start = False

        header = line.rstrip(b"\r\n")
        if not header:
            break

        name, sep, value = header.partition(b":")
        if not sep:
            raise FramingError(f"Malformed header line: {line!r}")

        key = name.strip().lower()
        if key == CONTENT_LENGTH:
            # The last Content-Length wins
            digits = value.strip()
            if not digits.isdigit():
                raise FramingError(f"Invalid Content-Length: {digits!r}")
            content_length = int(digits)
        elif key != CONTENT_TYPE:
            raise FramingError(f"Unexpected header: {line!r}")

    if content_length is None:
        raise FramingError("Header block has no Content-Length")

    body = _read_exact(stream, content_length)
    try:
        payload = json.loads(body.decode("utf-8"), parse_constant=_reject_constant)
    except (UnicodeDecodeError, ValueError) as e:
        raise MessageDecodeError(f"Frame body is not valid JSON: {e}") from e

    return Message(payload=payload, size=content_length)


def encode_message(message: Any) -> bytes:
    """Serialize a JSON value into a complete frame.

    Raises:
        SerializationError: If the value cannot be represented as JSON.
    """
    try:
        body = json.dumps(
            message, separators=(",", ":"), ensure_ascii=False, allow_nan=False
        ).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Cannot encode message as JSON: {e}") from e

    return b"Content-Length: %d\r\n\r\n" % len(body) + body


def write_message(stream: BinaryIO, message: Any) -> int:
    """Write one framed message to a byte stream and flush it.

    Returns:
        The number of bytes written, header included.
    """
    frame = encode_message(message)
    stream.write(frame)
    stream.flush()
    return len(frame)
