"""Helpers shared by the lspmux tests."""

import io
import sys
import time
from pathlib import Path
from typing import Any, Callable, List

from lspmux.framing import encode_message, read_message

ECHO_SERVER = Path(__file__).parent / "echo_server.py"
REPO_ROOT = Path(__file__).parent.parent
PYTHON = sys.executable


def frames(*messages: Any) -> bytes:
    """Concatenate the frames for several messages."""
    return b"".join(encode_message(message) for message in messages)


def decode_all(data: bytes) -> List[Any]:
    """Decode every frame in a byte string."""
    stream = io.BytesIO(data)
    messages = []
    while True:
        message = read_message(stream)
        if message is None:
            return messages
        messages.append(message.payload)


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()
