"""Diagnostic logging setup.

Standard output carries the LSP stream, so log records go to stderr or to a
log file and never to stdout.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(debug: bool = False, log_file: Optional[Union[str, Path]] = None) -> None:
    """Configure the root logger.

    Args:
        debug: Whether to enable debug logging.
        log_file: File to append log records to. Defaults to stderr.
    """
    log_level = logging.DEBUG if debug else logging.INFO
    if log_file is not None:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logging.basicConfig(level=log_level, format=LOG_FORMAT, filename=str(log_file), force=True)
    else:
        logging.basicConfig(level=log_level, format=LOG_FORMAT, stream=sys.stderr, force=True)
