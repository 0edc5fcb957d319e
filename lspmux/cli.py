#!/usr/bin/env python3
"""Command-line interface for the LSP multiplexer."""

import logging
import sys
from pathlib import Path
from typing import Optional

import click

from lspmux import __version__
from lspmux.config import DEFAULT_CONFIG_PATH, load_config
from lspmux.exceptions import ConfigError, LspMuxError
from lspmux.service import Multiplexer
from lspmux.utils.diagnostics import configure_logging

logger = logging.getLogger("lspmux")


@click.command()
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_CONFIG_PATH,
    show_default=True,
    help="Configuration file path",
)
@click.option("-l", "--language", default=None, help="Only run the language servers configured under this name")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write diagnostics to this file instead of stderr",
)
@click.option("--debug/--no-debug", default=False, help="Enable debug logging")
@click.version_option(__version__, prog_name="lspmux")
def main(config_path: Path, language: Optional[str], log_file: Optional[Path], debug: bool) -> None:
    """Serve LSP on stdin/stdout, multiplexed over several language servers.

    Args:
        config_path: Path to the TOML configuration file.
        language: Language name to filter the configured servers by.
        log_file: Diagnostic log destination, overriding the configuration.
        debug: Whether to enable debug logging.
    """
    try:
        config = load_config(config_path).for_language(language)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    if not config.languages:
        if language is None:
            raise click.ClickException(f"No language servers configured in {config_path}")
        raise click.ClickException(f"No language servers configured for '{language}' in {config_path}")

    configure_logging(debug=debug, log_file=log_file or config.log_file)
    for spec in config.languages:
        logger.debug(f"Configured language server '{spec.name}': {' '.join(spec.argv)}")

    multiplexer = Multiplexer.from_config(
        config,
        sys.stdin.buffer,
        sys.stdout.buffer,
    )
    try:
        multiplexer.run()
    except (LspMuxError, OSError) as e:
        logger.error(f"Error: {e}")
        raise click.ClickException(str(e)) from e


if __name__ == "__main__":
    main()  # pylint: disable=no-value-for-parameter
