"""Configuration loading for the LSP multiplexer.

The configuration is a TOML file listing the language servers to run::

    log-file = "/tmp/lspmux.log"

    [[language]]
    name = "python"
    command = "pylsp"

    [[language]]
    name = "python"
    command = "ruff-lsp"
    args = ["--verbose"]
"""

import logging
import tomllib
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from lspmux.broadcast import DEFAULT_CAPACITY
from lspmux.exceptions import ConfigError

logger = logging.getLogger("lspmux.config")

DEFAULT_CONFIG_PATH = "config.toml"


class LagPolicy(str, Enum):
    """What a backend writer does when it falls behind the client."""

    STOP = "stop"
    RESYNC = "resync"


class BackendSpec(BaseModel):
    """One language server to launch."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    # Kept verbatim so "./server" is not resolved against PATH
    command: str
    args: Tuple[str, ...] = ()

    @field_validator("command")
    @classmethod
    def _command_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("command must not be empty")
        return value

    @property
    def argv(self) -> List[str]:
        """Command line used to spawn the server."""
        return [self.command, *self.args]


class MuxConfig(BaseModel):
    """Top-level multiplexer configuration."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    languages: Tuple[BackendSpec, ...] = Field(alias="language")
    log_file: Optional[Path] = Field(default=None, alias="log-file")
    channel_capacity: int = Field(default=DEFAULT_CAPACITY, gt=0, alias="channel-capacity")
    lag_policy: LagPolicy = Field(default=LagPolicy.STOP, alias="lag-policy")
    shutdown_timeout: float = Field(default=5.0, ge=0, alias="shutdown-timeout")

    def for_language(self, name: Optional[str]) -> "MuxConfig":
        """Return a copy that keeps only the servers configured under a language name.

        Args:
            name: Language name to keep, or None to keep every server.

        Returns:
            The filtered configuration.
        """
        if name is None:
            return self
        return self.model_copy(
            update={"languages": tuple(spec for spec in self.languages if spec.name == name)}
        )


def parse_config(content: str, source: str = "<string>") -> MuxConfig:
    """Parse configuration from TOML text.

    Raises:
        ConfigError: If the text is not valid TOML or fails validation.
    """
    try:
        data = tomllib.loads(content)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {source}: {e}") from e

    try:
        return MuxConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {source}:\n{e}") from e


def load_config(path: Union[str, Path]) -> MuxConfig:
    """Load configuration from a TOML file.

    Args:
        path: Path to the configuration file.

    Returns:
        The validated configuration.

    Raises:
        ConfigError: If the file cannot be read or is invalid.
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read configuration file {path}: {e}") from e

    config = parse_config(content, source=str(path))
    logger.debug(f"Loaded {len(config.languages)} language server(s) from {path}")
    return config
