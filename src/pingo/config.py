"""Plugin runtime configuration.

Configuration is merged from three sources, lowest precedence first:
- Config defaults
- YAML file: a ``pingo:`` mapping, path from --pingo:config or $PINGO_CONFIG
- Command-line flags: --pingo:proto, --pingo:unixdir, --pingo:prefix, ...

Flags are parsed with parse_known_args so the plugin keeps its own arguments.
A Config is immutable; the server derives the bound copy once at startup.
"""

import argparse
import dataclasses
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from pingo.errors import ConfigError

logger = logging.getLogger(__name__)

PROTO_UNIX = "unix"
PROTO_TCP = "tcp"

EXIT_IMMEDIATE = "immediate"
EXIT_GRACEFUL = "graceful"
EXIT_MODES = (EXIT_IMMEDIATE, EXIT_GRACEFUL)

CONFIG_ENV = "PINGO_CONFIG"

# Keys accepted in the YAML `pingo:` mapping (dashes or underscores)
_FILE_KEYS = {
    "proto": str,
    "unixdir": str,
    "prefix": str,
    "max_conns": int,
    "accept_retries": int,
    "accept_backoff": float,
    "exit_mode": str,
    "drain_timeout": float,
}


@dataclass(frozen=True)
class Config:
    """Transport configuration for one plugin process."""
    proto: str = PROTO_UNIX
    unixdir: str = ""
    prefix: str = "pingo"
    addr: str = ""  # Set only once a listener is bound
    max_conns: int = 128  # 0 = unbounded
    accept_retries: int = 10
    accept_backoff: float = 0.05
    exit_mode: str = EXIT_IMMEDIATE
    drain_timeout: float = 5.0

    def __post_init__(self):
        if self.max_conns < 0:
            raise ConfigError(f"max_conns must be >= 0, got {self.max_conns}")
        if self.accept_retries < 1:
            raise ConfigError(f"accept_retries must be >= 1, got {self.accept_retries}")
        if self.accept_backoff < 0:
            raise ConfigError(f"accept_backoff must be >= 0, got {self.accept_backoff}")
        if self.drain_timeout < 0:
            raise ConfigError(f"drain_timeout must be >= 0, got {self.drain_timeout}")
        if self.exit_mode not in EXIT_MODES:
            raise ConfigError(
                f"exit_mode must be one of {', '.join(EXIT_MODES)}, got {self.exit_mode!r}"
            )

    def resolved(self) -> "Config":
        """Return a copy with the scheme normalized (anything but tcp is unix)."""
        proto = PROTO_TCP if self.proto == PROTO_TCP else PROTO_UNIX
        if proto != self.proto:
            logger.debug("Unknown proto %r, falling back to %s", self.proto, proto)
        return dataclasses.replace(self, proto=proto)

    def bound(self, addr: str) -> "Config":
        """Return a copy carrying the address the listener was bound to."""
        return dataclasses.replace(self, addr=addr)


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return contents."""
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_config_file(path: Path) -> dict:
    """Load the `pingo:` section of a YAML config file.

    Args:
        path: YAML file path

    Returns:
        Dict of Config field overrides

    Raises:
        ConfigError: If the file is unreadable or malformed
    """
    try:
        data = _parse_yaml(path)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    section = data.get("pingo", {}) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'pingo' in {path} must be a mapping")

    overrides = {}
    for key, value in section.items():
        field_name = str(key).replace("-", "_")
        if field_name not in _FILE_KEYS:
            logger.warning("Ignoring unknown config key %r in %s", key, path)
            continue
        try:
            overrides[field_name] = _FILE_KEYS[field_name](value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid value for {key!r} in {path}: {value!r}") from e
    return overrides


def build_parser() -> argparse.ArgumentParser:
    """Build the parser for the pingo:* flags."""
    parser = argparse.ArgumentParser(add_help=False, allow_abbrev=False)
    parser.add_argument(
        "--pingo:config",
        dest="config",
        type=Path,
        help=f"YAML config file (default: ${CONFIG_ENV})",
    )
    parser.add_argument(
        "--pingo:proto",
        dest="proto",
        help="Protocol to use: unix or tcp",
    )
    parser.add_argument(
        "--pingo:unixdir",
        dest="unixdir",
        help="Alternative directory for unix socket",
    )
    parser.add_argument(
        "--pingo:prefix",
        dest="prefix",
        help="Prefix to output lines",
    )
    parser.add_argument(
        "--pingo:max-conns",
        dest="max_conns",
        type=int,
        help="Maximum concurrently served connections (0 = unbounded)",
    )
    parser.add_argument(
        "--pingo:exit-mode",
        dest="exit_mode",
        choices=EXIT_MODES,
        help="How the remote Exit call stops the process",
    )
    parser.add_argument(
        "--pingo:drain-timeout",
        dest="drain_timeout",
        type=float,
        help="Seconds to let connections finish on graceful exit",
    )
    parser.add_argument(
        "--pingo:verbose",
        dest="verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser


def parse_args(argv: Optional[list[str]] = None) -> tuple[argparse.Namespace, list[str]]:
    """Parse pingo:* flags, returning (namespace, remaining plugin args)."""
    return build_parser().parse_known_args(argv)


def load_config(
    argv: Optional[list[str]] = None,
    env: Optional[dict] = None,
) -> Config:
    """Build a Config from defaults, YAML file, and command-line flags.

    Args:
        argv: Command-line arguments (default: sys.argv[1:])
        env: Environment mapping (default: os.environ)

    Returns:
        Config instance

    Raises:
        ConfigError: On invalid values or unreadable config file
    """
    if env is None:
        env = os.environ
    args, _ = parse_args(argv)

    values = {}
    config_path = args.config or env.get(CONFIG_ENV)
    if config_path:
        values.update(load_config_file(Path(config_path)))
        logger.debug("Loaded config from %s", config_path)

    for name in ("proto", "unixdir", "prefix", "max_conns", "exit_mode", "drain_timeout"):
        value = getattr(args, name)
        if value is not None:
            values[name] = value

    return Config(**values)
