"""Demo plugin entry point.

Usage:
    python -m pingo [--pingo:proto tcp] [--pingo:unixdir DIR] [--pingo:verbose]

Exposes an Echo object next to the built-in PingoRpc control object.
"""

import logging
import sys
from typing import Optional

from pingo.config import parse_args
from pingo.errors import ConfigError
from pingo.server import create_server, main as run_server

logger = logging.getLogger(__name__)


class Echo:
    """Demo object exported by the example plugin."""

    plugin_name = "Echo"

    def Say(self, text):
        return text

    def Add(self, operands):
        """Sum a list of numbers."""
        if not isinstance(operands, list):
            raise TypeError("Add expects a list of numbers")
        return sum(operands)


def setup_logging(verbose: bool = False):
    """Log to stderr; stdout belongs to the handshake channel."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def main(argv: Optional[list[str]] = None) -> int:
    """Run the demo plugin and return its exit code."""
    args, _ = parse_args(argv)
    setup_logging(args.verbose)

    try:
        server = create_server(argv)
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e.message)
        return 2

    server.register(Echo())
    return run_server(server)
