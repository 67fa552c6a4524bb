"""Control surface: lets the host end the plugin process remotely."""

import logging
import os

from pingo.config import EXIT_GRACEFUL
from pingo.errors import RpcError

logger = logging.getLogger(__name__)


class PingoRpc:
    """Internal object for plugin control, registered on every server."""

    plugin_name = "PingoRpc"

    def __init__(self, server):
        self._server = server

    def Exit(self, status):
        """Terminate the process with the given status code.

        In immediate mode the process dies at once, with no reply and no
        cleanup. In graceful mode the server stops accepting, drains open
        connections, and run() returns status.
        """
        if isinstance(status, bool) or not isinstance(status, int):
            raise RpcError(f"Exit status must be an integer, got {status!r}")

        if self._server.config.exit_mode == EXIT_GRACEFUL:
            logger.info("Exit(%d) requested, draining connections", status)
            self._server.stop(status)
            return None
        os._exit(status)
