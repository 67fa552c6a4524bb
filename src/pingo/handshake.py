"""Handshake/status channel.

Line-oriented key/value output the host parses during and after bootstrap.
Every line has the form ``<prefix>: <key>: <value>``.
"""

import logging
import sys
import threading
from typing import Optional, TextIO

logger = logging.getLogger(__name__)


class Handshake:
    """Writes prefixed status lines to the host."""

    def __init__(self, prefix: str, stream: Optional[TextIO] = None):
        self.prefix = prefix
        self.stream = stream if stream is not None else sys.stdout
        self._lock = threading.Lock()

    def output(self, key: str, value: str):
        """Write one status line and flush it to the host."""
        line = f"{self.prefix}: {key}: {value}\n"
        with self._lock:
            self.stream.write(line)
            self.stream.flush()
        if key != "auth-token":
            logger.debug("handshake %s: %s", key, value)
