"""Plugin server: object registry and process lifecycle.

One PluginServer is constructed at program entry and passed to whatever
needs it. Objects are registered first; run() then binds the listener,
announces it to the host, and serves until stopped:

    server = PluginServer()
    server.register(MyObject(), "MyObject")
    sys.exit(main(server))

Once run() has been called the object list and config are frozen, and any
further register() is a programming error.
"""

import logging
import threading
from typing import Any, Optional, TextIO

from pingo.auth import SECRET_LENGTH
from pingo.common import randstr
from pingo.config import Config, load_config
from pingo.control import PingoRpc
from pingo.dispatch import Dispatcher
from pingo.errors import AcceptError, ConfigError, ListenError, RegistrationError
from pingo.handshake import Handshake
from pingo.listener import bootstrap, open_listener, remove_socket_file
from pingo.rpc import RpcEngine

logger = logging.getLogger(__name__)


class PluginServer:
    """Registry of exposed objects plus the transport lifecycle."""

    def __init__(
        self,
        config: Optional[Config] = None,
        secret: Optional[bytes] = None,
        stream: Optional[TextIO] = None,
    ):
        """Initialize server.

        Args:
            config: Transport configuration (defaults if None)
            secret: 64-byte auth secret (random if None)
            stream: Handshake output stream (default: stdout)
        """
        self.config = config if config is not None else Config()
        if secret is None:
            secret = randstr(SECRET_LENGTH).encode("ascii")
        if len(secret) != SECRET_LENGTH:
            raise ConfigError(f"Secret must be {SECRET_LENGTH} bytes, got {len(secret)}")
        # Announced verbatim on the handshake channel
        if not all(0x21 <= b <= 0x7e for b in secret):
            raise ConfigError("Secret must be printable ASCII without whitespace")
        self.secret = secret
        self.objects: list[str] = []
        self.running = False
        self.engine = RpcEngine()
        self.handshake = Handshake(self.config.prefix, stream)
        self.dispatcher: Optional[Dispatcher] = None
        self._stop = threading.Event()
        self._status = 0

        self.register(PingoRpc(self))

    def register(self, obj: Any, name: Optional[str] = None):
        """Expose obj to the host.

        Args:
            obj: Object whose public methods become procedures
            name: Display name (default: obj.plugin_name)

        Raises:
            RegistrationError: If called after run(), or obj has no name
        """
        if self.running:
            raise RegistrationError("Do not call register after run")
        if name is None:
            name = getattr(obj, "plugin_name", None)
        if not name:
            raise RegistrationError(
                "Registered objects need a name: pass name= or set plugin_name"
            )
        self.engine.register(obj, name)
        self.objects.append(name)

    def run(self, listen=open_listener) -> int:
        """Bind, announce, and serve until stopped.

        Args:
            listen: Socket factory, (proto, addr) -> listening socket

        Returns:
            Exit status requested through stop()

        Raises:
            ListenError: If no address could be bound
            AcceptError: If the listener keeps failing
        """
        if self.running:
            raise RuntimeError("Server already running")
        self.running = True

        listener, self.config = bootstrap(
            self.config, self.objects, self.secret, self.handshake, listen
        )
        self.dispatcher = Dispatcher(
            self.engine, self.secret, self.handshake, self.config, self._stop
        )
        try:
            self.dispatcher.serve(listener)
        finally:
            listener.close()
            remove_socket_file(self.config.proto, self.config.addr)

        self.dispatcher.drain(self.config.drain_timeout)
        logger.info("Server stopped with status %d", self._status)
        return self._status

    def stop(self, status: int = 0):
        """Ask the accept loop and open connections to wind down."""
        self._status = status
        self._stop.set()


def create_server(
    argv: Optional[list[str]] = None,
    stream: Optional[TextIO] = None,
) -> PluginServer:
    """Create a server configured from flags, $PINGO_CONFIG, and defaults.

    Args:
        argv: Command-line arguments (default: sys.argv[1:])
        stream: Handshake output stream (default: stdout)

    Returns:
        PluginServer instance (not yet running)
    """
    return PluginServer(config=load_config(argv), stream=stream)


def main(server: PluginServer) -> int:
    """Run server and map startup/accept failures to exit code 1."""
    try:
        return server.run()
    except (ListenError, AcceptError) as e:
        logger.error("Server failed: %s", e)
        return 1
