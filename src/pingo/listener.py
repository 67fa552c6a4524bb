"""Listener bootstrap.

Picks the scheme, binds a listening socket with retry, and reports the
outcome on the handshake channel:

    objects     before binding
    fatal       when every candidate address failed
    auth-token  after a successful bind
    ready       after a successful bind
"""

import logging
import os
import socket
from typing import Callable, Optional

from pingo.addr import Allocator, make_allocator, split_address
from pingo.config import PROTO_TCP, Config
from pingo.errors import ListenError
from pingo.handshake import Handshake

logger = logging.getLogger(__name__)

BACKLOG = 128


def open_listener(proto: str, addr: str) -> socket.socket:
    """Create a stream socket bound to addr and listening.

    Raises:
        OSError: If the address cannot be bound
    """
    family = socket.AF_INET if proto == PROTO_TCP else socket.AF_UNIX
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.bind(split_address(proto, addr))
        sock.listen(BACKLOG)
    except OSError:
        sock.close()
        raise
    return sock


def remove_socket_file(proto: str, addr: str):
    """Unlink a unix socket path; no-op for tcp or a missing file."""
    if proto == PROTO_TCP or not addr:
        return
    try:
        os.unlink(addr)
    except FileNotFoundError:
        pass


def bootstrap(
    config: Config,
    objects: list[str],
    secret: bytes,
    handshake: Handshake,
    listen: Callable[[str, str], socket.socket] = open_listener,
    allocator: Optional[Allocator] = None,
) -> tuple[socket.socket, Config]:
    """Bind a listener and announce it to the host.

    Args:
        config: Server configuration (scheme not yet normalized)
        objects: Names of the exposed objects
        secret: Authentication secret announced as auth-token
        handshake: Status channel
        listen: Socket factory, (proto, addr) -> listening socket
        allocator: Address allocator (default: chosen by scheme)

    Returns:
        Tuple of (listening socket, config carrying the bound address)

    Raises:
        ListenError: If every candidate address failed to bind
    """
    config = config.resolved()
    handshake.output("objects", ", ".join(objects))

    if allocator is None:
        allocator = make_allocator(config.proto, config.unixdir)

    retries = allocator.retry_limit()
    for attempt in range(1, retries + 1):
        addr = allocator.next_address()
        try:
            sock = listen(config.proto, addr)
        except OSError as e:
            logger.debug("Bind attempt %d/%d on %s failed: %s", attempt, retries, addr, e)
            continue

        config = config.bound(addr)
        try:
            handshake.output("auth-token", secret.decode("ascii"))
            handshake.output("ready", f"proto={config.proto} addr={addr}")
        except Exception:
            sock.close()
            remove_socket_file(config.proto, addr)
            raise
        logger.info("Listening on %s %s", config.proto, addr)
        return sock, config

    error = ListenError(config.proto, retries)
    handshake.output("fatal", str(error))
    raise error
