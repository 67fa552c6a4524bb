"""Connection authentication.

A peer proves it is the host by writing the 64-byte secret first. Nothing is
ever written back: a rejected peer just sees the connection close.
"""

import hmac
import logging
import socket

logger = logging.getLogger(__name__)

SECRET_LENGTH = 64


def read_exact(conn: socket.socket, size: int) -> bytes:
    """Read up to size bytes, stopping early only on EOF."""
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = conn.recv(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def authenticate(conn: socket.socket, secret: bytes) -> bool:
    """Check that the first 64 bytes from conn equal the secret.

    Args:
        conn: Freshly accepted connection
        secret: Server secret (64 bytes)

    Returns:
        True only on an exact, complete match
    """
    try:
        received = read_exact(conn, SECRET_LENGTH)
    except OSError as e:
        logger.debug("Auth read failed: %s", e)
        return False
    if len(received) != SECRET_LENGTH:
        return False
    # Constant-time comparison
    return hmac.compare_digest(received, secret)
