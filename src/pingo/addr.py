"""Candidate address allocation for the listening socket.

Each scheme produces successive candidate addresses plus a retry limit:
- tcp: monotonically increasing unprivileged loopback ports
- unix: random 8-character socket names, optionally under a base directory
"""

import os
from typing import Callable, Union

from pingo.common import randstr
from pingo.config import PROTO_TCP, PROTO_UNIX

LOOPBACK = "127.0.0.1"
FIRST_PORT = 1024
TCP_RETRIES = 500
UNIX_RETRIES = 4
UNIX_NAME_LENGTH = 8


class TcpAllocator:
    """Scans loopback ports upward from 1024."""

    proto = PROTO_TCP

    def __init__(self, port: int = 0):
        self.port = port

    def next_address(self) -> str:
        # Only use unprivileged ports
        if self.port < FIRST_PORT:
            self.port = FIRST_PORT - 1
        self.port += 1
        return f"{LOOPBACK}:{self.port}"

    def retry_limit(self) -> int:
        return TCP_RETRIES


class UnixAllocator:
    """Generates random socket names, rooted at unixdir when set."""

    proto = PROTO_UNIX

    def __init__(self, unixdir: str = "", namegen: Callable[[int], str] = randstr):
        self.unixdir = unixdir
        self.namegen = namegen

    def next_address(self) -> str:
        name = self.namegen(UNIX_NAME_LENGTH)
        if self.unixdir:
            name = os.path.normpath(os.path.join(self.unixdir, name))
        return name

    def retry_limit(self) -> int:
        return UNIX_RETRIES


Allocator = Union[TcpAllocator, UnixAllocator]


def make_allocator(proto: str, unixdir: str = "") -> Allocator:
    """Select the allocator for a scheme; anything but tcp is unix."""
    if proto == PROTO_TCP:
        return TcpAllocator()
    return UnixAllocator(unixdir)


def split_address(proto: str, addr: str) -> Union[tuple[str, int], str]:
    """Convert a textual address to the form socket.bind() expects."""
    if proto == PROTO_TCP:
        host, _, port = addr.rpartition(":")
        return host, int(port)
    return addr
