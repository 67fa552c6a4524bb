"""Shared pytest fixtures for pingo tests."""

import io
import json
import shutil
import socket
import sys
import tempfile
import threading
import time
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from pingo.config import Config, PROTO_TCP
from pingo.server import PluginServer

TEST_SECRET = b"s" * 32 + b"0123456789abcdefghijklmnopqrstuv"


class RpcClient:
    """Minimal host-side client speaking the newline-delimited JSON framing."""

    def __init__(self, sock: socket.socket):
        self.sock = sock
        self.reader = sock.makefile("rb")
        self._next_id = 0

    def call(self, method, params=None):
        self._next_id += 1
        request = {"id": self._next_id, "method": method, "params": params}
        self.sock.sendall(json.dumps(request).encode() + b"\n")
        line = self.reader.readline()
        if not line:
            raise ConnectionError("connection closed")
        return json.loads(line)

    def close(self):
        self.reader.close()
        self.sock.close()


def connect(config: Config, timeout: float = 5.0) -> socket.socket:
    """Open a raw connection to a bound server."""
    if config.proto == PROTO_TCP:
        host, _, port = config.addr.rpartition(":")
        sock = socket.create_connection((host, int(port)), timeout=timeout)
    else:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(timeout)
        sock.connect(config.addr)
    return sock


def wait_for(predicate, timeout: float = 5.0) -> bool:
    """Poll predicate until true or timeout."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


@pytest.fixture
def secret():
    """Fixed 64-byte secret."""
    return TEST_SECRET


@pytest.fixture
def unixdir():
    """Short temp directory for unix sockets (sun_path is ~108 bytes)."""
    path = tempfile.mkdtemp(prefix="pingo-")
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def start_server(unixdir, secret):
    """Factory: build a PluginServer, run it in a thread, wait for ready.

    Returns (server, stream, thread). The server is stopped on teardown.
    """
    started = []

    def _start(register=(), **overrides):
        values = {"unixdir": unixdir, "exit_mode": "graceful", "drain_timeout": 1.0}
        values.update(overrides)
        stream = io.StringIO()
        server = PluginServer(config=Config(**values), secret=secret, stream=stream)
        for obj in register:
            server.register(obj)
        result = {}

        def _run():
            result["status"] = server.run()

        thread = threading.Thread(target=_run, daemon=True)
        thread.start()
        assert wait_for(lambda: "ready" in stream.getvalue()), stream.getvalue()
        server.result = result
        started.append((server, thread))
        return server, stream, thread

    yield _start

    for server, thread in started:
        server.stop(0)
        thread.join(5)


@pytest.fixture
def client_for(secret):
    """Factory: connect and authenticate an RpcClient to a running server."""
    clients = []

    def _client(server):
        sock = connect(server.config)
        sock.sendall(secret)
        client = RpcClient(sock)
        clients.append(client)
        return client

    yield _client

    for client in clients:
        client.close()
