"""Tests for auth.py - secret token handshake."""

import socket
from unittest.mock import MagicMock

import pytest

from pingo.auth import authenticate, read_exact, SECRET_LENGTH
from pingo.common import randstr


@pytest.fixture
def pair():
    """Connected socket pair: (server side, peer side)."""
    server, peer = socket.socketpair()
    server.settimeout(5)
    peer.settimeout(5)
    yield server, peer
    server.close()
    peer.close()


class TestReadExact:
    """Tests for read_exact."""

    def test_reassembles_chunks(self):
        """Short recv() results are stitched together."""
        conn = MagicMock()
        conn.recv.side_effect = [b"abc", b"de", b"f"]
        assert read_exact(conn, 6) == b"abcdef"

    def test_stops_at_eof(self):
        """EOF ends the read early with what arrived."""
        conn = MagicMock()
        conn.recv.side_effect = [b"abc", b""]
        assert read_exact(conn, 6) == b"abc"


class TestAuthenticate:
    """Tests for authenticate."""

    def test_matching_secret(self, pair, secret):
        server, peer = pair
        peer.sendall(secret)
        assert authenticate(server, secret) is True

    @pytest.mark.parametrize("trial", range(5))
    def test_random_secrets(self, pair, trial):
        """Any 64-byte secret authenticates against itself."""
        server, peer = pair
        token = randstr(SECRET_LENGTH).encode()
        peer.sendall(token)
        assert authenticate(server, token) is True

    @pytest.mark.parametrize("index", [0, 31, 63])
    def test_single_byte_difference(self, pair, secret, index):
        """Flipping any one byte fails authentication."""
        server, peer = pair
        wrong = bytearray(secret)
        wrong[index] ^= 0x01
        peer.sendall(bytes(wrong))
        assert authenticate(server, secret) is False

    def test_short_read(self, pair, secret):
        """Closing before 64 bytes fails authentication."""
        server, peer = pair
        peer.sendall(secret[:63])
        peer.shutdown(socket.SHUT_WR)
        assert authenticate(server, secret) is False

    def test_empty_connection(self, pair, secret):
        server, peer = pair
        peer.shutdown(socket.SHUT_WR)
        assert authenticate(server, secret) is False

    def test_secret_split_across_writes(self, pair, secret):
        """The token may arrive in several segments."""
        server, peer = pair
        peer.sendall(secret[:10])
        peer.sendall(secret[10:])
        assert authenticate(server, secret) is True

    def test_trailing_data_not_consumed(self, pair, secret):
        """Bytes after the secret are left for the call engine."""
        server, peer = pair
        peer.sendall(secret + b"next-frame")
        assert authenticate(server, secret) is True
        assert server.recv(64) == b"next-frame"

    def test_nothing_written_back(self, pair, secret):
        """The peer receives no bytes on failure."""
        server, peer = pair
        peer.sendall(b"x" * SECRET_LENGTH)
        assert authenticate(server, secret) is False
        server.close()
        assert peer.recv(1) == b""

    def test_socket_error_fails(self, secret):
        conn = MagicMock()
        conn.recv.side_effect = ConnectionResetError("reset")
        assert authenticate(conn, secret) is False
