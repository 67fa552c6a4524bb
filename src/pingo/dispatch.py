"""Connection dispatcher.

Runs the accept loop. Every accepted connection is handled by its own
thread: authenticate, then serve calls until the peer goes away. The
handler thread owns the connection and closes it on every exit path.

    Accepted -> Authenticating -> Serving | Rejected
"""

import logging
import selectors
import socket
import threading
import time
from typing import Optional

from pingo.auth import authenticate
from pingo.config import Config
from pingo.errors import ERR_HTTP_SERVE, AcceptError
from pingo.handshake import Handshake
from pingo.rpc import RpcEngine

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.5
MAX_BACKOFF = 2.0


class Dispatcher:
    """Accept loop plus per-connection handler threads."""

    def __init__(
        self,
        engine: RpcEngine,
        secret: bytes,
        handshake: Handshake,
        config: Config,
        stop: Optional[threading.Event] = None,
        poll_interval: float = POLL_INTERVAL,
    ):
        self.engine = engine
        self.secret = secret
        self.handshake = handshake
        self.config = config
        self.stop = stop if stop is not None else threading.Event()
        self.poll_interval = poll_interval
        self._slots = (
            threading.BoundedSemaphore(config.max_conns) if config.max_conns else None
        )
        self._lock = threading.Lock()
        self._active: dict[threading.Thread, socket.socket] = {}

    @property
    def active(self) -> int:
        """Number of connections currently being handled."""
        with self._lock:
            return len(self._active)

    def backoff(self, failures: int) -> float:
        """Delay before retrying accept after consecutive failures."""
        return min(self.config.accept_backoff * (2 ** (failures - 1)), MAX_BACKOFF)

    def serve(self, listener: socket.socket):
        """Accept connections until the stop event is set.

        Raises:
            AcceptError: After accept_retries consecutive accept failures
        """
        listener.setblocking(False)
        failures = 0
        with selectors.DefaultSelector() as selector:
            selector.register(listener, selectors.EVENT_READ)
            while not self.stop.is_set():
                try:
                    if not selector.select(self.poll_interval):
                        continue
                    conn, _ = listener.accept()
                except BlockingIOError:
                    continue
                except OSError as e:
                    if self.stop.is_set():
                        break
                    failures += 1
                    self.handshake.output("fatal", f"{ERR_HTTP_SERVE}: {e}")
                    if failures >= self.config.accept_retries:
                        raise AcceptError(str(e), failures) from e
                    self.stop.wait(self.backoff(failures))
                    continue

                failures = 0
                conn.setblocking(True)
                self._spawn(conn)
        logger.debug("Accept loop stopped")

    def handle(self, conn: socket.socket) -> bool:
        """Authenticate conn and serve it; always closes conn.

        Only authenticated connections take a max_conns slot, so peers that
        never send the secret cannot starve the host.

        Returns:
            True if the connection was authenticated and served
        """
        try:
            if not authenticate(conn, self.secret):
                logger.debug("Rejected unauthenticated connection")
                return False
            if not self._acquire_slot():
                return False
            try:
                self.engine.serve_conn(conn, self.stop)
            finally:
                self._release_slot()
            return True
        finally:
            conn.close()

    def drain(self, timeout: float):
        """Wait up to timeout for handlers, then cut off the stragglers."""
        deadline = time.monotonic() + timeout
        current = threading.current_thread()
        with self._lock:
            threads = [t for t in self._active if t is not current]
        for thread in threads:
            thread.join(max(0.0, deadline - time.monotonic()))

        with self._lock:
            stragglers = [(t, c) for t, c in self._active.items() if t is not current]
        if stragglers:
            logger.info("Closing %d connections still open after drain", len(stragglers))
        for thread, conn in stragglers:
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass  # Already closed by its handler
        for thread, _ in stragglers:
            thread.join(self.poll_interval)

    def _spawn(self, conn: socket.socket):
        thread = threading.Thread(target=self._run_handler, args=(conn,), daemon=True)
        with self._lock:
            self._active[thread] = conn
        thread.start()

    def _run_handler(self, conn: socket.socket):
        try:
            self.handle(conn)
        except Exception as e:
            logger.error("Connection handler error: %s", e)
        finally:
            with self._lock:
                self._active.pop(threading.current_thread(), None)

    def _acquire_slot(self) -> bool:
        """Wait for a serving slot; False if the server stops first."""
        if self._slots is None:
            return True
        while not self.stop.is_set():
            if self._slots.acquire(timeout=self.poll_interval):
                return True
        return False

    def _release_slot(self):
        if self._slots is not None:
            self._slots.release()
