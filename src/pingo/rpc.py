"""Call-dispatch engine.

Serves procedure calls on an already authenticated connection. Framing is
newline-delimited JSON:

    request:  {"id": 1, "method": "Echo.Say", "params": "hi"}
    reply:    {"id": 1, "result": "hi", "error": null}

A procedure is any public method of a registered object. It takes one
request value and returns one reply value; raising is the error return.
Calls on one connection are served sequentially.
"""

import json
import logging
import socket
import threading
from typing import Any, Callable, Optional

from pingo.errors import RpcError

logger = logging.getLogger(__name__)

# Upper bound on a single request line, excluding its newline
MAX_FRAME = 1 << 20


def exported_procedures(obj: Any) -> dict[str, Callable]:
    """Return the public callables of obj, keyed by method name."""
    procs = {}
    for attr in dir(obj):
        if attr.startswith("_"):
            continue
        value = getattr(obj, attr)
        if callable(value):
            procs[attr] = value
    return procs


class RpcEngine:
    """Registry of procedures plus the per-connection serve loop."""

    def __init__(self):
        self._procs: dict[str, Callable] = {}
        self._names: set[str] = set()

    def register(self, obj: Any, name: str):
        """Bind every exported procedure of obj under ``<name>.<method>``.

        Raises:
            RpcError: If name is already taken or obj exports nothing
        """
        if name in self._names:
            raise RpcError(f"Object already registered: {name}")
        procs = exported_procedures(obj)
        if not procs:
            raise RpcError(f"Object {name} exports no procedures")

        self._names.add(name)
        for method, func in procs.items():
            self._procs[f"{name}.{method}"] = func
        logger.debug("Registered %s with %d procedures", name, len(procs))

    def procedures(self) -> list[str]:
        """Sorted list of registered procedure names."""
        return sorted(self._procs)

    def call(self, method: str, params: Any) -> Any:
        """Invoke one procedure by name."""
        func = self._procs.get(method)
        if func is None:
            raise RpcError(f"Unknown procedure: {method}")
        return func(params)

    def handle_frame(self, line: bytes) -> dict:
        """Decode one request line, run it, and build the reply dict."""
        try:
            request = json.loads(line)
        except (ValueError, UnicodeDecodeError) as e:
            return {"id": None, "result": None, "error": f"Malformed request: {e}"}
        if not isinstance(request, dict) or not isinstance(request.get("method"), str):
            return {"id": None, "result": None, "error": "Malformed request: missing method"}

        req_id = request.get("id")
        try:
            result = self.call(request["method"], request.get("params"))
        except RpcError as e:
            return {"id": req_id, "result": None, "error": e.message}
        except Exception as e:
            logger.debug("Procedure %s failed: %s", request["method"], e)
            return {"id": req_id, "result": None, "error": str(e)}
        return {"id": req_id, "result": result, "error": None}

    def serve_conn(self, conn: socket.socket, stop: Optional[threading.Event] = None):
        """Serve requests on conn until EOF, a socket error, or stop is set.

        The caller owns conn and closes it afterwards.
        """
        reader = conn.makefile("rb")
        writer = conn.makefile("wb")
        try:
            while stop is None or not stop.is_set():
                line = reader.readline(MAX_FRAME + 2)
                if not line:
                    break
                if len(line.rstrip(b"\n")) > MAX_FRAME:
                    self._write(writer, {"id": None, "result": None, "error": "Request too large"})
                    break
                if not line.strip():
                    continue
                self._write(writer, self.handle_frame(line))
        except OSError as e:
            logger.debug("Connection closed: %s", e)
        finally:
            reader.close()
            try:
                writer.close()
            except OSError:
                pass  # Unflushed reply on a dead peer

    @staticmethod
    def _write(writer, reply: dict):
        try:
            body = json.dumps(reply)
        except (TypeError, ValueError) as e:
            body = json.dumps({
                "id": reply.get("id"),
                "result": None,
                "error": f"Reply not serializable: {e}",
            })
        writer.write(body.encode("utf-8") + b"\n")
        writer.flush()
