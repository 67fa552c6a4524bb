"""Error types for the plugin runtime.

Every error carries a short machine-readable code, matching the codes the
host sees on the handshake channel.
"""

ERR_REGISTER = "err-register"
ERR_CONN_FAILED = "err-connection-failed"
ERR_HTTP_SERVE = "err-http-serve"
ERR_CONFIG = "err-config"
ERR_RPC = "err-rpc"


class PingoError(Exception):
    """Plugin runtime error with error code."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")


class RegistrationError(PingoError):
    """Object registered after startup, or registered without a name."""

    def __init__(self, message: str):
        super().__init__(ERR_REGISTER, message)


class ListenError(PingoError):
    """No candidate address could be bound within the retry limit."""

    def __init__(self, proto: str, attempts: int):
        self.proto = proto
        self.attempts = attempts
        super().__init__(
            ERR_CONN_FAILED,
            f"Could not connect in {attempts} attempts, using {proto} protocol",
        )


class AcceptError(PingoError):
    """The listener kept failing to accept connections."""

    def __init__(self, message: str, failures: int = 0):
        self.failures = failures
        super().__init__(ERR_HTTP_SERVE, message)


class ConfigError(PingoError):
    """Invalid configuration value or unreadable config file."""

    def __init__(self, message: str):
        super().__init__(ERR_CONFIG, message)


class RpcError(PingoError):
    """Call-dispatch error: bad frame, unknown procedure, bad arguments."""

    def __init__(self, message: str):
        super().__init__(ERR_RPC, message)
