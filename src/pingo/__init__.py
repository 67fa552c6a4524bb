"""Plugin subprocess runtime.

Exposes registered objects to a host process over a local socket, after
proving the connecting peer holds the secret announced on stdout.
"""

from pingo.server import (
    PluginServer,
    create_server,
    main,
)
from pingo.config import (
    Config,
    load_config,
)
from pingo.errors import (
    PingoError,
    RegistrationError,
    ListenError,
    AcceptError,
    ConfigError,
    RpcError,
)

__all__ = [
    # Server
    "PluginServer",
    "create_server",
    "main",
    # Config
    "Config",
    "load_config",
    # Errors
    "PingoError",
    "RegistrationError",
    "ListenError",
    "AcceptError",
    "ConfigError",
    "RpcError",
]
