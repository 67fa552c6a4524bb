"""Common utilities shared across the plugin runtime."""

import secrets
import string

# Printable, shell- and path-safe alphabet for tokens and socket names
ALPHABET = string.ascii_letters + string.digits


def randstr(length: int) -> str:
    """Return ``length`` cryptographically random alphanumeric characters."""
    return "".join(secrets.choice(ALPHABET) for _ in range(length))
