from __future__ import annotations

# For convenience, the helpers most callers need are importable from here.
from .fallback import SYSTEM_RESOLVER, SystemResolver
from .normalize import (
    ANY_HOST_TOKEN,
    BROADCAST_HOST_TOKEN,
    default_host,
    normalize_addresses,
    normalize_port,
    parse_literal,
)

__all__ = (
    "ANY_HOST_TOKEN",
    "BROADCAST_HOST_TOKEN",
    "SYSTEM_RESOLVER",
    "SystemResolver",
    "default_host",
    "normalize_addresses",
    "normalize_port",
    "parse_literal",
)
