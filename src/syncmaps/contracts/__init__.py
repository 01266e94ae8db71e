"""Error contracts shared by the containers and the CLI."""

from .error import (
    BadInputError,
    ConcurrentModificationError,
    EnvelopeError,
    ErrorEnvelope,
    Exit,
    InvariantError,
    IOErrorEnvelope,
    PolicyError,
    die,
    guard_cli,
    require_callable,
    require_key,
)

__all__ = [
    "Exit",
    "ErrorEnvelope",
    "EnvelopeError",
    "BadInputError",
    "InvariantError",
    "PolicyError",
    "ConcurrentModificationError",
    "IOErrorEnvelope",
    "guard_cli",
    "die",
    "require_callable",
    "require_key",
]
