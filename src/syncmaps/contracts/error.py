"""Exit codes, stderr envelopes and the exception family raised by syncmaps.

Container code raises the :class:`EnvelopeError` subclasses below. The CLI
wraps every subcommand in :func:`guard_cli`, which turns them into a one-line
JSON object on stderr and a fixed process exit status.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable
from dataclasses import dataclass
from enum import IntEnum
from functools import wraps
from typing import Any, NoReturn, TypeVar

logger = logging.getLogger(__name__)
T = TypeVar("T")


class Exit(IntEnum):
    """Process exit status per failure family. 1 is left to ``verify``."""

    OK = 0
    BAD_INPUT = 2
    INVARIANT = 3
    POLICY = 4
    IO = 5


@dataclass(slots=True)
class ErrorEnvelope:
    """The ``{"error", "detail", "hint"?}`` object written to stderr."""

    error: str
    detail: str
    hint: str | None = None

    def to_json(self) -> str:
        body = {"error": self.error, "detail": self.detail}
        if self.hint:
            body["hint"] = self.hint
        return json.dumps(body, ensure_ascii=False)


def die(code: Exit, kind: str, detail: str, hint: str | None = None) -> NoReturn:
    """Write one envelope line to stderr, then exit with ``code``."""

    line = ErrorEnvelope(error=kind, detail=detail, hint=hint).to_json()
    sys.stderr.write(line + "\n")
    try:
        sys.stderr.flush()
    finally:
        sys.exit(int(code))


class EnvelopeError(Exception):
    """Root of the syncmaps exceptions; ``hint`` ends up in the envelope."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class BadInputError(EnvelopeError):
    """A workload row, config document or flag value was rejected."""


class InvariantError(EnvelopeError):
    """A tree, table or lock was caught in a state it can never legally reach."""


class PolicyError(EnvelopeError):
    """A caller broke a usage contract: None key, missing callback, dead cursor."""


class ConcurrentModificationError(PolicyError):
    """A fail-fast cursor noticed its container changed underneath it."""


class IOErrorEnvelope(EnvelopeError):  # noqa: N818 - public API name
    """Reading a workload or writing a summary/CSV failed at the OS level."""


def require_callable(fn: Any, name: str) -> None:
    if fn is None or not callable(fn):
        raise PolicyError(f"{name} must be a callable", hint=f"pass a {name} to the constructor")


def require_key(key: Any) -> None:
    if key is None:
        raise PolicyError("key must not be None")


# Subclasses first: a ConcurrentModificationError is also a PolicyError.
_EXCEPTION_ORDER: tuple[tuple[type[EnvelopeError], Exit, str], ...] = (
    (BadInputError, Exit.BAD_INPUT, "BadInput"),
    (InvariantError, Exit.INVARIANT, "Invariant"),
    (ConcurrentModificationError, Exit.POLICY, "ConcurrentModification"),
    (PolicyError, Exit.POLICY, "Policy"),
    (IOErrorEnvelope, Exit.IO, "IO"),
)


def _classify(exc: EnvelopeError) -> tuple[Exit, str]:
    for exc_type, exit_code, label in _EXCEPTION_ORDER:
        if isinstance(exc, exc_type):
            return exit_code, label
    return Exit.POLICY, "UnhandledEnvelope"


def guard_cli(fn: Callable[..., T]) -> Callable[..., T]:
    """Wrap a subcommand handler so every failure leaves through :func:`die`."""

    @wraps(fn)
    def _wrapped(*args: Any, **kwargs: Any) -> T:
        try:
            return fn(*args, **kwargs)
        except EnvelopeError as exc:
            exit_code, label = _classify(exc)
            die(exit_code, label, str(exc), hint=exc.hint)
        except FileNotFoundError as exc:
            die(Exit.IO, "FileNotFound", str(exc))
        except Exception as exc:  # pragma: no cover - last-resort envelope
            logger.exception("Unhandled exception in syncmaps subcommand")
            die(Exit.POLICY, "Unhandled", f"{type(exc).__name__}: {exc}")

    return _wrapped


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
