"""Stock behaviour functions for building containers over plain Python keys."""

from __future__ import annotations

from typing import Any

_FNV_OFFSET_32 = 0x811C9DC5
_FNV_PRIME_32 = 0x01000193
_MASK_32 = 0xFFFFFFFF


def natural_compare(a: Any, b: Any) -> int:
    """Three-way comparison using the keys' own ordering."""
    return (a > b) - (a < b)


def identity_hash(key: int) -> int:
    """Integers hash to themselves, folded to an unsigned 32-bit value."""
    return int(key) & _MASK_32


def fnv1a_hash(key: Any) -> int:
    """32-bit FNV-1a over the UTF-8 text of the key.

    Stable across interpreter runs, unlike ``hash()`` on ``str``.
    """
    data = key if isinstance(key, bytes) else str(key).encode("utf-8")
    h = _FNV_OFFSET_32
    for byte in data:
        h ^= byte
        h = (h * _FNV_PRIME_32) & _MASK_32
    return h


def default_equals(a: Any, b: Any) -> bool:
    return bool(a == b)


def pair_to_str(key: Any, value: Any) -> str:
    return f"{key}={value}"


def key_to_str(key: Any, value: Any) -> str:
    del value
    return str(key)


__all__ = [
    "default_equals",
    "fnv1a_hash",
    "identity_hash",
    "key_to_str",
    "natural_compare",
    "pair_to_str",
]
