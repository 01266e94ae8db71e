"""Typed configuration loader for syncmaps."""

from __future__ import annotations

import os
import tomllib
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .contracts.error import BadInputError

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def _is_power_of_two(value: int) -> bool:
    return value > 0 and (value & (value - 1)) == 0


@dataclass
class TablePolicy:
    initial_capacity: int = 16
    load_factor: float = 0.75
    grow_factor: int = 2
    large_table_warn_threshold: int = 1_000_000

    def validate(self) -> None:
        if not isinstance(self.initial_capacity, int) or not _is_power_of_two(self.initial_capacity):
            raise BadInputError("table.initial_capacity must be a power of two > 0")
        if not 0.0 < self.load_factor <= 1.0:
            raise BadInputError("table.load_factor must be in (0, 1]")
        if (
            not isinstance(self.grow_factor, int)
            or self.grow_factor < 2
            or not _is_power_of_two(self.grow_factor)
        ):
            raise BadInputError("table.grow_factor must be a power of two >= 2")
        if self.large_table_warn_threshold < 0:
            raise BadInputError("table.large_table_warn_threshold must be >= 0")


@dataclass
class CursorPolicy:
    fail_fast: bool = True

    def validate(self) -> None:
        if not isinstance(self.fail_fast, bool):
            raise BadInputError("cursor.fail_fast must be boolean")


def _coerce_bool(raw: Any, name: str) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        normalized = raw.strip().lower()
        if normalized in _TRUTHY:
            return True
        if normalized in _FALSY:
            return False
    raise BadInputError(f"{name} must be boolean")


@dataclass
class AppConfig:
    table: TablePolicy = field(default_factory=TablePolicy)
    cursor: CursorPolicy = field(default_factory=CursorPolicy)

    @classmethod
    def load(cls, path: Path | None) -> AppConfig:
        if path is None:
            cfg = cls()
        else:
            try:
                data = tomllib.loads(path.read_text(encoding="utf-8"))
            except FileNotFoundError as exc:
                raise BadInputError(f"Config file not found: {path}") from exc
            except tomllib.TOMLDecodeError as exc:
                raise BadInputError(f"Invalid TOML: {exc}") from exc
            cfg = cls.from_dict(data)
        cfg.apply_env_overrides(os.environ)
        cfg.validate()
        return cfg

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppConfig:
        table_data = data.get("table", {})
        if not isinstance(table_data, dict):
            raise BadInputError("[table] section must be a table")
        try:
            table = TablePolicy(**table_data)
        except TypeError as exc:
            raise BadInputError(f"Unknown key in [table]: {exc}") from exc

        cursor_data = data.get("cursor", {})
        if not isinstance(cursor_data, dict):
            raise BadInputError("[cursor] section must be a table")
        unknown = set(cursor_data) - {"fail_fast"}
        if unknown:
            raise BadInputError(f"Unknown key in [cursor]: {', '.join(sorted(unknown))}")
        cursor = CursorPolicy()
        if "fail_fast" in cursor_data:
            cursor.fail_fast = _coerce_bool(cursor_data["fail_fast"], "cursor.fail_fast")
        return cls(table=table, cursor=cursor)

    def apply_env_overrides(self, env: Mapping[str, str]) -> None:
        table_mapping: dict[str, tuple[str, Callable[[str], Any]]] = {
            "SYNCMAPS_TABLE_INITIAL_CAPACITY": ("initial_capacity", int),
            "SYNCMAPS_TABLE_LOAD_FACTOR": ("load_factor", float),
            "SYNCMAPS_TABLE_GROW_FACTOR": ("grow_factor", int),
            "SYNCMAPS_TABLE_LARGE_WARN_THRESHOLD": ("large_table_warn_threshold", int),
        }
        for key, (attr, caster) in table_mapping.items():
            raw_value = env.get(key)
            if raw_value is None:
                continue
            try:
                value = caster(raw_value)
            except ValueError as exc:
                raise BadInputError(f"Invalid env override {key}={raw_value!r}") from exc
            setattr(self.table, attr, value)

        raw_fail_fast = env.get("SYNCMAPS_CURSOR_FAIL_FAST")
        if raw_fail_fast is not None:
            try:
                self.cursor.fail_fast = _coerce_bool(raw_fail_fast, "cursor.fail_fast")
            except BadInputError as exc:
                raise BadInputError(
                    f"Invalid env override SYNCMAPS_CURSOR_FAIL_FAST={raw_fail_fast!r}"
                ) from exc

    def validate(self) -> None:
        self.table.validate()
        self.cursor.validate()


DEFAULT_CONFIG = AppConfig()


def load_app_config(path: str | None) -> AppConfig:
    config_path = Path(path) if path else None
    return AppConfig.load(config_path)


__all__ = [
    "AppConfig",
    "CursorPolicy",
    "DEFAULT_CONFIG",
    "TablePolicy",
    "load_app_config",
]
