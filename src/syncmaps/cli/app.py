"""
app.py

Command-line front end for the synchronized containers:
- replay an ``op,key,value`` CSV workload against a TreeMap or HashTable
- verify every structural invariant after the replay
- render the resulting container
- generate synthetic workloads for the above
- JSON summaries for CI and JSON error envelopes on stderr
"""

from __future__ import annotations

import argparse
import contextlib
import csv
import json
import logging
import os
import random
import sys
import time
from collections.abc import Iterator
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from syncmaps.cli.commands import CLIContext, register_subcommands
from syncmaps.config import AppConfig, load_app_config
from syncmaps.contracts.error import BadInputError, IOErrorEnvelope, PolicyError, guard_cli
from syncmaps.core.functions import (
    default_equals,
    fnv1a_hash,
    identity_hash,
    key_to_str,
    natural_compare,
    pair_to_str,
)
from syncmaps.core.hashtable import HashTable
from syncmaps.core.treemap import TreeMap
from syncmaps.core.verify import verify_table, verify_tree

# --------------------------------------------------------------------
# Logging
# --------------------------------------------------------------------
logger = logging.getLogger("syncmaps")
logger.setLevel(logging.INFO)
logger.propagate = False
cli_logger = logger.getChild("cli")

DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DEFAULT_LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"
DEFAULT_LOG_MAX_BYTES = 5_000_000
DEFAULT_LOG_BACKUP_COUNT = 5
DEFAULT_CSV_MAX_ROWS = 5_000_000

SUMMARY_SCHEMA = "syncmaps.summary.v1"
STRUCTURES = ("tree", "table")
KEY_TYPES = ("int", "str")
CSV_HINT = "Expected header 'op,key,value' with ops put/get/del"

_MISSING = object()


class JsonFormatter(logging.Formatter):
    """Render log records as JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, DEFAULT_LOG_DATEFMT),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = self.formatStack(record.stack_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(
    use_json: bool = False,
    log_file: str | None = None,
    *,
    max_bytes: int = DEFAULT_LOG_MAX_BYTES,
    backup_count: int = DEFAULT_LOG_BACKUP_COUNT,
) -> None:
    """Configure console (and optional rotating file) logging for ``syncmaps.*``."""

    formatter: logging.Formatter
    if use_json:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(DEFAULT_LOG_FORMAT, DEFAULT_LOG_DATEFMT)

    for handler in list(logger.handlers):
        with contextlib.suppress(Exception):
            handler.close()
        logger.removeHandler(handler)

    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    logger.addHandler(stream)

    if log_file:
        handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
        handler.setFormatter(formatter)
        logger.addHandler(handler)


configure_logging()

APP_CONFIG: AppConfig = AppConfig()
OUTPUT_JSON: bool = False


def set_app_config(cfg: AppConfig) -> None:
    global APP_CONFIG
    APP_CONFIG = cfg


def emit_success(
    command: str, *, text: str | None = None, data: dict[str, Any] | None = None
) -> None:
    if OUTPUT_JSON:
        payload: dict[str, Any] = {"ok": True, "command": command}
        if data:
            payload.update(data)
        if text is not None and "result" not in payload:
            payload["result"] = text
        print(json.dumps(payload, ensure_ascii=False))
    else:
        if text is not None:
            print(text)


# --------------------------------------------------------------------
# Containers and single operations
# --------------------------------------------------------------------
def build_container(structure: str, key_type: str = "int") -> TreeMap | HashTable:
    """Build an empty container wired with the stock behaviour functions."""

    if key_type not in KEY_TYPES:
        raise PolicyError(f"Unknown key type {key_type!r}")
    fail_fast = APP_CONFIG.cursor.fail_fast
    if structure == "tree":
        return TreeMap(natural_compare, key_to_str, fail_fast=fail_fast)
    if structure == "table":
        hasher = identity_hash if key_type == "int" else fnv1a_hash
        return HashTable(
            hasher, default_equals, pair_to_str, policy=APP_CONFIG.table, fail_fast=fail_fast
        )
    raise PolicyError(f"Unknown structure {structure!r}")


def run_op(m: TreeMap | HashTable, op: str, key: Any, value: str | None = None) -> str | None:
    if op == "put":
        if key is None or value is None:
            raise ValueError("PUT operations require both key and value")
        m.put(key, value)
    elif op == "get":
        if key is None:
            raise ValueError("GET operations require a key")
        v = m.get(key)
        return "" if v is None else str(v)
    elif op == "del":
        if key is None:
            raise ValueError("DEL operations require a key")
        if isinstance(m, HashTable):
            ok = m.remove(key)
        else:
            ok = m.remove(key, _MISSING) is not _MISSING
        return "1" if ok else "0"
    else:
        raise ValueError(f"unknown op: {op}")
    return "OK"


# --------------------------------------------------------------------
# CSV workloads
# --------------------------------------------------------------------
def _parse_key(raw: str, key_type: str, line_no: int) -> Any:
    if key_type == "str":
        return raw
    try:
        return int(raw)
    except ValueError as exc:
        raise BadInputError(
            f"Key '{raw}' at line {line_no} is not an integer",
            hint="Use --keys str for text keys",
        ) from exc


def load_ops(
    path: str, key_type: str = "int", csv_max_rows: int = DEFAULT_CSV_MAX_ROWS
) -> Iterator[tuple[str, Any, str | None]]:
    """Yield validated ``(op, key, value)`` rows from a workload CSV."""

    row_counter = 0
    try:
        with open(path, newline="", encoding="utf-8") as f:
            reader = csv.DictReader(f)
            fieldnames = reader.fieldnames or []
            required = {"op", "key", "value"}
            header = {fn.strip() for fn in fieldnames}
            missing = required - header
            if missing:
                raise BadInputError(
                    f"Missing header columns: {', '.join(sorted(missing))}", hint=CSV_HINT
                )
            unexpected = header - required
            if unexpected:
                raise BadInputError(
                    f"Unexpected column(s) in header: {', '.join(sorted(unexpected))}",
                    hint=CSV_HINT,
                )
            for row in reader:
                row_counter += 1
                if csv_max_rows and csv_max_rows > 0 and row_counter > csv_max_rows:
                    raise BadInputError(
                        f"CSV row limit exceeded ({row_counter} > {csv_max_rows})",
                        hint=CSV_HINT,
                    )
                op = (row.get("op") or "").strip().lower()
                raw_key = (row.get("key") or "").strip()
                value = row.get("value")
                line_no = reader.line_num
                if not op:
                    raise BadInputError(f"Missing op at line {line_no}", hint=CSV_HINT)
                if op not in {"put", "get", "del"}:
                    raise BadInputError(f"Unknown op '{op}' at line {line_no}", hint=CSV_HINT)
                if not raw_key:
                    raise BadInputError(f"Missing key at line {line_no}", hint=CSV_HINT)
                if op == "put":
                    if value is None or value.strip() == "":
                        raise BadInputError(f"PUT missing value at line {line_no}", hint=CSV_HINT)
                    value = value.strip()
                else:
                    value = None
                yield op, _parse_key(raw_key, key_type, line_no), value
    except FileNotFoundError as exc:
        raise IOErrorEnvelope(str(exc)) from exc
    except BadInputError:
        raise
    except OSError as exc:
        raise IOErrorEnvelope(str(exc)) from exc
    except (csv.Error, UnicodeDecodeError) as exc:
        raise BadInputError(str(exc), hint=CSV_HINT) from exc


def replay(
    path: str,
    structure: str,
    key_type: str = "int",
    csv_max_rows: int = DEFAULT_CSV_MAX_ROWS,
) -> tuple[TreeMap | HashTable, dict[str, int], float]:
    """Run every row of ``path`` against a fresh container.

    Returns the container, per-op counts and the elapsed wall time in seconds.
    """

    m = build_container(structure, key_type)
    counts = {"put": 0, "get": 0, "del": 0}
    start = time.perf_counter()
    for op, key, value in load_ops(path, key_type, csv_max_rows):
        run_op(m, op, key, value)
        counts[op] += 1
    elapsed = time.perf_counter() - start
    return m, counts, elapsed


def _describe(m: TreeMap | HashTable) -> dict[str, Any]:
    if isinstance(m, TreeMap):
        return {"height": m.height()}
    return {
        "capacity": m.capacity,
        "load_factor": m.load_factor(),
        "max_chain_len": m.max_chain_len(),
    }


def run_csv(
    path: str,
    structure: str,
    key_type: str = "int",
    *,
    csv_max_rows: int = DEFAULT_CSV_MAX_ROWS,
    json_summary_out: str | None = None,
) -> dict[str, Any]:
    """Replay a CSV workload and return the run summary."""

    m, counts, elapsed = replay(path, structure, key_type, csv_max_rows)
    total = sum(counts.values())
    summary: dict[str, Any] = {
        "schema": SUMMARY_SCHEMA,
        "csv": str(path),
        "structure": structure,
        "keys": key_type,
        "total_ops": total,
        "ops_by_type": counts,
        "final_size": m.size(),
        "elapsed_seconds": elapsed,
        "ops_per_second": total / elapsed if elapsed > 0 else 0.0,
    }
    summary.update(_describe(m))
    cli_logger.info(
        "Replayed %d ops on %s in %.6f s (size=%d)", total, structure, elapsed, m.size()
    )

    if json_summary_out:
        out_path = Path(json_summary_out)
        try:
            out_path.parent.mkdir(parents=True, exist_ok=True)
            out_path.write_text(json.dumps(summary, indent=2) + "\n", encoding="utf-8")
        except OSError as exc:
            raise IOErrorEnvelope(str(exc)) from exc
        cli_logger.info("Wrote JSON summary: %s", out_path)
    return summary


def verify_workload(
    path: str,
    structure: str,
    key_type: str = "int",
    *,
    verbose: bool = False,
    csv_max_rows: int = DEFAULT_CSV_MAX_ROWS,
) -> tuple[bool, list[str]]:
    m, _, _ = replay(path, structure, key_type, csv_max_rows)
    if isinstance(m, TreeMap):
        return verify_tree(m, verbose=verbose)
    return verify_table(m, verbose=verbose)


def render_workload(
    path: str,
    structure: str,
    key_type: str = "int",
    *,
    csv_max_rows: int = DEFAULT_CSV_MAX_ROWS,
) -> str:
    m, _, _ = replay(path, structure, key_type, csv_max_rows)
    return m.render()


def generate_csv(
    out_path: str,
    ops: int,
    key_space: int,
    seed: int,
    *,
    del_ratio: float = 0.1,
    get_ratio: float = 0.3,
    key_type: str = "int",
) -> None:
    if ops <= 0:
        raise ValueError("ops must be > 0")
    if key_space <= 0:
        raise ValueError("key_space must be > 0")
    if not (0.0 <= del_ratio <= 1.0) or not (0.0 <= get_ratio <= 1.0):
        raise ValueError("del_ratio and get_ratio must be in [0,1]")
    if del_ratio + get_ratio > 1.0:
        raise ValueError("del_ratio + get_ratio must not exceed 1")
    rng = random.Random(seed)  # noqa: S311  # nosec B311 - deterministic workload sampler
    with open(out_path, "w", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        w.writerow(["op", "key", "value"])
        for _ in range(ops):
            idx = rng.randrange(key_space)
            key = str(idx) if key_type == "int" else f"K{idx}"
            roll = rng.random()
            if roll < get_ratio:
                w.writerow(["get", key, ""])
            elif roll < get_ratio + del_ratio:
                w.writerow(["del", key, ""])
            else:
                w.writerow(["put", key, str(rng.randint(0, 1_000_000))])


# --------------------------------------------------------------------
# CLI
# --------------------------------------------------------------------
def main(argv: list[str]) -> int:
    p = argparse.ArgumentParser(
        description=(
            "Replay, verify, render and generate workloads for the synchronized "
            "red-black tree map and chained hash table."
        )
    )
    p.add_argument(
        "--structure",
        default="tree",
        choices=list(STRUCTURES),
        help="Container to drive (default: %(default)s)",
    )
    p.add_argument(
        "--keys",
        default="int",
        choices=list(KEY_TYPES),
        help="Interpret CSV keys as integers or text (default: %(default)s)",
    )
    p.add_argument("--log-json", action="store_true", help="Emit logs in JSON format")
    p.add_argument(
        "--log-file",
        default=None,
        help="Optional log file path (rotates at 5MB, keeps 5 backups by default)",
    )
    p.add_argument(
        "--log-max-bytes",
        type=int,
        default=DEFAULT_LOG_MAX_BYTES,
        help="Max bytes per log file before rotation (default: %(default)s)",
    )
    p.add_argument(
        "--log-backup-count",
        type=int,
        default=DEFAULT_LOG_BACKUP_COUNT,
        help="Number of rotated log files to keep (default: %(default)s)",
    )
    p.add_argument(
        "--json", action="store_true", help="Emit machine-readable success output to stdout"
    )
    p.add_argument(
        "--config",
        default=None,
        help="Path to TOML config file (env: SYNCMAPS_CONFIG)",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    ctx = CLIContext(
        emit_success=emit_success,
        run_csv=run_csv,
        verify_workload=verify_workload,
        render_workload=render_workload,
        generate_csv=generate_csv,
        logger=cli_logger,
        json_enabled=lambda: OUTPUT_JSON,
        guard=guard_cli,
        default_csv_max_rows=DEFAULT_CSV_MAX_ROWS,
    )

    handlers = register_subcommands(sub, ctx)

    args = p.parse_args(argv)

    global OUTPUT_JSON
    OUTPUT_JSON = bool(args.json)

    configure_logging(
        args.log_json,
        args.log_file,
        max_bytes=args.log_max_bytes,
        backup_count=args.log_backup_count,
    )

    cfg_path = args.config or os.getenv("SYNCMAPS_CONFIG")
    cfg = load_app_config(cfg_path)
    set_app_config(cfg)
    if cfg_path:
        cli_logger.info("Loaded config from %s", cfg_path)

    handler = handlers.get(args.cmd)
    if handler is None:
        raise PolicyError(f"Unknown command {args.cmd}")
    return handler(args)


def console_main() -> None:
    """Entry point for console_scripts."""

    try:
        raise SystemExit(main(sys.argv[1:]))
    except SystemExit:
        raise
    except Exception as e:  # noqa: BLE001
        cli_logger.exception("Fatal error: %s", e)
        raise SystemExit(2) from e


if __name__ == "__main__":
    console_main()
