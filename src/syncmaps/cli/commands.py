"""CLI command registration and handlers for syncmaps."""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from syncmaps.contracts.error import BadInputError, Exit, IOErrorEnvelope


@dataclass(frozen=True)
class CLIContext:
    """Runtime hooks supplied by the top-level CLI entrypoint."""

    emit_success: Callable[..., None]
    run_csv: Callable[..., Dict[str, Any]]
    verify_workload: Callable[..., Tuple[bool, List[str]]]
    render_workload: Callable[..., str]
    generate_csv: Callable[..., None]
    logger: logging.Logger
    json_enabled: Callable[[], bool]
    guard: Callable[[Callable[[argparse.Namespace], int]], Callable[[argparse.Namespace], int]]
    default_csv_max_rows: int


def register_subcommands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
    ctx: CLIContext,
) -> Dict[str, Callable[[argparse.Namespace], int]]:
    """Define CLI subcommands and return their handlers."""

    handlers: Dict[str, Callable[[argparse.Namespace], int]] = {}

    def _register(
        name: str,
        help_text: Optional[str],
        configure: Callable[[argparse.ArgumentParser], Callable[[argparse.Namespace], int]],
    ) -> None:
        parser = subparsers.add_parser(name, help=help_text)
        handler = configure(parser)
        handlers[name] = ctx.guard(handler)

    _register(
        "run-csv",
        "Replay a CSV workload and report a run summary.",
        lambda parser: _configure_run_csv(parser, ctx),
    )
    _register(
        "verify",
        "Replay a CSV workload, then check every container invariant.",
        lambda parser: _configure_verify(parser, ctx),
    )
    _register(
        "render",
        "Replay a CSV workload, then print the container.",
        lambda parser: _configure_render(parser, ctx),
    )
    _register(
        "generate-csv",
        "Write a synthetic put/get/del workload.",
        lambda parser: _configure_generate(parser, ctx),
    )
    return handlers


def _add_csv_arguments(parser: argparse.ArgumentParser, ctx: CLIContext) -> None:
    parser.add_argument("--csv", required=True, help="Workload file with header op,key,value")
    parser.add_argument(
        "--csv-max-rows",
        type=int,
        default=ctx.default_csv_max_rows,
        help="Abort if CSV rows exceed this count (0 disables check)",
    )


def _configure_run_csv(
    parser: argparse.ArgumentParser, ctx: CLIContext
) -> Callable[[argparse.Namespace], int]:
    _add_csv_arguments(parser, ctx)
    parser.add_argument(
        "--json-summary-out", type=str, default=None, help="Write final run stats to JSON for CI"
    )

    def handler(args: argparse.Namespace) -> int:
        result = ctx.run_csv(
            args.csv,
            args.structure,
            args.keys,
            csv_max_rows=args.csv_max_rows,
            json_summary_out=args.json_summary_out,
        )
        if ctx.json_enabled():
            ctx.emit_success("run-csv", data=result)
        else:
            ctx.emit_success("run-csv", text=_format_summary(result))
        return int(Exit.OK)

    return handler


def _format_summary(result: Dict[str, Any]) -> str:
    counts = result["ops_by_type"]
    lines = [
        f"structure={result['structure']} keys={result['keys']}",
        f"ops={result['total_ops']} (put={counts['put']}, get={counts['get']}, del={counts['del']})",
        f"size={result['final_size']}",
    ]
    if "height" in result:
        lines.append(f"height={result['height']}")
    else:
        lines.append(
            f"capacity={result['capacity']} load_factor={result['load_factor']:.3f} "
            f"max_chain_len={result['max_chain_len']}"
        )
    lines.append(
        f"elapsed={result['elapsed_seconds']:.6f}s ops/s={result['ops_per_second']:.0f}"
    )
    return "\n".join(lines)


def _configure_verify(
    parser: argparse.ArgumentParser, ctx: CLIContext
) -> Callable[[argparse.Namespace], int]:
    _add_csv_arguments(parser, ctx)
    parser.add_argument("--verbose", action="store_true")

    def handler(args: argparse.Namespace) -> int:
        ok, messages = ctx.verify_workload(
            args.csv,
            args.structure,
            args.keys,
            verbose=args.verbose,
            csv_max_rows=args.csv_max_rows,
        )
        if ctx.json_enabled():
            payload = {
                "ok": ok,
                "command": "verify",
                "structure": args.structure,
                "messages": messages,
            }
            print(json.dumps(payload, ensure_ascii=False))
        else:
            for msg in messages:
                print(msg)
            print("OK" if ok else "FAILED")
        if not ok:
            ctx.logger.error("Invariant check failed for %s (%s)", args.csv, args.structure)
            return 1
        return int(Exit.OK)

    return handler


def _configure_render(
    parser: argparse.ArgumentParser, ctx: CLIContext
) -> Callable[[argparse.Namespace], int]:
    _add_csv_arguments(parser, ctx)

    def handler(args: argparse.Namespace) -> int:
        picture = ctx.render_workload(
            args.csv, args.structure, args.keys, csv_max_rows=args.csv_max_rows
        )
        ctx.emit_success(
            "render", text=picture, data={"structure": args.structure, "lines": picture.splitlines()}
        )
        return int(Exit.OK)

    return handler


def _configure_generate(
    parser: argparse.ArgumentParser, ctx: CLIContext
) -> Callable[[argparse.Namespace], int]:
    parser.add_argument("--outfile", required=True)
    parser.add_argument("--ops", type=int, required=True)
    parser.add_argument("--key-space", type=int, default=1000)
    parser.add_argument("--seed", type=int, default=1337)
    parser.add_argument("--del-ratio", type=float, default=0.1)
    parser.add_argument("--get-ratio", type=float, default=0.3)

    def handler(args: argparse.Namespace) -> int:
        try:
            ctx.generate_csv(
                args.outfile,
                args.ops,
                args.key_space,
                args.seed,
                del_ratio=args.del_ratio,
                get_ratio=args.get_ratio,
                key_type=args.keys,
            )
        except ValueError as exc:
            raise BadInputError(str(exc)) from exc
        except OSError as exc:
            raise IOErrorEnvelope(str(exc)) from exc
        ctx.logger.info("Wrote workload CSV: %s", args.outfile)
        ctx.emit_success(
            "generate-csv",
            data={
                "outfile": args.outfile,
                "ops": args.ops,
                "key_space": args.key_space,
                "seed": args.seed,
                "del_ratio": args.del_ratio,
                "get_ratio": args.get_ratio,
                "keys": args.keys,
            },
        )
        return int(Exit.OK)

    return handler
