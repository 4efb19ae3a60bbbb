"""CLI entry point for tree-compose."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Iterable, List

from tree_composer import __version__
from tree_composer.composer import ComposeOptions, compose
from tree_composer.errors import CompositionError
from tree_composer.records import parse_file
from tree_composer.serializer import SerializeOptions, dumps_forest
from tree_composer.summary import compute_statistics


def _resolve_group_arg(raw: str, present: Iterable[Any]) -> Any:
    """Map a --group argument onto a group key from the input.

    An exact string match wins; otherwise the argument is read as JSON so
    ``--group 3`` selects the integer group 3.
    """
    present = set(present)
    if raw in present:
        return raw
    try:
        value = json.loads(raw)
    except ValueError:
        return raw
    return value if isinstance(value, (int, float, str, bool)) or value is None else raw


def main(argv: List[str] | None = None) -> int:
    """CLI entry point. Returns 0 on success, 1 on error."""
    parser = argparse.ArgumentParser(
        prog="tree-compose",
        description="Compose flat parent-pointer records into grouped, ordered JSON trees",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "input",
        help="NDJSON record file (.ndjson, .json or .gz), or - for stdin",
    )
    parser.add_argument(
        "-o",
        "--output",
        default="-",
        help="Output JSON file path, or - for stdout (default: -)",
    )
    parser.add_argument(
        "-g",
        "--group",
        action="append",
        default=None,
        help="Only emit this group key (repeatable; default: all groups)",
    )
    parser.add_argument(
        "--max-depth",
        type=int,
        default=None,
        help="Use bounded-depth composition; fail if data is deeper",
    )
    parser.add_argument(
        "--reject-cross-group",
        action="store_true",
        help="Fail on parents that belong to another group instead of promoting to root",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail on malformed input lines instead of skipping them",
    )
    parser.add_argument(
        "--indent",
        type=int,
        default=None,
        help="Pretty-print JSON with this indent (default: compact)",
    )
    parser.add_argument(
        "--flatten-payload",
        action="store_true",
        help="Merge payload fields into each node object",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    # Pipeline: parse → compose → serialize → write
    try:
        nodes = parse_file(args.input, strict=args.strict)

        group_keys = None
        if args.group:
            present = {n.group_key for n in nodes}
            group_keys = [_resolve_group_arg(raw, present) for raw in args.group]

        forests = compose(
            nodes,
            ComposeOptions(
                group_keys=group_keys,
                reject_cross_group=args.reject_cross_group,
                max_depth=args.max_depth,
            ),
        )
        text = dumps_forest(
            forests,
            SerializeOptions(indent=args.indent, flatten_payload=args.flatten_payload),
        )

        if args.output == "-":
            sys.stdout.write(text + "\n")
        else:
            with open(args.output, "w", encoding="utf-8") as f:
                f.write(text + "\n")

        stats = compute_statistics(forests)
        print(
            f"Forest composed: {args.output} "
            f"({len(nodes)} records, {len(stats.groups)} groups, "
            f"{stats.total_roots} roots, {stats.total_orphans} orphans promoted)",
            file=sys.stderr,
        )
        return 0

    except CompositionError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except FileNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except PermissionError as exc:
        print(f"Error: Permission denied: {exc}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
