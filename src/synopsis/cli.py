# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Synopsis CLI: resolve, check-id, visit, rank, winner, rules commands.

Usage:
    python -m synopsis.cli resolve URL [--markup FILE] [--format json|text]
    python -m synopsis.cli check-id ID
    python -m synopsis.cli visit STATE URL DURATION_MS [--markup FILE]
    python -m synopsis.cli rank STATE [--n N] [--all] [--scorekeeper NAME]
    python -m synopsis.cli winner STATE [--n N]
    python -m synopsis.cli rules [--file FILE]

STATE is a JSON state file; ``visit`` creates it (configured from
``SYNOPSIS_*`` environment variables) when it does not exist yet.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from tabulate import tabulate

from .config import SynopsisConfig
from .engine import Synopsis
from .errors import SynopsisError
from .expressions import CompiledExpression
from .logging_config import configure
from .resolver import PublisherResolver, is_publisher_id
from .rules import DEFAULT_RULES_PATH, load_rules
from .scorekeepers import SCOREKEEPERS

logger = logging.getLogger(__name__)


def _read_markup(path_str: str | None) -> bytes | None:
    if not path_str:
        return None
    return Path(path_str).read_bytes()


def _load_engine(path: Path, *, create: bool = False) -> Synopsis:
    if path.exists():
        return Synopsis(path.read_bytes())
    if not create:
        raise SynopsisError(f"state file not found: {path}")
    logger.info("Creating new state file %s", path)
    return Synopsis(SynopsisConfig.from_env())


def _save_engine(engine: Synopsis, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(engine.dumps(indent=2), encoding="utf-8")
    tmp.replace(path)


def cmd_resolve(args: argparse.Namespace) -> int:
    """Print the resolution of one URL."""
    resolution = PublisherResolver().resolve(args.url, _read_markup(args.markup))
    if args.format == "json":
        print(
            json.dumps(
                {
                    "status": resolution.status.value,
                    "publisher": resolution.publisher,
                    "rule": resolution.rule,
                    "extras": resolution.extras,
                },
                indent=2,
            )
        )
    else:
        print(resolution.publisher or f"({resolution.status.value})")
        if resolution.rule:
            print(f"rule: {resolution.rule}")
        for name, value in resolution.extras.items():
            print(f"{name}: {value}")
    return 0 if resolution else 1


def cmd_check_id(args: argparse.Namespace) -> int:
    valid = is_publisher_id(args.publisher)
    print("valid" if valid else "invalid")
    return 0 if valid else 1


def cmd_visit(args: argparse.Namespace) -> int:
    """Record one visit into a state file."""
    path = Path(args.state)
    engine = _load_engine(path, create=True)
    publisher = engine.add_visit(args.url, args.duration, _read_markup(args.markup))
    _save_engine(engine, path)
    if publisher is None:
        print("(no publisher credited)")
        return 1
    print(publisher)
    return 0


def cmd_rank(args: argparse.Namespace) -> int:
    """Tabulate the current ranking."""
    engine = _load_engine(Path(args.state))

    if args.all:
        entries = engine.all_n(args.n)
        if not entries:
            print("(no ranking available)")
            return 1
        headers = ["Publisher", "Visits", "Duration (s)", *(f"w[{name}]" for name in SCOREKEEPERS)]
        rows = [
            [
                entry["publisher"],
                entry["visits"],
                f"{entry['duration'] / 1000:.1f}",
                *(f"{entry['weights'].get(name, 0):.4f}" for name in SCOREKEEPERS),
            ]
            for entry in entries
        ]
        print(tabulate(rows, headers=headers, tablefmt="simple", disable_numparse=True))
        return 0

    ranking = engine.top_n(args.n, args.scorekeeper)
    if not ranking:
        print("(no ranking available)")
        return 1
    rows = [[i, entry.publisher, f"{entry.weight:.4f}"] for i, entry in enumerate(ranking, start=1)]
    print(tabulate(rows, headers=["#", "Publisher", "Weight"], tablefmt="simple", disable_numparse=True))
    return 0


def cmd_winner(args: argparse.Namespace) -> int:
    winner = _load_engine(Path(args.state)).winner(args.n)
    if winner is None:
        print("(no winner)")
        return 1
    print(winner)
    return 0


def cmd_rules(args: argparse.Namespace) -> int:
    """Validate a rule table and list it."""
    path = Path(args.file) if args.file else DEFAULT_RULES_PATH
    rules = load_rules(path)
    rows = []
    for i, rule in enumerate(rules, start=1):
        condition = rule.condition.source if rule.condition is not None else "true"
        if rule.publisher_dom is not None:
            consequent = f"dom: {rule.publisher_dom.consequent.source}"
        elif isinstance(rule.consequent, CompiledExpression):
            consequent = rule.consequent.source
        else:
            consequent = repr(rule.consequent)
        rows.append([i, rule.description, condition, consequent])
    print(tabulate(rows, headers=["#", "Description", "Condition", "Consequent"], tablefmt="simple"))
    print(f"\n{len(rules)} rules OK ({path})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Publisher attribution and attention scoring",
        prog="synopsis",
    )
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING ... (default: $SYNOPSIS_LOG_LEVEL or INFO)")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_resolve = subparsers.add_parser("resolve", help="Resolve a URL to its publisher")
    p_resolve.add_argument("url", metavar="URL")
    p_resolve.add_argument("--markup", metavar="FILE", help="HTML snapshot of the page")
    p_resolve.add_argument("--format", choices=["text", "json"], default="text")
    p_resolve.set_defaults(func=cmd_resolve)

    p_check = subparsers.add_parser("check-id", help="Check whether a string is a valid publisher id")
    p_check.add_argument("publisher", metavar="ID")
    p_check.set_defaults(func=cmd_check_id)

    p_visit = subparsers.add_parser("visit", help="Record a visit into a state file")
    p_visit.add_argument("state", metavar="STATE")
    p_visit.add_argument("url", metavar="URL")
    p_visit.add_argument("duration", metavar="DURATION_MS", type=float)
    p_visit.add_argument("--markup", metavar="FILE", help="HTML snapshot of the page")
    p_visit.set_defaults(func=cmd_visit)

    p_rank = subparsers.add_parser("rank", help="Show publisher weights")
    p_rank.add_argument("state", metavar="STATE")
    p_rank.add_argument("--n", type=int, default=0, help="Keep only the top N (default: all)")
    p_rank.add_argument("--all", action="store_true", help="Weights under every scorekeeper")
    p_rank.add_argument("--scorekeeper", choices=list(SCOREKEEPERS), default=None)
    p_rank.set_defaults(func=cmd_rank)

    p_winner = subparsers.add_parser("winner", help="Draw a publisher by weighted lottery")
    p_winner.add_argument("state", metavar="STATE")
    p_winner.add_argument("--n", type=int, default=0, help="Draw among the top N (default: all)")
    p_winner.set_defaults(func=cmd_winner)

    p_rules = subparsers.add_parser("rules", help="Validate and list a rule table")
    p_rules.add_argument("--file", metavar="FILE", help="YAML rule table (default: shipped table)")
    p_rules.set_defaults(func=cmd_rules)

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure(json_output=args.json_logs, level=args.log_level)

    try:
        code = args.func(args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)
    except (SynopsisError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(2)
    sys.exit(code)


if __name__ == "__main__":
    main()
