# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Command line interface for inspecting and maintaining rotation state.

    model-rotation status [--config PATH] [--state PATH]
    model-rotation reset [MODEL ...] [--state PATH]
    model-rotation prune [--days N] [--state PATH]
"""

import argparse
import json
import logging
from datetime import timedelta
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from rich.console import Console

from .config import default_agents_config_path, default_state_path, load_agent_pools_from_file
from .constants import STATE_MAX_AGE_DAYS
from .state_store import RotationStateStore
from .status import build_status_table

console = Console()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="model-rotation",
        description="Inspect and maintain model rotation state.",
    )
    parser.add_argument(
        "--state",
        type=Path,
        default=None,
        help="Path to the rotation state file (default: config dir)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    status = subparsers.add_parser("status", help="Show rotation status for all agents")
    status.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to the agents config file (default: config dir)",
    )

    reset = subparsers.add_parser("reset", help="Clear cooldowns and usage counters")
    reset.add_argument("models", nargs="*", help="Models to reset (default: all tracked)")

    prune = subparsers.add_parser("prune", help="Remove stale, never-used models")
    prune.add_argument("--days", type=int, default=STATE_MAX_AGE_DAYS, help="Maximum age in days")

    return parser


def _cmd_status(args: argparse.Namespace, store: RotationStateStore) -> int:
    config_path = args.config or default_agents_config_path()
    try:
        pools = load_agent_pools_from_file(config_path)
    except FileNotFoundError:
        console.print(f"[red]Agents config not found:[/red] {config_path}")
        return 1
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid agents config {config_path}:[/red] {e}")
        return 1

    if not pools:
        console.print("[yellow]No agents configured.[/yellow]")
        return 0

    console.print(build_status_table(pools, store))
    return 0


def _cmd_reset(args: argparse.Namespace, store: RotationStateStore) -> int:
    models = args.models or store.list_resources()
    for model in models:
        store.reset_usage(model)
    console.print(f"Reset {len(models)} model(s).")
    return 0


def _cmd_prune(args: argparse.Namespace, store: RotationStateStore) -> int:
    removed = store.prune_stale(timedelta(days=args.days))
    console.print(f"Pruned {removed} stale model(s).")
    return 0


COMMANDS = {
    "status": _cmd_status,
    "reset": _cmd_reset,
    "prune": _cmd_prune,
}


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    store = RotationStateStore(args.state or default_state_path())
    return COMMANDS[args.command](args, store)
