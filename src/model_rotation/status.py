# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Rotation status reporting.

Renders the configured agent pools together with the tracked state of each
model as a rich table.
"""

from typing import Mapping

from rich.markup import escape as rich_escape
from rich.table import Table

from .config import AgentPool
from .state_store import RotationStateStore
from .types import ResourceState
from .utils.timestamps import format_timestamp


def describe_state(state: ResourceState, in_cooldown: bool) -> str:
    """One-line summary of a tracked model, e.g. ``12 calls, 3400 tokens``."""
    parts = [f"{state.usage.call_count} calls"]
    if state.usage.token_count is not None:
        parts.append(f"{state.usage.token_count} tokens")
    if in_cooldown and state.usage.cooldown_until is not None:
        parts.append(f"cooling down until {format_timestamp(state.usage.cooldown_until)}")
    elif state.depleted:
        parts.append("depleted")
    return ", ".join(parts)


def _model_line(model: str, store: RotationStateStore) -> str:
    state = store.get(model)
    name = rich_escape(model)
    if state is None:
        return f"{name} [dim](not tracked yet)[/dim]"

    in_cooldown = store.is_in_cooldown(model)
    summary = rich_escape(describe_state(state, in_cooldown))
    if state.depleted or in_cooldown:
        return f"[red]{name}[/red] ({summary})"
    return f"[green]{name}[/green] ({summary})"


def build_status_table(pools: Mapping[str, AgentPool], store: RotationStateStore) -> Table:
    """Table with one row per agent: models, config and per-model state."""
    table = Table(title="Model Rotation Status", show_lines=True)
    table.add_column("Agent", style="bold cyan", no_wrap=True)
    table.add_column("Config")
    table.add_column("Models")

    for name, pool in pools.items():
        if pool.config.enabled:
            config_text = rich_escape(pool.config.describe())
        else:
            config_text = "[dim]rotation disabled[/dim]"
        models_text = "\n".join(_model_line(model, store) for model in pool.models)
        table.add_row(rich_escape(name), config_text, models_text)

    return table
