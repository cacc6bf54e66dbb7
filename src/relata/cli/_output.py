"""Rendering of query results and compiled SQL for the CLI."""

from __future__ import annotations

import json
import sys
from typing import Any

from relata.query import CompiledQuery


def related_pks(entity: Any, chain: str) -> list[Any]:
    """Primary keys reached by following ``chain`` from ``entity``."""
    values = [entity]
    for seg in chain.split("."):
        reached = []
        for value in values:
            related = getattr(value, seg)
            if related is None:
                continue
            if hasattr(related, "pks"):
                reached.extend(related)
            else:
                reached.append(related)
        values = reached
    return [v.pk() for v in values]


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return ",".join(str(v) for v in value)
    if isinstance(value, dict):
        return ",".join(f"{k}={v}" for k, v in value.items() if v is not None)
    return str(value)


def print_entities(
    entities: list[Any], chains: list[str] | None = None, *, json_mode: bool = False
) -> None:
    """Print loaded entities, one row each, with the pks of joined chains.

    JSON mode emits each entity's ``to_dict()`` with every chain added as a
    list of primary keys. Text mode prints an aligned table; chain cells are
    comma-joined and empty values are blank.
    """
    chains = chains or []
    records = []
    for entity in entities:
        data = entity.to_dict()
        for chain in chains:
            data[chain] = related_pks(entity, chain)
        records.append(data)

    if json_mode:
        print(json.dumps(records, indent=2, default=str))
        return
    if not records:
        return

    headers = list(records[0])
    cells = [[_cell(record[h]) for h in headers] for record in records]
    widths = [max(len(h), *(len(row[i]) for row in cells)) for i, h in enumerate(headers)]

    print("  ".join(h.ljust(widths[i]) for i, h in enumerate(headers)))
    print("  ".join("-" * w for w in widths))
    for row in cells:
        print("  ".join(val.ljust(widths[i]) for i, val in enumerate(row)).rstrip())


def print_compiled(compiled: CompiledQuery, *, json_mode: bool = False) -> None:
    """Print the SQL of a compiled query, or SQL plus result keys as JSON."""
    if json_mode:
        data = {"sql": compiled.sql, "select": [item.alias for item in compiled.select_list]}
        print(json.dumps(data, indent=2))
    else:
        print(compiled.sql)


def print_error(msg: str) -> None:
    """Print an error message to stderr."""
    print(f"Error: {msg}", file=sys.stderr)
