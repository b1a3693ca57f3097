"""Helpers shared by the definition dataclasses."""

from typing import Any


def omit_empty(data: dict[str, Any]) -> dict[str, Any]:
    """Drop keys whose value is None, empty, or False so written YAML stays minimal."""
    return {k: v for k, v in data.items() if v not in (None, "", [], {}, False)}


def str_list(value: Any) -> list[str]:
    if not value:
        return []
    return [str(v) for v in value]
