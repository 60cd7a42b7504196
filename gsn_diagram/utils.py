"""Small helpers shared by the scene builder, controller and query layer."""

import re
from typing import Any, Hashable, Iterable
from urllib.parse import urlparse


def cell_value(cell: Any) -> str | None:
    """
    Normalize a query result cell to a trimmed string.

    Cells arrive either as raw strings or as ``{"value": ...}`` wrappers
    (SPARQL JSON bindings). Empty cells become None.
    """
    if cell is None:
        return None
    if isinstance(cell, dict):
        cell = cell.get("value")
        if cell is None:
            return None
    text = str(cell).strip()
    return text or None


def row_cell(row: Any, key: str) -> str | None:
    """Read and normalize one column of a result row; non-mappings yield None."""
    if not isinstance(row, dict):
        return None
    return cell_value(row.get(key))


def add_to_set_map(mapping: dict[Hashable, dict], key: Hashable, value: Hashable) -> None:
    """Insert into an insertion-ordered set (a dict of None) stored under key."""
    mapping.setdefault(key, {})[value] = None


def shorten_iri(iri_or_label: str) -> str:
    """
    Shorten an IRI to its fragment, or its last path segment.

    Non-IRIs fall back to stripping everything up to the last '#' or '/'.
    """
    text = str(iri_or_label)
    parsed = urlparse(text)
    if parsed.scheme and parsed.netloc:
        if parsed.fragment:
            return parsed.fragment
        parts = [p for p in parsed.path.split("/") if p]
        return parts[-1] if parts else text
    return re.sub(r"^.*[#/]", "", text)


def split_tokens(raw: str | None, pattern: str = r"[;,]") -> list[str]:
    """Split a delimited string into trimmed, non-empty tokens."""
    return [t.strip() for t in re.split(pattern, raw or "") if t.strip()]


def unique(values: Iterable[Any]) -> list[Any]:
    """Drop duplicates, keeping first-seen order."""
    return list(dict.fromkeys(values))
