"""
List search helpers.

Search is a case-insensitive substring match across a page's text fields.
An empty term matches everything. Dropdown filters (status, role, ...) are exact
matches where "all" (or empty) means no filter.
"""

from __future__ import annotations

from typing import Any, Iterable, Sequence

ALL = "all"


def normalize_term(term: Any) -> str:
    return str(term or "").strip().casefold()


def matches_search(term: Any, *values: Any) -> bool:
    """True if term is empty or is a substring of any non-empty value."""
    needle = normalize_term(term)
    if not needle:
        return True
    for value in values:
        if value is None:
            continue
        if needle in str(value).casefold():
            return True
    return False


def resolve_attr(record: Any, path: str) -> Any:
    """Follow a dotted attribute path (e.g. 'client.company'); None on any missing link."""
    value = record
    for part in path.split("."):
        if value is None:
            return None
        value = getattr(value, part, None)
    return value


def filter_records(records: Iterable[Any], term: Any, fields: Sequence[str]) -> list:
    """Return records where any of the named fields contains the term."""
    records = list(records)
    if not normalize_term(term):
        return records
    return [r for r in records if matches_search(term, *(resolve_attr(r, f) for f in fields))]


def filter_exact(records: Iterable[Any], field: str, value: Any) -> list:
    """Exact-match dropdown filter; empty or 'all' returns everything."""
    records = list(records)
    value = str(value or "").strip()
    if not value or value == ALL:
        return records
    return [r for r in records if resolve_attr(r, field) == value]
