"""
Name-keyed structural diff utilities.

The same diff is used for table sets and column sets. Column comparison is
name-based by default: two columns with the same name are unchanged even if
their type, nullability, default or primary-key flag differ. Stricter
comparison is opt-in through a ColumnMatcher predicate.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TypeVar

from .models import TableColumn

V = TypeVar("V")

ColumnMatcher = Callable[[TableColumn, TableColumn], bool]


def diff(
    desired: Mapping[str, V], current: Mapping[str, V]
) -> tuple[dict[str, V], dict[str, V]]:
    """
    Compute keys to add and keys to remove.

    Args:
        desired: Target mapping
        current: Existing mapping

    Returns:
        (to_add, to_remove): entries of desired missing from current, and
        entries of current missing from desired

    Example:
        >>> diff({"a": 1, "b": 2}, {"b": 2, "c": 3})
        ({'a': 1}, {'c': 3})
    """
    to_add = {key: value for key, value in desired.items() if key not in current}
    to_remove = {key: value for key, value in current.items() if key not in desired}
    return to_add, to_remove


def intersect(a: Mapping[str, object], b: Mapping[str, object]) -> list[str]:
    """
    Return names present in both mappings.

    Iterates the smaller mapping in insertion order. Callers must not rely
    on any ordering beyond that.

    Example:
        >>> intersect({"id": 1, "name": 2}, {"id": 1, "lat": 3})
        ['id']
    """
    if len(a) > len(b):
        a, b = b, a
    return [key for key in a if key in b]


def match_by_name(_desired: TableColumn, _current: TableColumn) -> bool:
    """Default matcher: same-named columns are always considered unchanged."""
    return True


def match_by_definition(desired: TableColumn, current: TableColumn) -> bool:
    """
    Strict matcher comparing every introspected attribute.

    Declared types are compared case-insensitively since SQLite keeps the
    text as written.
    """
    return (
        desired.declared_type.upper() == current.declared_type.upper()
        and desired.not_null == current.not_null
        and desired.default_value == current.default_value
        and desired.is_primary_key == current.is_primary_key
    )


@dataclass
class ColumnChanges:
    """
    Column-level delta of one table.

    Attributes:
        added: Columns in the desired table only
        removed: Columns in the live table only
        changed: Names on both sides that the matcher reported as different
    """

    added: dict[str, TableColumn] = field(default_factory=dict)
    removed: dict[str, TableColumn] = field(default_factory=dict)
    changed: list[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.changed)


def column_changes(
    desired: Mapping[str, TableColumn],
    current: Mapping[str, TableColumn],
    matcher: ColumnMatcher = match_by_name,
) -> ColumnChanges:
    """
    Compare two column maps.

    Args:
        desired: Reference table columns
        current: Live table columns
        matcher: Equality predicate applied to same-named columns

    Returns:
        ColumnChanges describing the delta
    """
    added, removed = diff(desired, current)
    changed = [
        name
        for name, column in desired.items()
        if name in current and not matcher(column, current[name])
    ]
    return ColumnChanges(added=added, removed=removed, changed=changed)
