"""Change detection between a stored record and an incoming one.

The comparison is a subset check: only keys the incoming record declares are
looked at, so a row that omits a column can never be reported as different.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING

from sheetport.config.reconcile import IDENTIFIER_KEY, SYSTEM_KEYS
from sheetport.domain.types import Reference

if TYPE_CHECKING:
    from collections.abc import Collection

DIFF_IGNORED_KEYS = SYSTEM_KEYS | {IDENTIFIER_KEY}


def has_changes(
    existing: object,
    incoming: object,
    *,
    ignored_keys: Collection[str] = DIFF_IGNORED_KEYS,
) -> bool:
    """Return whether writing ``incoming`` over ``existing`` would change anything."""

    if not isinstance(incoming, Mapping):
        return False
    if not isinstance(existing, Mapping):
        return True
    for key, new_value in incoming.items():
        if key in ignored_keys or key not in existing:
            continue
        if _values_differ(existing[key], new_value, ignored_keys):
            return True
    return False


def _values_differ(old: object, new: object, ignored_keys: Collection[str]) -> bool:
    if isinstance(new, Reference) or isinstance(old, Reference):
        return _reference_id(old) != _reference_id(new)
    if isinstance(new, list):
        if not isinstance(old, list) or len(old) != len(new):
            return True
        return any(
            _elements_differ(old_item, new_item, ignored_keys)
            for old_item, new_item in zip(old, new, strict=True)
        )
    if isinstance(new, Mapping):
        if not isinstance(old, Mapping):
            return True
        return has_changes(old, new, ignored_keys=ignored_keys)
    return _strict_differs(old, new)


def _elements_differ(old: object, new: object, ignored_keys: Collection[str]) -> bool:
    old_nested = _is_nested(old)
    new_nested = _is_nested(new)
    if old_nested and new_nested:
        return _values_differ(old, new, ignored_keys)
    if old_nested or new_nested:
        # mismatched element kinds count as a change
        return True
    return _strict_differs(old, new)


def _is_nested(value: object) -> bool:
    return isinstance(value, (Mapping, list, Reference))


def _reference_id(value: object) -> object:
    if isinstance(value, Reference):
        return value.id
    if isinstance(value, Mapping):
        return value.get(IDENTIFIER_KEY)
    return value


def _strict_differs(old: object, new: object) -> bool:
    if isinstance(old, bool) != isinstance(new, bool):
        return True
    return old != new
