"""Filter expressions: parsing from query parameters and evaluation against records.

Expressions use the nested operator syntax of the host CMS::

    {"$and": [{"name": {"$containsi": "acme"}}, {"company": {"name": {"$eq": "X"}}}]}

Keys starting with ``$`` are operators; any other key names a field, and a
field whose condition names sub-fields is matched against the related record
(any element of a to-many relation).
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from logging import getLogger
from typing import TYPE_CHECKING, Final

from sheetport.config.reconcile import IDENTIFIER_KEY
from sheetport.domain.errors import ValidationError
from sheetport.domain.schema import number_fields, searchable_fields
from sheetport.domain.types import Reference

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from sheetport.domain.schema import RecordType

log = getLogger(__name__)

type FilterExpression = dict[str, object]

QUERY_FILTER_PATTERN: Final = re.compile(
    r"filters\[([^\]]+)\](?:\[(\d+)\])?\[([^\]]+)\](?:\[([^\]]+)\])?"
)
IGNORED_QUERY_KEYS: Final[frozenset[str]] = frozenset(
    {"page", "pageSize", "sort", "locale", "format", "contentType", "_q"}
)
LOGICAL_LIST_OPERATORS: Final[frozenset[str]] = frozenset({"$and", "$or"})

_TRUE_STRINGS: Final = frozenset({"true", "1", "yes"})
_FALSE_STRINGS: Final = frozenset({"false", "0", "no"})


# Query parameters -> expression ------------------------------------------------


def parse_query_filters(params: Mapping[str, object]) -> FilterExpression:
    """Build a filter expression from flattened ``filters[...]`` query parameters.

    Supported shapes::

        filters[$and][0][name][$contains]=x   -> {"$and": [{"name": {"$contains": "x"}}]}
        filters[$or][1][email]=x              -> {"$or": [{}, {"email": "x"}]}
        filters[name][$eq]=x                  -> {"name": {"$eq": "x"}}
        filters[company][name][$eq]=x         -> {"company": {"name": {"$eq": "x"}}}

    Pagination, sorting and search keys are ignored, as are parameters outside
    the ``filters`` namespace.
    """

    parsed: FilterExpression = {}
    for key, value in params.items():
        if key in IGNORED_QUERY_KEYS or not key.startswith("filters["):
            continue
        match = QUERY_FILTER_PATTERN.match(key)
        if match is None:
            log.debug("Ignoring unparseable filter parameter %s", key)
            continue
        operator, index, field_name, condition = match.groups()

        if operator in LOGICAL_LIST_OPERATORS:
            clauses = parsed.setdefault(operator, [])
            assert isinstance(clauses, list)
            position = int(index) if index else 0
            while len(clauses) <= position:
                clauses.append({})
            target = clauses[position]
            _assign(target, field_name, condition, value)
        elif index is None and condition is None:
            _assign(parsed, operator, field_name, value)
        elif index is None:
            bucket = parsed.get(operator)
            if not isinstance(bucket, dict):
                bucket = {}
                parsed[operator] = bucket
            _assign(bucket, field_name, condition, value)
        else:
            log.debug("Ignoring indexed filter parameter %s on non-list operator", key)
    return parsed


def _assign(
    target: FilterExpression,
    field_name: str,
    condition: str | None,
    value: object,
) -> None:
    if condition is None:
        target[field_name] = value
        return
    bucket = target.get(field_name)
    if not isinstance(bucket, dict):
        bucket = {}
        target[field_name] = bucket
    bucket[condition] = value


def build_search_filter(record_type: RecordType, query: str | None) -> FilterExpression | None:
    """Free-text search as an ``$or`` over text fields (and number fields for numeric input)."""

    if query is None or not query.strip():
        return None
    conditions: list[object] = [
        {name: {"$containsi": query}} for name in searchable_fields(record_type)
    ]
    number = _parse_number(query)
    if number is not None:
        conditions.extend({name: {"$eq": number}} for name in number_fields(record_type))
    if not conditions:
        return None
    return {"$or": conditions}


def combine_filters(
    filters: Mapping[str, object] | None,
    *clauses: Mapping[str, object] | None,
) -> FilterExpression:
    """Append ``clauses`` to the ``$and`` list of ``filters``."""

    combined: FilterExpression = dict(filters or {})
    extra = [dict(clause) for clause in clauses if clause]
    if not extra:
        return combined
    existing = combined.get("$and")
    conjunction = list(existing) if isinstance(existing, list) else []
    combined["$and"] = [*conjunction, *extra]
    return combined


def selection_filter(
    record_type: RecordType,
    selected_ids: Sequence[object],
    field_name: str = IDENTIFIER_KEY,
) -> FilterExpression:
    """``{field: {"$in": ids}}`` with ids coerced to numbers for id/numeric fields."""

    spec = record_type.spec_for(field_name)
    numeric = field_name == IDENTIFIER_KEY or (spec is not None and spec.is_number)
    values: list[object] = list(selected_ids)
    if numeric:
        values = [_coerce_number(value) for value in values]
    return {field_name: {"$in": values}}


def _coerce_number(value: object) -> object:
    if isinstance(value, str):
        number = _parse_number(value)
        if number is None:
            raise ValidationError(f"Selected id {value!r} is not a number")
        return number
    return value


def _parse_number(text: str) -> int | float | None:
    candidate = text.strip()
    if not candidate:
        return None
    try:
        number = float(candidate)
    except ValueError:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return int(number) if number.is_integer() else number


# Expression evaluation ---------------------------------------------------------


def matches(record: Mapping[str, object], expression: Mapping[str, object] | None) -> bool:
    """Return whether ``record`` satisfies ``expression`` (empty matches everything)."""

    if not expression:
        return True
    for key, condition in expression.items():
        if key == "$and":
            if not all(matches(record, clause) for clause in _clauses(key, condition)):
                return False
        elif key == "$or":
            clauses = [clause for clause in _clauses(key, condition) if clause]
            if clauses and not any(matches(record, clause) for clause in clauses):
                return False
        elif key == "$not":
            if not isinstance(condition, Mapping):
                raise ValidationError("$not expects an object")
            if matches(record, condition):
                return False
        elif key.startswith("$"):
            raise ValidationError(f"Unknown filter operator {key}")
        elif not _field_matches(record.get(key), condition):
            return False
    return True


def _clauses(operator: str, condition: object) -> list[Mapping[str, object]]:
    if isinstance(condition, Mapping):
        return [condition]
    if not isinstance(condition, list):
        raise ValidationError(f"{operator} expects a list of conditions")
    clauses: list[Mapping[str, object]] = []
    for clause in condition:
        if not isinstance(clause, Mapping):
            raise ValidationError(f"{operator} expects a list of conditions")
        clauses.append(clause)
    return clauses


def _field_matches(value: object, condition: object) -> bool:
    if not isinstance(condition, Mapping):
        return _apply("$eq", value, condition)
    for key, operand in condition.items():
        if key == "$or":
            if not any(_field_matches(value, clause) for clause in _clauses(key, operand)):
                return False
        elif key == "$and":
            if not all(_field_matches(value, clause) for clause in _clauses(key, operand)):
                return False
        elif key == "$not":
            if _field_matches(value, operand):
                return False
        elif key.startswith("$"):
            if not _apply(key, value, operand):
                return False
        elif not _related_matches(value, key, operand):
            return False
    return True


def _related_matches(value: object, key: str, condition: object) -> bool:
    if isinstance(value, list):
        return any(_related_matches(item, key, condition) for item in value)
    if isinstance(value, Reference):
        return key == IDENTIFIER_KEY and _field_matches(value.id, condition)
    if isinstance(value, Mapping):
        return _field_matches(value.get(key), condition)
    return False


def _apply(operator: str, value: object, operand: object) -> bool:
    if operator == "$null":
        return (value is None) is _as_bool(operand)
    if operator == "$notNull":
        return (value is not None) is _as_bool(operand)

    compare = _COMPARATORS.get(operator)
    if compare is None:
        raise ValidationError(f"Unknown filter operator {operator}")
    if isinstance(value, list):
        results = (_safe_compare(compare, _scalar(item), operand) for item in value)
        return all(results) if operator in _NEGATED_OPERATORS else any(results)
    return _safe_compare(compare, _scalar(value), operand)


def _safe_compare(
    compare: Callable[[object, object], bool],
    value: object,
    operand: object,
) -> bool:
    try:
        return compare(value, operand)
    except (TypeError, ValueError):
        return False


def _scalar(value: object) -> object:
    if isinstance(value, Reference):
        return value.id
    if isinstance(value, Mapping):
        return value.get(IDENTIFIER_KEY)
    return value


def _as_bool(operand: object) -> bool:
    if isinstance(operand, str):
        lowered = operand.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
        raise ValidationError(f"Expected a boolean, got {operand!r}")
    return bool(operand)


def _coerce_like(value: object, operand: object) -> object:
    """Interpret a query-string operand in the type of the stored value."""

    if not isinstance(operand, str):
        return operand
    if isinstance(value, bool):
        lowered = operand.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
        return operand
    if isinstance(value, (int, float)):
        number = _parse_number(operand)
        return operand if number is None else number
    return operand


def _equals(value: object, operand: object) -> bool:
    return value == _coerce_like(value, operand)


def _equals_ignoring_case(value: object, operand: object) -> bool:
    if value is None or operand is None:
        return value is operand
    return str(value).casefold() == str(operand).casefold()


def _in(value: object, operand: object) -> bool:
    return any(_equals(value, candidate) for candidate in _as_list(operand))


def _as_list(operand: object) -> Iterable[object]:
    if isinstance(operand, (list, tuple, set, frozenset)):
        return operand
    return [operand]


def _ordered(compare: Callable[[object, object], bool]) -> Callable[[object, object], bool]:
    def _compare(value: object, operand: object) -> bool:
        if value is None:
            return False
        return compare(value, _coerce_like(value, operand))

    return _compare


def _text(
    compare: Callable[[str, str], bool],
    *,
    fold: bool = False,
) -> Callable[[object, object], bool]:
    def _compare(value: object, operand: object) -> bool:
        if value is None or operand is None:
            return False
        haystack, needle = str(value), str(operand)
        if fold:
            haystack, needle = haystack.casefold(), needle.casefold()
        return compare(haystack, needle)

    return _compare


def _negate(compare: Callable[[object, object], bool]) -> Callable[[object, object], bool]:
    return lambda value, operand: not compare(value, operand)


_COMPARATORS: Final[dict[str, Callable[[object, object], bool]]] = {
    "$eq": _equals,
    "$eqi": _equals_ignoring_case,
    "$ne": _negate(_equals),
    "$nei": _negate(_equals_ignoring_case),
    "$in": _in,
    "$notIn": _negate(_in),
    "$lt": _ordered(lambda value, operand: value < operand),  # type: ignore[operator]
    "$lte": _ordered(lambda value, operand: value <= operand),  # type: ignore[operator]
    "$gt": _ordered(lambda value, operand: value > operand),  # type: ignore[operator]
    "$gte": _ordered(lambda value, operand: value >= operand),  # type: ignore[operator]
    "$contains": _text(lambda haystack, needle: needle in haystack),
    "$notContains": _negate(_text(lambda haystack, needle: needle in haystack)),
    "$containsi": _text(lambda haystack, needle: needle in haystack, fold=True),
    "$notContainsi": _negate(_text(lambda haystack, needle: needle in haystack, fold=True)),
    "$startsWith": _text(str.startswith),
    "$startsWithi": _text(str.startswith, fold=True),
    "$endsWith": _text(str.endswith),
    "$endsWithi": _text(str.endswith, fold=True),
}

_NEGATED_OPERATORS: Final[frozenset[str]] = frozenset(
    {"$ne", "$nei", "$notIn", "$notContains", "$notContainsi"}
)
