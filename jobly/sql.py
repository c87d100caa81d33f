"""Parameterised SQL fragments built from partial, client-supplied field sets.

Only fields named in a ``FieldMap`` ever reach a filter clause; update
clauses fall back to the field name itself when no column is mapped.
Placeholders are PostgreSQL native (``$1``, ``$2``, ...) and numbered in
the iteration order of the input mapping.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from jobly.errors import EmptyInputError, FieldNotAllowedError, UnmappedFieldError


class Operator(str, Enum):
    EQUALS = "="
    ILIKE = "ILIKE"
    GTE = ">="
    LTE = "<="


@dataclass(frozen=True)
class FieldSpec:
    name: str
    column: str
    operator: Operator = Operator.EQUALS

    def __post_init__(self) -> None:
        object.__setattr__(self, "operator", Operator(self.operator))


class FieldMap:
    """Immutable whitelist of logical field names -> physical column and operator."""

    def __init__(self, specs: Iterable[FieldSpec] = ()) -> None:
        table: dict[str, FieldSpec] = {}
        for spec in specs:
            if spec.name in table:
                raise ValueError(f"duplicate field in map: {spec.name}")
            table[spec.name] = spec
        self._specs = tuple(table.values())
        self._by_name = table

    @classmethod
    def columns(cls, mapping: Mapping[str, str]) -> "FieldMap":
        return cls(FieldSpec(name=name, column=column) for name, column in mapping.items())

    def lookup(self, name: str) -> FieldSpec | None:
        return self._by_name.get(name)

    @property
    def names(self) -> frozenset[str]:
        return frozenset(self._by_name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __len__(self) -> int:
        return len(self._specs)

    def __repr__(self) -> str:
        return f"FieldMap({list(self._specs)!r})"


@dataclass(frozen=True)
class Clause:
    text: str
    values: list[Any] = field(default_factory=list)


def _as_field_map(field_map: FieldMap | Mapping[str, str] | None) -> FieldMap:
    if field_map is None:
        return FieldMap()
    if isinstance(field_map, FieldMap):
        return field_map
    return FieldMap.columns(field_map)


def ensure_allowed_fields(data: Mapping[str, Any], allowed: Iterable[str]) -> dict[str, Any]:
    """Reject any field outside ``allowed``; returns a copy preserving input order."""
    allowed_set = frozenset(allowed)
    invalid = [name for name in data if name not in allowed_set]
    if invalid:
        raise FieldNotAllowedError(f"fields not allowed: {sorted(invalid)}. Allowed: {sorted(allowed_set)}")
    return dict(data)


def build_assignment_clause(
    data: Mapping[str, Any],
    field_map: FieldMap | Mapping[str, str] | None = None,
) -> Clause:
    """Build a SET clause body.

    ``{"firstName": "Aliya", "age": 32}`` with ``{"firstName": "first_name"}``
    gives ``'"first_name"=$1, "age"=$2'`` and ``["Aliya", 32]``.
    """
    if not data:
        raise EmptyInputError("no data to update")
    columns = _as_field_map(field_map)
    fragments: list[str] = []
    values: list[Any] = []
    for position, (name, value) in enumerate(data.items(), start=1):
        spec = columns.lookup(name)
        column = spec.column if spec is not None else name
        fragments.append(f'"{column}"=${position}')
        values.append(value)
    return Clause(text=", ".join(fragments), values=values)


def build_filter_clause(data: Mapping[str, Any], field_map: FieldMap) -> Clause:
    """Build a WHERE clause body joined with AND; every field must be mapped."""
    if not data:
        raise EmptyInputError("no data to filter on")
    fragments: list[str] = []
    values: list[Any] = []
    for position, (name, value) in enumerate(data.items(), start=1):
        spec = field_map.lookup(name)
        if spec is None:
            raise UnmappedFieldError(f"no column mapping for filter field: {name}")
        if spec.operator is Operator.ILIKE:
            values.append(f"%{value}%")
        else:
            values.append(value)
        fragments.append(f"{spec.column} {spec.operator.value} ${position}")
    return Clause(text=" AND ".join(fragments), values=values)
