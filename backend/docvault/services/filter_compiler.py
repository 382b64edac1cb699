"""
DocVault Backend - Filter Compiler
===================================

What:  Translates the document-style filters, sorts and projections that clients
       send (`{"age": {"$gte": 21}}`) into SQLAlchemy expressions.
Why:   Clients query collections with the same predicate vocabulary a document
       database offers, while the store underneath is relational.
How:   Each field name resolves to either a native column (lifecycle metadata,
       `_id`) or a JSON path into a JSON column. Operators compile to
       comparisons on that target.

Supported vocabulary:
    Field conditions:   {"f": value}, {"f": {"$eq" | "$ne" | "$gt" | "$gte" |
                        "$lt" | "$lte" | "$in" | "$nin" | "$exists": ...}}
    Logical operators:  {"$and": [...]}, {"$or": [...]}, {"$nor": [...]}
    Nested fields:      "address.city", "tags.0"
    Sort:               {"f": 1 | -1}

Semantics worth knowing:
    - "$ne" and "$nin" also match documents where the field is missing.
    - {"f": None} and {"f": {"$exists": False}} both match a missing field.
    - Equality against an object or array value is rejected; query the nested
      field instead ("address.city").
    - JSON values are compared by the Python type of the operand: strings as
      text, numbers as floats, booleans as booleans. A stored value of another
      JSON type never matches (and never makes the query fail).

Anything outside this vocabulary raises ValidationError (HTTP 400).
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import Boolean, DateTime, Uuid, and_, case, false, literal, not_, or_, true
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql.expression import ColumnElement

from docvault.exceptions import ValidationError

RANGE_OPERATORS: Dict[str, Callable[[Any, Any], Any]] = {
    "$gt": lambda expr, value: expr > value,
    "$gte": lambda expr, value: expr >= value,
    "$lt": lambda expr, value: expr < value,
    "$lte": lambda expr, value: expr <= value,
}


def _equal_to(expr: Any, value: Any) -> Any:
    return expr == value


ASCENDING = {1, "asc", "ascending"}
DESCENDING = {-1, "desc", "descending"}


# ── JSON type guard ───────────────────────────────────────────────────────
#
# A typed comparison on a JSON field only applies to rows whose stored value
# has the operand's JSON type. PostgreSQL raises on CAST('A1' AS FLOAT), so the
# guard wraps the comparison in CASE, whose branches are evaluated in order.

_POSTGRES_TYPES = {"number": "number", "boolean": "boolean", "string": "string"}
_SQLITE_TYPES = {
    "number": ("integer", "real"),
    "boolean": ("true", "false"),
    "string": ("text",),
}


class JsonTypeIs(ColumnElement):
    """TRUE when the JSON value at `path` inside `column` has JSON type `kind`."""

    type = Boolean()
    inherit_cache = False

    def __init__(self, column: Any, path: Tuple[Any, ...], kind: str):
        self.json_column = column
        self.json_path = path
        self.json_kind = kind


@compiles(JsonTypeIs)
def _json_type_is_default(element: JsonTypeIs, compiler: Any, **kw: Any) -> str:
    return compiler.process(true(), **kw)


@compiles(JsonTypeIs, "postgresql")
def _json_type_is_postgresql(element: JsonTypeIs, compiler: Any, **kw: Any) -> str:
    # to_jsonb() accepts both json and jsonb operands
    value = compiler.process(_json_element(element.json_column, element.json_path), **kw)
    return f"jsonb_typeof(to_jsonb({value})) = '{_POSTGRES_TYPES[element.json_kind]}'"


@compiles(JsonTypeIs, "sqlite")
def _json_type_is_sqlite(element: JsonTypeIs, compiler: Any, **kw: Any) -> str:
    column = compiler.process(element.json_column, **kw)
    path = compiler.process(literal(_sqlite_json_path(element.json_path)), **kw)
    types = ", ".join(f"'{t}'" for t in _SQLITE_TYPES[element.json_kind])
    return f"json_type({column}, {path}) IN ({types})"


def _json_kind(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    return "string"


@dataclass(frozen=True)
class _Target:
    """
    A resolved field: either a native `column`, or a `path` into the JSON
    column `json_column` (then `element` is the path expression).
    """

    name: str
    column: Any = None
    json_column: Any = None
    path: Tuple[Any, ...] = ()

    @property
    def is_native(self) -> bool:
        return self.column is not None

    @property
    def element(self) -> Any:
        return _json_element(self.json_column, self.path)

    def presence(self) -> Any:
        """Expression that is NULL when the field is missing."""
        if self.is_native:
            return self.column
        return self.element.as_string()

    def typed(self, value: Any) -> Any:
        """Expression to compare against `value`."""
        if self.is_native:
            return self.column
        if isinstance(value, bool):
            return self.element.as_boolean()
        if isinstance(value, (int, float)):
            return self.element.as_float()
        if isinstance(value, str):
            return self.element.as_string()
        raise ValidationError(
            f"Unsupported value type for field '{self.name}'",
            field=self.name,
        )

    def compare(self, op: Callable[[Any, Any], Any], value: Any) -> Any:
        """`op(field, value)`; JSON values of another type never match."""
        if self.is_native:
            return op(self.column, self.coerce(value))
        comparison = op(self.typed(value), value)
        guard = JsonTypeIs(self.json_column, self.path, _json_kind(value))
        return case((guard, comparison), else_=false())

    def coerce(self, value: Any) -> Any:
        """Convert JSON-friendly values to the native column's Python type."""
        if not self.is_native or value is None:
            return value
        column_type = self.column.type
        if isinstance(column_type, DateTime) and isinstance(value, str):
            try:
                return datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                raise ValidationError(
                    f"'{value}' is not an ISO 8601 timestamp", field=self.name
                ) from None
        if isinstance(column_type, Uuid) and isinstance(value, str):
            try:
                return uuid.UUID(value)
            except ValueError:
                raise ValidationError(
                    f"'{value}' is not a valid identifier", field=self.name
                ) from None
        return value


class FilterCompiler:
    """
    Compiles filters and sorts for one table.

    Args:
        columns:      field name → native column (exact names, e.g. "_id")
        json_columns: field prefix → JSON column ("body" makes "body.x" a path)
        data_column:  JSON column holding every field not matched above
    """

    def __init__(
        self,
        columns: Mapping[str, Any],
        json_columns: Optional[Mapping[str, Any]] = None,
        data_column: Any = None,
    ):
        self._columns = dict(columns)
        self._json_columns = dict(json_columns or {})
        self._data_column = data_column

    # ── Filters ───────────────────────────────────────────────────────────

    def compile(self, predicate: Optional[Mapping[str, Any]]) -> Any:
        """Return a boolean SQL expression; None or {} compiles to TRUE."""
        if predicate is None:
            return true()
        if not isinstance(predicate, Mapping):
            raise ValidationError("filter must be an object", field="filter")

        clauses = []
        for key, condition in predicate.items():
            if not isinstance(key, str) or not key:
                raise ValidationError("filter keys must be non-empty strings", field="filter")
            if key.startswith("$"):
                clauses.append(self._logical(key, condition))
            else:
                clauses.append(self._field(key, condition))

        if not clauses:
            return true()
        return and_(*clauses)

    def _logical(self, operator: str, operand: Any) -> Any:
        if operator not in ("$and", "$or", "$nor"):
            raise ValidationError(f"Unsupported operator '{operator}'", field="filter")
        if not isinstance(operand, list) or not operand:
            raise ValidationError(
                f"'{operator}' expects a non-empty array of filters", field="filter"
            )
        parts = [self.compile(sub) for sub in operand]
        if operator == "$and":
            return and_(*parts)
        if operator == "$or":
            return or_(*parts)
        return not_(or_(*parts))

    def _field(self, name: str, condition: Any) -> Any:
        target = self._resolve(name)

        if isinstance(condition, Mapping) and condition:
            keys = list(condition.keys())
            operator_keys = [k for k in keys if isinstance(k, str) and k.startswith("$")]
            if len(operator_keys) == len(keys):
                return and_(*(self._operator(target, op, condition[op]) for op in keys))
            if operator_keys:
                raise ValidationError(
                    f"Field '{name}' mixes operators and plain values", field=name
                )

        return self._equals(target, condition)

    def _equals(self, target: _Target, value: Any) -> Any:
        if value is None:
            return target.presence().is_(None)
        if isinstance(value, (Mapping, list, tuple)):
            raise ValidationError(
                f"Equality on object or array values is not supported for '{target.name}'",
                field=target.name,
            )
        return target.compare(_equal_to, value)

    def _any_of(self, target: _Target, values: List[Any]) -> Any:
        non_null = [v for v in values if v is not None]
        if not non_null:
            return false()
        if target.is_native:
            return target.column.in_([target.coerce(v) for v in non_null])
        return or_(*(self._equals(target, v) for v in non_null))

    def _operator(self, target: _Target, operator: str, operand: Any) -> Any:
        if operator == "$eq":
            return self._equals(target, operand)

        if operator == "$ne":
            if operand is None:
                return target.presence().isnot(None)
            return or_(target.presence().is_(None), not_(self._equals(target, operand)))

        if operator == "$exists":
            if operand:
                return target.presence().isnot(None)
            return target.presence().is_(None)

        if operator in ("$in", "$nin"):
            if not isinstance(operand, list):
                raise ValidationError(f"'{operator}' expects an array", field=target.name)
            matches_null = any(v is None for v in operand)
            any_of = self._any_of(target, operand)
            if operator == "$in":
                if matches_null:
                    return or_(target.presence().is_(None), any_of)
                return any_of
            if matches_null:
                return and_(target.presence().isnot(None), not_(any_of))
            return or_(target.presence().is_(None), not_(any_of))

        if operator in RANGE_OPERATORS:
            if operand is None or isinstance(operand, (Mapping, list, tuple)):
                raise ValidationError(
                    f"'{operator}' expects a scalar value", field=target.name
                )
            return target.compare(RANGE_OPERATORS[operator], operand)

        raise ValidationError(f"Unsupported operator '{operator}'", field=target.name)

    # ── Field resolution ──────────────────────────────────────────────────

    def _resolve(self, name: str) -> _Target:
        if not name or name.startswith("$"):
            raise ValidationError(f"Invalid field name '{name}'", field=name)
        if name in self._columns:
            return _Target(name=name, column=self._columns[name])

        head, _, rest = name.partition(".")
        if head in self._json_columns:
            if not rest:
                return _Target(name=name, column=self._json_columns[head])
            return _Target(
                name=name, json_column=self._json_columns[head], path=_json_path(rest, name)
            )

        if self._data_column is not None:
            return _Target(name=name, json_column=self._data_column, path=_json_path(name, name))

        raise ValidationError(f"Unknown field '{name}'", field=name)

    # ── Sorting ───────────────────────────────────────────────────────────

    def order_by(self, sort: Optional[Mapping[str, Any]]) -> List[Any]:
        """ORDER BY clauses for a {field: 1 | -1} mapping, in key order."""
        if not sort:
            return []
        if not isinstance(sort, Mapping):
            raise ValidationError("sort must be an object", field="sort")

        clauses = []
        for name, direction in sort.items():
            target = self._resolve(name)
            expr = target.column if target.is_native else target.element.as_string()
            if isinstance(direction, str):
                direction = direction.lower()
            if direction in ASCENDING:
                clauses.append(expr.asc())
            elif direction in DESCENDING:
                clauses.append(expr.desc())
            else:
                raise ValidationError(
                    f"Sort direction for '{name}' must be 1 or -1", field="sort"
                )
        return clauses


def _json_path(dotted: str, name: str) -> Tuple[Any, ...]:
    segments: List[Any] = []
    for segment in dotted.split("."):
        if not segment:
            raise ValidationError(f"Invalid field name '{name}'", field=name)
        segments.append(int(segment) if segment.isdigit() else segment)
    return tuple(segments)


def _json_element(column: Any, path: Tuple[Any, ...]) -> Any:
    if len(path) == 1:
        return column[path[0]]
    return column[path]


def _sqlite_json_path(path: Tuple[Any, ...]) -> str:
    """("address", "city") → '$."address"."city"'; integers index arrays."""
    parts = ["$"]
    for segment in path:
        if isinstance(segment, int):
            parts.append(f"[{segment}]")
        else:
            escaped = segment.replace('"', '\\"')
            parts.append(f'."{escaped}"')
    return "".join(parts)


class Projection:
    """
    Field selection applied to serialized documents.

    {"a": 1, "b": 1} keeps only a, b (and _id); {"a": 0} drops a.
    `_id` is kept unless explicitly set to 0. Top-level fields only.
    """

    def __init__(self, fields: Optional[Mapping[str, Any]] = None):
        if fields is not None and not isinstance(fields, Mapping):
            raise ValidationError("projection must be an object", field="projection")
        fields = dict(fields or {})
        self.keep_id = bool(fields.pop("_id", True))
        included = {field for field, flag in fields.items() if flag}
        excluded = {field for field, flag in fields.items() if not flag}
        if included and excluded:
            raise ValidationError(
                "projection cannot mix inclusion and exclusion", field="projection"
            )
        self.included = included
        self.excluded = excluded

    def apply(self, document: Dict[str, Any]) -> Dict[str, Any]:
        if self.included:
            projected = {k: v for k, v in document.items() if k in self.included}
            if self.keep_id and "_id" in document:
                projected = {"_id": document["_id"], **projected}
            return projected
        projected = {k: v for k, v in document.items() if k not in self.excluded}
        if not self.keep_id:
            projected.pop("_id", None)
        return projected
