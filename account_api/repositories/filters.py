"""
Translate JSON query filters into SQLAlchemy clauses.

Accepted shape::

    {"where": {...}, "limit": 10, "skip": 0, "order": "name ASC"}

``where`` maps a column to a value (equality) or to a single-operator object
(``{"gt": 3}``); ``and``/``or`` take lists of nested ``where`` objects.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping

from sqlalchemy import and_, or_, true
from sqlalchemy.sql.elements import ColumnElement


class FilterError(ValueError):
    """Raised when a filter references unknown fields or operators."""


_SCALARS = (str, int, float, bool)

_COMPARATORS = {
    "neq": lambda col, v: col.is_not(None) if v is None else col != v,
    "gt": lambda col, v: col > v,
    "gte": lambda col, v: col >= v,
    "lt": lambda col, v: col < v,
    "lte": lambda col, v: col <= v,
    "like": lambda col, v: col.like(v),
    "nlike": lambda col, v: col.not_like(v),
}


@dataclass
class QueryFilter:
    where: dict = field(default_factory=dict)
    limit: int | None = None
    skip: int = 0
    order: list[str] = field(default_factory=list)


def parse_json_param(raw: str | None, name: str) -> dict:
    """Decode a JSON query-string parameter into a dict (empty when absent)."""
    if raw is None or not raw.strip():
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise FilterError(f"'{name}' is not valid JSON") from exc
    if not isinstance(value, dict):
        raise FilterError(f"'{name}' must be a JSON object")
    return value


def _non_negative(value: Any, name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise FilterError(f"'{name}' must be an integer") from exc
    if number < 0:
        raise FilterError(f"'{name}' must not be negative")
    return number


def parse_filter(data: Mapping[str, Any] | None, *, allow_where: bool = True) -> QueryFilter:
    """Validate a decoded ``filter``; single-entity lookups pass ``allow_where=False``."""
    data = dict(data or {})
    allowed = {"where", "limit", "skip", "offset", "order"} if allow_where else {"limit", "skip", "offset", "order"}
    unknown = set(data) - allowed
    if unknown:
        raise FilterError(f"Unsupported filter keys: {', '.join(sorted(unknown))}")
    where = data.get("where") or {}
    if not isinstance(where, dict):
        raise FilterError("'where' must be an object")
    limit = data.get("limit")
    skip = data.get("skip", data.get("offset", 0))
    order = data.get("order") or []
    if isinstance(order, str):
        order = [order]
    if not isinstance(order, list) or not all(isinstance(o, str) for o in order):
        raise FilterError("'order' must be a string or a list of strings")
    return QueryFilter(
        where=where,
        limit=None if limit is None else _non_negative(limit, "limit"),
        skip=_non_negative(skip or 0, "skip"),
        order=order,
    )


def _column(model, name: str):
    columns = model.__table__.columns
    if name not in columns:
        raise FilterError(f"Unknown field '{name}'")
    return getattr(model, name)


def _scalar(name: str, op: str, value: Any) -> Any:
    if value is not None and not isinstance(value, _SCALARS):
        raise FilterError(f"'{op}' on '{name}' expects a scalar value")
    return value


def _scalar_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, _SCALARS) for v in value)


def _condition(model, name: str, cond: Any) -> ColumnElement:
    col = _column(model, name)
    if not isinstance(cond, dict):
        cond = _scalar(name, "eq", cond)
        return col.is_(None) if cond is None else col == cond
    if len(cond) != 1:
        raise FilterError(f"Condition on '{name}' must use exactly one operator")
    op, value = next(iter(cond.items()))
    if op in _COMPARATORS:
        return _COMPARATORS[op](col, _scalar(name, op, value))
    if op in {"inq", "nin"}:
        if not _scalar_list(value):
            raise FilterError(f"'{op}' on '{name}' expects a list of scalar values")
        return col.in_(value) if op == "inq" else col.not_in(value)
    if op == "between":
        if not _scalar_list(value) or len(value) != 2:
            raise FilterError(f"'between' on '{name}' expects two values")
        return col.between(value[0], value[1])
    if op == "eq":
        value = _scalar(name, op, value)
        return col.is_(None) if value is None else col == value
    raise FilterError(f"Unknown operator '{op}'")


def build_where(model, where: Mapping[str, Any] | None) -> ColumnElement:
    """Return a boolean clause for ``where`` (``true()`` when empty)."""
    clauses = []
    for key, cond in (where or {}).items():
        if key in {"and", "or"}:
            if not isinstance(cond, list) or not all(isinstance(w, dict) for w in cond):
                raise FilterError(f"'{key}' expects a list of objects")
            nested = [build_where(model, w) for w in cond]
            clauses.append(and_(*nested) if key == "and" else or_(*nested))
        else:
            clauses.append(_condition(model, key, cond))
    if not clauses:
        return true()
    return and_(*clauses)


def build_order(model, order: list[str]) -> list:
    """Translate ``["name ASC", "mobile DESC"]`` to ORDER BY clauses."""
    clauses = []
    for item in order:
        parts = item.split()
        if not parts or len(parts) > 2:
            raise FilterError(f"Invalid order '{item}'")
        col = _column(model, parts[0])
        direction = parts[1].upper() if len(parts) == 2 else "ASC"
        if direction not in {"ASC", "DESC"}:
            raise FilterError(f"Invalid order direction '{parts[1]}'")
        clauses.append(col.asc() if direction == "ASC" else col.desc())
    return clauses
