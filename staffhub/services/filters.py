"""
Typed filter primitives for list/find queries.

A closed set of criteria (equality, range, membership, null check and
disjunction) that compile to SQLAlchemy expressions. Route handlers build
lists of these from query parameters instead of assembling ad hoc criteria.
"""
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple

from sqlalchemy import and_, false, or_, true
from sqlalchemy.orm import Session


@dataclass(frozen=True)
class Eq:
    column: Any
    value: Any

    def compile(self):
        if self.value is None:
            return self.column.is_(None)
        return self.column == self.value


@dataclass(frozen=True)
class Range:
    """Inclusive range; either bound may be None."""
    column: Any
    gte: Any = None
    lte: Any = None

    def compile(self):
        clauses = []
        if self.gte is not None:
            clauses.append(self.column >= self.gte)
        if self.lte is not None:
            clauses.append(self.column <= self.lte)
        return clauses


@dataclass(frozen=True)
class In:
    column: Any
    values: Tuple

    def compile(self):
        if not self.values:
            return false()
        return self.column.in_(list(self.values))


@dataclass(frozen=True)
class IsNull:
    column: Any
    is_null: bool = True

    def compile(self):
        return self.column.is_(None) if self.is_null else self.column.is_not(None)


@dataclass(frozen=True)
class AnyOf:
    """Disjunction of other filters."""
    filters: Tuple

    def compile(self):
        return or_(*[_as_clause(f) for f in self.filters])


def _as_clause(flt):
    compiled = flt.compile()
    if isinstance(compiled, list):
        return and_(*compiled) if compiled else true()
    return compiled


def apply_filters(query, filters: Sequence):
    for flt in filters:
        if flt is None:
            continue
        compiled = flt.compile()
        if isinstance(compiled, list):
            if compiled:
                query = query.filter(*compiled)
        else:
            query = query.filter(compiled)
    return query


def find(
    db: Session,
    model,
    filters: Sequence = (),
    order_by: Sequence = (),
    limit: Optional[int] = None,
):
    query = apply_filters(db.query(model), filters)
    if order_by:
        query = query.order_by(*order_by)
    if limit:
        query = query.limit(limit)
    return query.all()
