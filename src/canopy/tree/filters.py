"""Filter AST — typed node predicates compiled to SQLAlchemy clauses.

Listing and lookup code composes these instead of assembling SQL text,
so the admin bypass and the per-user restrictions are the same query
with different filter objects.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_ as sa_and
from sqlalchemy import case, false, true
from sqlalchemy import or_ as sa_or

from canopy.models.nodes import NodeKind

if TYPE_CHECKING:
    from sqlalchemy.sql.elements import ColumnElement

    from canopy.models.nodes import NodeBase

# ------------------------------------------------------------------
# Enums
# ------------------------------------------------------------------


class FilterOp(Enum):
    """Comparison operators for node filtering."""

    EQ = "eq"
    NE = "ne"
    IN = "in"
    NOT_IN = "not_in"
    IS_NULL = "is_null"


class LogicalOp(Enum):
    """Logical combinators for grouping filter expressions."""

    AND = "and"
    OR = "or"


FILTERABLE_FIELDS: frozenset[str] = frozenset(
    {
        "id",
        "name",
        "kind",
        "parent_id",
        "owner_id",
        "deleted",
        "mime_type",
        "extension",
    }
)

# ------------------------------------------------------------------
# AST nodes
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Comparison:
    """A single field comparison (e.g. ``owner_id == "u1"``).

    Attributes:
        field: Node column name; must be in ``FILTERABLE_FIELDS``.
        op: Comparison operator.
        value: Value to compare against.  For ``IS_NULL``, this is a bool.
    """

    field: str
    op: FilterOp
    value: Any

    def __post_init__(self) -> None:
        if self.field not in FILTERABLE_FIELDS:
            raise ValueError(f"Unknown node field: {self.field!r}")


@dataclass(frozen=True, slots=True)
class LogicalGroup:
    """A logical combination of filter expressions."""

    op: LogicalOp
    expressions: list[FilterExpression]


FilterExpression = Comparison | LogicalGroup

# ------------------------------------------------------------------
# Builder helpers
# ------------------------------------------------------------------


def eq(field: str, value: Any) -> Comparison:
    """``field == value``."""
    return Comparison(field=field, op=FilterOp.EQ, value=value)


def ne(field: str, value: Any) -> Comparison:
    """``field != value``."""
    return Comparison(field=field, op=FilterOp.NE, value=value)


def in_(field: str, values: list[Any]) -> Comparison:
    """``field IN values``."""
    return Comparison(field=field, op=FilterOp.IN, value=list(values))


def not_in(field: str, values: list[Any]) -> Comparison:
    """``field NOT IN values``."""
    return Comparison(field=field, op=FilterOp.NOT_IN, value=list(values))


def is_null(field: str, *, null: bool = True) -> Comparison:
    """``field IS NULL`` (or ``IS NOT NULL`` if ``null=False``)."""
    return Comparison(field=field, op=FilterOp.IS_NULL, value=null)


def and_(*exprs: FilterExpression) -> LogicalGroup:
    """Combine expressions with AND."""
    return LogicalGroup(op=LogicalOp.AND, expressions=list(exprs))


def or_(*exprs: FilterExpression) -> LogicalGroup:
    """Combine expressions with OR."""
    return LogicalGroup(op=LogicalOp.OR, expressions=list(exprs))


# Shorthands used throughout the tree layer


def live() -> Comparison:
    return eq("deleted", False)


def at_root() -> Comparison:
    return is_null("parent_id")


def children_of(parent_id: str) -> Comparison:
    return eq("parent_id", parent_id)


def owned_by(owner_id: str) -> Comparison:
    return eq("owner_id", owner_id)


# ------------------------------------------------------------------
# Compiler
# ------------------------------------------------------------------


def compile_sql(expr: FilterExpression, model: type[NodeBase]) -> ColumnElement[bool]:
    """Compile a ``FilterExpression`` to a SQLAlchemy boolean clause on *model*.

    Values are always bound parameters.  An empty ``IN`` list compiles
    to ``false()`` so callers can pass through empty id sets.
    """
    if isinstance(expr, Comparison):
        column = getattr(model, expr.field)
        if expr.op == FilterOp.EQ:
            return column == expr.value
        if expr.op == FilterOp.NE:
            return column != expr.value
        if expr.op == FilterOp.IN:
            if not expr.value:
                return false()
            return column.in_(expr.value)
        if expr.op == FilterOp.NOT_IN:
            if not expr.value:
                return true()
            return column.not_in(expr.value)
        # IS_NULL
        return column.is_(None) if expr.value else column.is_not(None)

    parts = [compile_sql(child, model) for child in expr.expressions]
    if expr.op == LogicalOp.AND:
        return sa_and(*parts)
    return sa_or(*parts)


def listing_order(model: type[NodeBase]) -> list[Any]:
    """ORDER BY terms: folders before files, then oldest first, then name."""
    folders_first = case((model.kind == NodeKind.FOLDER.value, 0), else_=1)  # type: ignore[arg-type]
    return [folders_first, model.created_at, model.name]
