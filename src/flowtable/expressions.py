'''
Column expressions for the table api.

An `Expression` wraps a `polars.Expr` and keeps track of whether it carries a
user visible name, columns referenced directly or aliased keep their names,
any other computed column is named `EXPR$<position>` by the projection that
uses it.

    >>> tab.group_by(tab.word).select(tab.word, lit(1).count)

'''
from __future__ import annotations

from typing import Any, Iterable

import polars as pl

from flowtable.dtypes import DataTypeExt, parse_sql_type


class Expression:
    def __init__(
        self,
        expr: pl.Expr,
        *,
        name: str | None = None,
        literal: bool = False,
        aggregate: bool = False,
    ) -> None:
        self._expr = expr
        self._name = name
        self._literal = literal
        self._aggregate = aggregate

    def __repr__(self) -> str:
        return f'Expression({self._expr})'

    # predicates must be combined with & | ~
    def __bool__(self) -> bool:
        raise TypeError(
            'Expression truth value is ambiguous, use & | ~ to combine predicates'
        )

    @property
    def name(self) -> str | None:
        return self._name

    @property
    def is_aggregate(self) -> bool:
        return self._aggregate

    def to_polars(self) -> pl.Expr:
        return self._expr

    def _derive(self, expr: pl.Expr, *, aggregate: bool | None = None) -> Expression:
        return Expression(
            expr,
            aggregate=self._aggregate if aggregate is None else aggregate
        )

    def alias(self, name: str) -> Expression:
        return Expression(
            self._expr.alias(name),
            name=name,
            literal=self._literal,
            aggregate=self._aggregate,
        )

    def cast(self, dtype: DataTypeExt | str) -> Expression:
        if isinstance(dtype, str):
            dtype = parse_sql_type(dtype)

        return self._derive(self._expr.cast(dtype))

    # aggregations

    @property
    def count(self) -> Expression:
        # counting a literal counts the rows of the group
        if self._literal:
            return self._derive(pl.len().cast(pl.Int64), aggregate=True)

        return self._derive(self._expr.count().cast(pl.Int64), aggregate=True)

    @property
    def count_distinct(self) -> Expression:
        return self._derive(self._expr.drop_nulls().n_unique().cast(pl.Int64), aggregate=True)

    @property
    def sum(self) -> Expression:
        return self._derive(self._expr.sum(), aggregate=True)

    @property
    def avg(self) -> Expression:
        return self._derive(self._expr.mean(), aggregate=True)

    @property
    def min(self) -> Expression:
        return self._derive(self._expr.min(), aggregate=True)

    @property
    def max(self) -> Expression:
        return self._derive(self._expr.max(), aggregate=True)

    # scalar functions

    @property
    def is_null(self) -> Expression:
        return self._derive(self._expr.is_null())

    @property
    def is_not_null(self) -> Expression:
        return self._derive(self._expr.is_not_null())

    @property
    def upper_case(self) -> Expression:
        return self._derive(self._expr.str.to_uppercase())

    @property
    def lower_case(self) -> Expression:
        return self._derive(self._expr.str.to_lowercase())

    @property
    def trim(self) -> Expression:
        return self._derive(self._expr.str.strip_chars())

    @property
    def char_length(self) -> Expression:
        return self._derive(self._expr.str.len_chars().cast(pl.Int32))

    def in_(self, *values: Any) -> Expression:
        return self._derive(self._expr.is_in(list(values)))

    def between(self, lower: Any, upper: Any) -> Expression:
        return self._derive(
            self._expr.is_between(_unwrap(lower), _unwrap(upper))
        )

    # operators

    def _binary(self, op: str, other: Any) -> Expression:
        other_agg = isinstance(other, Expression) and other.is_aggregate
        return Expression(
            getattr(self._expr, op)(_unwrap(other)),
            aggregate=self._aggregate or other_agg,
        )

    def __add__(self, other: Any) -> Expression:
        return self._binary('__add__', other)

    def __radd__(self, other: Any) -> Expression:
        return self._binary('__radd__', other)

    def __sub__(self, other: Any) -> Expression:
        return self._binary('__sub__', other)

    def __rsub__(self, other: Any) -> Expression:
        return self._binary('__rsub__', other)

    def __mul__(self, other: Any) -> Expression:
        return self._binary('__mul__', other)

    def __rmul__(self, other: Any) -> Expression:
        return self._binary('__rmul__', other)

    def __truediv__(self, other: Any) -> Expression:
        return self._binary('__truediv__', other)

    def __mod__(self, other: Any) -> Expression:
        return self._binary('__mod__', other)

    def __eq__(self, other: Any) -> Expression:  # type: ignore[override]
        return self._binary('__eq__', other)

    def __ne__(self, other: Any) -> Expression:  # type: ignore[override]
        return self._binary('__ne__', other)

    def __lt__(self, other: Any) -> Expression:
        return self._binary('__lt__', other)

    def __le__(self, other: Any) -> Expression:
        return self._binary('__le__', other)

    def __gt__(self, other: Any) -> Expression:
        return self._binary('__gt__', other)

    def __ge__(self, other: Any) -> Expression:
        return self._binary('__ge__', other)

    def __and__(self, other: Any) -> Expression:
        return self._binary('__and__', other)

    def __or__(self, other: Any) -> Expression:
        return self._binary('__or__', other)

    def __invert__(self) -> Expression:
        return self._derive(~self._expr)

    def __neg__(self) -> Expression:
        return self._derive(-self._expr)


def _unwrap(value: Any) -> Any:
    if isinstance(value, Expression):
        return value.to_polars()

    return value


def col(name: str) -> Expression:
    return Expression(pl.col(name), name=name)


def lit(value: Any, dtype: DataTypeExt | None = None) -> Expression:
    return Expression(pl.lit(value, dtype=dtype), literal=True)


def to_expression(value: Any) -> Expression:
    '''
    Coerce user input in a projection into an `Expression`, strings are
    column references.

    '''
    match value:
        case Expression():
            return value

        case str():
            return col(value)

        case pl.Expr():
            return Expression(value, name=value.meta.output_name(raise_if_undetermined=False))

    raise TypeError(f'Cannot use {value!r} as a column expression')


def to_expressions(values: Iterable[Any]) -> list[Expression]:
    return [to_expression(v) for v in values]


def output_name(expr: Expression, position: int) -> str:
    return expr.name if expr.name is not None else f'EXPR${position}'


def compile_projection(exprs: Iterable[Expression]) -> list[pl.Expr]:
    '''
    Turn expressions into named polars expressions, positions of unnamed
    computed columns determine their `EXPR$<i>` name.

    '''
    return [
        e.to_polars().alias(output_name(e, i))
        for i, e in enumerate(exprs)
    ]
