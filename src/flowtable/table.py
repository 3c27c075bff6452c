from __future__ import annotations

from typing import TYPE_CHECKING, Any, Sequence

import polars as pl

from flowtable.errors import ValidationError
from flowtable.expressions import (
    Expression,
    col,
    compile_projection,
    output_name,
    to_expressions,
)
from flowtable.result import ResultKind, TableResult
from flowtable.schema import Schema

if TYPE_CHECKING:
    from flowtable.environment import TableEnvironment


class Table:
    '''
    A relational view over a `pl.LazyFrame`, every operation returns a new
    `Table` and nothing runs until the table is executed or inserted into a
    sink.

    Columns can be referenced as attributes, `tab.word` is `col('word')`.

    '''
    def __init__(
        self,
        frame: pl.LazyFrame,
        env: 'TableEnvironment',
    ) -> None:
        self._frame = frame
        self._env = env
        self._schema: Schema | None = None

    def __getattr__(self, name: str) -> Expression:
        if name.startswith('_'):
            raise AttributeError(name)

        if name in self.get_schema().names:
            return col(name)

        raise AttributeError(
            f'{type(self).__name__!s} has no attribute {name!r} '
            f'(and no column with that name)'
        )

    def __getitem__(self, name: str) -> Expression:
        if name not in self.get_schema().names:
            raise KeyError(name)

        return col(name)

    def __dir__(self) -> list[str]:
        base = super().__dir__()
        return sorted(set(base) | set(self.get_schema().names))

    def __repr__(self) -> str:
        cols = ', '.join(
            f'{c.name} {c.sql_type}' for c in self.get_schema().columns
        )
        return f'Table({cols})'

    def _derive(self, frame: pl.LazyFrame) -> Table:
        return Table(frame, self._env)

    def get_schema(self) -> Schema:
        if self._schema is None:
            self._schema = Schema.from_polars(self._frame.collect_schema())

        return self._schema

    def print_schema(self) -> None:
        print(self.get_schema().pretty_str())

    def explain(self) -> str:
        return self._frame.explain()

    def to_lazy(self) -> pl.LazyFrame:
        return self._frame

    def to_polars(self) -> pl.DataFrame:
        return self.execute().to_polars()

    # relational operations

    def select(self, *fields: Any) -> Table:
        exprs = to_expressions(fields)
        if not exprs:
            raise ValidationError('select requires at least one field')

        return self._derive(self._frame.select(compile_projection(exprs)))

    def where(self, predicate: Expression | pl.Expr) -> Table:
        if isinstance(predicate, Expression):
            if predicate.is_aggregate:
                raise ValidationError('Aggregates are not allowed in a filter')

            predicate = predicate.to_polars()

        return self._derive(self._frame.filter(predicate))

    filter = where

    def group_by(self, *fields: Any) -> GroupedTable:
        keys = to_expressions(fields)
        if not keys:
            raise ValidationError('group_by requires at least one key')

        for key in keys:
            if key.is_aggregate:
                raise ValidationError('Aggregates can not be used as grouping keys')

        return GroupedTable(self, keys)

    def distinct(self) -> Table:
        return self._derive(self._frame.unique(maintain_order=True))

    def order_by(
        self,
        *fields: Any,
        descending: bool | Sequence[bool] = False
    ) -> Table:
        exprs = [e.to_polars() for e in to_expressions(fields)]
        return self._derive(
            self._frame.sort(exprs, descending=descending, nulls_last=True, maintain_order=True)
        )

    def limit(self, fetch: int, offset: int = 0) -> Table:
        if fetch < 0 or offset < 0:
            raise ValueError('limit fetch and offset must be >= 0')

        return self._derive(self._frame.slice(offset, fetch))

    def add_columns(self, *fields: Any) -> Table:
        exprs = to_expressions(fields)
        start = len(self.get_schema())
        return self._derive(
            self._frame.with_columns(
                e.to_polars().alias(output_name(e, start + i))
                for i, e in enumerate(exprs)
            )
        )

    def rename_columns(self, *fields: Expression) -> Table:
        '''
        Rename columns given aliased references, `rename_columns(tab.a.alias('b'))`.

        '''
        mapping: dict[str, str] = {}
        for field in fields:
            roots = field.to_polars().meta.root_names()
            if field.name is None or len(roots) != 1:
                raise ValidationError(
                    f'rename_columns expects aliased column references, got {field!r}'
                )

            mapping[roots[0]] = field.name

        missing = set(mapping) - set(self.get_schema().names)
        if missing:
            raise ValidationError(f'Unknown columns {", ".join(sorted(missing))}')

        return self._derive(self._frame.rename(mapping))

    def drop_columns(self, *fields: Any) -> Table:
        names = [e.name for e in to_expressions(fields)]
        missing = set(n for n in names if n not in self.get_schema().names)
        if None in names or missing:
            raise ValidationError(f'drop_columns expects column references, got {fields!r}')

        return self._derive(self._frame.drop(names))

    def union_all(self, other: Table) -> Table:
        mine, theirs = self.get_schema(), other.get_schema()
        if mine.names != theirs.names or mine.types != theirs.types:
            raise ValidationError(
                f'union_all requires identical schemas, got {mine!r} and {theirs!r}'
            )

        return self._derive(pl.concat((self._frame, other._frame), how='vertical'))

    # execution

    def execute(self) -> TableResult:
        return TableResult(
            ResultKind.SUCCESS_WITH_CONTENT,
            self.get_schema(),
            frame=self._frame,
            executor=self._env.executor,
        )

    def execute_insert(self, table_path: str, overwrite: bool = False) -> TableResult:
        return self._env.execute_inserts(
            [(table_path, self, overwrite)],
            job_name=f'insert-into_{table_path}',
        )

    async def execute_insert_async(
        self,
        table_path: str,
        overwrite: bool = False
    ) -> TableResult:
        return await self._env.execute_inserts_async(
            [(table_path, self, overwrite)],
            job_name=f'insert-into_{table_path}',
        )


class GroupedTable:
    '''
    A table grouped by key expressions, `select` aggregates per group keeping
    the first appearance order of the keys.

    '''
    def __init__(self, table: Table, keys: list[Expression]) -> None:
        self._table = table
        self._keys = keys

    def _key_index(self, expr: Expression) -> int | None:
        # keys match regardless of aliases
        target = expr.to_polars().meta.undo_aliases()
        for i, key in enumerate(self._keys):
            if key.to_polars().meta.undo_aliases().meta.eq(target):
                return i

        return None

    def select(self, *fields: Any) -> Table:
        exprs = to_expressions(fields)
        if not exprs:
            raise ValidationError('select requires at least one field')

        key_cols = [
            key.to_polars().alias(f'__key{i}') for i, key in enumerate(self._keys)
        ]

        aggs: list[pl.Expr] = []
        projection: list[pl.Expr] = []
        for pos, expr in enumerate(exprs):
            name = output_name(expr, pos)
            if (idx := self._key_index(expr)) is not None:
                projection.append(pl.col(f'__key{idx}').alias(name))
                continue

            if not expr.is_aggregate:
                raise ValidationError(
                    f'Expression {expr!r} is neither a grouping key nor an aggregate'
                )

            aggs.append(expr.to_polars().alias(f'__agg{pos}'))
            projection.append(pl.col(f'__agg{pos}').alias(name))

        frame = self._table._frame
        if aggs:
            grouped = frame.group_by(key_cols, maintain_order=True).agg(aggs)

        else:
            grouped = frame.select(key_cols).unique(maintain_order=True)

        return self._table._derive(grouped.select(projection))
