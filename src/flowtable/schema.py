from __future__ import annotations

from typing import Iterable

import msgspec
import polars as pl

from flowtable.dtypes import (
    DataTypeExt,
    DataTypeMeta,
    parse_sql_type,
    sql_type_name,
)
from flowtable.errors import ValidationError
from flowtable.structs import FrozenStruct


class ColumnMeta(FrozenStruct, frozen=True):
    name: str
    type: DataTypeMeta
    nullable: bool = True


class Column(msgspec.Struct, dict=True, frozen=True):
    name: str
    type: DataTypeExt
    nullable: bool = True

    @staticmethod
    def from_like(c: ColumnLike) -> Column:
        match c:
            case tuple():
                name = c[0]
                typ = c[1]
                if isinstance(typ, str):
                    typ = parse_sql_type(typ)

                nullable = c[2] if len(c) == 3 else True
                return Column(name, typ, nullable)

            case dict() | ColumnMeta():
                if isinstance(c, dict):
                    c = ColumnMeta.convert(c)

                return Column(c.name, c.type.decode(), c.nullable)

        return c

    @property
    def sql_type(self) -> str:
        return sql_type_name(self.type)

    def encode(self) -> ColumnMeta:
        return ColumnMeta(
            name=self.name,
            type=DataTypeMeta.from_dtype(self.type),
            nullable=self.nullable,
        )


ColumnLike = (
    tuple[str, DataTypeExt | str]
    | tuple[str, DataTypeExt | str, bool]
    | dict
    | ColumnMeta
    | Column
)


class SchemaMeta(FrozenStruct, frozen=True):
    columns: list[ColumnMeta]


class Schema:
    '''
    Ordered, named and typed columns of a table.

    '''
    def __init__(self, columns: Iterable[ColumnLike]):
        self._columns: tuple[Column, ...] = tuple(
            (Column.from_like(c) for c in columns)
        )

        seen: set[str] = set()
        for col in self._columns:
            if col.name in seen:
                raise ValidationError(f'Duplicate column name {col.name!r}')
            seen.add(col.name)

    @staticmethod
    def from_like(s: SchemaLike) -> Schema:
        match s:
            case Schema():
                return s

            case pl.Schema():
                return Schema.from_polars(s)

            case dict() | SchemaMeta():
                if isinstance(s, dict):
                    s = SchemaMeta.convert(s)

                return Schema(s.columns)

        return Schema(s)

    @staticmethod
    def from_polars(schema: pl.Schema) -> Schema:
        return Schema((name, dtype) for name, dtype in schema.items())

    @staticmethod
    def new_builder() -> SchemaBuilder:
        return SchemaBuilder()

    def __len__(self) -> int:
        return len(self._columns)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Schema):
            return NotImplemented

        return self._columns == other._columns

    def __repr__(self) -> str:
        cols = ', '.join(f'{c.name} {c.sql_type}' for c in self._columns)
        return f'Schema({cols})'

    def as_polars(self) -> pl.Schema:
        return pl.Schema((col.name, col.type) for col in self._columns)

    @property
    def columns(self) -> tuple[Column, ...]:
        return self._columns

    @property
    def names(self) -> list[str]:
        return [col.name for col in self._columns]

    @property
    def types(self) -> list[DataTypeExt]:
        return [col.type for col in self._columns]

    def column(self, name: str) -> Column:
        for col in self._columns:
            if col.name == name:
                return col

        raise KeyError(name)

    def pretty_str(self) -> str:
        '''Return a human-readable representation of the schema.'''
        lines = ['(']
        for i, col in enumerate(self._columns):
            sep = ',' if i < len(self._columns) - 1 else ''
            null = '' if col.nullable else ' NOT NULL'
            lines.append(f'  `{col.name}` {col.sql_type}{null}{sep}')
        lines.append(')')
        return '\n'.join(lines)

    def encode(self) -> SchemaMeta:
        return SchemaMeta(columns=[col.encode() for col in self._columns])


class SchemaBuilder:
    def __init__(self) -> None:
        self._columns: list[Column] = []

    def column(
        self,
        name: str,
        type: DataTypeExt | str,
        nullable: bool = True
    ) -> SchemaBuilder:
        self._columns.append(Column.from_like((name, type, nullable)))
        return self

    def build(self) -> Schema:
        return Schema(self._columns)


SchemaLike = Iterable[ColumnLike] | dict | SchemaMeta | Schema | pl.Schema
