'''
# Overview

Column types are plain `polars` data types, this module maps them to and
from the SQL type names used in DDL statements and `DESCRIBE` output:

    STRING / VARCHAR(n) / CHAR(n)   -> pl.String
    BOOLEAN                         -> pl.Boolean
    BYTES / BINARY(n) / VARBINARY(n)-> pl.Binary
    TINYINT, SMALLINT, INT, BIGINT  -> pl.Int8, pl.Int16, pl.Int32, pl.Int64
    FLOAT, DOUBLE                   -> pl.Float32, pl.Float64
    DECIMAL(p, s)                   -> pl.Decimal(p, s)
    DATE, TIME, TIMESTAMP(p)        -> pl.Date, pl.Time, pl.Datetime
    TIMESTAMP_LTZ(p)                -> pl.Datetime(time_zone='UTC')
    ARRAY<T>                        -> pl.List(T)

`DataTypes` offers the same types through a factory, for code that builds
schemas programmatically.

'''

from __future__ import annotations

import re
from inspect import isclass
from typing import Any, Literal

import polars as pl
from polars._typing import PolarsDataType

from flowtable.errors import UnsupportedTypeError
from flowtable.structs import FrozenStruct


DataTypeExt = type[pl.DataType] | pl.DataType


def class_of(dtype: DataTypeExt) -> type[pl.DataType]:
    return type(dtype) if not isclass(dtype) else dtype


def _time_unit_for(precision: int) -> Literal['ms', 'us', 'ns']:
    if not 0 <= precision <= 9:
        raise UnsupportedTypeError(
            f'Timestamp precision must be between 0 and 9, got {precision}'
        )

    if precision <= 3:
        return 'ms'

    if precision <= 6:
        return 'us'

    return 'ns'


class DataTypes:
    '''
    Factory for column types, mirrors the SQL type names.

    '''

    @staticmethod
    def STRING() -> DataTypeExt:
        return pl.String

    @staticmethod
    def VARCHAR(length: int | None = None) -> DataTypeExt:
        return pl.String

    @staticmethod
    def CHAR(length: int = 1) -> DataTypeExt:
        return pl.String

    @staticmethod
    def BOOLEAN() -> DataTypeExt:
        return pl.Boolean

    @staticmethod
    def BYTES() -> DataTypeExt:
        return pl.Binary

    @staticmethod
    def TINYINT() -> DataTypeExt:
        return pl.Int8

    @staticmethod
    def SMALLINT() -> DataTypeExt:
        return pl.Int16

    @staticmethod
    def INT() -> DataTypeExt:
        return pl.Int32

    @staticmethod
    def BIGINT() -> DataTypeExt:
        return pl.Int64

    @staticmethod
    def FLOAT() -> DataTypeExt:
        return pl.Float32

    @staticmethod
    def DOUBLE() -> DataTypeExt:
        return pl.Float64

    @staticmethod
    def DECIMAL(precision: int = 10, scale: int = 0) -> DataTypeExt:
        if not 1 <= precision <= 38 or not 0 <= scale <= precision:
            raise UnsupportedTypeError(
                f'Invalid DECIMAL({precision}, {scale})'
            )
        return pl.Decimal(precision=precision, scale=scale)

    @staticmethod
    def DATE() -> DataTypeExt:
        return pl.Date

    @staticmethod
    def TIME(precision: int = 0) -> DataTypeExt:
        return pl.Time

    @staticmethod
    def TIMESTAMP(precision: int = 6) -> DataTypeExt:
        return pl.Datetime(time_unit=_time_unit_for(precision))

    @staticmethod
    def TIMESTAMP_LTZ(precision: int = 6) -> DataTypeExt:
        return pl.Datetime(time_unit=_time_unit_for(precision), time_zone='UTC')

    @staticmethod
    def ARRAY(element_type: DataTypeExt) -> DataTypeExt:
        return pl.List(element_type)


# sql type name -> (factory, accepted argument count)
_sql_type_factories: dict[str, tuple[Any, tuple[int, ...]]] = {
    'STRING': (DataTypes.STRING, (0,)),
    'VARCHAR': (DataTypes.VARCHAR, (0, 1)),
    'CHAR': (DataTypes.CHAR, (0, 1)),
    'BOOLEAN': (DataTypes.BOOLEAN, (0,)),
    'BOOL': (DataTypes.BOOLEAN, (0,)),
    'BYTES': (DataTypes.BYTES, (0,)),
    'BINARY': (DataTypes.BYTES, (0, 1)),
    'VARBINARY': (DataTypes.BYTES, (0, 1)),
    'TINYINT': (DataTypes.TINYINT, (0,)),
    'SMALLINT': (DataTypes.SMALLINT, (0,)),
    'INT': (DataTypes.INT, (0,)),
    'INTEGER': (DataTypes.INT, (0,)),
    'BIGINT': (DataTypes.BIGINT, (0,)),
    'FLOAT': (DataTypes.FLOAT, (0,)),
    'REAL': (DataTypes.FLOAT, (0,)),
    'DOUBLE': (DataTypes.DOUBLE, (0,)),
    'DOUBLE PRECISION': (DataTypes.DOUBLE, (0,)),
    'DECIMAL': (DataTypes.DECIMAL, (0, 1, 2)),
    'DEC': (DataTypes.DECIMAL, (0, 1, 2)),
    'NUMERIC': (DataTypes.DECIMAL, (0, 1, 2)),
    'DATE': (DataTypes.DATE, (0,)),
    'TIME': (DataTypes.TIME, (0, 1)),
    'TIMESTAMP': (DataTypes.TIMESTAMP, (0, 1)),
    'TIMESTAMP_LTZ': (DataTypes.TIMESTAMP_LTZ, (0, 1)),
}


_type_re = re.compile(
    r'^(?P<name>[A-Z_]+(?: PRECISION)?)\s*(?:\(\s*(?P<args>[0-9,\s]*)\))?'
    r'(?P<ltz>\s+WITH LOCAL TIME ZONE)?$'
)


def parse_sql_type(text: str) -> DataTypeExt:
    '''
    Parse a SQL type name as written in a column definition into a polars
    data type.

    '''
    norm = ' '.join(text.strip().upper().split())

    if norm.startswith('ARRAY'):
        inner = norm[len('ARRAY'):].strip()
        if not (inner.startswith('<') and inner.endswith('>')):
            raise UnsupportedTypeError(f'Malformed ARRAY type: {text!r}')

        return DataTypes.ARRAY(parse_sql_type(inner[1:-1]))

    match = _type_re.match(norm)
    if not match:
        raise UnsupportedTypeError(f'Unknown column type: {text!r}')

    name = match.group('name')
    if match.group('ltz'):
        if name != 'TIMESTAMP':
            raise UnsupportedTypeError(f'Unknown column type: {text!r}')
        name = 'TIMESTAMP_LTZ'

    try:
        factory, arities = _sql_type_factories[name]

    except KeyError:
        raise UnsupportedTypeError(f'Unknown column type: {text!r}') from None

    raw_args = match.group('args')
    args = (
        [int(a) for a in raw_args.split(',') if a.strip()]
        if raw_args is not None
        else []
    )
    if len(args) not in arities:
        raise UnsupportedTypeError(
            f'Type {name} does not take {len(args)} arguments'
        )

    return factory(*args)


_precision_for_unit = {'ms': 3, 'us': 6, 'ns': 9}


def sql_type_name(dtype: PolarsDataType) -> str:
    '''
    Inverse of `parse_sql_type`, render a polars type with its SQL name.

    '''
    match dtype:
        case pl.Datetime():
            precision = _precision_for_unit[dtype.time_unit]
            if dtype.time_zone:
                return f'TIMESTAMP_LTZ({precision})'
            return f'TIMESTAMP({precision})'

        case pl.Decimal():
            return f'DECIMAL({dtype.precision}, {dtype.scale})'

        case pl.List():
            return f'ARRAY<{sql_type_name(dtype.inner)}>'

    names: dict[type[pl.DataType], str] = {
        pl.String: 'STRING',
        pl.Boolean: 'BOOLEAN',
        pl.Binary: 'BYTES',
        pl.Int8: 'TINYINT',
        pl.Int16: 'SMALLINT',
        pl.Int32: 'INT',
        pl.Int64: 'BIGINT',
        pl.UInt8: 'SMALLINT',
        pl.UInt16: 'INT',
        pl.UInt32: 'BIGINT',
        pl.UInt64: 'DECIMAL(20, 0)',
        pl.Float32: 'FLOAT',
        pl.Float64: 'DOUBLE',
        pl.Date: 'DATE',
        pl.Time: 'TIME(0)',
        pl.Datetime: 'TIMESTAMP(6)',
        pl.Null: 'NULL',
    }
    try:
        return names[class_of(dtype)]

    except KeyError:
        raise UnsupportedTypeError(f'No SQL name for type {dtype}') from None


class DataTypeMeta(FrozenStruct, frozen=True):
    '''
    Serializable form of a column type, the SQL name is the wire format.

    '''
    sql: str

    @staticmethod
    def from_dtype(dtype: DataTypeExt) -> DataTypeMeta:
        return DataTypeMeta(sql=sql_type_name(dtype))

    def decode(self) -> DataTypeExt:
        return parse_sql_type(self.sql)


# minimum signed integer width (in bytes) able to hold every value of a type
_int_widths: dict[type[pl.DataType], int] = {
    pl.Int8: 1,
    pl.Int16: 2,
    pl.Int32: 4,
    pl.Int64: 8,
    pl.UInt8: 2,
    pl.UInt16: 4,
    pl.UInt32: 8,
    pl.UInt64: 16,
}

_signed_ints = (pl.Int8, pl.Int16, pl.Int32, pl.Int64)
_floats = (pl.Float32, pl.Float64)


def can_cast_implicitly(src: DataTypeExt, dst: DataTypeExt) -> bool:
    '''
    Whether values of `src` can be written into a column of type `dst`
    without loss: identical types, integer widening and numeric to
    floating point or decimal.

    '''
    s, d = class_of(src), class_of(dst)

    if s is pl.Null or s is d:
        return True

    if s in _int_widths:
        if d in _signed_ints:
            return _int_widths[s] <= _int_widths[d]

        return d in _floats or d is pl.Decimal

    if s is pl.Float32:
        return d is pl.Float64

    if s is pl.Decimal:
        return d in _floats

    return False
