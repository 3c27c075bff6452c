from __future__ import annotations

from pathlib import Path
from typing import ClassVar

import polars as pl

from flowtable.errors import ConnectorError
from flowtable.lowlevel import PolarsExecutor
from flowtable.schema import Schema


class StagedWrite:
    '''
    Rows computed for a sink, visible only after `commit`.

    '''
    def __init__(self, rows: int) -> None:
        self.rows = rows

    def commit(self) -> None:
        ...

    def abort(self) -> None:
        ...


class Connector:
    '''
    Binds a registered table to external storage.

    Subclasses declare the options they understand, the constructor rejects
    missing required options and unknown ones. A connector that can be read
    implements `scan`, one that can be written implements `check_sink` and
    `stage`.

    '''
    identifier: ClassVar[str]
    required_options: ClassVar[tuple[str, ...]] = ()
    optional_options: ClassVar[tuple[str, ...]] = ()

    def __init__(
        self,
        table: str,
        schema: Schema,
        options: dict[str, str],
        *,
        datadir: Path,
    ) -> None:
        self.table = table
        self.schema = schema
        self.options = {k: v for k, v in options.items() if k != 'connector'}
        self.datadir = datadir

        self.validate_options()

    def allowed_option(self, key: str) -> bool:
        return key in self.required_options or key in self.optional_options

    def validate_options(self) -> None:
        for key in self.required_options:
            if key not in self.options:
                raise ConnectorError(
                    f'Missing required option {key!r} for connector '
                    f'{self.identifier!r} on table {self.table!r}'
                )

        unknown = sorted(k for k in self.options if not self.allowed_option(k))
        if unknown:
            raise ConnectorError(
                f'Unsupported options for connector {self.identifier!r} on '
                f'table {self.table!r}: {", ".join(unknown)}'
            )

    def bool_option(self, key: str, default: bool = False) -> bool:
        value = self.options.get(key)
        if value is None:
            return default

        match value.strip().lower():
            case 'true':
                return True

            case 'false':
                return False

        raise ConnectorError(
            f'Option {key!r} on table {self.table!r} must be true or false, got {value!r}'
        )

    def empty(self) -> pl.LazyFrame:
        return pl.LazyFrame(schema=self.schema.as_polars())

    def scan(self) -> pl.LazyFrame:
        raise ConnectorError(
            f'Connector {self.identifier!r} of table {self.table!r} can not be used as a source'
        )

    def check_sink(self, overwrite: bool) -> None:
        '''
        Validate the sink can be written before any work is scheduled.

        '''

    async def stage(
        self,
        frame: pl.LazyFrame,
        *,
        overwrite: bool,
        executor: PolarsExecutor,
    ) -> StagedWrite:
        '''
        Compute `frame` without making its output visible, the job commits
        every staged write once all of its sinks succeeded.

        '''
        raise ConnectorError(
            f'Connector {self.identifier!r} of table {self.table!r} can not be used as a sink'
        )
