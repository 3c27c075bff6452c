from __future__ import annotations

import sys
from typing import Any, TextIO

import polars as pl

from flowtable.connectors.base import Connector, StagedWrite
from flowtable.lowlevel import PolarsExecutor


def format_value(value: Any) -> str:
    if value is None:
        return 'null'

    if isinstance(value, bool):
        return 'true' if value else 'false'

    return str(value)


def format_row(row: tuple, identifier: str | None = None) -> str:
    line = '+I[' + ', '.join(format_value(v) for v in row) + ']'
    if identifier:
        line = f'{identifier}> {line}'

    return line


class PrintConnector(Connector):
    '''
    Sink that writes every row as a `+I[...]` changelog line.

    '''
    identifier = 'print'
    optional_options = ('print-identifier', 'standard-error')

    @property
    def stream(self) -> TextIO:
        return sys.stderr if self.bool_option('standard-error') else sys.stdout

    async def stage(
        self,
        frame: pl.LazyFrame,
        *,
        overwrite: bool,
        executor: PolarsExecutor,
    ) -> StagedLines:
        df = await executor.collect(frame)
        ident = self.options.get('print-identifier')
        return StagedLines(
            [format_row(row, ident) for row in df.iter_rows()],
            self.stream,
        )


class StagedLines(StagedWrite):
    def __init__(self, lines: list[str], out: TextIO) -> None:
        super().__init__(len(lines))
        self.lines = lines
        self.out = out

    def commit(self) -> None:
        for line in self.lines:
            self.out.write(line + '\n')

        self.out.flush()
