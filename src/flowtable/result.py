from __future__ import annotations

import enum
import sys
from typing import Any, TextIO
from uuid import uuid4

import anyio
import polars as pl

from flowtable.connectors.printer import format_value
from flowtable.lowlevel import PolarsExecutor
from flowtable.schema import Schema


class ResultKind(enum.Enum):
    SUCCESS = 'SUCCESS'
    SUCCESS_WITH_CONTENT = 'SUCCESS_WITH_CONTENT'


class JobStatus(enum.Enum):
    CREATED = 'CREATED'
    RUNNING = 'RUNNING'
    FINISHED = 'FINISHED'
    FAILED = 'FAILED'

    def is_globally_terminal_state(self) -> bool:
        return self in (JobStatus.FINISHED, JobStatus.FAILED)


class JobClient:
    '''
    Handle to an executed insert job.

    '''
    def __init__(self, name: str) -> None:
        self.job_id = uuid4().hex
        self.name = name
        self._status = JobStatus.CREATED
        self._rows_written: dict[str, int] = {}

    def __repr__(self) -> str:
        return f'JobClient({self.name!r}, id={self.job_id}, status={self._status.value})'

    def get_job_id(self) -> str:
        return self.job_id

    def get_job_status(self) -> JobStatus:
        return self._status

    def get_job_execution_result(self) -> dict[str, int]:
        '''
        Rows written per sink table.

        '''
        return dict(self._rows_written)

    def _set_status(self, status: JobStatus) -> None:
        self._status = status

    def _set_result(self, rows_written: dict[str, int]) -> None:
        self._rows_written = dict(rows_written)
        self._status = JobStatus.FINISHED


class TableResult:
    '''
    Outcome of `execute_sql`, `execute` or `execute_insert`.

    Statements without content (DDL) carry `ResultKind.SUCCESS`, queries and
    inserts carry their rows. Query rows are computed on first access.

    '''
    def __init__(
        self,
        result_kind: ResultKind,
        schema: Schema,
        *,
        frame: pl.LazyFrame | pl.DataFrame | None = None,
        job_client: JobClient | None = None,
        executor: PolarsExecutor | None = None,
    ) -> None:
        self.result_kind = result_kind
        self._schema = schema
        self._lazy: pl.LazyFrame | None = None
        self._df: pl.DataFrame | None = None
        if isinstance(frame, pl.DataFrame):
            self._df = frame

        else:
            self._lazy = frame

        self.job_client = job_client
        self._executor = executor or PolarsExecutor()

    @staticmethod
    def ok() -> TableResult:
        return TableResult(
            ResultKind.SUCCESS,
            Schema([('result', 'STRING')]),
            frame=pl.DataFrame({'result': ['OK']}),
        )

    def get_result_kind(self) -> ResultKind:
        return self.result_kind

    def get_table_schema(self) -> Schema:
        return self._schema

    def get_job_client(self) -> JobClient | None:
        return self.job_client

    def wait(self, timeout_ms: int | None = None) -> None:
        '''
        Jobs are executed when submitted, kept so scripts written as
        `execute_insert(...).wait()` read naturally.

        '''

    async def wait_async(self) -> None:
        ...

    async def to_polars_async(self) -> pl.DataFrame:
        if self._df is None:
            assert self._lazy is not None
            self._df = await self._executor.collect(self._lazy)
            self._lazy = None

        return self._df

    def to_polars(self) -> pl.DataFrame:
        if self._df is None:
            return anyio.run(self.to_polars_async)

        return self._df

    def collect(self) -> list[tuple[Any, ...]]:
        return self.to_polars().rows()

    async def collect_async(self) -> list[tuple[Any, ...]]:
        return (await self.to_polars_async()).rows()

    def pretty_str(self) -> str:
        if self.result_kind == ResultKind.SUCCESS:
            return 'OK'

        return render_table(self._schema.names, self.collect())

    def print(self, file: TextIO | None = None) -> None:
        out = file or sys.stdout
        out.write(self.pretty_str() + '\n')


def render_table(names: list[str], rows: list[tuple[Any, ...]]) -> str:
    '''
    Box drawing of a result set, right aligned like a terminal sql client.

    '''
    cells = [[format_value(v) for v in row] for row in rows]
    widths = [
        max([len(name)] + [len(r[i]) for r in cells])
        for i, name in enumerate(names)
    ]

    border = '+' + '+'.join('-' * (w + 2) for w in widths) + '+'

    def line(values: list[str]) -> str:
        return '|' + '|'.join(
            f' {v:>{w}} ' for v, w in zip(values, widths, strict=True)
        ) + '|'

    if not cells:
        return 'Empty set'

    out = [border, line(names), border]
    out.extend(line(r) for r in cells)
    out.append(border)

    suffix = 'row' if len(cells) == 1 else 'rows'
    out.append(f'{len(cells)} {suffix} in set')
    return '\n'.join(out)
