from __future__ import annotations

import logging
import os
import time
from functools import partial
from logging import Logger
from pathlib import Path
from typing import Any, Iterable, Literal, Sequence

import anyio
import polars as pl

from flowtable._utils import format_elapsed, get_root_datadir
from flowtable.connectors import Connector, StagedWrite, create_connector
from flowtable.ddl import (
    CreateTable,
    Describe,
    DropTable,
    Explain,
    Insert,
    Query,
    ShowTables,
    parse_statement,
    referenced_names,
    to_engine_sql,
)
from flowtable.descriptors import TableDescriptor
from flowtable.dtypes import can_cast_implicitly
from flowtable.errors import (
    CatalogError,
    FlowTableError,
    JobExecutionError,
    SqlParseError,
    TableAlreadyExistsError,
    TableNotFoundError,
    ValidationError,
)
from flowtable.lowlevel import PolarsExecutor
from flowtable.result import JobClient, JobStatus, ResultKind, TableResult
from flowtable.schema import Column, Schema, SchemaLike, SchemaMeta
from flowtable.structs import FrozenStruct
from flowtable.table import Table


log = logging.getLogger(__name__)


RuntimeMode = Literal['batch', 'streaming']


class EnvironmentSettings(FrozenStruct, frozen=True):
    mode: RuntimeMode = 'batch'
    # max query plans executing at the same time
    parallelism: int = 1
    # cache directory for remote sources
    datadir: Path | None = None

    def __post_init__(self) -> None:
        if self.parallelism < 1:
            raise ValueError(f'parallelism must be >= 1, got {self.parallelism}')

    @staticmethod
    def in_batch_mode(**kwargs) -> EnvironmentSettings:
        return EnvironmentSettings(mode='batch', **kwargs)

    @staticmethod
    def in_streaming_mode(**kwargs) -> EnvironmentSettings:
        return EnvironmentSettings(mode='streaming', **kwargs)

    @staticmethod
    def from_env() -> EnvironmentSettings:
        '''
        Settings from FLOWTABLE_MODE, FLOWTABLE_PARALLELISM and
        FLOWTABLE_DATADIR.

        '''
        mode = os.getenv('FLOWTABLE_MODE', 'batch').lower()
        if mode not in ('batch', 'streaming'):
            raise ValueError(f'FLOWTABLE_MODE must be batch or streaming, got {mode!r}')

        raw_parallelism = os.getenv('FLOWTABLE_PARALLELISM', '1')
        try:
            parallelism = int(raw_parallelism)

        except ValueError:
            raise ValueError(
                f'FLOWTABLE_PARALLELISM must be an integer, got {raw_parallelism!r}'
            ) from None

        return EnvironmentSettings(
            mode=mode,
            parallelism=parallelism,
            datadir=get_root_datadir(),
        )

    def is_streaming_mode(self) -> bool:
        return self.mode == 'streaming'


class CatalogTable(FrozenStruct, frozen=True):
    name: str
    schema: SchemaMeta
    options: dict[str, str]
    comment: str | None = None
    primary_key: list[str] | None = None


InsertTarget = tuple[str, Table, bool]


class TableEnvironment:
    '''
    Entry point of the table api: a catalog of temporary tables and views
    plus the executor that runs queries and insert jobs.

        env = TableEnvironment.create(EnvironmentSettings.in_batch_mode())
        env.execute_sql("CREATE TABLE mySource (word STRING) WITH (...)")
        tab = env.from_path('mySource')
        tab.group_by(tab.word).select(tab.word, lit(1).count).execute_insert('mySink').wait()

    '''
    def __init__(
        self,
        settings: EnvironmentSettings | None = None,
        *,
        log: Logger = log,
    ) -> None:
        self.settings = settings or EnvironmentSettings()
        self.datadir = (
            Path(self.settings.datadir)
            if self.settings.datadir
            else get_root_datadir()
        )
        self.executor = PolarsExecutor(limit=self.settings.parallelism)

        self._tables: dict[str, CatalogTable] = {}
        self._connectors: dict[str, Connector] = {}
        self._views: dict[str, Table] = {}

        self._log = log

    @staticmethod
    def create(settings: EnvironmentSettings | None = None) -> TableEnvironment:
        return TableEnvironment(settings)

    def __contains__(self, name: str) -> bool:
        return name in self._tables or name in self._views

    # catalog

    def _ensure_free(self, name: str) -> None:
        if name in self:
            raise TableAlreadyExistsError(name)

    def _register_table(self, entry: CatalogTable, ignore_if_exists: bool) -> None:
        if entry.name in self:
            if ignore_if_exists:
                return

            raise TableAlreadyExistsError(entry.name)

        connector = create_connector(
            entry.name,
            Schema.from_like(entry.schema),
            entry.options,
            datadir=self.datadir,
        )
        self._tables[entry.name] = entry
        self._connectors[entry.name] = connector
        self._log.debug(
            f'registered table {entry.name} with connector {connector.identifier}'
        )

    def create_temporary_table(
        self,
        path: str,
        descriptor: TableDescriptor,
        ignore_if_exists: bool = False,
    ) -> None:
        schema = descriptor.get_schema()
        if schema is None:
            raise ValidationError(f'Table {path!r} descriptor has no schema')

        self._register_table(
            CatalogTable(
                name=path,
                schema=schema.encode(),
                options=descriptor.to_options(),
                comment=descriptor.comment,
            ),
            ignore_if_exists,
        )

    def create_temporary_view(self, path: str, table: Table) -> None:
        self._ensure_free(path)
        self._views[path] = table

    def drop_temporary_table(self, path: str) -> bool:
        if path not in self._tables:
            return False

        del self._tables[path]
        del self._connectors[path]
        return True

    def drop_temporary_view(self, path: str) -> bool:
        return self._views.pop(path, None) is not None

    def list_tables(self) -> list[str]:
        return sorted((*self._tables, *self._views))

    def list_views(self) -> list[str]:
        return sorted(self._views)

    def get_catalog_table(self, path: str) -> CatalogTable:
        try:
            return self._tables[path]

        except KeyError:
            raise TableNotFoundError(path) from None

    def _schema_of(self, path: str) -> Schema:
        if path in self._views:
            return self._views[path].get_schema()

        return Schema.from_like(self.get_catalog_table(path).schema)

    # table construction

    def from_path(self, path: str) -> Table:
        if path in self._views:
            return self._views[path]

        if path not in self._tables:
            raise TableNotFoundError(path)

        return Table(self._connectors[path].scan(), self)

    def from_elements(
        self,
        elements: Iterable[Sequence[Any]],
        schema: SchemaLike | Sequence[str] | None = None,
    ) -> Table:
        rows = [tuple(e) for e in elements]

        polars_schema: Any = None
        if schema is not None:
            names_only = isinstance(schema, (list, tuple)) and all(
                isinstance(s, str) for s in schema
            )
            polars_schema = (
                list(schema)
                if names_only
                else Schema.from_like(schema).as_polars()
            )

        df = pl.DataFrame(rows, schema=polars_schema, orient='row')
        return Table(df.lazy(), self)

    def from_polars(self, frame: pl.DataFrame | pl.LazyFrame) -> Table:
        return Table(frame.lazy(), self)

    def sql_query(self, query: str) -> Table:
        '''
        Run a SELECT over the registered tables and views through the polars
        SQL engine.

        '''
        names = referenced_names(query, self.list_tables())
        frames = {
            name: self.from_path(name).to_lazy()
            for name in names
        }

        ctx = pl.SQLContext(frames=frames)
        try:
            frame = ctx.execute(to_engine_sql(query), eager=False)

        except (
            pl.exceptions.SQLInterfaceError,
            pl.exceptions.SQLSyntaxError,
        ) as e:
            raise SqlParseError(str(e), query) from e

        except pl.exceptions.ColumnNotFoundError as e:
            raise ValidationError(f'Unknown column in query: {e}') from e

        return Table(frame, self)

    # statements

    def execute_sql(self, statement: str) -> TableResult:
        stmt = parse_statement(statement)
        match stmt:
            case CreateTable():
                schema = Schema(
                    Column.from_like((c.name, c.type, c.nullable))
                    for c in stmt.columns
                )
                self._register_table(
                    CatalogTable(
                        name=stmt.name,
                        schema=schema.encode(),
                        options=stmt.options,
                        comment=stmt.comment,
                        primary_key=stmt.primary_key,
                    ),
                    stmt.if_not_exists,
                )
                return TableResult.ok()

            case DropTable():
                if not (
                    self.drop_temporary_table(stmt.name)
                    or self.drop_temporary_view(stmt.name)
                ) and not stmt.if_exists:
                    raise TableNotFoundError(stmt.name)

                return TableResult.ok()

            case ShowTables():
                return TableResult(
                    ResultKind.SUCCESS_WITH_CONTENT,
                    Schema([('table name', 'STRING')]),
                    frame=pl.DataFrame(
                        {'table name': self.list_tables()}, schema={'table name': pl.String}
                    ),
                )

            case Describe():
                return self._describe(stmt.name)

            case Explain():
                plan = self.sql_query(stmt.query).explain()
                return TableResult(
                    ResultKind.SUCCESS_WITH_CONTENT,
                    Schema([('result', 'STRING')]),
                    frame=pl.DataFrame({'result': [plan]}),
                )

            case Query():
                return self.sql_query(stmt.query).execute()

            case Insert():
                return self.execute_inserts(
                    [self._insert_target(stmt)],
                    job_name=f'insert-into_{stmt.table}',
                )

        raise SqlParseError(f'Unhandled statement {stmt!r}', statement)

    async def execute_sql_async(self, statement: str) -> TableResult:
        stmt = parse_statement(statement)
        if isinstance(stmt, Insert):
            return await self.execute_inserts_async(
                [self._insert_target(stmt)],
                job_name=f'insert-into_{stmt.table}',
            )

        return self.execute_sql(statement)

    def _describe(self, path: str) -> TableResult:
        schema = self._schema_of(path)
        pk = set(
            self._tables[path].primary_key or []
        ) if path in self._tables else set()

        rows = [
            (
                c.name,
                c.sql_type,
                c.nullable,
                f'PRI({", ".join(sorted(pk))})' if c.name in pk else None,
            )
            for c in schema.columns
        ]
        result_schema = Schema([
            ('name', 'STRING'),
            ('type', 'STRING'),
            ('null', 'BOOLEAN'),
            ('key', 'STRING'),
        ])
        return TableResult(
            ResultKind.SUCCESS_WITH_CONTENT,
            result_schema,
            frame=pl.DataFrame(rows, schema=result_schema.as_polars(), orient='row'),
        )

    def _insert_target(self, stmt: Insert) -> InsertTarget:
        table = self.sql_query(stmt.query)

        if stmt.columns is not None:
            sink_schema = self._schema_of(stmt.table)
            unknown = set(stmt.columns) - set(sink_schema.names)
            if unknown:
                raise ValidationError(
                    f'Unknown columns {", ".join(sorted(unknown))} in sink {stmt.table!r}'
                )

            source_names = table.get_schema().names
            if len(source_names) != len(stmt.columns):
                raise ValidationError(
                    f'Insert column list has {len(stmt.columns)} columns but '
                    f'the query produces {len(source_names)}'
                )

            # place query columns by name, unlisted sink columns are null
            by_target = dict(zip(stmt.columns, source_names, strict=True))
            table = Table(
                table.to_lazy().select(
                    pl.col(by_target[c.name]).alias(c.name)
                    if c.name in by_target
                    else pl.lit(None, dtype=c.type).alias(c.name)
                    for c in sink_schema.columns
                ),
                self,
            )

        return (stmt.table, table, stmt.overwrite)

    def create_statement_set(self) -> StatementSet:
        return StatementSet(self)

    # insert jobs

    def _conform(self, target: str, table: Table) -> pl.LazyFrame:
        '''
        Validate a query against the sink schema and cast its columns (by
        position) to the sink column names and types.

        '''
        sink_schema = self._schema_of(target)
        source_schema = table.get_schema()

        if len(source_schema) != len(sink_schema):
            raise ValidationError(
                f'Column count mismatch inserting into {target!r}: query has '
                f'{len(source_schema)} columns, sink has {len(sink_schema)}'
            )

        exprs = []
        for src, dst in zip(source_schema.columns, sink_schema.columns, strict=True):
            if not can_cast_implicitly(src.type, dst.type):
                raise ValidationError(
                    f'Incompatible types inserting into {target!r}: query column '
                    f'{src.name} {src.sql_type} can not be written to '
                    f'{dst.name} {dst.sql_type}'
                )

            exprs.append(pl.col(src.name).cast(dst.type).alias(dst.name))

        return table.to_lazy().select(exprs)

    async def _check_not_null(self, target: str, frame: pl.LazyFrame) -> None:
        required = [c.name for c in self._schema_of(target).columns if not c.nullable]
        if not required:
            return

        counts = await self.executor.collect(
            frame.select(pl.col(name).null_count() for name in required)
        )
        for name, nulls in zip(required, counts.row(0), strict=True):
            if nulls:
                raise ValidationError(
                    f'Column {name!r} of sink {target!r} is NOT NULL but the '
                    f'query produced {nulls} null values'
                )

    async def execute_inserts_async(
        self,
        inserts: Sequence[InsertTarget],
        *,
        job_name: str = 'insert',
    ) -> TableResult:
        '''
        Run one job writing every (sink, table, overwrite) insert, sinks are
        validated before any of them is written.

        '''
        if not inserts:
            raise ValidationError('No inserts to execute')

        planned: list[tuple[str, Connector, pl.LazyFrame, bool]] = []
        for target, table, overwrite in inserts:
            if target in self._views:
                raise CatalogError(f'View {target!r} can not be used as a sink')

            if target not in self._tables:
                raise TableNotFoundError(target)

            if any(p[0] == target for p in planned):
                raise ValidationError(f'Sink {target!r} used twice in one job')

            connector = self._connectors[target]
            connector.check_sink(overwrite)
            planned.append((target, connector, self._conform(target, table), overwrite))

        job = JobClient(job_name)
        job._set_status(JobStatus.RUNNING)
        self._log.info(
            f'submitting job {job_name} ({job.job_id}) writing into '
            f'{", ".join(p[0] for p in planned)}'
        )
        start = time.perf_counter_ns()

        staged: dict[str, StagedWrite] = {}
        committed: set[str] = set()
        errors: list[Exception] = []

        async def _check(target: str, frame: pl.LazyFrame) -> None:
            try:
                await self._check_not_null(target, frame)

            except Exception as e:
                errors.append(e)

        async def _stage(
            target: str,
            connector: Connector,
            frame: pl.LazyFrame,
            overwrite: bool
        ) -> None:
            try:
                staged[target] = await connector.stage(
                    frame,
                    overwrite=overwrite,
                    executor=self.executor,
                )

            except Exception as e:
                errors.append(e)

        # no sink output becomes visible unless every sink validated and staged
        async with anyio.create_task_group() as tg:
            for target, _, frame, _ in planned:
                tg.start_soon(_check, target, frame)

        if not errors:
            async with anyio.create_task_group() as tg:
                for target, connector, frame, overwrite in planned:
                    tg.start_soon(_stage, target, connector, frame, overwrite)

        try:
            if errors:
                raise errors[0]

            for target, *_ in planned:
                staged[target].commit()
                committed.add(target)

        except Exception as err:
            job._set_status(JobStatus.FAILED)
            for target, pending in staged.items():
                if target not in committed:
                    pending.abort()

            self._log.error(f'job {job_name} ({job.job_id}) failed: {err}')
            if isinstance(err, FlowTableError):
                raise

            if isinstance(err, (pl.exceptions.PolarsError, OSError)):
                raise JobExecutionError(f'Job {job_name} failed: {err}') from err

            raise

        rows_written = {target: staged[target].rows for target, *_ in planned}

        job._set_result(rows_written)
        self._log.info(
            f'job {job_name} ({job.job_id}) finished, took '
            f'{format_elapsed(time.perf_counter_ns() - start)}, rows written: '
            + ', '.join(f'{t}={n:,}' for t, n in rows_written.items())
        )

        names = [p[0] for p in planned]
        return TableResult(
            ResultKind.SUCCESS_WITH_CONTENT,
            Schema((name, 'BIGINT') for name in names),
            frame=pl.DataFrame(
                [tuple(rows_written[n] for n in names)],
                schema={name: pl.Int64 for name in names},
                orient='row',
            ),
            job_client=job,
            executor=self.executor,
        )

    def execute_inserts(
        self,
        inserts: Sequence[InsertTarget],
        *,
        job_name: str = 'insert',
    ) -> TableResult:
        return anyio.run(
            partial(self.execute_inserts_async, inserts, job_name=job_name)
        )


class StatementSet:
    '''
    Several inserts executed as a single job.

    '''
    def __init__(self, env: TableEnvironment) -> None:
        self._env = env
        self._inserts: list[InsertTarget] = []

    def add_insert(
        self,
        target_path: str,
        table: Table,
        overwrite: bool = False
    ) -> StatementSet:
        self._inserts.append((target_path, table, overwrite))
        return self

    def add_insert_sql(self, statement: str) -> StatementSet:
        stmt = parse_statement(statement)
        if not isinstance(stmt, Insert):
            raise SqlParseError('Only INSERT statements can be added', statement)

        self._inserts.append(self._env._insert_target(stmt))
        return self

    def explain(self) -> str:
        return '\n\n'.join(
            f'== {target} ==\n{table.explain()}'
            for target, table, _ in self._inserts
        )

    def execute(self) -> TableResult:
        return self._env.execute_inserts(self._inserts, job_name='statement-set')

    async def execute_async(self) -> TableResult:
        return await self._env.execute_inserts_async(
            self._inserts, job_name='statement-set'
        )
