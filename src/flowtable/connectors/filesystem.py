from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import polars as pl

from flowtable._utils import fetch_remote_file, is_remote, solve_redirects, visible_files
from flowtable.connectors.base import Connector, StagedWrite
from flowtable.errors import ConnectorError, SinkExistsError
from flowtable.lowlevel import PolarsExecutor
from flowtable.lowlevel.diskops import (
    FrameFormats,
    frame_formats,
    commit_frame,
    row_len,
    scan_frame,
    stage_frame,
)


log = logging.getLogger(__name__)


csv_options: tuple[str, ...] = (
    'field-delimiter',
    'quote-character',
    'disable-quote-character',
    'null-literal',
    'ignore-parse-errors',
    'allow-comments',
)

json_options: tuple[str, ...] = (
    'ignore-parse-errors',
)

format_options: dict[str, tuple[str, ...]] = {
    'csv': csv_options,
    'json': json_options,
    'parquet': (),
    'ipc': (),
}

_escapes = {
    '\\t': '\t',
    '\\n': '\n',
    '\\r': '\r',
    '\\\\': '\\',
}


def unescape_char(value: str) -> str:
    return _escapes.get(value, value)


class FileSystemConnector(Connector):
    '''
    Files on the local filesystem (or fetched over http), read as a file or a
    directory of files and written as a single file.

    '''
    identifier = 'filesystem'
    required_options = ('path',)
    optional_options = ('format',)

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)

        fmt = self.options.get('format', 'csv')
        if fmt not in frame_formats:
            raise ConnectorError(
                f'Unsupported format {fmt!r} for table {self.table!r}, '
                f'expected one of {", ".join(frame_formats)}'
            )
        self.format: FrameFormats = fmt

        self.source: str = self.options['path']
        self.remote = is_remote(self.source)
        self.path: Path | None = None if self.remote else Path(self.source).expanduser()

    def allowed_option(self, key: str) -> bool:
        if super().allowed_option(key):
            return True

        fmt, _, opt = key.partition('.')
        return opt in format_options.get(fmt, ())

    def _format_opt(self, key: str) -> str | None:
        return self.options.get(f'{self.format}.{key}')

    @property
    def field_delimiter(self) -> str:
        delim = unescape_char(self._format_opt('field-delimiter') or ',')
        if len(delim) != 1:
            raise ConnectorError(
                f'csv.field-delimiter must be a single character, got {delim!r}'
            )
        return delim

    @property
    def quote_char(self) -> str | None:
        if self.bool_option('csv.disable-quote-character'):
            return None

        quote = unescape_char(self._format_opt('quote-character') or '"')
        if len(quote) != 1:
            raise ConnectorError(
                f'csv.quote-character must be a single character, got {quote!r}'
            )
        return quote

    def scan_args(self) -> dict[str, Any]:
        args: dict[str, Any] = {'format': self.format}
        match self.format:
            case 'csv':
                args['has_header'] = False
                args['separator'] = self.field_delimiter
                args['quote_char'] = self.quote_char
                args['schema'] = self.schema.as_polars()
                args['ignore_errors'] = self.bool_option('csv.ignore-parse-errors')
                if (null := self._format_opt('null-literal')) is not None:
                    args['null_values'] = null

                if self.bool_option('csv.allow-comments'):
                    args['comment_prefix'] = '#'

            case 'json':
                args['schema'] = self.schema.as_polars()
                args['ignore_errors'] = self.bool_option('json.ignore-parse-errors')

        return args

    def sink_args(self) -> dict[str, Any]:
        args: dict[str, Any] = {'format': self.format}
        if self.format == 'csv':
            args['include_header'] = False
            args['separator'] = self.field_delimiter
            if (quote := self.quote_char) is not None:
                args['quote_char'] = quote
            else:
                args['quote_style'] = 'never'

            args['null_value'] = self._format_opt('null-literal') or ''

        return args

    def _resolve_source(self) -> Path:
        if self.remote:
            url = solve_redirects(self.source)
            return fetch_remote_file(
                self.datadir / 'remote', url, prefix=self.table
            )

        assert self.path is not None
        return self.path

    def files(self) -> list[Path]:
        path = self._resolve_source()
        if not path.exists():
            raise ConnectorError(
                f'Source path {path} of table {self.table!r} does not exist'
            )

        if path.is_dir():
            return visible_files(path)

        return [path]

    def scan(self) -> pl.LazyFrame:
        files = self.files()
        if not files:
            log.debug(f'no files under {self.source}, {self.table} is empty')
            return self.empty()

        frame = scan_frame(files, **self.scan_args())

        if self.format in ('parquet', 'ipc'):
            frame = frame.select(
                pl.col(col.name).cast(col.type) for col in self.schema.columns
            )

        return frame

    def check_sink(self, overwrite: bool) -> None:
        if self.remote:
            raise ConnectorError(
                f'Remote path {self.source} of table {self.table!r} is read only'
            )

        assert self.path is not None
        if self.path.exists() and not overwrite:
            raise SinkExistsError(self.path)

    async def stage(
        self,
        frame: pl.LazyFrame,
        *,
        overwrite: bool,
        executor: PolarsExecutor,
    ) -> StagedFile:
        self.check_sink(overwrite)

        assert self.path is not None
        self.path.parent.mkdir(parents=True, exist_ok=True)

        # the target, even a directory being read by this same query, stays
        # in place until commit
        tmp = await stage_frame(
            frame,
            self.path,
            executor=executor,
            **self.sink_args(),
        )

        try:
            rows = 0
            if tmp.stat().st_size > 0:
                args = self.scan_args()
                fmt = args.pop('format')
                rows = await row_len(tmp, format=fmt, executor=executor, **args)

        except BaseException:
            tmp.unlink(missing_ok=True)
            raise

        return StagedFile(rows, tmp, self.path)


class StagedFile(StagedWrite):
    def __init__(self, rows: int, tmp: Path, target: Path) -> None:
        super().__init__(rows)
        self.tmp = tmp
        self.target = target

    def commit(self) -> None:
        commit_frame(self.tmp, self.target)

    def abort(self) -> None:
        self.tmp.unlink(missing_ok=True)
