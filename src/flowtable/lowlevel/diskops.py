import logging
import shutil
from pathlib import Path
from typing import Any, Callable, Literal

import polars as pl

import pyarrow.parquet as pq

from flowtable.lowlevel.executor import PolarsExecutor


log = logging.getLogger(__name__)


FrameFormats = Literal['csv', 'ipc', 'parquet', 'json']

frame_formats: tuple[FrameFormats, ...] = ('csv', 'ipc', 'parquet', 'json')

_suffix_formats: dict[str, FrameFormats] = {
    'csv': 'csv',
    'tsv': 'csv',
    'ipc': 'ipc',
    'arrow': 'ipc',
    'feather': 'ipc',
    'parquet': 'parquet',
    'json': 'json',
    'ndjson': 'json',
    'jsonl': 'json',
}

_scanners: dict[FrameFormats, Callable[..., pl.LazyFrame]] = {
    'csv': pl.scan_csv,
    'ipc': pl.scan_ipc,
    'parquet': pl.scan_parquet,
    'json': pl.scan_ndjson,
}


def format_from_path(path: str | Path) -> FrameFormats:
    '''
    Guess a frame format from the file suffix, ignoring a trailing `.tmp`.

    '''
    parts = Path(path).name.split('.')
    if parts[-1] == 'tmp':
        parts.pop()

    if len(parts) < 2 or parts[-1] not in _suffix_formats:
        raise ValueError(f'Can not infer a frame format from {path}')

    return _suffix_formats[parts[-1]]


def _resolve_format(path: Any, format: FrameFormats | None) -> FrameFormats:
    if format is None:
        if isinstance(path, list):
            raise ValueError('A format is required when reading a list of files')

        return format_from_path(path)

    if format not in frame_formats:
        raise ValueError(f'Unsupported frame format {format!r}')

    return format


def scan_frame(
    path: str | Path | list[Path],
    *,
    format: FrameFormats | None = None,
    **kwargs
) -> pl.LazyFrame:
    '''
    Lazily read one file or a list of files sharing a format, extra kwargs go
    straight to the polars `scan_*` function.

    '''
    format = _resolve_format(path, format)
    return _scanners[format](path, **kwargs)


def sink_frame(
    frame: pl.LazyFrame,
    path: str | Path,
    *,
    format: FrameFormats | None = None,
    **kwargs
) -> pl.LazyFrame:
    '''
    Build the lazy `sink_*` query writing `frame` to `path`, nothing is
    written until the returned frame is collected.

    '''
    format = _resolve_format(path, format)

    sink_fn: Callable[..., pl.LazyFrame] = {
        'csv': frame.sink_csv,
        'ipc': frame.sink_ipc,
        'parquet': frame.sink_parquet,
        'json': frame.sink_ndjson,
    }[format]

    kwargs.setdefault('lazy', True)
    kwargs.setdefault('mkdir', True)
    return sink_fn(path, **kwargs)


def parquet_row_len(path: str | Path) -> int:
    # footer metadata, no pages are read
    return pq.ParquetFile(path).metadata.num_rows


async def row_len(
    path: Path,
    *,
    format: FrameFormats | None = None,
    executor: PolarsExecutor | None = None,
    **scan_kwargs
) -> int:
    '''
    Count the rows of a written file.

    '''
    format = _resolve_format(path, format)
    if format == 'parquet':
        return parquet_row_len(path)

    frame = scan_frame(path, format=format, **scan_kwargs).select(pl.len())

    df = (
        await executor.collect(frame)
        if executor
        else await frame.collect_async()
    )
    return df.item()


def staging_path(location: Path) -> Path:
    return location.with_name(location.name + '.tmp')


async def stage_frame(
    frame: pl.LazyFrame,
    location: Path,
    *,
    executor: PolarsExecutor | None = None,
    **kwargs
) -> Path:
    '''
    Write `frame` next to `location` as `<name>.tmp` and return that path,
    `location` itself is not touched. On failure the temporary file is
    removed.

    '''
    tmp = staging_path(location)
    query = sink_frame(frame, tmp, **kwargs)

    try:
        if executor:
            await executor.collect(query)

        else:
            await query.collect_async()

    except BaseException:
        tmp.unlink(missing_ok=True)
        raise

    return tmp


def commit_frame(tmp: Path, location: Path) -> None:
    '''
    Move a staged file into place, a directory at `location` is replaced.

    '''
    if location.is_dir():
        shutil.rmtree(location)

    tmp.replace(location)
    log.debug(f'wrote {location}')
