'''
Misc internal utilities

'''
import os
import logging

from pathlib import Path

import requests

from flowtable.errors import ConnectorError


log = logging.getLogger(__name__)


def format_elapsed(elapsed_ns: int) -> str:
    '''
    Render a nanosecond duration as milliseconds, upgrading to seconds when
    it reaches one second.

    '''
    elapsed = elapsed_ns // 1_000_000

    if elapsed >= 1_000:
        return f'{elapsed / 1_000:,.2f} sec'

    return f'{elapsed:,} ms'


def visible_files(path: Path) -> list[Path]:
    '''
    List data files under a directory, skipping hidden and in-progress files
    (names starting with '.' or '_').

    '''
    return sorted(
        p
        for p in path.rglob('*')
        if p.is_file()
        and not any(
            part.startswith(('.', '_'))
            for part in p.relative_to(path).parts
        )
    )


remote_src_protos: tuple[str, ...] = (
    'http',
    'https',
)


def is_remote(path: str | Path) -> bool:
    return isinstance(path, str) and any(
        path.startswith(f'{proto}://') for proto in remote_src_protos
    )


default_datadir: Path = Path.home() / '.flowtable'


def get_root_datadir() -> Path:
    return Path(os.getenv('FLOWTABLE_DATADIR', default_datadir))


http_timeout: float = 30.0


def solve_redirects(url: str) -> str:
    head = requests.head(url, timeout=http_timeout)

    # a single Location hop, the final GET follows any further ones
    return head.headers.get('Location', url)


def remote_cache_name(
    url: str,
    etag: str,
    *,
    prefix: str | None = None,
    suffix: str | None = None,
) -> str:
    '''
    File name a remote source is cached under, the ETag changes whenever
    the remote content does.

    '''
    # weak etags are prefixed with 'W/'
    etag = etag.removeprefix('W/').strip('"')

    if not suffix:
        url_filename = url.split('?')[0].rsplit('/', 1)[-1]
        suffix = url_filename.rsplit('.', 1)[-1] if '.' in url_filename else 'data'

    fname = f'{etag}.{suffix}'
    return f'{prefix}-{fname}' if prefix else fname


def fetch_remote_file(
    datadir: Path,
    url: str,
    *,
    prefix: str | None = None,
    suffix: str | None = None
) -> Path:
    '''
    Download `url` into `datadir` once per ETag and return the local path.

    '''
    head = requests.head(url, timeout=http_timeout)
    head.raise_for_status()

    etag = head.headers.get('ETag')
    if not etag:
        raise ConnectorError(
            f'Remote source {url} did not report an ETag, it can not be cached'
        )

    local_path = datadir / remote_cache_name(url, etag, prefix=prefix, suffix=suffix)
    if local_path.is_file():
        log.debug(f'using cached {local_path} for {url}')
        return local_path

    local_path.parent.mkdir(parents=True, exist_ok=True)
    log.info(f'downloading {url} into {local_path}')

    tmp = local_path.with_name(local_path.name + '.tmp')
    with requests.get(url, stream=True, timeout=http_timeout) as resp:
        resp.raise_for_status()
        with open(tmp, 'wb') as f:
            for chunk in resp.iter_content(chunk_size=64 * 1024):
                f.write(chunk)

    tmp.replace(local_path)
    return local_path
