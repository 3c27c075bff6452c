import logging
from datetime import datetime, timezone
from typing import IO, Iterable

from colorlog import ColoredFormatter


log_format = '%(asctime)s %(log_color)s%(levelname)s%(reset)s %(name)s: %(message)s'

log_colors = {
    'DEBUG': 'cyan',
    'INFO': 'green',
    'WARNING': 'yellow',
    'ERROR': 'red',
    'CRITICAL': 'bold_red',
}


class UTCColoredFormatter(ColoredFormatter):
    '''
    ISO8601 UTC timestamps with millisecond precision and a trailing 'Z'.

    '''
    def formatTime(self, record, datefmt=None):
        if datefmt:
            return super().formatTime(record, datefmt)

        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return ts.strftime('%Y-%m-%dT%H:%M:%S') + f'.{int(record.msecs):03d}Z'


def setup_logging(
    loglevel: str = 'info',
    silence: Iterable[str] = ('urllib3',),
    stream: IO[str] | None = None,
) -> logging.Handler:
    '''
    Attach a single colored handler to the `flowtable` logger, writing to
    `stream` (stderr by default). Stdout is left to query results and print
    sinks.

    '''
    for noisy in silence:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        UTCColoredFormatter(log_format, log_colors=log_colors, stream=stream)
    )

    pkg_log = logging.getLogger('flowtable')
    for old in list(pkg_log.handlers):
        pkg_log.removeHandler(old)

    pkg_log.addHandler(handler)
    pkg_log.setLevel(loglevel.upper())
    return handler
