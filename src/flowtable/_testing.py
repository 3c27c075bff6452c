from pathlib import Path
from typing import Iterable

from flowtable.environment import EnvironmentSettings, TableEnvironment


sample_words: tuple[str, ...] = ('flink', 'pyflink', 'flink')

sample_counts: list[tuple[str, int]] = [('flink', 2), ('pyflink', 1)]


def write_lines(path: Path, lines: Iterable[str]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(''.join(f'{line}\n' for line in lines))
    return path


def read_lines(path: Path) -> list[str]:
    return path.read_text().splitlines()


def make_env(datadir: Path, **kwargs) -> TableEnvironment:
    return TableEnvironment.create(
        EnvironmentSettings.in_batch_mode(datadir=datadir, **kwargs)
    )


def csv_table_ddl(
    name: str,
    columns: str,
    path: Path,
    *,
    delimiter: str = ',',
    extra: dict[str, str] | None = None,
) -> str:
    options = {
        'connector': 'filesystem',
        'format': 'csv',
        'path': str(path),
        'csv.field-delimiter': delimiter,
        **(extra or {}),
    }
    opts = ',\n'.join(f"    '{k}' = '{v}'" for k, v in options.items())
    return f'CREATE TABLE {name} ({columns}) WITH (\n{opts}\n)'
