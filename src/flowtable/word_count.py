'''
The classic word count, reading a text file with one word per line and
writing `word<TAB>count` lines:

    $ printf 'flink\npyflink\nflink\n' > /tmp/input
    $ flowtable wordcount /tmp/input /tmp/output
    $ cat /tmp/output
    flink	2
    pyflink	1

The output path must not exist unless `overwrite` is set.

'''
from __future__ import annotations

from pathlib import Path

from flowtable.descriptors import TableDescriptor
from flowtable.dtypes import DataTypes
from flowtable.environment import EnvironmentSettings, TableEnvironment
from flowtable.expressions import lit
from flowtable.result import TableResult
from flowtable.schema import Schema


SOURCE_TABLE = 'mySource'
SINK_TABLE = 'mySink'

SINK_DDL = '''
    CREATE TABLE {name} (
        word VARCHAR,
        `count` BIGINT
    ) WITH (
        'connector' = 'filesystem',
        'format' = 'csv',
        'csv.field-delimiter' = '\\t',
        'path' = '{path}'
    )
'''


def _sql_str(value: str) -> str:
    return value.replace('\'', '\'\'')


def register_word_count_tables(
    env: TableEnvironment,
    input_path: str | Path,
    output_path: str | Path,
) -> None:
    env.create_temporary_table(
        SOURCE_TABLE,
        TableDescriptor.for_connector('filesystem')
        .schema(
            Schema.new_builder()
            .column('word', DataTypes.STRING())
            .build()
        )
        .option('path', str(input_path))
        .format('csv')
        .build()
    )
    env.execute_sql(
        SINK_DDL.format(name=SINK_TABLE, path=_sql_str(str(output_path)))
    )


def word_count(
    input_path: str | Path,
    output_path: str | Path,
    *,
    overwrite: bool = False,
    env: TableEnvironment | None = None,
) -> TableResult:
    '''
    Count occurrences of every word in `input_path` into `output_path`,
    words keep the order of their first appearance.

    '''
    env = env or TableEnvironment.create(EnvironmentSettings.in_batch_mode())
    register_word_count_tables(env, input_path, output_path)

    tab = env.from_path(SOURCE_TABLE)
    result = (
        tab.group_by(tab.word)
        .select(tab.word, lit(1).count)
        .execute_insert(SINK_TABLE, overwrite=overwrite)
    )
    result.wait()
    return result
