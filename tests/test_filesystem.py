import pytest

from flowtable import TableDescriptor, lit
from flowtable.errors import ConnectorError, JobExecutionError, SinkExistsError
from flowtable.schema import Schema

from flowtable._testing import (
    csv_table_ddl,
    read_lines,
    write_lines,
)


def test_scan_directory(env, tmp_path):
    data = tmp_path / 'data'
    write_lines(data / 'part-0.csv', ['a,1', 'b,2'])
    write_lines(data / 'nested' / 'part-1.csv', ['c,3'])
    write_lines(data / '.part-2.csv.crc', ['garbage'])
    write_lines(data / '_SUCCESS', [])

    env.execute_sql(csv_table_ddl('src', 'k STRING, v INT', data))
    tab = env.from_path('src')

    assert sorted(tab.execute().collect()) == [('a', 1), ('b', 2), ('c', 3)]


def test_scan_empty_directory(env, tmp_path):
    data = tmp_path / 'empty'
    data.mkdir()

    env.execute_sql(csv_table_ddl('src', 'k STRING', data))
    assert env.from_path('src').execute().collect() == []


def test_missing_source(env, tmp_path):
    env.execute_sql(csv_table_ddl('src', 'k STRING', tmp_path / 'nope'))

    with pytest.raises(ConnectorError):
        env.from_path('src')


def test_csv_options(env, tmp_path):
    path = write_lines(
        tmp_path / 'input.csv',
        ['# header comment', "'x;y';N/A", 'z;5'],
    )
    env.execute_sql(csv_table_ddl(
        'src', 'k STRING, v INT', path,
        delimiter=';',
        extra={
            'csv.quote-character': "''",
            'csv.null-literal': 'N/A',
            'csv.allow-comments': 'true',
        },
    ))

    assert env.from_path('src').execute().collect() == [('x;y', None), ('z', 5)]


def test_tab_delimited_sink(env, tmp_path):
    out = tmp_path / 'out' / 'counts.tsv'
    env.execute_sql(csv_table_ddl('sink', 'word STRING, n BIGINT', out, delimiter='\\t'))

    tab = env.from_elements([('a', 1), ('b', None)], [('word', 'STRING'), ('n', 'BIGINT')])
    result = tab.execute_insert('sink')

    assert result.collect() == [(2,)]
    assert result.get_job_client().get_job_execution_result() == {'sink': 2}
    assert read_lines(out) == ['a\t1', 'b\t']
    assert not out.with_name('counts.tsv.tmp').exists()


def test_existing_sink(env, tmp_path):
    out = write_lines(tmp_path / 'out.csv', ['old'])
    env.execute_sql(csv_table_ddl('sink', 'word STRING', out))
    tab = env.from_elements([('new',)], ['word'])

    with pytest.raises(SinkExistsError) as err:
        tab.execute_insert('sink')

    assert 'already exists' in str(err.value)
    assert read_lines(out) == ['old']

    tab.execute_insert('sink', overwrite=True)
    assert read_lines(out) == ['new']


def test_overwrite_directory(env, tmp_path):
    out = tmp_path / 'out'
    write_lines(out / 'part-0.csv', ['old'])
    env.execute_sql(csv_table_ddl('sink', 'word STRING', out))

    env.from_elements([('new',)], ['word']).execute_insert('sink', overwrite=True)

    assert out.is_file()
    assert read_lines(out) == ['new']


def test_overwrite_directory_reading_itself(env, tmp_path):
    out = tmp_path / 'out'
    write_lines(out / 'part-0.csv', ['flink', 'pyflink'])
    write_lines(out / 'part-1.csv', ['flink'])
    env.execute_sql(csv_table_ddl('t', 'word STRING', out))

    result = env.execute_sql("INSERT OVERWRITE t SELECT word FROM t WHERE word = 'flink'")

    assert result.collect() == [(2,)]
    assert out.is_file()
    assert read_lines(out) == ['flink', 'flink']
    assert not (tmp_path / 'out.tmp').exists()


def test_failed_overwrite_keeps_data(env, tmp_path, words_file):
    out = tmp_path / 'out'
    write_lines(out / 'part-0.csv', ['1', '2'])
    env.execute_sql(csv_table_ddl('src', 'word STRING', words_file))
    env.execute_sql(csv_table_ddl('sink', 'n BIGINT', out))

    src = env.from_path('src')
    with pytest.raises(JobExecutionError):
        src.select(src.word.cast('BIGINT')).execute_insert('sink', overwrite=True)

    assert read_lines(out / 'part-0.csv') == ['1', '2']
    assert not (tmp_path / 'out.tmp').exists()


def test_commit_os_error(env, tmp_path, monkeypatch):
    out = write_lines(tmp_path / 'out.csv', ['old'])
    env.execute_sql(csv_table_ddl('sink', 'word STRING', out))

    def readonly(tmp, location):
        raise PermissionError(f'read only: {location}')

    monkeypatch.setattr('flowtable.connectors.filesystem.commit_frame', readonly)

    with pytest.raises(JobExecutionError) as err:
        env.from_elements([('new',)], ['word']).execute_insert('sink', overwrite=True)

    assert isinstance(err.value.__cause__, PermissionError)
    assert read_lines(out) == ['old']
    assert not (tmp_path / 'out.csv.tmp').exists()


@pytest.mark.parametrize('fmt', ['parquet', 'ipc', 'json'])
def test_binary_formats(env, tmp_path, fmt):
    path = tmp_path / f'words.{fmt}'
    schema = Schema([('word', 'STRING'), ('n', 'BIGINT')])
    descriptor = (
        TableDescriptor.for_connector('filesystem')
        .schema(schema)
        .option('path', str(path))
        .format(fmt)
        .build()
    )
    env.create_temporary_table('sink', descriptor)
    env.create_temporary_table('src', descriptor)

    tab = env.from_elements([('flink', 2), ('pyflink', 1)], schema)
    tab.execute_insert('sink').wait()

    src = env.from_path('src')
    assert src.get_schema() == schema
    assert src.execute().collect() == [('flink', 2), ('pyflink', 1)]


def test_empty_result(env, tmp_path, words_file):
    out = tmp_path / 'out.csv'
    env.execute_sql(csv_table_ddl('src', 'word STRING', words_file))
    env.execute_sql(csv_table_ddl('sink', 'word STRING', out))

    src = env.from_path('src')
    result = src.where(src.word == 'missing').execute_insert('sink')

    assert result.collect() == [(0,)]
    assert out.exists()


def test_invalid_options(env, tmp_path):
    with pytest.raises(ConnectorError):
        env.execute_sql(csv_table_ddl(
            'a', 'k STRING', tmp_path, extra={'csv.unknown': 'x'}
        ))

    with pytest.raises(ConnectorError):
        env.execute_sql(
            "CREATE TABLE b (k STRING) WITH ('connector' = 'filesystem')"
        )

    with pytest.raises(ConnectorError):
        env.execute_sql(
            f"CREATE TABLE c (k STRING) WITH ('connector' = 'filesystem', "
            f"'path' = '{tmp_path}', 'format' = 'avro')"
        )

    with pytest.raises(ConnectorError):
        env.execute_sql(
            "CREATE TABLE d (k STRING) WITH ('connector' = 'kafka')"
        )

    with pytest.raises(ConnectorError):
        env.execute_sql("CREATE TABLE e (k STRING) WITH ('path' = 'x')")

    assert env.list_tables() == []


def test_remote_sink_is_read_only(env):
    env.execute_sql(
        "CREATE TABLE remote (k STRING) WITH ("
        "'connector' = 'filesystem', "
        "'path' = 'https://example.com/words.csv')"
    )

    with pytest.raises(ConnectorError):
        env.from_elements([('x',)], ['k']).execute_insert('remote')


def test_print_sink(env, capsys):
    env.execute_sql(
        "CREATE TABLE out (word STRING, n BIGINT, ok BOOLEAN) "
        "WITH ('connector' = 'print', 'print-identifier' = 'words')"
    )
    tab = env.from_elements(
        [('flink', 2, True), ('pyflink', None, False)],
        [('word', 'STRING'), ('n', 'BIGINT'), ('ok', 'BOOLEAN')],
    )
    tab.execute_insert('out')

    assert capsys.readouterr().out.splitlines() == [
        'words> +I[flink, 2, true]',
        'words> +I[pyflink, null, false]',
    ]


def test_print_sink_stderr(env, capsys):
    env.execute_sql(
        "CREATE TABLE out (n INT) "
        "WITH ('connector' = 'print', 'standard-error' = 'true')"
    )
    env.from_elements([(1,)], [('n', 'INT')]).execute_insert('out')

    captured = capsys.readouterr()
    assert captured.out == ''
    assert captured.err == '+I[1]\n'


def test_blackhole_sink(env, words_file):
    env.execute_sql(csv_table_ddl('src', 'word STRING', words_file))
    env.execute_sql(
        "CREATE TABLE discard (word STRING, n BIGINT) WITH ('connector' = 'blackhole')"
    )

    src = env.from_path('src')
    result = src.group_by(src.word).select(src.word, lit(1).count).execute_insert('discard')
    assert result.collect() == [(2,)]

    with pytest.raises(ConnectorError):
        env.from_path('discard')
