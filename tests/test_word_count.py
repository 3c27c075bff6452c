import pytest

from flowtable.errors import SinkExistsError
from flowtable.word_count import SINK_TABLE, SOURCE_TABLE, word_count

from flowtable._testing import (
    make_env,
    read_lines,
    sample_counts,
    write_lines,
)


def test_word_count(env, words_file, tmp_path):
    output = tmp_path / 'output'

    result = word_count(words_file, output, env=env)

    assert read_lines(output) == [f'{word}\t{n}' for word, n in sample_counts]
    assert result.get_job_client().get_job_execution_result() == {SINK_TABLE: 2}
    assert env.list_tables() == [SINK_TABLE, SOURCE_TABLE]


def test_sink_schema(env, words_file, tmp_path):
    word_count(words_file, tmp_path / 'output', env=env)

    assert env.execute_sql(f'DESCRIBE {SINK_TABLE}').collect() == [
        ('word', 'STRING', True, None),
        ('count', 'BIGINT', True, None),
    ]


def test_existing_output(words_file, tmp_path):
    output = write_lines(tmp_path / 'output', ['stale\t1'])

    with pytest.raises(SinkExistsError):
        word_count(words_file, output, env=make_env(tmp_path / '.datadir'))

    assert read_lines(output) == ['stale\t1']

    word_count(
        words_file,
        output,
        overwrite=True,
        env=make_env(tmp_path / '.datadir'),
    )
    assert read_lines(output) == ['flink\t2', 'pyflink\t1']


def test_first_appearance_order(env, tmp_path):
    words = write_lines(
        tmp_path / 'words',
        ['table', 'api', 'table', 'sql', 'api', 'table'],
    )
    output = tmp_path / "it's output"

    word_count(words, output, env=env)

    assert read_lines(output) == ['table\t3', 'api\t2', 'sql\t1']


def test_input_directory(env, tmp_path):
    data = tmp_path / 'data'
    write_lines(data / 'part-0', ['flink', 'pyflink'])
    write_lines(data / 'part-1', ['flink'])
    write_lines(data / '.part-1.crc', ['ignored'])

    output = tmp_path / 'output'
    word_count(data, output, env=env)

    assert read_lines(output) == ['flink\t2', 'pyflink\t1']
