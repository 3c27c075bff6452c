import logging

import pytest
from click.testing import CliRunner

from flowtable.cli import cli

from flowtable._testing import read_lines, sample_words, write_lines


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    pkg_log = logging.getLogger('flowtable')
    for handler in list(pkg_log.handlers):
        pkg_log.removeHandler(handler)
    pkg_log.setLevel(logging.NOTSET)


def test_wordcount(tmp_path, monkeypatch):
    monkeypatch.setenv('FLOWTABLE_DATADIR', str(tmp_path / '.datadir'))
    words = write_lines(tmp_path / 'input', sample_words)
    output = tmp_path / 'output'

    runner = CliRunner()
    result = runner.invoke(cli, ['wordcount', str(words), str(output)])
    assert result.exit_code == 0, result.output
    assert read_lines(output) == ['flink\t2', 'pyflink\t1']

    result = runner.invoke(cli, ['wordcount', str(words), str(output)])
    assert result.exit_code == 1
    assert 'already exists' in result.output

    result = runner.invoke(
        cli, ['--parallelism', '2', 'wordcount', '--overwrite', str(words), str(output)]
    )
    assert result.exit_code == 0, result.output


def test_wordcount_missing_input(tmp_path):
    result = CliRunner().invoke(
        cli, ['wordcount', str(tmp_path / 'nope'), str(tmp_path / 'out')]
    )
    assert result.exit_code == 2


def test_sql_script(tmp_path, monkeypatch):
    monkeypatch.setenv('FLOWTABLE_DATADIR', str(tmp_path / '.datadir'))
    words = write_lines(tmp_path / 'input', sample_words)
    output = tmp_path / 'output'

    script = tmp_path / 'job.sql'
    script.write_text(f'''
        -- word count over csv files
        CREATE TABLE src (word STRING) WITH (
            'connector' = 'filesystem',
            'path' = '{words}'
        );
        CREATE TABLE dst (word STRING, n BIGINT) WITH (
            'connector' = 'filesystem',
            'path' = '{output}',
            'csv.field-delimiter' = '|'
        );
        SHOW TABLES;
        INSERT INTO dst SELECT word, COUNT(*) FROM src GROUP BY word;
    ''')

    result = CliRunner().invoke(cli, ['sql', str(script)])
    assert result.exit_code == 0, result.output

    lines = result.output.splitlines()
    assert lines[:2] == ['OK', 'OK']
    assert '|        dst |' in lines
    assert sorted(read_lines(output)) == ['flink|2', 'pyflink|1']


def test_sql_stdin_errors(tmp_path, monkeypatch):
    monkeypatch.setenv('FLOWTABLE_DATADIR', str(tmp_path / '.datadir'))

    result = CliRunner().invoke(cli, ['sql', '-'], input='DESCRIBE missing;')
    assert result.exit_code == 1
    assert "Table 'missing' was not found" in result.output


def test_bad_parallelism_env(tmp_path, monkeypatch):
    monkeypatch.setenv('FLOWTABLE_PARALLELISM', 'many')
    words = write_lines(tmp_path / 'input', sample_words)

    result = CliRunner().invoke(
        cli, ['wordcount', str(words), str(tmp_path / 'output')]
    )
    assert result.exit_code == 2
    assert "FLOWTABLE_PARALLELISM must be an integer, got 'many'" in result.output
    assert isinstance(result.exception, SystemExit)
    assert not (tmp_path / 'output').exists()
