import polars as pl
import pytest

from flowtable import col, lit
from flowtable.errors import ValidationError
from flowtable.schema import Schema


@pytest.fixture
def words(env):
    return env.from_elements(
        [('flink',), ('pyflink',), ('flink',)],
        ['word'],
    )


@pytest.fixture
def scores(env):
    return env.from_elements(
        [
            ('alice', 'math', 90),
            ('bob', 'math', 70),
            ('alice', 'art', 60),
            ('carol', 'art', None),
        ],
        [('name', 'STRING'), ('subject', 'STRING'), ('score', 'INT')],
    )


def test_word_count_query(words):
    counts = words.group_by(words.word).select(words.word, lit(1).count)

    assert counts.get_schema() == Schema([('word', 'STRING'), ('EXPR$1', 'BIGINT')])
    assert counts.execute().collect() == [('flink', 2), ('pyflink', 1)]


def test_attribute_access(words):
    assert words.word.name == 'word'
    assert words['word'].name == 'word'
    assert 'word' in dir(words)
    assert repr(words) == 'Table(word STRING)'

    with pytest.raises(AttributeError):
        words.missing

    with pytest.raises(KeyError):
        words['missing']


def test_select_names(scores):
    tab = scores.select(
        scores.name,
        scores.score + 10,
        (scores.score * 2).alias('double'),
        'subject',
    )
    assert tab.get_schema().names == ['name', 'EXPR$1', 'double', 'subject']

    rows = tab.execute().collect()
    assert rows[0] == ('alice', 100, 180, 'math')
    assert rows[3] == ('carol', None, None, 'art')


def test_where(scores):
    tab = scores.where((scores.score >= 70) & (scores.subject == 'math'))
    assert tab.select(scores.name).execute().collect() == [('alice',), ('bob',)]

    nulls = scores.filter(scores.score.is_null).select('name')
    assert nulls.execute().collect() == [('carol',)]

    with pytest.raises(ValidationError):
        scores.where(scores.score.sum > 10)


def test_expression_truth_value(scores):
    with pytest.raises(TypeError):
        if scores.score > 1:
            pass


def test_aggregates(scores):
    tab = scores.group_by(scores.name).select(
        scores.name,
        scores.score.sum.alias('total'),
        scores.score.avg.alias('mean'),
        scores.score.count.alias('scored'),
        scores.subject.count_distinct.alias('subjects'),
        scores.score.max,
    )
    assert tab.get_schema().names == [
        'name', 'total', 'mean', 'scored', 'subjects', 'EXPR$5'
    ]
    rows = tab.execute().collect()
    assert rows[:2] == [
        ('alice', 150, 75.0, 2, 2, 90),
        ('bob', 70, 70.0, 1, 1, 70),
    ]
    carol = dict(zip(tab.get_schema().names, rows[2]))
    assert carol['mean'] is None
    assert carol['scored'] == 0
    assert carol['subjects'] == 1


def test_group_by_multiple_keys(scores):
    tab = (
        scores.group_by(scores.subject, scores.name.upper_case)
        .select(scores.name.upper_case.alias('upper'), scores.subject, lit(1).count)
    )
    assert tab.execute().collect() == [
        ('ALICE', 'math', 1),
        ('BOB', 'math', 1),
        ('ALICE', 'art', 1),
        ('CAROL', 'art', 1),
    ]


def test_group_by_without_aggregates(words):
    tab = words.group_by(words.word).select(words.word)
    assert tab.execute().collect() == [('flink',), ('pyflink',)]


def test_group_by_rejects_plain_columns(scores):
    with pytest.raises(ValidationError):
        scores.group_by(scores.name).select(scores.name, scores.subject)

    with pytest.raises(ValidationError):
        scores.group_by(scores.score.sum)


def test_distinct_order_limit(scores):
    subjects = scores.select(scores.subject).distinct()
    assert subjects.execute().collect() == [('math',), ('art',)]

    ranked = scores.order_by(scores.score, descending=True).select('name')
    assert ranked.execute().collect() == [
        ('alice',), ('bob',), ('alice',), ('carol',)
    ]

    page = scores.order_by('name').limit(2, offset=1).select('name', 'subject')
    assert page.execute().collect() == [('alice', 'art'), ('bob', 'math')]

    with pytest.raises(ValueError):
        scores.limit(-1)


def test_column_operations(scores):
    tab = scores.add_columns(scores.score.cast('BIGINT'), scores.name.char_length.alias('len'))
    assert tab.get_schema().names == ['name', 'subject', 'score', 'EXPR$3', 'len']
    assert tab.get_schema().column('EXPR$3').type == pl.Int64

    renamed = scores.rename_columns(scores.name.alias('student'))
    assert renamed.get_schema().names == ['student', 'subject', 'score']

    dropped = scores.drop_columns(scores.subject, 'score')
    assert dropped.get_schema().names == ['name']

    with pytest.raises(ValidationError):
        scores.drop_columns('missing')

    with pytest.raises(ValidationError):
        scores.rename_columns(scores.score + 1)


def test_union_all(env, words):
    more = env.from_elements([('table',)], ['word'])
    assert words.union_all(more).execute().collect() == [
        ('flink',), ('pyflink',), ('flink',), ('table',)
    ]

    other = env.from_elements([(1,)], ['word'])
    with pytest.raises(ValidationError):
        words.union_all(other)


def test_string_functions(env):
    tab = env.from_elements([('  Flink ',), (None,)], [('word', 'STRING')])
    out = tab.select(
        tab.word.trim.lower_case.alias('lower'),
        tab.word.trim.in_('Flink', 'Table').alias('known'),
        tab.word.is_not_null.alias('present'),
    )
    first, second = out.execute().collect()
    assert first == ('flink', True, True)
    assert second[0] is None
    assert second[2] is False


def test_polars_expressions(words):
    tab = words.select(pl.col('word'), pl.col('word').str.len_chars().alias('n'))
    assert tab.get_schema().names == ['word', 'n']


def test_print_schema(capsys, words):
    words.group_by(words.word).select(words.word, lit(1).count.alias('count')).print_schema()
    out = capsys.readouterr().out
    assert out == '(\n  `word` STRING,\n  `count` BIGINT\n)\n'


def test_to_polars(words):
    df = words.to_polars()
    assert df.schema == pl.Schema({'word': pl.String})
    assert df.height == 3


def test_col_and_lit(words):
    tab = words.select(col('word'), lit('x').alias('tag'))
    assert tab.execute().collect()[0] == ('flink', 'x')


@pytest.mark.anyio
async def test_collect_async(words):
    result = words.group_by(words.word).select(words.word, lit(1).count).execute()
    assert await result.collect_async() == [('flink', 2), ('pyflink', 1)]
