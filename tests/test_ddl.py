import pytest

from flowtable.ddl import (
    CreateTable,
    Describe,
    DropTable,
    Explain,
    Insert,
    Query,
    ShowTables,
    parse_statement,
    referenced_names,
    split_statements,
    to_engine_sql,
)
from flowtable.errors import SqlParseError


source_ddl = '''
    create table mySource (
        word VARCHAR
    ) with (
        'connector' = 'filesystem',
        'format' = 'csv',
        'path' = '/tmp/input'
    )
'''


def test_create_table():
    stmt = parse_statement(source_ddl)

    assert isinstance(stmt, CreateTable)
    assert stmt.name == 'mySource'
    assert not stmt.if_not_exists
    assert [(c.name, c.type, c.nullable) for c in stmt.columns] == [
        ('word', 'VARCHAR', True)
    ]
    assert stmt.options == {
        'connector': 'filesystem',
        'format': 'csv',
        'path': '/tmp/input',
    }


def test_create_table_column_details():
    stmt = parse_statement('''
        CREATE TABLE IF NOT EXISTS `my sink` (
            `word` STRING NOT NULL COMMENT 'the, word',
            amount DECIMAL(10, 2),
            tags ARRAY<STRING>,
            PRIMARY KEY (`word`) NOT ENFORCED
        ) COMMENT 'counts' WITH (
            'connector' = 'print',
            'print-identifier' = 'it''s'
        );
    ''')

    assert isinstance(stmt, CreateTable)
    assert stmt.name == 'my sink'
    assert stmt.if_not_exists
    assert stmt.comment == 'counts'
    assert stmt.primary_key == ['word']

    word, amount, tags = stmt.columns
    assert (word.name, word.type, word.nullable, word.comment) == (
        'word', 'STRING', False, 'the, word'
    )
    assert amount.type == 'DECIMAL(10, 2)'
    assert tags.type == 'ARRAY<STRING>'
    assert stmt.options['print-identifier'] == 'it\'s'


def test_create_table_without_options():
    stmt = parse_statement('CREATE TABLE t (a INT)')
    assert isinstance(stmt, CreateTable)
    assert stmt.options == {}


@pytest.mark.parametrize(
    'sql',
    [
        'CREATE TABLE t',
        'CREATE TABLE t ()',
        'CREATE TABLE t (a INT',
        'CREATE TABLE t (a)',
        'CREATE TABLE t (a INT) WITH (\'k\' = v)',
        'CREATE TABLE t (a INT) WITH (\'k\' = \'1\', \'k\' = \'2\')',
        'CREATE TABLE t (a INT) PARTITIONED BY (a)',
        'CREATE TABLE t (a INT, b AS a + 1)',
        'CREATE TABLE t (a INT, PRIMARY KEY (b) NOT ENFORCED)',
        'CREATE TABLE t (ts TIMESTAMP(3), WATERMARK FOR ts AS ts)',
        'UPDATE t SET a = 1',
        'SHOW DATABASES',
        'EXPLAIN',
        '',
    ],
)
def test_malformed_statements(sql):
    with pytest.raises(SqlParseError):
        parse_statement(sql)


def test_other_statements():
    assert parse_statement('DROP TABLE IF EXISTS t') == DropTable(name='t', if_exists=True)
    assert parse_statement('drop table t') == DropTable(name='t')
    assert isinstance(parse_statement('SHOW  TABLES'), ShowTables)
    assert parse_statement('DESC `t`') == Describe(name='t')
    assert parse_statement('EXPLAIN SELECT 1') == Explain(query='SELECT 1')
    assert parse_statement('SELECT * FROM t;') == Query(query='SELECT * FROM t')


def test_insert_statements():
    stmt = parse_statement(
        'INSERT INTO mySink SELECT word, COUNT(*) FROM mySource GROUP BY word'
    )
    assert stmt == Insert(
        table='mySink',
        query='SELECT word, COUNT(*) FROM mySource GROUP BY word',
    )

    stmt = parse_statement('INSERT OVERWRITE TABLE out (b, a) SELECT 1, 2')
    assert isinstance(stmt, Insert)
    assert stmt.overwrite
    assert stmt.columns == ['b', 'a']


def test_split_statements():
    script = '''
        -- register tables; then query
        CREATE TABLE t (a STRING) WITH ('path' = '/tmp/a;b');
        /* block; comment */
        SELECT ';' FROM t;;
    '''
    assert split_statements(script) == [
        'CREATE TABLE t (a STRING) WITH (\'path\' = \'/tmp/a;b\')',
        'SELECT \';\' FROM t',
    ]


def test_unterminated_literal():
    with pytest.raises(SqlParseError):
        split_statements('SELECT \'oops FROM t')


def test_referenced_names():
    query = 'SELECT a FROM words JOIN `other`.x ON words.a = x.a WHERE b = \'counts\''
    assert referenced_names(query, ['words', 'counts', 'other', 'unused']) == [
        'words', 'other'
    ]


def test_to_engine_sql():
    assert to_engine_sql('SELECT `count` FROM t -- trailing') == 'SELECT "count" FROM t '
